"""
Pixel Buffers

RGBA image data passed between the engine stages.
"""

from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image


@dataclass
class PixelBuffer:
    """
    Row-major RGBA image.

    ``pixels`` is a (height, width, 4) uint8 array. Stages that change
    pixels in place (alpha unblending) work on the array directly; callers
    that need the original must take a ``copy()`` first.
    """
    pixels: np.ndarray

    def __post_init__(self):
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError(f"Expected (H, W, 4) RGBA array, got shape {self.pixels.shape}")
        if self.pixels.dtype != np.uint8:
            self.pixels = np.clip(self.pixels, 0, 255).astype(np.uint8)

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def rgb(self) -> np.ndarray:
        """View of the color channels (alpha excluded)."""
        return self.pixels[:, :, :3]

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.pixels.copy())

    @classmethod
    def blank(cls, width: int, height: int, color: tuple[int, int, int] = (0, 0, 0)) -> "PixelBuffer":
        """Create an opaque buffer filled with a single color."""
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :, :3] = color
        pixels[:, :, 3] = 255
        return cls(pixels)

    @classmethod
    def from_rgb(cls, rgb: np.ndarray) -> "PixelBuffer":
        """Wrap an (H, W, 3) RGB array, adding an opaque alpha channel."""
        h, w = rgb.shape[:2]
        pixels = np.empty((h, w, 4), dtype=np.uint8)
        pixels[:, :, :3] = np.clip(rgb, 0, 255)
        pixels[:, :, 3] = 255
        return cls(pixels)

    @classmethod
    def from_pil(cls, image: Image.Image) -> "PixelBuffer":
        return cls(np.array(image.convert("RGBA"), dtype=np.uint8))

    @classmethod
    def open(cls, path: Path) -> "PixelBuffer":
        with Image.open(path) as image:
            return cls.from_pil(image)

    def to_pil(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    def save(self, path: Path):
        self.to_pil().save(path, format="PNG")
