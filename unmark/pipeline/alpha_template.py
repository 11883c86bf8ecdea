"""
Alpha Templates

Per-pixel opacity maps for the known watermark footprints. The watermark
is a white overlay, so the brightest channel of the reference image is a
good estimate of the alpha it was composited with.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image

from ..errors import AssetLoadError

logger = logging.getLogger(__name__)

# Reference footprints the watermark is rendered at
SIZE_CLASSES = (48, 96)


@dataclass(frozen=True, eq=False)
class AlphaTemplate:
    """Read-only S x S opacity map with values in [0, 1]."""
    size: int
    alpha: np.ndarray

    def __post_init__(self):
        if self.alpha.shape != (self.size, self.size):
            raise ValueError(
                f"Alpha map shape {self.alpha.shape} does not match size {self.size}"
            )
        alpha = np.clip(self.alpha.astype(np.float32), 0.0, 1.0)
        alpha.flags.writeable = False
        object.__setattr__(self, "alpha", alpha)

    @classmethod
    def from_rgb(cls, rgb: np.ndarray) -> "AlphaTemplate":
        """Derive opacity as max(R, G, B) / 255 for every pixel."""
        h, w = rgb.shape[:2]
        if h != w:
            raise ValueError(f"Watermark template must be square, got {w}x{h}")
        alpha = rgb[:, :, :3].max(axis=2).astype(np.float32) / 255.0
        return cls(size=w, alpha=alpha)

    @classmethod
    def from_image(cls, image: Image.Image) -> "AlphaTemplate":
        """Flatten over black first, so transparent background pixels read as opacity 0."""
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
        flattened = Image.alpha_composite(background, rgba)
        return cls.from_rgb(np.array(flattened.convert("RGB")))

    @classmethod
    def load(cls, path: Path) -> "AlphaTemplate":
        """
        Load a template from a reference image on disk.

        Raises:
            AssetLoadError: if the file is missing, unreadable or not square
        """
        try:
            with Image.open(path) as image:
                template = cls.from_image(image)
        except (OSError, ValueError) as e:
            # UnidentifiedImageError is an OSError
            raise AssetLoadError(path, str(e)) from e

        logger.info(f"Loaded {template.size}x{template.size} watermark template from {path}")
        return template

    @classmethod
    def uniform(cls, size: int, opacity: float) -> "AlphaTemplate":
        return cls(size=size, alpha=np.full((size, size), opacity, dtype=np.float32))
