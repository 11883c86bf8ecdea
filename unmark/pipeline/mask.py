"""
Inpainting Mask Builder

Turns a template placement into the binary mask handed to the inpainting
model: seed from the template's opaque pixels, dilate to swallow blending
fringes, then feather and re-binarize for a smooth but hard-edged region.

Masks are (H, W) uint8 arrays where 255 = needs fill, 0 = keep.
"""

from functools import lru_cache

import cv2
import numpy as np

from .alpha_template import AlphaTemplate
from .search import ALPHA_THRESHOLD, WatermarkMatch, clip_window

MASK_FILL = 255

# Feathered pixels above this opacity become part of the fill region
FEATHER_THRESHOLD = 0.4


@lru_cache(maxsize=16)
def disc_kernel(radius: int) -> np.ndarray:
    """Structuring element of all offsets with dx^2 + dy^2 <= r^2."""
    r = max(0, int(radius))
    dy, dx = np.mgrid[-r:r + 1, -r:r + 1]
    kernel = ((dx * dx + dy * dy) <= r * r).astype(np.uint8)
    return kernel


def seed_mask(template: AlphaTemplate, match: WatermarkMatch, width: int, height: int) -> np.ndarray:
    """Mark every image pixel under an opaque template pixel as needing fill."""
    mask = np.zeros((height, width), dtype=np.uint8)
    window = clip_window(height, width, match.x, match.y, template.size)
    if window is None:
        return mask
    img, tpl = window
    mask[img][template.alpha[tpl] > ALPHA_THRESHOLD] = MASK_FILL
    return mask


def dilate_mask(mask: np.ndarray, radius: int) -> np.ndarray:
    """
    Grow the fill region by ``radius`` pixels (Euclidean disc).

    A pixel is filled if any seed pixel lies within the disc around it.
    Pixels beyond the image border never count as seeds.
    """
    if radius <= 0:
        return mask.copy()
    binary = np.where(mask > 127, MASK_FILL, 0).astype(np.uint8)
    return cv2.dilate(
        binary,
        disc_kernel(radius),
        borderType=cv2.BORDER_CONSTANT,
        borderValue=0,
    )


def feather_mask(mask: np.ndarray, feather_px: int) -> np.ndarray:
    """
    Gaussian-blur the mask by ``feather_px`` and snap it back to binary.

    The blur rounds off jagged corners; re-binarizing keeps the model from
    reading partial values as a weighting hint.
    """
    if feather_px <= 0:
        return mask.copy()
    soft = cv2.GaussianBlur(
        mask.astype(np.float32) / 255.0,
        (0, 0),
        sigmaX=float(feather_px),
        borderType=cv2.BORDER_CONSTANT,
    )
    return np.where(soft > FEATHER_THRESHOLD, MASK_FILL, 0).astype(np.uint8)


def build_mask(
    template: AlphaTemplate,
    match: WatermarkMatch,
    width: int,
    height: int,
    dilate_px: int = 4,
    feather_px: int = 3,
) -> np.ndarray:
    """
    Build the inpainting mask for a watermark placement.

    Args:
        template: Alpha template of the matched size class
        match: Placement to mask (need not be ``detected``)
        width: Image width
        height: Image height
        dilate_px: Dilation radius, 0 to skip
        feather_px: Feather radius, 0 to skip

    Returns:
        Binary uint8 mask, 255 = region to inpaint
    """
    mask = seed_mask(template, match, width, height)
    mask = dilate_mask(mask, dilate_px)
    return feather_mask(mask, feather_px)
