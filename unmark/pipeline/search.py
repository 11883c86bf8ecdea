"""
Watermark Search

Locates the watermark by template correlation over the bottom-right
corner of the image. Candidate windows are scored by how much brighter
the template's opaque pixels are than the window average, weighted by
the expected opacity.
"""

import logging
from dataclasses import dataclass

import numpy as np

from .alpha_template import AlphaTemplate
from .pixels import PixelBuffer

logger = logging.getLogger(__name__)

# Template pixels at or below this opacity don't take part in scoring
ALPHA_THRESHOLD = 0.05

# Default placement is this far in from the bottom-right corner
FALLBACK_MARGIN = 32

DEFAULT_SEARCH_AREA_RATIO = 0.25
DEFAULT_MIN_CONFIDENCE = 0.3


@dataclass
class WatermarkMatch:
    """Best placement of a template in an image."""
    size: int
    x: int
    y: int
    confidence: float
    detected: bool

    @property
    def position(self) -> tuple[int, int]:
        return (self.x, self.y)


def to_brightness(image: PixelBuffer) -> np.ndarray:
    """Mean of the R, G and B channels as float64."""
    return image.rgb.astype(np.float64).mean(axis=2)


def clip_window(height: int, width: int, x: int, y: int, size: int):
    """
    Clip an S x S window at (x, y) to the image.

    Returns (image_slice, template_slice), or None if nothing overlaps.
    """
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(width, x + size), min(height, y + size)
    if x0 >= x1 or y0 >= y1:
        return None
    img = (slice(y0, y1), slice(x0, x1))
    tpl = (slice(y0 - y, y1 - y), slice(x0 - x, x1 - x))
    return img, tpl


def calculate_correlation(brightness: np.ndarray, template: AlphaTemplate, x: int, y: int) -> float:
    """
    Score the window with its top-left corner at (x, y).

    Out-of-bounds samples are skipped. Returns 0 when no in-bounds template
    pixel is opaque enough to count.
    """
    height, width = brightness.shape
    window = clip_window(height, width, x, y, template.size)
    if window is None:
        return 0.0
    img, tpl = window

    region = brightness[img]
    mean_brightness = region.mean()

    alpha = template.alpha[tpl]
    weighted = alpha > ALPHA_THRESHOLD
    alpha_sum = float(alpha[weighted].sum())
    if alpha_sum == 0:
        return 0.0

    deviation = np.maximum(region[weighted] - mean_brightness, 0.0) / 255.0
    return float((alpha[weighted] * deviation).sum()) / alpha_sum


def search_watermark(
    image: PixelBuffer,
    template: AlphaTemplate,
    search_area_ratio: float = DEFAULT_SEARCH_AREA_RATIO,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    brightness: np.ndarray | None = None,
) -> WatermarkMatch:
    """
    Find the best placement of ``template`` near the bottom-right corner.

    Two passes:
    1. Coarse scan of the search area with stride max(1, S // 8)
    2. Unit-stride refinement within 2 * stride of the coarse best,
       clipped to placements that fit inside the image

    The first strictly-better score wins ties. When no candidate can be
    scored (tiny images) the fallback corner placement is returned with
    zero confidence.

    Args:
        image: Image to search
        template: Alpha template for one size class
        search_area_ratio: Fraction of width/height scanned from the corner
        min_confidence: Threshold for ``detected``
        brightness: Optional precomputed ``to_brightness(image)``

    Returns:
        WatermarkMatch for this size class
    """
    if brightness is None:
        brightness = to_brightness(image)

    width, height = image.width, image.height
    size = template.size

    search_width = int(width * search_area_ratio)
    search_height = int(height * search_area_ratio)
    start_x = width - search_width
    start_y = height - search_height

    best_x = width - size - FALLBACK_MARGIN
    best_y = height - size - FALLBACK_MARGIN
    best_score = float("-inf")

    step = max(1, size // 8)

    # Coarse pass
    for y in range(start_y, height - size + 1, step):
        for x in range(start_x, width - size + 1, step):
            score = calculate_correlation(brightness, template, x, y)
            if score > best_score:
                best_score, best_x, best_y = score, x, y

    # Refinement pass around the coarse best
    refine = step * 2
    center_x, center_y = best_x, best_y
    for y in range(max(0, center_y - refine), min(height - size, center_y + refine) + 1):
        for x in range(max(0, center_x - refine), min(width - size, center_x + refine) + 1):
            score = calculate_correlation(brightness, template, x, y)
            if score > best_score:
                best_score, best_x, best_y = score, x, y

    confidence = max(0.0, min(1.0, best_score * 2))

    return WatermarkMatch(
        size=size,
        x=best_x,
        y=best_y,
        confidence=confidence,
        detected=confidence >= min_confidence,
    )


def pick_match(small: WatermarkMatch, large: WatermarkMatch, min_confidence: float = DEFAULT_MIN_CONFIDENCE) -> WatermarkMatch:
    """
    Choose between the two size classes.

    The large footprint wins only if it is both more confident and above
    the detection threshold; otherwise the small result is returned, even
    when it is itself below threshold.
    """
    if large.confidence > small.confidence and large.confidence >= min_confidence:
        return large
    return small
