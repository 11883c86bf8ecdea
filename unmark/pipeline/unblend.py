"""
Reverse Alpha Blending

The watermark is composited as a white overlay:
    watermarked = (1 - alpha) * original + alpha * 255

so with a known alpha map the original is recovered exactly:
    original = (watermarked - alpha * 255) / (1 - alpha)
"""

import numpy as np

from .alpha_template import AlphaTemplate
from .pixels import PixelBuffer
from .search import WatermarkMatch, clip_window

# Caps alpha so (1 - alpha) never gets close to zero
MAX_ALPHA = 0.99

# Pixels at or below this alpha are left untouched
MIN_ALPHA = 0.001

WATERMARK_COLOR = 255.0


def unblend_watermark(image: PixelBuffer, template: AlphaTemplate, match: WatermarkMatch) -> None:
    """
    Remove the watermark in place at ``match``'s position.

    Only the RGB channels inside the template window are modified; the
    alpha channel and out-of-bounds window pixels are skipped. Does nothing
    when ``match.detected`` is false.
    """
    if not match.detected:
        return

    window = clip_window(image.height, image.width, match.x, match.y, template.size)
    if window is None:
        return
    img, tpl = window

    affected = template.alpha[tpl] > MIN_ALPHA
    alpha = np.minimum(template.alpha[tpl], MAX_ALPHA).astype(np.float64)
    if not affected.any():
        return

    rgb = image.pixels[img[0], img[1], :3]
    a = alpha[..., np.newaxis]
    original = (rgb.astype(np.float64) - a * WATERMARK_COLOR) / (1.0 - a)
    # Round half up, then clamp to the byte range
    restored = np.clip(np.floor(original + 0.5), 0, 255).astype(np.uint8)

    rgb[affected] = restored[affected]


def blend_watermark(image: PixelBuffer, template: AlphaTemplate, x: int, y: int) -> None:
    """
    Stamp the white watermark onto ``image`` in place (forward blend).

    Inverse of ``unblend_watermark``; used to build synthetic test images.
    """
    window = clip_window(image.height, image.width, x, y, template.size)
    if window is None:
        return
    img, tpl = window

    a = template.alpha[tpl].astype(np.float64)[..., np.newaxis]
    rgb = image.pixels[img[0], img[1], :3]
    blended = rgb.astype(np.float64) * (1.0 - a) + a * WATERMARK_COLOR
    rgb[...] = np.clip(np.floor(blended + 0.5), 0, 255).astype(np.uint8)
