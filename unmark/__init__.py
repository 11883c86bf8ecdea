"""
Unmark

Logo watermark detection and removal for generated images.
"""

from .errors import (
    AssetLoadError,
    InitError,
    InpaintError,
    InpaintLoadError,
    InpaintRunError,
    UnmarkError,
)
from .pipeline import PixelBuffer, WatermarkEngine, WatermarkMatch

__version__ = "0.1.0"

__all__ = [
    "WatermarkEngine",
    "PixelBuffer",
    "WatermarkMatch",
    "UnmarkError",
    "AssetLoadError",
    "InitError",
    "InpaintError",
    "InpaintLoadError",
    "InpaintRunError",
]
