"""
Unmark Pipeline

Detection, reverse alpha blending, mask building and inpainting.
"""

from .alpha_template import AlphaTemplate, SIZE_CLASSES
from .engine import WatermarkEngine, RemovalResult, METHOD_BLEND, METHOD_INPAINT
from .inpaint_client import InpaintClient
from .inpaint_service import InpaintService
from .mask import build_mask, dilate_mask, disc_kernel
from .messages import ModelSource
from .pixels import PixelBuffer
from .search import WatermarkMatch, search_watermark
from .status import InpaintState, InpaintStatus, StatusChannel
from .unblend import unblend_watermark, blend_watermark

__all__ = [
    # Data
    "PixelBuffer",
    "AlphaTemplate",
    "SIZE_CLASSES",
    "WatermarkMatch",
    # Algorithms
    "search_watermark",
    "unblend_watermark",
    "blend_watermark",
    "build_mask",
    "dilate_mask",
    "disc_kernel",
    # Inpainting
    "ModelSource",
    "InpaintService",
    "InpaintClient",
    "InpaintState",
    "InpaintStatus",
    "StatusChannel",
    # Orchestration
    "WatermarkEngine",
    "RemovalResult",
    "METHOD_BLEND",
    "METHOD_INPAINT",
]
