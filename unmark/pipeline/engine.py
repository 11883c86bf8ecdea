"""
Watermark Engine

Owns the alpha templates and the inpainting client, detects the watermark
and removes it either by reverse alpha blending or by LaMa inpainting.

    engine = WatermarkEngine()
    engine.initialize()
    cleaned = engine.remove_by_blend(image)

    await engine.load_inpainting()
    cleaned = await engine.remove_by_inpainting(image)
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from .. import metrics
from ..config import Settings, get_settings
from ..errors import AssetLoadError, InitError, InpaintLoadError
from .alpha_template import SIZE_CLASSES, AlphaTemplate
from .inpaint_client import InpaintClient, to_image_tensor, to_mask_tensor
from .inpaint_service import InpaintService
from .mask import build_mask
from .messages import ModelSource
from .pixels import PixelBuffer
from .search import WatermarkMatch, pick_match, search_watermark, to_brightness
from .status import StatusChannel
from .unblend import unblend_watermark

logger = logging.getLogger(__name__)

METHOD_BLEND = "blend"
METHOD_INPAINT = "inpaint"


@dataclass
class RemovalResult:
    """Result of a single removal."""
    image: PixelBuffer
    match: WatermarkMatch
    method: str
    elapsed: float  # seconds


class WatermarkEngine:
    """
    Detects and removes the logo watermark.

    Templates are loaded once by ``initialize`` (or injected) and shared
    read-only by every call. The inpainting session is loaded separately
    with ``load_inpainting``; its progress is published on
    ``inpaint_status``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        templates: Optional[dict[int, AlphaTemplate]] = None,
        inpaint_service: Optional[InpaintService] = None,
    ):
        self.settings = settings or get_settings()
        self._templates: dict[int, AlphaTemplate] = dict(templates or {})
        self._inpaint_service = inpaint_service
        self._client: Optional[InpaintClient] = None

    # Templates

    @property
    def is_initialized(self) -> bool:
        return all(size in self._templates for size in SIZE_CLASSES)

    def initialize(self):
        """
        Load both reference templates.

        Safe to call again after a failure or once already initialized.

        Raises:
            AssetLoadError: if either reference image can't be loaded
        """
        if self.is_initialized:
            return

        paths = {
            48: self.settings.template_48_path,
            96: self.settings.template_96_path,
        }
        loaded = {}
        for size, path in paths.items():
            template = AlphaTemplate.load(path)
            if template.size != size:
                raise AssetLoadError(
                    path, f"expected {size}x{size}, got {template.size}x{template.size}"
                )
            loaded[size] = template
        self._templates.update(loaded)
        logger.info("Watermark templates initialized")

    def template_for(self, size: int) -> AlphaTemplate:
        if not self.is_initialized:
            raise InitError("WatermarkEngine not initialized, call initialize() first")
        return self._templates[size]

    # Detection

    def detect(self, image: PixelBuffer) -> WatermarkMatch:
        """
        Find the watermark, trying both size classes.

        Never raises for image content; low confidence comes back as
        ``detected=False`` with the best placement found.
        """
        small_template = self.template_for(48)
        large_template = self.template_for(96)

        brightness = to_brightness(image)
        options = dict(
            search_area_ratio=self.settings.search_area_ratio,
            min_confidence=self.settings.min_confidence,
            brightness=brightness,
        )
        small = search_watermark(image, small_template, **options)
        large = search_watermark(image, large_template, **options)
        match = pick_match(small, large, self.settings.min_confidence)

        logger.info(
            f"Watermark {'detected' if match.detected else 'not detected'}: "
            f"size={match.size} position=({match.x}, {match.y}) confidence={match.confidence:.2f}"
        )
        metrics.record_detection(match.size, match.detected, match.confidence)
        return match

    # Reverse alpha blending

    def remove_by_blend(self, image: PixelBuffer) -> PixelBuffer:
        """Return a copy of ``image`` with the watermark un-blended (unchanged if not detected)."""
        return self._remove_by_blend(image)[0]

    def _remove_by_blend(self, image: PixelBuffer) -> tuple[PixelBuffer, WatermarkMatch]:
        match = self.detect(image)
        result = image.copy()
        if match.detected:
            unblend_watermark(result, self.template_for(match.size), match)
            metrics.record_removal(METHOD_BLEND)
        return result, match

    # Inpainting

    @property
    def inpaint_client(self) -> InpaintClient:
        if self._client is None:
            service = self._inpaint_service
            if service is None:
                from .lama_service import LamaInpaintService
                service = LamaInpaintService(device=self.settings.device)
            self._client = InpaintClient(service, timeout=self.settings.inpaint_timeout)
        return self._client

    @property
    def inpaint_status(self) -> StatusChannel:
        return self.inpaint_client.status

    @property
    def model_source(self) -> ModelSource:
        return ModelSource(self.settings.lama_model_url, self.settings.lama_model_version)

    def is_inpainting_ready(self) -> bool:
        return self._client is not None and self._client.ready

    async def load_inpainting(self) -> str:
        """
        Load the inpainting model, returning the execution provider.

        Raises:
            InpaintLoadError: if the session could not be created
        """
        try:
            provider = await self.inpaint_client.load(self.model_source)
        except Exception:
            metrics.record_inpaint_load("failed", "")
            raise
        metrics.record_inpaint_load("ready", provider)
        return provider

    async def remove_by_inpainting(self, image: PixelBuffer) -> PixelBuffer:
        """Return a copy of ``image`` with the watermark region inpainted."""
        return (await self._remove_by_inpainting(image))[0]

    async def _remove_by_inpainting(self, image: PixelBuffer) -> tuple[PixelBuffer, WatermarkMatch]:
        client = self.inpaint_client
        if not client.ready:
            raise InpaintLoadError("Inpainting not loaded, call load_inpainting() first")
        match = self.detect(image)

        if not match.detected and not self.settings.inpaint_undetected:
            logger.info("Skipping inpainting, watermark not detected")
            return image.copy(), match

        mask = build_mask(
            self.template_for(match.size),
            match,
            image.width,
            image.height,
            dilate_px=self.settings.mask_dilate_px,
            feather_px=self.settings.mask_feather_px,
        )

        resolution = self.settings.model_size
        start = time.perf_counter()
        result = await client.run(
            to_image_tensor(image, resolution),
            to_mask_tensor(mask, resolution),
            model_resolution=resolution,
            output_width=image.width,
            output_height=image.height,
        )
        metrics.record_inpaint_duration(time.perf_counter() - start)
        metrics.record_removal(METHOD_INPAINT)

        return PixelBuffer(result.pixels.copy()), match

    # Dispatch

    async def remove(self, image: PixelBuffer, method: str = METHOD_BLEND) -> RemovalResult:
        """Remove the watermark with ``method`` ("blend" or "inpaint")."""
        start = time.perf_counter()
        if method == METHOD_INPAINT:
            await self.load_inpainting()
            cleaned, match = await self._remove_by_inpainting(image)
        elif method == METHOD_BLEND:
            cleaned, match = self._remove_by_blend(image)
        else:
            raise ValueError(f"Unknown removal method: {method}")

        return RemovalResult(
            image=cleaned,
            match=match,
            method=method,
            elapsed=time.perf_counter() - start,
        )

    def close(self):
        """Release the inpainting session."""
        if self._client is not None:
            self._client.close()
            logger.info("WatermarkEngine resources released")
