"""
LaMa Inpainting Service

Hosts the TorchScript LaMa model behind the InpaintService message
protocol. torch and simple-lama-inpainting are imported on first load so
the rest of the engine works without them.
"""

import logging

import cv2
import numpy as np

from ..config import get_execution_providers
from .inpaint_service import InpaintService
from .messages import ModelSource, RunRequest, RunResult
from .pixels import PixelBuffer

logger = logging.getLogger(__name__)


class LamaInpaintService(InpaintService):
    """LaMa big-lama session, preferring CUDA and falling back to CPU."""

    def __init__(self, device: str = "auto"):
        super().__init__(name="lama-inpaint")
        self._device_preference = device
        self._model = None
        self._device = None

    @property
    def has_session(self) -> bool:
        return self._model is not None

    def load_session(self, source: ModelSource) -> str:
        import torch
        from simple_lama_inpainting.models.model import download_model

        self.log(f"Fetching LaMa model ({source.version})...")
        # Download/get cached model path
        model_path = download_model(source.url)

        last_error = None
        for provider in get_execution_providers(self._device_preference):
            try:
                self.log(f"Trying execution provider: {provider}")
                model = torch.jit.load(model_path, map_location=provider)
                model.eval()
                self._model = model
                self._device = provider
                break
            except Exception as e:
                last_error = e
                self.log(f"Execution provider {provider} failed: {e}")

        if self._model is None:
            raise RuntimeError(f"Failed to initialize any execution provider: {last_error}")

        self.log(f"Model loaded with execution provider: {self._device}")
        return self._device

    def run_session(self, request: RunRequest) -> RunResult:
        import torch

        image = torch.from_numpy(np.ascontiguousarray(request.image)).to(self._device)
        mask = torch.from_numpy(np.ascontiguousarray(request.mask)).to(self._device)

        with torch.no_grad():
            result = self._model(image, mask)

        rgb = result[0].permute(1, 2, 0).cpu().numpy()
        rgb = np.clip(rgb * 255, 0, 255).astype(np.uint8)

        width, height = request.output_width, request.output_height
        if rgb.shape[:2] != (height, width):
            rgb = cv2.resize(rgb, (width, height), interpolation=cv2.INTER_CUBIC)

        return RunResult(
            request_id=request.request_id,
            pixels=PixelBuffer.from_rgb(rgb).pixels,
            width=width,
            height=height,
            execution_provider=self._device,
        )

    def release_session(self):
        if self._model is not None:
            self._model = None
            self._device = None
            logger.info("LaMa session released")
