"""
Shared fixtures: synthetic templates, images and a fake inpainting service.
"""

import threading
import time

import numpy as np
import pytest
from PIL import Image

from unmark.config import Settings
from unmark.pipeline import AlphaTemplate, WatermarkEngine
from unmark.pipeline.inpaint_service import InpaintService
from unmark.pipeline.messages import ModelSource, RunRequest, RunResult

SOURCE = ModelSource("https://example.invalid/lama.pt", "v-test")


def block_template(size: int, opacity: float = 1.0) -> AlphaTemplate:
    """Template opaque only in its central (size/2 x size/2) block."""
    alpha = np.zeros((size, size), dtype=np.float32)
    q = size // 4
    alpha[q:size - q, q:size - q] = opacity
    return AlphaTemplate(size=size, alpha=alpha)


def template_image(template: AlphaTemplate) -> Image.Image:
    """Render a template back into a grayscale-on-black reference image."""
    gray = np.round(template.alpha * 255).astype(np.uint8)
    return Image.fromarray(np.stack([gray, gray, gray], axis=2))


class FakeInpaintService(InpaintService):
    """
    In-process stand-in for the LaMa service.

    Fills the whole output with ``fill`` and records every run request.
    Tracks how many run requests were posted but not yet answered.
    """

    def __init__(self, provider="cpu", fill=(77, 77, 77), load_delay=0.05, run_delay=0.0):
        super().__init__(name="fake-inpaint")
        self.provider = provider
        self.fill = fill
        self.load_delay = load_delay
        self.run_delay = run_delay
        self.fail_load = False
        self.fail_run = False
        self.session = False
        self.load_count = 0
        self.requests: list[RunRequest] = []
        self.max_in_flight = 0
        self._in_flight = 0
        self.run_started = threading.Event()
        self.released = threading.Event()
        self.release_thread = None
        self._counter_lock = threading.Lock()

    def post(self, message):
        if isinstance(message, RunRequest):
            with self._counter_lock:
                self._in_flight += 1
                self.max_in_flight = max(self.max_in_flight, self._in_flight)
        super().post(message)

    def _handle(self, message):
        try:
            return super()._handle(message)
        finally:
            if isinstance(message, RunRequest):
                with self._counter_lock:
                    self._in_flight -= 1

    @property
    def has_session(self) -> bool:
        return self.session

    def load_session(self, source):
        self.load_count += 1
        self.log("Downloading model...")
        time.sleep(self.load_delay)
        if self.fail_load:
            raise RuntimeError("no execution provider available")
        self.session = True
        return self.provider

    def run_session(self, request):
        self.requests.append(request)
        self.run_started.set()
        time.sleep(self.run_delay)
        if self.fail_run:
            raise RuntimeError("out of memory")
        pixels = np.empty((request.output_height, request.output_width, 4), dtype=np.uint8)
        pixels[:, :, :3] = self.fill
        pixels[:, :, 3] = 255
        return RunResult(
            request_id=request.request_id,
            pixels=pixels,
            width=request.output_width,
            height=request.output_height,
            execution_provider=self.provider,
        )

    def release_session(self):
        self.session = False
        self.release_thread = threading.current_thread().name
        self.released.set()


@pytest.fixture
def template_48():
    return block_template(48)


@pytest.fixture
def template_96():
    return block_template(96)


@pytest.fixture
def templates(template_48, template_96):
    return {48: template_48, 96: template_96}


@pytest.fixture
def fake_service():
    service = FakeInpaintService()
    yield service
    service.close()


@pytest.fixture
def settings():
    return Settings(model_size=64, inpaint_timeout=10.0)


@pytest.fixture
def engine(settings, templates, fake_service):
    engine = WatermarkEngine(settings, templates=templates, inpaint_service=fake_service)
    yield engine
    engine.close()
