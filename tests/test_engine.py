"""
Tests for the WatermarkEngine orchestrator.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from unmark.config import Settings
from unmark.errors import AssetLoadError, InitError, InpaintLoadError
from unmark.pipeline import (
    METHOD_BLEND,
    METHOD_INPAINT,
    InpaintState,
    PixelBuffer,
    WatermarkEngine,
    blend_watermark,
)

from conftest import FakeInpaintService, block_template, template_image


def stamped(template, x, y, size=400, color=(60, 60, 60)):
    image = PixelBuffer.blank(size, size, color=color)
    blend_watermark(image, template, x, y)
    return image


def noise_image(size=400, seed=0):
    rng = np.random.default_rng(seed)
    return PixelBuffer.from_rgb(rng.integers(50, 61, size=(size, size, 3), dtype=np.uint8))


@pytest.fixture
def soft_templates():
    return {48: block_template(48, opacity=0.6), 96: block_template(96, opacity=0.6)}


@pytest.fixture
def soft_engine(settings, soft_templates, fake_service):
    engine = WatermarkEngine(settings, templates=soft_templates, inpaint_service=fake_service)
    yield engine
    engine.close()


class TestInitialization:

    def test_detect_before_initialize_raises(self, settings):
        engine = WatermarkEngine(settings)

        assert not engine.is_initialized
        with pytest.raises(InitError):
            engine.detect(PixelBuffer.blank(100, 100))

    def test_missing_assets_raise(self, tmp_path):
        settings = Settings(
            template_48_path=tmp_path / "bg_48.png",
            template_96_path=tmp_path / "bg_96.png",
        )
        engine = WatermarkEngine(settings)

        with pytest.raises(AssetLoadError):
            engine.initialize()
        assert not engine.is_initialized

    def test_initialize_from_files_and_retry(self, tmp_path):
        settings = Settings(
            template_48_path=tmp_path / "bg_48.png",
            template_96_path=tmp_path / "bg_96.png",
        )
        engine = WatermarkEngine(settings)
        template_image(block_template(48)).save(tmp_path / "bg_48.png")

        with pytest.raises(AssetLoadError):
            engine.initialize()

        template_image(block_template(96)).save(tmp_path / "bg_96.png")
        engine.initialize()
        engine.initialize()

        assert engine.is_initialized
        assert engine.template_for(48).size == 48
        assert engine.template_for(96).size == 96

    def test_template_in_wrong_slot_raises(self, tmp_path):
        settings = Settings(
            template_48_path=tmp_path / "bg_48.png",
            template_96_path=tmp_path / "bg_96.png",
        )
        engine = WatermarkEngine(settings)
        template_image(block_template(96)).save(tmp_path / "bg_48.png")
        template_image(block_template(96)).save(tmp_path / "bg_96.png")

        with pytest.raises(AssetLoadError, match="expected 48x48, got 96x96"):
            engine.initialize()
        assert not engine.is_initialized


class TestDetect:

    def test_detects_large_watermark(self, engine, template_96):
        image = stamped(template_96, 296, 296)

        match = engine.detect(image)

        assert match.size == 96
        assert match.position == (296, 296)
        assert match.detected

    def test_detects_small_watermark(self, engine, template_48):
        image = stamped(template_48, 330, 330)

        match = engine.detect(image)

        assert match.size == 48
        assert match.position == (330, 330)
        assert match.detected

    def test_clean_image_falls_back_to_small(self, engine):
        match = engine.detect(noise_image())

        assert match.size == 48
        assert not match.detected
        assert match.confidence < 0.3

    def test_concurrent_detects_share_templates(self, engine, template_48):
        image = stamped(template_48, 330, 330)

        with ThreadPoolExecutor(max_workers=4) as pool:
            matches = list(pool.map(engine.detect, [image] * 4))

        assert all(m.position == (330, 330) for m in matches)


class TestRemoveByBlend:

    def test_restores_original(self, soft_engine, soft_templates):
        image = stamped(soft_templates[48], 330, 330)
        stamped_pixels = image.pixels.copy()

        cleaned = soft_engine.remove_by_blend(image)

        assert np.abs(cleaned.rgb.astype(int) - 60).max() <= 1
        # Input left untouched
        np.testing.assert_array_equal(image.pixels, stamped_pixels)

    def test_no_watermark_returns_identical_copy(self, engine):
        image = noise_image()

        cleaned = engine.remove_by_blend(image)

        assert cleaned is not image
        assert cleaned.pixels is not image.pixels
        np.testing.assert_array_equal(cleaned.pixels, image.pixels)


class TestRemoveByInpainting:

    def test_requires_loaded_session(self, engine, template_48):
        assert not engine.is_inpainting_ready()

        with pytest.raises(InpaintLoadError):
            asyncio.run(engine.remove_by_inpainting(stamped(template_48, 330, 330)))

    def test_sends_downscaled_image_and_mask(self, engine, fake_service, template_48):
        image = stamped(template_48, 330, 330)
        before = image.pixels.copy()

        async def scenario():
            provider = await engine.load_inpainting()
            return provider, await engine.remove_by_inpainting(image)

        provider, cleaned = asyncio.run(scenario())

        assert provider == "cpu"
        assert engine.is_inpainting_ready()
        assert (cleaned.width, cleaned.height) == (400, 400)
        assert (cleaned.rgb == 77).all()
        np.testing.assert_array_equal(image.pixels, before)

        request = fake_service.requests[0]
        assert request.image.shape == (1, 3, 64, 64)
        assert request.mask.shape == (1, 1, 64, 64)
        assert (request.output_width, request.output_height) == (400, 400)
        # Watermark block [342, 366) scales to roughly [55, 59)
        assert request.mask[0, 0, 56, 56] == 1.0
        assert request.mask[0, 0, 10, 10] == 0.0

    def test_inpaints_undetected_by_default(self, engine, fake_service):
        async def scenario():
            await engine.load_inpainting()
            return await engine.remove_by_inpainting(noise_image())

        asyncio.run(scenario())

        assert len(fake_service.requests) == 1

    def test_skip_undetected_when_configured(self, templates):
        service = FakeInpaintService()
        settings = Settings(model_size=64, inpaint_undetected=False)
        engine = WatermarkEngine(settings, templates=templates, inpaint_service=service)
        image = noise_image()

        async def scenario():
            await engine.load_inpainting()
            return await engine.remove_by_inpainting(image)

        try:
            cleaned = asyncio.run(scenario())
        finally:
            engine.close()

        assert service.requests == []
        np.testing.assert_array_equal(cleaned.pixels, image.pixels)

    def test_status_channel_reports_ready(self, engine):
        seen = []
        engine.inpaint_status.subscribe(seen.append)

        asyncio.run(engine.load_inpainting())

        assert seen[0].state == InpaintState.LOADING
        assert engine.inpaint_status.current.ready
        assert engine.inpaint_status.current.execution_provider == "cpu"

    def test_failed_load_surfaces_error(self, engine, fake_service):
        fake_service.fail_load = True

        with pytest.raises(InpaintLoadError):
            asyncio.run(engine.load_inpainting())

        assert engine.inpaint_status.current.state == InpaintState.FAILED
        assert not engine.is_inpainting_ready()


class TestRemove:

    def test_blend_method(self, soft_engine, soft_templates):
        image = stamped(soft_templates[48], 330, 330)

        result = asyncio.run(soft_engine.remove(image, METHOD_BLEND))

        assert result.method == METHOD_BLEND
        assert result.match.detected
        assert result.elapsed >= 0
        assert np.abs(result.image.rgb.astype(int) - 60).max() <= 1

    def test_inpaint_method_loads_model(self, engine, template_48):
        image = stamped(template_48, 330, 330)

        result = asyncio.run(engine.remove(image, METHOD_INPAINT))

        assert result.method == METHOD_INPAINT
        assert engine.is_inpainting_ready()
        assert (result.image.rgb == 77).all()

    def test_unknown_method(self, engine):
        with pytest.raises(ValueError):
            asyncio.run(engine.remove(PixelBuffer.blank(100, 100), "magic"))
