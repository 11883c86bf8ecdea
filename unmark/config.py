"""
Unmark Configuration

Environment-based configuration for the watermark engine.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


ASSETS_DIR = Path(__file__).parent / "assets"

# TorchScript build of LaMa, same weights simple-lama-inpainting ships
LAMA_MODEL_URL = "https://github.com/enesmsahin/simple-lama-inpainting/releases/download/v0.1.0/big-lama.pt"
LAMA_MODEL_VERSION = "v2"


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # Reference watermark assets
    template_48_path: Path = ASSETS_DIR / "bg_48.png"
    template_96_path: Path = ASSETS_DIR / "bg_96.png"

    # Detection
    search_area_ratio: float = 0.25  # bottom-right fraction of each dimension
    min_confidence: float = 0.3

    # Inpainting mask
    mask_dilate_px: int = 4
    mask_feather_px: int = 3

    # Inpainting model
    lama_model_url: str = LAMA_MODEL_URL
    lama_model_version: str = LAMA_MODEL_VERSION
    model_size: int = 512
    device: str = "auto"  # auto, cuda, cpu
    inpaint_timeout: float = 300.0  # seconds, 0 = no deadline

    # Inpaint even when detection confidence is below min_confidence
    inpaint_undetected: bool = True

    # Logging / metrics
    log_level: str = "INFO"
    metrics_port: int = 0  # 0 = don't serve

    class Config:
        env_prefix = "UNMARK_"
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def get_execution_providers(device: str = "auto") -> list[str]:
    """
    Execution providers to try, in order.

    Priority: CUDA > CPU. MPS is skipped, the TorchScript LaMa model
    doesn't run on it.
    """
    import torch

    if device != "auto":
        providers = [device]
    elif torch.cuda.is_available():
        providers = ["cuda"]
    else:
        providers = []

    if "cpu" not in providers:
        providers.append("cpu")
    return providers
