"""
Engine errors.

Detection never raises; a low confidence is a normal result. Errors here
cover asset loading, engine misuse and the inpainting service boundary.
"""


class UnmarkError(Exception):
    """Base class for all engine errors."""


class AssetLoadError(UnmarkError):
    """A reference watermark image could not be read or decoded."""

    def __init__(self, path, reason: str = ""):
        self.path = path
        message = f"Could not load watermark template: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InitError(UnmarkError):
    """Engine used before its templates were loaded."""


class InpaintError(UnmarkError):
    """Base class for failures on the inpainting path."""


class InpaintLoadError(InpaintError):
    """The inpainting session could not be created, or has been lost."""


class InpaintRunError(InpaintError):
    """Inference failed (or timed out) for a single request."""
