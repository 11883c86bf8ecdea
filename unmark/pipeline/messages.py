"""
Inpainting Service Messages

Request/response types exchanged with the inpainting service. Every
request carries a correlation id that its reply echoes back; log messages
are unsolicited and carry none.
"""

import uuid
from dataclasses import dataclass
from typing import Union

import numpy as np


@dataclass(frozen=True)
class ModelSource:
    """Versioned reference to the inpainting model weights."""
    url: str
    version: str

    @property
    def cache_key(self) -> str:
        return f"{self.version}::{self.url}"


def new_request_id() -> str:
    return uuid.uuid4().hex


# Requests

@dataclass
class LoadRequest:
    request_id: str
    source: ModelSource


@dataclass
class RunRequest:
    """
    One inpainting job.

    ``image`` is float32 [1, 3, R, R] in [0, 1]; ``mask`` is float32
    [1, 1, R, R] with 1 = fill. The service resizes its output to
    ``output_width`` x ``output_height``.
    """
    request_id: str
    image: np.ndarray
    mask: np.ndarray
    model_resolution: int
    output_width: int
    output_height: int


# Replies

@dataclass
class Loaded:
    request_id: str
    execution_provider: str


@dataclass
class RunResult:
    """Filled image as (height, width, 4) uint8 RGBA."""
    request_id: str
    pixels: np.ndarray
    width: int
    height: int
    execution_provider: str


@dataclass
class ErrorReply:
    request_id: str
    message: str
    session_lost: bool = False  # session must be reloaded before the next run


@dataclass
class LogMessage:
    message: str


Request = Union[LoadRequest, RunRequest]
Reply = Union[Loaded, RunResult, ErrorReply, LogMessage]
