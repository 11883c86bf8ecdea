"""
Inpainting Client

Async front for an InpaintService. Replies arrive on the service's worker
thread and are handed back to the event loop, where they resolve the
future registered under the request's correlation id.

- ``load`` is single-flight: concurrent callers share one load and its outcome
- ``run`` calls are serialized, one request in flight per session
"""

import asyncio
import logging
from typing import Optional

import cv2
import numpy as np

from ..errors import InpaintLoadError, InpaintRunError
from .inpaint_service import InpaintService
from .messages import (
    ErrorReply,
    LoadRequest,
    LogMessage,
    ModelSource,
    Reply,
    RunRequest,
    RunResult,
    new_request_id,
)
from .pixels import PixelBuffer
from .status import InpaintState, StatusChannel

logger = logging.getLogger(__name__)


def to_image_tensor(image: PixelBuffer, resolution: int) -> np.ndarray:
    """Resize RGB to resolution x resolution, as float32 [1, 3, R, R] in [0, 1]."""
    rgb = np.ascontiguousarray(image.rgb)
    rgb = cv2.resize(rgb, (resolution, resolution), interpolation=cv2.INTER_AREA)
    return (rgb.astype(np.float32) / 255.0).transpose(2, 0, 1)[np.newaxis].copy()


def to_mask_tensor(mask: np.ndarray, resolution: int) -> np.ndarray:
    """Resize a 0/255 mask to resolution x resolution, as float32 [1, 1, R, R] in {0, 1}."""
    small = cv2.resize(mask, (resolution, resolution), interpolation=cv2.INTER_LINEAR)
    return (small > 127).astype(np.float32)[np.newaxis, np.newaxis]


class InpaintClient:
    """
    Request/response client for one inpainting session.

    Args:
        service: Service hosting the session
        timeout: Seconds to wait for a ``run`` reply, None or 0 for no deadline
    """

    def __init__(self, service: InpaintService, timeout: Optional[float] = None):
        self._service = service
        self._timeout = timeout or None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: dict[str, asyncio.Future] = {}
        self._load_task: Optional[asyncio.Future] = None
        self._run_lock = asyncio.Lock()
        self._execution_provider: Optional[str] = None
        self.status = StatusChannel()

        service.connect(self._on_reply)

    @property
    def ready(self) -> bool:
        return self.status.current.ready

    @property
    def execution_provider(self) -> Optional[str]:
        return self._execution_provider

    # Reply routing

    def _on_reply(self, message: Reply):
        """Called on the service thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug(f"Event loop gone, dropping {type(message).__name__}")
            return
        try:
            loop.call_soon_threadsafe(self._dispatch, message)
        except RuntimeError:
            logger.debug(f"Event loop closed, dropping {type(message).__name__}")

    def _dispatch(self, message: Reply):
        if isinstance(message, LogMessage):
            if self.status.current.loading:
                self.status.publish(progress=message.message)
            return

        future = self._pending.pop(message.request_id, None)
        if future is None or future.done():
            logger.warning(f"Dropping reply for unknown or expired request {message.request_id}")
            return
        future.set_result(message)

    async def _request(self, message, timeout: Optional[float] = None) -> Reply:
        self._loop = asyncio.get_running_loop()
        future = self._loop.create_future()
        self._pending[message.request_id] = future
        try:
            self._service.post(message)
            if timeout:
                return await asyncio.wait_for(future, timeout)
            return await future
        finally:
            self._pending.pop(message.request_id, None)

    # Load

    async def load(self, source: ModelSource) -> str:
        """
        Load the session, returning the execution provider.

        Concurrent callers await the same attempt. A failed attempt is
        reported to all of them; the next call starts a fresh one.

        Raises:
            InpaintLoadError: if the service could not create a session
        """
        if self.ready:
            return self._execution_provider
        if self._load_task is None or self._load_task.done():
            self._load_task = asyncio.ensure_future(self._load(source))
        return await asyncio.shield(self._load_task)

    async def _load(self, source: ModelSource) -> str:
        self.status.publish(
            state=InpaintState.LOADING,
            progress="Initializing worker...",
            error=None,
        )
        try:
            reply = await self._request(LoadRequest(new_request_id(), source))
            if isinstance(reply, ErrorReply):
                raise InpaintLoadError(reply.message)
        except asyncio.CancelledError:
            # Loop shut down mid-load; the next load() starts over
            self._load_task = None
            self.status.publish(state=InpaintState.FAILED, error="Model load cancelled", progress="")
            raise
        except Exception as e:
            self._load_task = None
            self.status.publish(state=InpaintState.FAILED, error=str(e), progress="")
            if isinstance(e, InpaintLoadError):
                raise
            raise InpaintLoadError(f"Model load failed: {e}") from e

        self._execution_provider = reply.execution_provider
        self._load_task = None
        self.status.publish(
            state=InpaintState.READY,
            execution_provider=reply.execution_provider,
            progress=f"Model ready ({reply.execution_provider})",
        )
        logger.info(f"Inpainting session ready on {reply.execution_provider}")
        return reply.execution_provider

    # Run

    async def run(
        self,
        image: np.ndarray,
        mask: np.ndarray,
        model_resolution: int,
        output_width: int,
        output_height: int,
    ) -> RunResult:
        """
        Inpaint one prepared image/mask pair.

        Waits for any run already in flight before sending.

        Raises:
            InpaintLoadError: if no session is loaded, or the service lost it
            InpaintRunError: if inference failed or timed out
        """
        if not self.ready:
            raise InpaintLoadError("Inpainting session is not loaded")

        async with self._run_lock:
            request = RunRequest(
                request_id=new_request_id(),
                image=image,
                mask=mask,
                model_resolution=model_resolution,
                output_width=output_width,
                output_height=output_height,
            )
            try:
                reply = await self._request(request, timeout=self._timeout)
            except asyncio.TimeoutError as e:
                raise InpaintRunError(f"Inpainting timed out after {self._timeout}s") from e

        if isinstance(reply, ErrorReply):
            if reply.session_lost:
                self._execution_provider = None
                self.status.publish(state=InpaintState.FAILED, error=reply.message, progress="")
                raise InpaintLoadError(reply.message)
            raise InpaintRunError(reply.message)
        return reply

    def close(self):
        """Shut the service down; the session must be loaded again before reuse."""
        self._service.close()
        self._execution_provider = None
        self.status.publish(state=InpaintState.UNLOADED, progress="", error=None)
