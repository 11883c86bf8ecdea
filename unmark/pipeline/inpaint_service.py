"""
Inpainting Service Host

Runs an inpainting session on a dedicated worker thread. Callers never
touch the session directly: they post request messages and receive
replies through the callback registered with ``connect``. Requests are
handled one at a time in arrival order.
"""

import logging
import queue
import threading
from typing import Callable, Optional

from .messages import (
    ErrorReply,
    Loaded,
    LoadRequest,
    LogMessage,
    ModelSource,
    Reply,
    Request,
    RunRequest,
    RunResult,
)

logger = logging.getLogger(__name__)

_SHUTDOWN = object()


class InpaintService:
    """
    Base class for message-driven inpainting sessions.

    Subclasses implement ``load_session``, ``run_session`` and
    ``release_session``; exceptions they raise are turned into
    ``ErrorReply`` messages for the request that caused them.
    """

    def __init__(self, name: str = "inpaint-service"):
        self._name = name
        self._inbox: queue.Queue = queue.Queue()
        self._reply: Optional[Callable[[Reply], None]] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def connect(self, reply: Callable[[Reply], None]):
        """Set the callback that receives every reply (called on the worker thread)."""
        self._reply = reply

    def post(self, message: Request):
        """Queue a request, starting the worker thread on first use."""
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._serve, name=self._name, daemon=True)
                self._thread.start()
        self._inbox.put(message)

    def close(self, timeout: float = 5.0):
        """
        Stop the worker thread and release the session.

        With a worker running, the release happens on the worker once the
        request in hand finishes, even if that outlasts ``timeout``.
        """
        with self._lock:
            thread, self._thread = self._thread, None
        if thread is None or not thread.is_alive():
            self.release_session()
            return

        self._inbox.put(_SHUTDOWN)
        thread.join(timeout)
        if thread.is_alive():
            logger.warning(f"{self._name} still busy after {timeout}s, session released when it finishes")

    def log(self, message: str):
        """Send a progress message to the connected client."""
        logger.info(message)
        self._send(LogMessage(message))

    # Session hooks

    @property
    def has_session(self) -> bool:
        raise NotImplementedError

    def load_session(self, source: ModelSource) -> str:
        """Create the session; returns the execution provider used."""
        raise NotImplementedError

    def run_session(self, request: RunRequest) -> RunResult:
        raise NotImplementedError

    def release_session(self):
        pass

    # Worker loop

    def _send(self, message: Reply):
        if self._reply is None:
            logger.debug(f"No client connected, dropping {type(message).__name__}")
            return
        self._reply(message)

    def _serve(self):
        while True:
            message = self._inbox.get()
            if message is _SHUTDOWN:
                self.release_session()
                break
            self._send(self._handle(message))

    def _handle(self, message: Request) -> Reply:
        if isinstance(message, LoadRequest):
            try:
                self.log("Starting model load...")
                provider = self.load_session(message.source)
                return Loaded(message.request_id, provider)
            except Exception as e:
                logger.error(f"Model load failed: {e}")
                return ErrorReply(message.request_id, f"Model load failed: {e}")

        if isinstance(message, RunRequest):
            if not self.has_session:
                return ErrorReply(message.request_id, "Session not ready", session_lost=True)
            try:
                self.log("Running inference...")
                return self.run_session(message)
            except Exception as e:
                logger.error(f"Inference failed: {e}")
                return ErrorReply(message.request_id, f"Inference failed: {e}")

        return ErrorReply(getattr(message, "request_id", ""), f"Unknown message: {type(message).__name__}")
