"""
Inpainting status notifications.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class InpaintState(Enum):
    """Lifecycle of the inpainting session."""
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class InpaintStatus:
    """Snapshot published on every status change."""
    state: InpaintState = InpaintState.UNLOADED
    execution_provider: Optional[str] = None
    progress: str = ""
    error: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.state == InpaintState.LOADING

    @property
    def ready(self) -> bool:
        return self.state == InpaintState.READY


StatusCallback = Callable[[InpaintStatus], None]


class StatusChannel:
    """
    Fan-out of InpaintStatus updates.

    Any number of subscribers may listen; ``current`` can be polled
    instead. A subscriber that raises is logged and skipped.
    """

    def __init__(self):
        self._current = InpaintStatus()
        self._subscribers: list[StatusCallback] = []

    @property
    def current(self) -> InpaintStatus:
        return self._current

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, **changes) -> InpaintStatus:
        self._current = replace(self._current, **changes)
        for callback in list(self._subscribers):
            try:
                callback(self._current)
            except Exception as e:
                logger.warning(f"Status subscriber failed: {e}")
        return self._current
