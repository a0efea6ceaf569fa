"""
Restoring guard: the single reentrancy guard shared by the history engine,
version restore and the product-load sync.

While RESTORING, nothing may capture a history snapshot or apply a bulk
reset of its own. The guard is entered synchronously around a full form
reset and released on the next frame, so watchers that react to the reset
still observe RESTORING.
"""
import logging
from enum import Enum
from typing import Optional

from contentstate.timers import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class RestorePhase(Enum):
    IDLE = "idle"
    RESTORING = "restoring"


class RestoreGuard:
    """IDLE ⇄ RESTORING state machine with deferred release."""

    def __init__(self, scheduler: Scheduler):
        self._scheduler = scheduler
        self._phase = RestorePhase.IDLE
        self._release_handle: Optional[TimerHandle] = None
        self.label: Optional[str] = None

    @property
    def phase(self) -> RestorePhase:
        return self._phase

    @property
    def is_restoring(self) -> bool:
        return self._phase is RestorePhase.RESTORING

    def begin(self, label: Optional[str] = None) -> None:
        """IDLE → RESTORING. Re-entering supersedes any pending release."""
        if self._release_handle is not None:
            self._release_handle.cancel()
            self._release_handle = None
        self._phase = RestorePhase.RESTORING
        self.label = label
        logger.debug(f"GUARD: restoring ({label})")

    def release_next_frame(self) -> None:
        """Schedule RESTORING → IDLE after the current synchronous pass."""
        if self._phase is not RestorePhase.RESTORING:
            return
        if self._release_handle is not None:
            self._release_handle.cancel()
        self._release_handle = self._scheduler.call_soon(self.end)

    def end(self) -> None:
        """RESTORING → IDLE immediately."""
        self._release_handle = None
        if self._phase is RestorePhase.RESTORING:
            logger.debug(f"GUARD: restore finished ({self.label})")
        self._phase = RestorePhase.IDLE
        self.label = None

    def close(self) -> None:
        if self._release_handle is not None:
            self._release_handle.cancel()
            self._release_handle = None
        self._phase = RestorePhase.IDLE
