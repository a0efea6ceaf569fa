"""
Stabilization Guard: suppresses false "dirty" signals right after a load,
reset or save.

Components bound to the form may rewrite freshly reset values on their own
(an empty rich-text field becoming '<p></p>'). Those writes are not user
intent. Until the settle timer fires the form is reported clean; when it
fires, untouched dirtiness is absorbed into the baseline.

Two small state machines:

    StabilityPhase:  SETTLING ──(settle timer)──▶ STABLE
                     STABLE ──(load/reset/fetch)──▶ SETTLING

    PostSavePhase:   IDLE ──arm_post_save()──▶ ARMED
                     ARMED ──release_post_save(settled=False)──▶ IDLE
                     ARMED ──release_post_save() + quick settle──▶ IDLE

While ARMED, fetches do not destabilize the form and the session does not
re-project refetched records into it.
"""
import logging
from enum import Enum
from typing import Callable, List, Optional

from contentstate.config import EditorConfig, get_editor_config
from contentstate.form_state import FormState
from contentstate.guards import RestoreGuard
from contentstate.history import FormHistory
from contentstate.timers import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class StabilityPhase(Enum):
    SETTLING = "settling"
    STABLE = "stable"


class PostSavePhase(Enum):
    IDLE = "idle"
    ARMED = "armed"


class StabilizationGuard:
    """Owns the settle timer and the post-save guard for one editor."""

    def __init__(
        self,
        form: FormState,
        history: FormHistory,
        guard: RestoreGuard,
        scheduler: Scheduler,
        config: Optional[EditorConfig] = None,
    ):
        self._config = config or get_editor_config()
        self._form = form
        self._history = history
        self._guard = guard
        self._scheduler = scheduler
        self._phase = StabilityPhase.SETTLING
        self._post_save = PostSavePhase.IDLE
        self._settle_handle: Optional[TimerHandle] = None
        self._on_stable_callbacks: List[Callable[[], None]] = []

    # ==================== FLAGS ====================

    @property
    def phase(self) -> StabilityPhase:
        return self._phase

    @property
    def form_stable(self) -> bool:
        return self._phase is StabilityPhase.STABLE

    @property
    def post_save_phase(self) -> PostSavePhase:
        return self._post_save

    @property
    def post_save_armed(self) -> bool:
        return self._post_save is PostSavePhase.ARMED

    @property
    def is_dirty(self) -> bool:
        """Dirty as reported to the UI: never before the form is stable."""
        return self.form_stable and self._form.is_dirty

    # ==================== TRANSITIONS ====================

    def on_fetch_started(self) -> None:
        """A product fetch began. Ignored while the post-save guard is armed."""
        if self.post_save_armed:
            logger.debug("STABILIZE: fetch during save ignored (post-save guard armed)")
            return
        self._cancel_settle()
        self._phase = StabilityPhase.SETTLING

    def on_fetch_finished(self) -> None:
        """A fetch completed without resetting the form. Resume settling if it was interrupted."""
        if self._phase is StabilityPhase.SETTLING and self._settle_handle is None and not self.post_save_armed:
            self._start_settling(self._config.settle_delay)

    def on_record_loaded(self) -> None:
        """The form was bulk-reset (load, resync). Restart the settle window."""
        self._start_settling(self._config.settle_delay)

    def arm_post_save(self) -> None:
        """IDLE → ARMED. Called before any save request is issued."""
        self._cancel_settle()
        self._post_save = PostSavePhase.ARMED
        logger.debug("STABILIZE: post-save guard armed")

    def release_post_save(self, settled: bool = True) -> None:
        """Leave the ARMED state.

        Args:
            settled: True after a successful save. The guard stays armed for
                the short post-save settle window so refetches triggered by
                the save are absorbed, then disarms from the settle timer.
                False disarms immediately (failed save).
        """
        if not self.post_save_armed:
            return
        if settled:
            self._start_settling(self._config.post_save_settle_delay)
        else:
            self._disarm()
            if self._phase is StabilityPhase.SETTLING and self._settle_handle is None:
                self._start_settling(self._config.settle_delay)

    def _disarm(self) -> None:
        self._post_save = PostSavePhase.IDLE
        logger.debug("STABILIZE: post-save guard disarmed")

    # ==================== SETTLE ====================

    def _start_settling(self, delay: float) -> None:
        self._cancel_settle()
        self._phase = StabilityPhase.SETTLING
        self._settle_handle = self._scheduler.call_later(delay, self._settle)

    def _cancel_settle(self) -> None:
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None

    def _settle(self) -> None:
        self._settle_handle = None
        if self.post_save_armed:
            self._disarm()

        if self._guard.is_restoring:
            # A restore owns the form right now; it is already a deliberate state
            self._mark_stable()
            return

        if not self._form.touched_fields:
            if self._form.is_dirty:
                logger.debug(
                    f"STABILIZE: absorbing normalization of {sorted(self._form.dirty_fields)}"
                )
                self._form.reset()
            self._history.mark_as_saved(replace_current=True)

        self._mark_stable()

    def _mark_stable(self) -> None:
        self._phase = StabilityPhase.STABLE
        logger.debug("STABILIZE: form stable")
        for callback in list(self._on_stable_callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning(f"Error in stabilization callback: {e}")

    def on_stable(self, callback: Callable[[], None]) -> None:
        if callback not in self._on_stable_callbacks:
            self._on_stable_callbacks.append(callback)

    def close(self) -> None:
        self._cancel_settle()
        self._on_stable_callbacks.clear()
