"""
Form History (Undo/Redo) Engine.

Observes the FormState value stream and captures debounced snapshots of the
full form into a bounded, linear HistoryState (no redo branches).

Phases:
    IDLE       no capture pending
    CAPTURING  a debounced capture is scheduled
    RESTORING  undo/redo/restore is applying a snapshot; capture suppressed

Restoration applies a snapshot with a full FormState.reset() under the shared
RestoreGuard. The guard is released on the next frame, so the change events
emitted by the reset itself never schedule a capture.
"""
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional

from contentstate.config import EditorConfig, get_editor_config
from contentstate.form_state import FormChange, FormState
from contentstate.guards import RestoreGuard
from contentstate.snapshot_model import HistorySnapshot, HistoryState
from contentstate.timers import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

INITIAL_LABEL = "Initial"
PRE_UNDO_LABEL = "Pre-undo"
VERSION_RESTORED_LABEL = "Version restored"


class HistoryPhase(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    RESTORING = "restoring"


class FormHistory:
    """Undo/redo for one FormState.

    The first snapshot ("Initial") is taken once the form holds meaningful
    data and becomes the saved state. Identical consecutive snapshots are
    never pushed.
    """

    def __init__(
        self,
        form: FormState,
        scheduler: Scheduler,
        guard: RestoreGuard,
        config: Optional[EditorConfig] = None,
    ):
        self._config = config or get_editor_config()
        self._form = form
        self._scheduler = scheduler
        self._guard = guard
        self._state = HistoryState(max_depth=self._config.max_snapshots)
        self._debounce_handle: Optional[TimerHandle] = None
        self._atomic_depth = 0
        self._atomic_label: Optional[str] = None
        self._history_changed_callbacks: List[Callable[[], None]] = []
        self._unwatch = form.watch(self._on_form_change)
        self.initialize()

    # ==================== STATE ====================

    @property
    def phase(self) -> HistoryPhase:
        if self._guard.is_restoring:
            return HistoryPhase.RESTORING
        if self._debounce_handle is not None:
            return HistoryPhase.CAPTURING
        return HistoryPhase.IDLE

    @property
    def can_undo(self) -> bool:
        return self._state.can_undo

    @property
    def can_redo(self) -> bool:
        return self._state.can_redo

    @property
    def is_at_saved_state(self) -> bool:
        return self._state.is_at_saved_state

    @property
    def history_index(self) -> int:
        return self._state.cursor

    @property
    def history_length(self) -> int:
        return len(self._state.stack)

    @property
    def saved_index(self) -> Optional[int]:
        return self._state.saved_cursor

    @property
    def current(self) -> Optional[HistorySnapshot]:
        return self._state.current

    def get_history_info(self) -> List[Dict[str, Any]]:
        """Stack summary for history UIs (oldest first)."""
        return [
            {
                'index': i,
                'id': snap.id,
                'label': snap.label,
                'timestamp': snap.timestamp,
                'is_current': i == self._state.cursor,
                'is_saved': i == self._state.saved_cursor,
            }
            for i, snap in enumerate(self._state.stack)
        ]

    # ==================== CAPTURE ====================

    def initialize(self) -> bool:
        """Take the "Initial" snapshot once the form has meaningful data."""
        if self._state.stack or not self._form.has_meaningful_data:
            return False
        self._push(self._form.get_values(), INITIAL_LABEL)
        self._state.mark_saved()
        logger.debug("⏱️ HISTORY: initialized")
        return True

    def capture_snapshot(self, label: Optional[str] = None) -> bool:
        """Capture the live values now. Suppressed while restoring.

        Returns:
            True if a snapshot was pushed.
        """
        if self._guard.is_restoring:
            logger.debug(f"⏱️ HISTORY: capture '{label}' suppressed (restoring)")
            return False
        self._cancel_debounce()
        if not self._state.stack:
            return self.initialize()
        return self._push(self._form.get_values(), label)

    @contextmanager
    def atomic(self, label: str) -> Generator[None, None, None]:
        """Coalesce every change inside the block into one snapshot.

        Nested blocks are supported; only the outermost one captures.
        """
        self._atomic_depth += 1
        if self._atomic_depth == 1:
            self._atomic_label = label
            self._cancel_debounce()
        try:
            yield
        finally:
            self._atomic_depth -= 1
            if self._atomic_depth == 0:
                final_label = self._atomic_label or label
                self._atomic_label = None
                self.capture_snapshot(final_label)

    def _on_form_change(self, change: FormChange) -> None:
        if self._guard.is_restoring or self._atomic_depth or change.kind == 'baseline':
            return
        if not self._state.stack:
            self.initialize()
            return
        self._cancel_debounce()
        self._debounce_handle = self._scheduler.call_later(self._config.capture_debounce, self._flush_capture)

    def _flush_capture(self) -> None:
        self._debounce_handle = None
        if self._guard.is_restoring:
            return
        self._push(self._form.get_values(), None)

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    def _push(self, values: Dict[str, Any], label: Optional[str]) -> bool:
        current = self._state.current
        if current is not None and current.values == values:
            return False
        snapshot = HistorySnapshot.create(values, label)
        evicted = self._state.push(snapshot)
        logger.debug(
            f"⏱️ HISTORY: captured '{label or 'edit'}' "
            f"(index={self._state.cursor}, length={len(self._state.stack)}, evicted={evicted})"
        )
        self._fire_history_changed()
        return True

    def _has_uncaptured_changes(self) -> bool:
        current = self._state.current
        return current is not None and self._form.get_values() != current.values

    # ==================== NAVIGATION ====================

    def undo(self) -> bool:
        """Step back one snapshot. No-op (False) at the oldest snapshot.

        At the head of the stack, uncaptured live edits are pushed first as
        "Pre-undo" so redo can bring them back. At the oldest snapshot
        nothing changes, pending edits included.
        """
        if self._state.cursor <= 0:
            return False
        self._cancel_debounce()
        if self._state.is_at_head and self._has_uncaptured_changes():
            self._push(self._form.get_values(), PRE_UNDO_LABEL)
        target = self._state.step_back()
        if target is None:
            return False
        self._apply(target, "undo")
        return True

    def redo(self) -> bool:
        """Step forward one snapshot. No-op (False) at the newest snapshot.

        Uncaptured live edits are captured first, which truncates the redo
        branch (linear history), so redo then has nothing to do.
        """
        self._cancel_debounce()
        if self._has_uncaptured_changes():
            self._push(self._form.get_values(), None)
        target = self._state.step_forward()
        if target is None:
            return False
        self._apply(target, "redo")
        return True

    def restore(self, values: Mapping[str, Any], label: str = VERSION_RESTORED_LABEL) -> None:
        """Apply external values (e.g. a stored version) through the restoring path.

        The restored values are pushed as a labelled snapshot, so the
        restore itself can be undone.
        """
        self._cancel_debounce()
        self._guard.begin(label)
        try:
            self._form.reset(values)
            self._push(self._form.get_values(), label)
        finally:
            self._guard.release_next_frame()
        logger.info(f"⏱️ HISTORY: restored '{label}'")

    def _apply(self, snapshot: HistorySnapshot, action: str) -> None:
        self._guard.begin(action)
        try:
            self._form.reset(snapshot.copy_values())
        finally:
            self._guard.release_next_frame()
        logger.info(f"⏱️ HISTORY: {action} → index {self._state.cursor} ({snapshot.label or 'edit'})")
        self._fire_history_changed()

    # ==================== SAVED MARKER ====================

    def mark_as_saved(self, replace_current: bool = False, values: Optional[Mapping[str, Any]] = None) -> None:
        """Make the live values (or the given persisted values) the saved state.

        Pending edits are captured first so the saved cursor points at the
        saved values. replace_current rewrites the current snapshot in place
        instead of pushing (normalization absorption: no new undo step).

        When values is given and the form has moved on since (edits made
        while a save was in flight), the live values are pushed after the
        saved snapshot so they stay undoable and the form is not at the
        saved state.
        """
        self._cancel_debounce()
        if not self._state.stack:
            self.initialize()
        saved = self._form.get_values() if values is None else dict(values)
        current = self._state.current
        if current is not None and current.values != saved:
            if replace_current:
                self._state.stack[self._state.cursor] = HistorySnapshot.create(saved, current.label)
            else:
                self._push(saved, None)
        self._state.mark_saved()
        logger.debug(f"⏱️ HISTORY: marked saved at index {self._state.saved_cursor}")
        if values is not None and self._has_uncaptured_changes():
            self._push(self._form.get_values(), None)
        self._fire_history_changed()

    # ==================== LIFECYCLE ====================

    def clear(self) -> None:
        """Drop all snapshots (product identity changed)."""
        self._cancel_debounce()
        self._state.clear()
        self._fire_history_changed()

    def export_history_to_dict(self) -> Dict[str, Any]:
        return {
            'snapshots': [snap.to_dict() for snap in self._state.stack],
            'cursor': self._state.cursor,
            'saved_cursor': self._state.saved_cursor,
        }

    def add_history_changed_callback(self, callback: Callable[[], None]) -> None:
        if callback not in self._history_changed_callbacks:
            self._history_changed_callbacks.append(callback)

    def remove_history_changed_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._history_changed_callbacks:
            self._history_changed_callbacks.remove(callback)

    def _fire_history_changed(self) -> None:
        for callback in list(self._history_changed_callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning(f"Error in history_changed callback: {e}")

    def close(self) -> None:
        """Cancel owned timers and stop observing the form."""
        self._cancel_debounce()
        self._unwatch()
        self._history_changed_callbacks.clear()
