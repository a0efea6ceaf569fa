"""
HistorySnapshot and HistoryState dataclasses for linear undo/redo.

Design Philosophy: Correct by Construction
- Immutable snapshots (frozen dataclass), values deep-copied on creation
- UUID-based identity for snapshots
- HistoryState owns every cursor mutation so the invariants live in one place:
    cursor == -1  iff  stack is empty
    0 <= cursor < len(stack) otherwise
    saved_cursor is None or a valid index
"""

import copy
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class HistorySnapshot:
    """Immutable copy of the full form values at a point in time."""
    id: str  # UUID string
    values: Dict[str, Any]
    label: Optional[str]
    timestamp: float

    @classmethod
    def create(cls, values: Dict[str, Any], label: Optional[str] = None) -> 'HistorySnapshot':
        """Create a new snapshot with auto-generated ID and timestamp."""
        return cls(
            id=str(uuid.uuid4()),
            values=copy.deepcopy(values),
            label=label,
            timestamp=time.time(),
        )

    def copy_values(self) -> Dict[str, Any]:
        """Fresh deep copy for applying to the form (snapshots are never shared)."""
        return copy.deepcopy(self.values)

    def to_dict(self) -> Dict[str, Any]:
        """Export to JSON-serializable dict."""
        return {
            'id': self.id,
            'values': copy.deepcopy(self.values),
            'label': self.label,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HistorySnapshot':
        return cls(
            id=data['id'],
            values=copy.deepcopy(data['values']),
            label=data.get('label'),
            timestamp=data['timestamp'],
        )


@dataclass
class HistoryState:
    """Linear undo stack with a cursor and a saved marker.

    No redo branches: pushing after an undo discards everything beyond the
    cursor. Depth is bounded; the oldest snapshots are evicted first and
    saved_cursor shifts with them (None once the saved snapshot is evicted).
    """
    max_depth: int = 50
    stack: List[HistorySnapshot] = field(default_factory=list)
    cursor: int = -1
    saved_cursor: Optional[int] = None

    @property
    def can_undo(self) -> bool:
        return self.cursor > 0

    @property
    def can_redo(self) -> bool:
        return self.cursor < len(self.stack) - 1

    @property
    def is_at_saved_state(self) -> bool:
        return self.saved_cursor is not None and self.cursor == self.saved_cursor

    @property
    def current(self) -> Optional[HistorySnapshot]:
        return self.stack[self.cursor] if self.cursor >= 0 else None

    @property
    def is_at_head(self) -> bool:
        return self.cursor == len(self.stack) - 1

    def push(self, snapshot: HistorySnapshot) -> int:
        """Push at cursor+1, truncating the redo branch and enforcing max_depth.

        Returns:
            Number of snapshots evicted from the bottom of the stack.
        """
        del self.stack[self.cursor + 1:]
        if self.saved_cursor is not None and self.saved_cursor > self.cursor:
            # Saved snapshot was on the discarded redo branch
            self.saved_cursor = None
        self.stack.append(snapshot)

        overflow = len(self.stack) - self.max_depth
        if overflow > 0:
            del self.stack[:overflow]
            if self.saved_cursor is not None:
                shifted = self.saved_cursor - overflow
                self.saved_cursor = shifted if shifted >= 0 else None
        else:
            overflow = 0

        self.cursor = len(self.stack) - 1
        return overflow

    def step_back(self) -> Optional[HistorySnapshot]:
        """Move cursor one step older. None (no-op) at the boundary."""
        if not self.can_undo:
            return None
        self.cursor -= 1
        return self.stack[self.cursor]

    def step_forward(self) -> Optional[HistorySnapshot]:
        """Move cursor one step newer. None (no-op) at the boundary."""
        if not self.can_redo:
            return None
        self.cursor += 1
        return self.stack[self.cursor]

    def mark_saved(self) -> None:
        self.saved_cursor = self.cursor if self.cursor >= 0 else None

    def clear(self) -> None:
        self.stack.clear()
        self.cursor = -1
        self.saved_cursor = None
