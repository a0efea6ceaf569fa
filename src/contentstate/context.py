"""
Editor context: the single immutable struct UI collaborators read from and
dispatch actions into.

A new EditorContext is built only when one of its constituent pieces
changed. The session bumps a revision token on every relevant state change;
ContextCache rebuilds when the token moves and otherwise hands back the same
object, so identity comparison is a valid "did anything change" check.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

from contentstate.dirty_tracker import VARIATIONS_FIELD
from contentstate.form_state import FormState
from contentstate.models import ContentStatus, SaveStatus

T = TypeVar('T')


@dataclass(frozen=True)
class CacheKey:
    """Immutable cache key built from the pieces a value depends on."""
    components: Tuple[Any, ...]

    @classmethod
    def from_args(cls, *args) -> 'CacheKey':
        return cls(components=args)


class ContextCache(Generic[T]):
    """Token-invalidated memo: everything is dropped when the token changes.

    Example:
        cache = ContextCache(lambda: session.revision)
        ctx = cache.get_or_compute(CacheKey.from_args(product_id), build)
    """

    def __init__(self, token_provider: Callable[[], int]):
        self._token_provider = token_provider
        self._cache: Dict[CacheKey, T] = {}
        self._last_token: Optional[int] = None

    def get_or_compute(self, key: CacheKey, compute_fn: Callable[[], T]) -> T:
        current_token = self._token_provider()
        if current_token != self._last_token:
            self._cache.clear()
            self._last_token = current_token
        if key not in self._cache:
            self._cache[key] = compute_fn()
        return self._cache[key]

    def invalidate(self) -> None:
        self._cache.clear()
        self._last_token = None


@dataclass(frozen=True)
class DirtyFieldsSummary:
    """Dirty fields against the store snapshot, with conflict overlay.

    A product whose only changes are in sub-records (variations) still
    needs saving: needs_save is true whenever dirty_variations_count > 0.
    """
    fields: Tuple[str, ...] = ()
    conflict_fields: Tuple[str, ...] = ()
    form_dirty: bool = False
    dirty_variations_count: int = 0

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflict_fields)

    @property
    def has_dirty_variations(self) -> bool:
        return self.dirty_variations_count > 0 or VARIATIONS_FIELD in self.fields

    @property
    def needs_save(self) -> bool:
        return self.form_dirty or self.has_dirty_variations

    def is_conflicting(self, path: str) -> bool:
        return path in self.conflict_fields


@dataclass(frozen=True)
class HistoryHandle:
    """History surface exposed to the UI."""
    undo: Callable[[], bool]
    redo: Callable[[], bool]
    capture_snapshot: Callable[..., bool]
    mark_as_saved: Callable[..., None]
    can_undo: bool
    can_redo: bool
    is_at_saved_state: bool
    history_index: int
    history_length: int


@dataclass(frozen=True)
class EditorContext:
    """Snapshot of editor state plus the actions the UI may dispatch."""
    product_id: str
    form: FormState
    save_status: SaveStatus
    content_status: ContentStatus
    dirty: DirtyFieldsSummary
    remaining_proposals: Tuple[str, ...]
    history: HistoryHandle
    accept_field: Callable[..., bool]
    reject_field: Callable[[str], bool]
    save: Callable[[], Any]
    form_stable: bool
    revision: int

    @property
    def is_saving(self) -> bool:
        return self.save_status is SaveStatus.SAVING

    @property
    def is_dirty(self) -> bool:
        return self.dirty.form_dirty
