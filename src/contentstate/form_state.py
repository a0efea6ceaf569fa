"""
FormState: the live, mutable FormValues for one product record.

Single source of truth for live values. Every other component either reads
it or mutates it through set_value()/reset().

Core attributes:
- _values: live working copy (flat form keys)
- _default_values: baseline from the last reset (load, restore) or save
- _touched: keys the user interacted with since the last reset

Everything else is derived:
- dirty_fields → keys where _values != _default_values
- is_dirty → bool(dirty_fields)
"""
import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Set

from contentstate.schema import ProductFormSchema, default_form_values, validate_form_values

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormChange:
    """Notification payload for watch() subscribers."""
    kind: str  # 'change' | 'reset' | 'baseline'
    keys: FrozenSet[str]


class FormState:
    """Form State Holder: values, baseline, touched bookkeeping, validation."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        initial = copy.deepcopy(dict(values)) if values is not None else default_form_values()
        self._values: Dict[str, Any] = initial
        self._default_values: Dict[str, Any] = copy.deepcopy(initial)
        self._touched: Set[str] = set()
        self._watchers: List[Callable[[FormChange], None]] = []

    # ==================== READ ====================

    def get_values(self) -> Dict[str, Any]:
        """Deep copy of the live values (callers never alias internal state)."""
        return copy.deepcopy(self._values)

    def get_value(self, key: str, default: Any = None) -> Any:
        return copy.deepcopy(self._values.get(key, default))

    def has_field(self, key: str) -> bool:
        return key in self._values

    @property
    def default_values(self) -> Dict[str, Any]:
        return copy.deepcopy(self._default_values)

    @property
    def dirty_fields(self) -> Set[str]:
        """Keys whose live value differs from the reset baseline."""
        keys = self._values.keys() | self._default_values.keys()
        return {k for k in keys if self._values.get(k) != self._default_values.get(k)}

    @property
    def is_dirty(self) -> bool:
        return bool(self.dirty_fields)

    @property
    def touched_fields(self) -> FrozenSet[str]:
        return frozenset(self._touched)

    @property
    def has_meaningful_data(self) -> bool:
        """True once a record with a title or description has been projected."""
        return bool(self._values.get('title') or self._values.get('description'))

    # ==================== WRITE ====================

    def set_value(self, key: str, value: Any, *, touch: bool = False) -> bool:
        """Set a single form key.

        Args:
            key: Flat form key. Unknown keys are rejected with a warning.
            value: New value (deep-copied).
            touch: True for user-driven writes (typing, accepting a draft);
                   False for component normalization, which must not count
                   as user interaction.

        Returns:
            True if the value changed.
        """
        if key not in self._values:
            logger.warning(f"FORM: set_value({key!r}) on unknown key, ignoring")
            return False

        if touch:
            self._touched.add(key)

        if self._values[key] == value:
            return False

        self._values[key] = copy.deepcopy(value)
        self._notify(FormChange(kind='change', keys=frozenset({key})))
        return True

    def input_value(self, key: str, value: Any) -> bool:
        """User edit: set_value with touch=True."""
        return self.set_value(key, value, touch=True)

    def reset(self, values: Optional[Mapping[str, Any]] = None) -> None:
        """Full reset: replace values AND baseline, clear touched.

        Args:
            values: New values. None re-baselines to the current values
                    (absorbs normalization without changing anything visible).
        """
        new_values = copy.deepcopy(dict(values)) if values is not None else copy.deepcopy(self._values)
        changed = {k for k in (new_values.keys() | self._values.keys())
                   if new_values.get(k) != self._values.get(k)}
        self._values = new_values
        self._default_values = copy.deepcopy(new_values)
        self._touched.clear()
        logger.debug(f"FORM: reset ({len(changed)} value(s) changed)")
        self._notify(FormChange(kind='reset', keys=frozenset(changed)))

    def rebaseline(self, values: Mapping[str, Any]) -> None:
        """Move only the baseline to values (just persisted); live values stay.

        Edits made since values were taken remain dirty and keep their
        touched mark. Keys equal to the new baseline lose it.
        """
        baseline = copy.deepcopy(dict(values))
        changed = {k for k in (baseline.keys() | self._default_values.keys())
                   if baseline.get(k) != self._default_values.get(k)}
        self._default_values = baseline
        self._touched = {k for k in self._touched if self._values.get(k) != baseline.get(k)}
        logger.debug(f"FORM: rebaselined ({len(self.dirty_fields)} field(s) still dirty)")
        self._notify(FormChange(kind='baseline', keys=frozenset(changed)))

    def validate(self) -> ProductFormSchema:
        """Validate the live values. Raises FormValidationError."""
        return validate_form_values(self._values)

    # ==================== SUBSCRIPTION ====================

    def watch(self, callback: Callable[[FormChange], None]) -> Callable[[], None]:
        """Subscribe to value changes. Returns an unsubscribe callable."""
        if callback not in self._watchers:
            self._watchers.append(callback)

        def unsubscribe() -> None:
            if callback in self._watchers:
                self._watchers.remove(callback)

        return unsubscribe

    def _notify(self, change: FormChange) -> None:
        """Fire watchers (best-effort)."""
        for callback in list(self._watchers):
            try:
                callback(change)
            except Exception as e:
                logger.warning(f"Error in form watch callback: {e}")
