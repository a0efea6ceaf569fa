"""
Draft Reconciliation Engine.

Holds the AI-generated draft for one product and the set of draft fields
still on offer ("remaining proposals"). Accepting a field writes it into the
form through the DraftField lookup table; rejecting only drops the proposal.

Remaining proposals shrink monotonically. They are recomputed only when a new
draft is loaded (set_draft), never backwards from form edits.
"""
import copy
import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from contentstate.field_paths import HTML_FIELDS, DraftField, get_path, has_path
from contentstate.form_state import FormState

logger = logging.getLogger(__name__)

NO_OVERRIDE = object()

_META_TAG_RE = re.compile(r'<meta[^>]*>', re.IGNORECASE)
_WHITESPACE_RE = re.compile(r'\s+')


def normalize_text(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, str):
        return value.strip()
    return str(value)


def normalize_html(value: Any) -> str:
    """Collapse markup noise that does not change rendered content."""
    if not value:
        return ''
    text = _META_TAG_RE.sub('', str(value)).replace('&nbsp;', ' ')
    return _WHITESPACE_RE.sub(' ', text).strip()


def _images_proposed(draft_images: Any, working_images: Any) -> bool:
    """An image proposal stands while any draft alt text is new, or an image is new."""
    if not isinstance(draft_images, list) or not draft_images:
        return False
    working_images = working_images if isinstance(working_images, list) else []
    for idx, draft_img in enumerate(draft_images):
        if idx >= len(working_images):
            return True
        draft_alt = normalize_text((draft_img or {}).get('alt'))
        if draft_alt and draft_alt != normalize_text((working_images[idx] or {}).get('alt')):
            return True
    return False


def remaining_proposals(
    draft: Optional[Mapping[str, Any]],
    working: Optional[Mapping[str, Any]],
) -> List[str]:
    """Draft paths whose non-empty value still differs from the working content."""
    if not draft:
        return []
    working = working or {}
    remaining = []
    for field in DraftField:
        if field is DraftField.IMAGES:
            if _images_proposed(draft.get('images'), working.get('images')):
                remaining.append(field.value)
            continue
        normalize = normalize_html if field in HTML_FIELDS else normalize_text
        draft_value = normalize(get_path(draft, field.value))
        if draft_value and draft_value != normalize(get_path(working, field.value)):
            remaining.append(field.value)
    return remaining


def merge_image_alts(form_images: Any, draft_images: Any) -> List[Dict[str, Any]]:
    """Merge draft alt texts into the form's images by position.

    Draft images beyond the form's list are appended.
    """
    merged = copy.deepcopy(form_images) if isinstance(form_images, list) else []
    for idx, draft_img in enumerate(draft_images or []):
        if not isinstance(draft_img, Mapping):
            continue
        if idx < len(merged):
            alt = normalize_text(draft_img.get('alt'))
            if alt:
                merged[idx]['alt'] = alt
        else:
            merged.append({
                'id': draft_img.get('id') if draft_img.get('id') is not None else f"img-{idx}",
                'src': draft_img.get('src') or '',
                'name': draft_img.get('name') or '',
                'alt': draft_img.get('alt') or '',
                'order': idx,
                'is_primary': idx == 0,
            })
    return merged


class DraftReconciler:
    """Accept/reject AI proposals one field at a time.

    Callbacks:
        on_accepted(field, form_values): fired after a successful accept, used
            by the session to record an ai_approval version.
        on_changed(remaining): fired whenever the remaining set changes.
    """

    def __init__(self, form: FormState):
        self._form = form
        self._draft: Optional[Dict[str, Any]] = None
        self._remaining: Set[DraftField] = set()
        self._on_accepted_callbacks: List[Callable[[DraftField, Dict[str, Any]], None]] = []
        self._on_changed_callbacks: List[Callable[[List[str]], None]] = []

    # ==================== STATE ====================

    @property
    def draft(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._draft)

    @property
    def has_draft(self) -> bool:
        return bool(self._draft)

    @property
    def remaining(self) -> List[str]:
        """Remaining proposals in canonical DraftField order."""
        return [f.value for f in DraftField if f in self._remaining]

    def is_proposed(self, path: str) -> bool:
        field = DraftField.parse(path)
        return field is not None and field in self._remaining

    def set_draft(self, draft: Optional[Mapping[str, Any]], working: Optional[Mapping[str, Any]]) -> None:
        """Load a fresh draft generation. The only way proposals can grow."""
        self._draft = copy.deepcopy(dict(draft)) if draft else None
        self._remaining = {DraftField(p) for p in remaining_proposals(self._draft, working)}
        logger.debug(f"DRAFT: loaded draft with {len(self._remaining)} proposal(s): {self.remaining}")
        self._notify_changed()

    def clear(self) -> None:
        self._draft = None
        if self._remaining:
            self._remaining.clear()
            self._notify_changed()

    # ==================== OPERATIONS ====================

    def accept_field(self, path: str, override: Any = NO_OVERRIDE) -> bool:
        """Write the draft value (or an override) for one path into the form.

        Returns:
            True if the field was applied. Unknown paths, paths absent from
            the draft, form keys absent from the form and already consumed
            proposals are benign no-ops (False).
        """
        field = DraftField.parse(path)
        if field is None:
            logger.debug(f"DRAFT: accept({path!r}) ignored, not a draft path")
            return False
        if field not in self._remaining:
            logger.debug(f"DRAFT: accept({path!r}) ignored, already consumed")
            return False
        if override is NO_OVERRIDE and not has_path(self._draft, field.value):
            logger.debug(f"DRAFT: accept({path!r}) ignored, path not in draft")
            self._discard(field)
            return False

        if not self._form.has_field(field.form_key):
            logger.debug(f"DRAFT: accept({path!r}) ignored, form has no {field.form_key!r}")
            return False

        value = get_path(self._draft, field.value) if override is NO_OVERRIDE else override
        if field is DraftField.IMAGES:
            value = merge_image_alts(self._form.get_value(field.form_key), value)

        # touch=True: accepted proposals are user intent, not normalization
        self._form.set_value(field.form_key, copy.deepcopy(value), touch=True)
        self._discard(field)
        logger.info(f"DRAFT: accepted {field.value} → {field.form_key}")

        values = self._form.get_values()
        for callback in list(self._on_accepted_callbacks):
            try:
                callback(field, values)
            except Exception as e:
                logger.warning(f"Error in draft accept callback: {e}")
        return True

    def reject_field(self, path: str) -> bool:
        """Drop a proposal without touching the form. Idempotent."""
        field = DraftField.parse(path)
        if field is None or field not in self._remaining:
            return False
        self._discard(field)
        logger.info(f"DRAFT: rejected {field.value}")
        return True

    # ==================== CALLBACKS ====================

    def on_accepted(self, callback: Callable[[DraftField, Dict[str, Any]], None]) -> None:
        if callback not in self._on_accepted_callbacks:
            self._on_accepted_callbacks.append(callback)

    def on_changed(self, callback: Callable[[List[str]], None]) -> None:
        if callback not in self._on_changed_callbacks:
            self._on_changed_callbacks.append(callback)

    def _discard(self, field: DraftField) -> None:
        self._remaining.discard(field)
        self._notify_changed()

    def _notify_changed(self) -> None:
        remaining = self.remaining
        for callback in list(self._on_changed_callbacks):
            try:
                callback(remaining)
            except Exception as e:
                logger.warning(f"Error in draft change callback: {e}")
