"""
Field path vocabulary shared by drafts, dirty tracking and the form.

Content objects (working copy, store snapshot, AI draft) are nested dicts
addressed by dotted paths ('seo.title'). The form is flat ('meta_title').
The mapping between the two is a fixed, exhaustive table rather than string
matching: every draft-capable path is a DraftField member and owns exactly
one form key.
"""
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

_MISSING = object()


class DraftField(str, Enum):
    """Content paths the AI generator can propose values for."""
    TITLE = 'title'
    SKU = 'sku'
    DESCRIPTION = 'description'
    SHORT_DESCRIPTION = 'short_description'
    SEO_TITLE = 'seo.title'
    SEO_DESCRIPTION = 'seo.description'
    SEO_FOCUS_KEYWORD = 'seo.focus_keyword'
    IMAGES = 'images'

    @property
    def form_key(self) -> str:
        """Flat form key this content path is edited through."""
        return DRAFT_TO_FORM_KEY[self]

    @classmethod
    def parse(cls, path: 'str | DraftField') -> Optional['DraftField']:
        """Return the DraftField for a path, or None for unknown paths."""
        if isinstance(path, DraftField):
            return path
        try:
            return cls(path)
        except ValueError:
            return None

    @classmethod
    def for_form_key(cls, form_key: str) -> Optional['DraftField']:
        """Reverse lookup: flat form key → content path."""
        return FORM_KEY_TO_DRAFT.get(form_key)


DRAFT_TO_FORM_KEY: Mapping[DraftField, str] = MappingProxyType({
    DraftField.TITLE: 'title',
    DraftField.SKU: 'sku',
    DraftField.DESCRIPTION: 'description',
    DraftField.SHORT_DESCRIPTION: 'short_description',
    DraftField.SEO_TITLE: 'meta_title',
    DraftField.SEO_DESCRIPTION: 'meta_description',
    DraftField.SEO_FOCUS_KEYWORD: 'focus_keyword',
    DraftField.IMAGES: 'images',
})

FORM_KEY_TO_DRAFT: Mapping[str, DraftField] = MappingProxyType(
    {form_key: field for field, form_key in DRAFT_TO_FORM_KEY.items()}
)

# HTML-bearing content paths (compared after tag/whitespace normalization)
HTML_FIELDS = frozenset({DraftField.DESCRIPTION, DraftField.SHORT_DESCRIPTION})


def get_path(content: Optional[Mapping[str, Any]], path: str, default: Any = None) -> Any:
    """Read a dotted path from nested dicts. Missing segments return default."""
    current: Any = content
    for part in path.split('.'):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


def has_path(content: Optional[Mapping[str, Any]], path: str) -> bool:
    """True when every segment of the dotted path exists."""
    return get_path(content, path, _MISSING) is not _MISSING


def set_path(content: Dict[str, Any], path: str, value: Any) -> Dict[str, Any]:
    """Write a dotted path into nested dicts in place, creating parents."""
    parts = path.split('.')
    current = content
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value
    return content


def delete_path(content: Dict[str, Any], path: str) -> bool:
    """Remove a dotted path in place. Returns False when it was absent."""
    parts = path.split('.')
    current: Any = content
    for part in parts[:-1]:
        if not isinstance(current, dict) or part not in current:
            return False
        current = current[part]
    if not isinstance(current, dict) or parts[-1] not in current:
        return False
    del current[parts[-1]]
    return True
