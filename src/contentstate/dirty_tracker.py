"""
Dirty-Field Tracker: which content paths differ between the working copy and
the store snapshot taken at the last sync.

Pure derivation, no side effects. Comparison is normalized per field so
format differences coming back from the platform ("10" vs 10, None vs "",
category objects vs names, reordered tag lists) are never reported as edits.
"""
import json
import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from contentstate.field_paths import get_path
from contentstate.models import ContentBuffer, ContentStatus
from contentstate.schema import PRODUCT_TYPE_DEFAULT

logger = logging.getLogger(__name__)

# Synthetic path standing in for "one or more variation rows are dirty"
VARIATIONS_FIELD = 'variations'

Content = Optional[Mapping[str, Any]]


# ==================== NORMALIZERS ====================

def _norm(value: Any) -> str:
    """Comparable string. None/''/NaN collapse to ''; booleans to '1'/'0'."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, float):
        if math.isnan(value):
            return ''
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, default=str)


def _num(value: Any) -> Any:
    """Numeric comparison key: '10' == 10 == 10.0, empty values equal each other."""
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return _norm(value)


def _name(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, Mapping):
        return item.get('name') or ''
    return ''


def _sorted_keys(items: Any, extract: Callable[[Any], str]) -> Tuple[str, ...]:
    """Order-insensitive key for lists whose order carries no meaning."""
    if not isinstance(items, list):
        return ()
    return tuple(sorted(k for k in (extract(item) for item in items) if k))


def _attribute_key(attr: Any) -> str:
    if not isinstance(attr, Mapping):
        return ''
    options = attr.get('options') if isinstance(attr.get('options'), list) else []
    return f"{attr.get('name') or ''}:{','.join(sorted(str(o) for o in options))}:{bool(attr.get('variation'))}"


def _image_sources(images: Any) -> Tuple[str, ...]:
    # Order matters: the first image is the featured image
    if not isinstance(images, list):
        return ()
    return tuple(src for src in ((img or {}).get('src') or '' for img in images if isinstance(img, Mapping)) if src)


def _product_type(value: Any) -> str:
    # An explicit default type and a missing type are the same thing
    normalized = _norm(value)
    return '' if normalized == PRODUCT_TYPE_DEFAULT else normalized


# ==================== FIELD TABLE ====================

KeyFn = Callable[[Mapping[str, Any]], Any]


def _text(path: str) -> KeyFn:
    return lambda content: _norm(get_path(content, path))


def _numeric(path: str) -> KeyFn:
    return lambda content: _num(get_path(content, path))


def _boolean(path: str) -> KeyFn:
    return lambda content: bool(get_path(content, path))


TEXT_FIELDS = (
    'title', 'description', 'short_description', 'sku', 'slug',
    'status', 'stock_status', 'vendor',
    'catalog_visibility', 'backorders', 'tax_status', 'tax_class',
    'shipping_class', 'global_unique_id', 'purchase_note',
    'external_url', 'button_text', 'date_on_sale_from', 'date_on_sale_to',
)
NUMERIC_FIELDS = (
    'price', 'regular_price', 'sale_price', 'stock',
    'weight', 'low_stock_amount', 'menu_order',
)
BOOLEAN_FIELDS = (
    'manage_stock', 'virtual', 'downloadable', 'purchasable',
    'featured', 'sold_individually', 'reviews_allowed', 'on_sale',
)
SEO_FIELDS = ('seo.title', 'seo.description', 'seo.focus_keyword')
LINKED_FIELDS = ('upsell_ids', 'cross_sell_ids', 'related_ids')


def _build_field_keys() -> Dict[str, KeyFn]:
    keys: Dict[str, KeyFn] = {}
    for path in TEXT_FIELDS:
        keys[path] = _text(path)
    keys['product_type'] = lambda c: _product_type(get_path(c, 'product_type'))
    for path in NUMERIC_FIELDS:
        keys[path] = _numeric(path)
    for path in BOOLEAN_FIELDS:
        keys[path] = _boolean(path)
    for path in SEO_FIELDS:
        keys[path] = _text(path)
    keys['dimensions'] = lambda c: tuple(_norm(get_path(c, f"dimensions.{d}")) for d in ('length', 'width', 'height'))
    keys['categories'] = lambda c: _sorted_keys(c.get('categories'), _name)
    keys['tags'] = lambda c: _sorted_keys(c.get('tags'), _name)
    keys['images'] = lambda c: _image_sources(c.get('images'))
    for path in LINKED_FIELDS:
        keys[path] = (lambda p: lambda c: _sorted_keys(c.get(p), str))(path)
    keys['attributes'] = lambda c: _sorted_keys(c.get('attributes'), _attribute_key)
    return keys


# Canonical, ordered table: path → comparison key function
FIELD_KEYS: Dict[str, KeyFn] = _build_field_keys()

TRACKED_FIELDS: Tuple[str, ...] = tuple(FIELD_KEYS)


def comparison_key(path: str, content: Content) -> Any:
    """Normalized comparison key for a path. Unknown paths compare as JSON text."""
    content = content or {}
    key_fn = FIELD_KEYS.get(path)
    if key_fn is None:
        return _norm(get_path(content, path))
    return key_fn(content)


def field_value(path: str, content: Content) -> Any:
    """Raw (un-normalized) value of a tracked path, for display in conflict UIs."""
    return get_path(content or {}, path)


def field_differs(path: str, a: Content, b: Content) -> bool:
    return comparison_key(path, a) != comparison_key(path, b)


# ==================== DERIVATIONS ====================

def compute_dirty_fields(
    working: Content,
    snapshot: Content,
    dirty_variations_count: int = 0,
) -> List[str]:
    """Paths where the working copy differs from the store snapshot.

    Args:
        working: Current working content.
        snapshot: Store snapshot content as of the last sync.
        dirty_variations_count: Separately tracked count of modified
            variation rows. Non-zero adds VARIATIONS_FIELD once.

    Returns:
        Dirty paths in canonical TRACKED_FIELDS order. Empty when either
        side is missing (nothing to compare against).
    """
    dirty: List[str] = []
    if working is not None and snapshot is not None:
        dirty = [path for path in TRACKED_FIELDS if field_differs(path, working, snapshot)]
    return merge_dirty_variations(dirty, dirty_variations_count)


def merge_dirty_variations(dirty_fields: Iterable[str], dirty_variations_count: int) -> List[str]:
    """Union the synthetic variations path into a dirty list when sub-records are dirty."""
    fields = list(dirty_fields)
    if dirty_variations_count > 0 and VARIATIONS_FIELD not in fields:
        fields.append(VARIATIONS_FIELD)
    return fields


def reconcile_buffer(buffer: ContentBuffer, dirty_variations_count: int = 0) -> List[str]:
    """Recompute a buffer's dirty list instead of trusting the cached one.

    The cached dirty_fields_content must be a subset of the real diff; any
    path that no longer differs is a stale derivation and is dropped.
    """
    recomputed = compute_dirty_fields(
        buffer.working_content, buffer.store_snapshot_content, dirty_variations_count
    )
    stale = [p for p in buffer.dirty_fields_content if p not in recomputed and p != VARIATIONS_FIELD]
    if stale:
        logger.debug(f"DIRTY: product={buffer.product_id} dropping stale dirty paths {stale}")
    return recomputed


def content_status(dirty_fields: List[str], has_draft: bool, has_conflict: bool = False) -> ContentStatus:
    """Sync badge: conflict > pending AI approval > ready to sync > synced."""
    if has_conflict:
        return ContentStatus.CONFLICT
    if has_draft:
        return ContentStatus.PENDING_APPROVAL
    if dirty_fields:
        return ContentStatus.READY_TO_SYNC
    return ContentStatus.SYNCED
