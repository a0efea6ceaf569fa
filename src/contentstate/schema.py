"""
Product form schema: the single definition of every editable form key.

- ProductFormSchema: pydantic model used to validate FormValues before save
- DEFAULT_FORM_VALUES: values of an empty form (no record loaded yet)
- project_form_values(): ProductRecord → FormValues projection
- to_save_payload(): FormValues → platform save payload (default transform)
"""
import copy
import logging
import re
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from contentstate.errors import FormValidationError
from contentstate.models import ProductRecord

logger = logging.getLogger(__name__)

PRODUCT_TYPE_DEFAULT = 'simple'

Number = Union[int, float, str]


class ProductImageSchema(BaseModel):
    id: Union[int, str]
    src: str
    name: str = ''
    alt: str = ''
    order: Optional[int] = None
    is_primary: bool = False


class ProductAttributeSchema(BaseModel):
    id: Optional[int] = None
    name: str = Field(min_length=1)
    options: List[str] = Field(default_factory=list)
    visible: bool = True
    variation: bool = False
    position: Optional[int] = None


class ProductFormSchema(BaseModel):
    """Validation schema for FormValues. Unknown UI-only keys are tolerated."""
    model_config = ConfigDict(extra='allow')

    # Basic info
    title: str = Field(min_length=1)
    sku: Optional[str] = None
    global_unique_id: Optional[str] = None
    short_description: str = ''
    description: str = ''
    permalink: Optional[str] = None

    # Pricing
    regular_price: Optional[Number] = None
    sale_price: Optional[Number] = None
    on_sale: bool = False
    date_on_sale_from: Optional[str] = None
    date_on_sale_to: Optional[str] = None

    # Stock
    stock: Optional[Number] = None
    stock_status: Literal['instock', 'outofstock', 'onbackorder'] = 'instock'
    manage_stock: bool = False
    backorders: Literal['no', 'notify', 'yes'] = 'no'
    low_stock_amount: Optional[Number] = None

    # SEO
    meta_title: str = ''
    meta_description: str = ''
    focus_keyword: str = ''
    slug: str = ''

    # Organisation
    product_type: str = PRODUCT_TYPE_DEFAULT
    brand: str = ''
    status: str = 'draft'
    featured: bool = False
    categories: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    # Media
    images: List[ProductImageSchema] = Field(default_factory=list)

    # Logistics
    weight: str = ''
    dimensions_length: str = ''
    dimensions_width: str = ''
    dimensions_height: str = ''
    shipping_class: str = ''

    # Tax
    tax_status: Literal['taxable', 'shipping', 'none'] = 'taxable'
    tax_class: str = ''

    # Visibility
    catalog_visibility: Literal['visible', 'catalog', 'search', 'hidden'] = 'visible'
    virtual: bool = False
    downloadable: bool = False
    purchasable: bool = True

    # External products
    external_url: Optional[str] = None
    button_text: Optional[str] = None

    # Options
    sold_individually: bool = False
    purchase_note: str = ''
    menu_order: int = 0
    reviews_allowed: bool = True

    # Reviews (read-only, from sync)
    average_rating: Optional[Union[str, float]] = None
    rating_count: Optional[int] = None
    total_sales: Optional[int] = None

    # Linked products
    upsell_ids: List[int] = Field(default_factory=list)
    cross_sell_ids: List[int] = Field(default_factory=list)
    related_ids: List[int] = Field(default_factory=list)

    # Attributes (variable products)
    attributes: List[ProductAttributeSchema] = Field(default_factory=list)


DEFAULT_FORM_VALUES: Dict[str, Any] = {
    'title': '',
    'sku': None,
    'global_unique_id': None,
    'short_description': '',
    'description': '',
    'permalink': None,
    'regular_price': None,
    'sale_price': None,
    'on_sale': False,
    'date_on_sale_from': None,
    'date_on_sale_to': None,
    'stock': None,
    'stock_status': 'instock',
    'manage_stock': False,
    'backorders': 'no',
    'low_stock_amount': None,
    'meta_title': '',
    'meta_description': '',
    'focus_keyword': '',
    'slug': '',
    'product_type': PRODUCT_TYPE_DEFAULT,
    'brand': '',
    'status': 'draft',
    'featured': False,
    'categories': [],
    'tags': [],
    'images': [],
    'weight': '',
    'dimensions_length': '',
    'dimensions_width': '',
    'dimensions_height': '',
    'shipping_class': '',
    'tax_status': 'taxable',
    'tax_class': '',
    'catalog_visibility': 'visible',
    'virtual': False,
    'downloadable': False,
    'purchasable': True,
    'external_url': None,
    'button_text': None,
    'sold_individually': False,
    'purchase_note': '',
    'menu_order': 0,
    'reviews_allowed': True,
    'average_rating': None,
    'rating_count': None,
    'total_sales': None,
    'upsell_ids': [],
    'cross_sell_ids': [],
    'related_ids': [],
    'attributes': [],
}

FORM_KEYS = tuple(DEFAULT_FORM_VALUES)


def default_form_values() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_FORM_VALUES)


def validate_form_values(values: Mapping[str, Any]) -> ProductFormSchema:
    """Validate FormValues against the schema.

    Raises:
        FormValidationError: one message list per offending form key.
    """
    try:
        return ProductFormSchema.model_validate(dict(values))
    except ValidationError as exc:
        raise FormValidationError.from_pydantic(exc) from exc


# ==================== PROJECTION ====================

def _coalesce(*candidates: Any) -> Any:
    """First candidate that is not None (nullish-coalescing chain)."""
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


def _as_text(value: Any) -> str:
    return '' if value is None else str(value)


def names_of(items: Any) -> List[str]:
    """Map category/tag objects (or bare strings) to their names."""
    if not isinstance(items, list):
        return []
    names = []
    for item in items:
        if isinstance(item, str):
            name = item
        elif isinstance(item, Mapping) and 'name' in item:
            name = item['name']
        else:
            name = str(item)
        if name:
            names.append(name)
    return names


def project_images(images: Any, fallback_url: Optional[str]) -> List[Dict[str, Any]]:
    if isinstance(images, list) and images:
        return [
            {
                'id': img.get('id') if img.get('id') is not None else f"img-{idx}",
                'src': img.get('src') or '',
                'name': img.get('name') or '',
                'alt': img.get('alt') or '',
                'order': idx,
                'is_primary': idx == 0,
            }
            for idx, img in enumerate(images)
            if isinstance(img, Mapping)
        ]
    if fallback_url:
        return [{'id': 'main', 'src': fallback_url, 'name': '', 'alt': '', 'order': 0, 'is_primary': True}]
    return []


def _project_attributes(attributes: Any) -> List[Dict[str, Any]]:
    if not isinstance(attributes, list):
        return []
    projected = []
    for attr in attributes:
        if not isinstance(attr, Mapping):
            continue
        options = attr.get('options') if isinstance(attr.get('options'), list) else []
        projected.append({
            'id': _coalesce(attr.get('id'), 0),
            'name': attr.get('name') or '',
            'options': list(dict.fromkeys(options)),
            'visible': _coalesce(attr.get('visible'), True),
            'variation': _coalesce(attr.get('variation'), False),
            'position': _coalesce(attr.get('position'), 0),
        })
    return projected


def project_form_values(record: Optional[ProductRecord]) -> Dict[str, Any]:
    """Project a ProductRecord into FormValues.

    Priority per key: working_content → legacy record columns/metadata → default.
    Deterministic: the same record always yields the same values.
    """
    if record is None:
        return default_form_values()

    wc = record.working_content or {}
    seo = wc.get('seo') or {}
    dims = wc.get('dimensions') or {}
    meta = record.metadata or {}

    weight = wc.get('weight')
    logger.debug(f"FORM: projecting product={record.id} (synced_at={record.last_synced_at})")
    return {
        'title': _coalesce(wc.get('title'), record.title, ''),
        'sku': _coalesce(wc.get('sku'), record.sku, ''),
        'global_unique_id': _coalesce(wc.get('global_unique_id'), ''),
        'short_description': _coalesce(wc.get('short_description'), ''),
        'description': _coalesce(wc.get('description'), ''),
        'permalink': _coalesce(wc.get('permalink'), meta.get('permalink')),

        'regular_price': _coalesce(wc.get('regular_price'), record.regular_price, record.price, ''),
        'sale_price': _coalesce(wc.get('sale_price'), record.sale_price, ''),
        'on_sale': _coalesce(wc.get('on_sale'), False),
        'date_on_sale_from': _coalesce(wc.get('date_on_sale_from'), ''),
        'date_on_sale_to': _coalesce(wc.get('date_on_sale_to'), ''),

        'stock': _coalesce(wc.get('stock'), record.stock, ''),
        'stock_status': _coalesce(wc.get('stock_status'), 'instock'),
        'manage_stock': _coalesce(wc.get('manage_stock'), False),
        'backorders': _coalesce(wc.get('backorders'), 'no'),
        'low_stock_amount': _coalesce(wc.get('low_stock_amount'), ''),

        'meta_title': _coalesce(seo.get('title'), ''),
        'meta_description': _coalesce(seo.get('description'), ''),
        'focus_keyword': _coalesce(seo.get('focus_keyword'), ''),
        'slug': _coalesce(wc.get('slug'), ''),

        # Platforms use either "product_type" or "type"; empty strings fall through
        'product_type': wc.get('product_type') or wc.get('type') or record.product_type or PRODUCT_TYPE_DEFAULT,
        'brand': _coalesce(wc.get('vendor'), ''),
        'status': _coalesce(wc.get('status'), 'draft'),
        'featured': _coalesce(wc.get('featured'), False),
        'categories': names_of(wc.get('categories')),
        'tags': names_of(wc.get('tags')),

        'images': project_images(wc.get('images'), record.image_url),

        'weight': _as_text(weight),
        'dimensions_length': _as_text(dims.get('length')),
        'dimensions_width': _as_text(dims.get('width')),
        'dimensions_height': _as_text(dims.get('height')),
        'shipping_class': _coalesce(wc.get('shipping_class'), ''),

        'tax_status': _coalesce(wc.get('tax_status'), 'taxable'),
        'tax_class': _coalesce(wc.get('tax_class'), ''),

        'catalog_visibility': _coalesce(wc.get('catalog_visibility'), 'visible'),
        'virtual': _coalesce(wc.get('virtual'), False),
        'downloadable': _coalesce(wc.get('downloadable'), False),
        'purchasable': _coalesce(wc.get('purchasable'), True),

        'external_url': _coalesce(wc.get('external_url'), ''),
        'button_text': _coalesce(wc.get('button_text'), ''),

        'sold_individually': _coalesce(wc.get('sold_individually'), False),
        'purchase_note': _coalesce(wc.get('purchase_note'), ''),
        'menu_order': _coalesce(wc.get('menu_order'), 0),
        'reviews_allowed': _coalesce(wc.get('reviews_allowed'), True),

        'average_rating': wc.get('average_rating'),
        'rating_count': wc.get('rating_count'),
        'total_sales': wc.get('total_sales'),

        'upsell_ids': list(wc.get('upsell_ids') or []),
        'cross_sell_ids': list(wc.get('cross_sell_ids') or []),
        'related_ids': list(wc.get('related_ids') or []),

        'attributes': _project_attributes(wc.get('attributes')),
    }


# ==================== SAVE PAYLOAD ====================

_NUMERIC_RE = re.compile(r'^-?\d+(\.\d+)?$')


def _coerce_number(value: Any, fallback: Any = None) -> Any:
    """'' / None → fallback; numeric strings → int/float; 0 is preserved."""
    if value is None or value == '':
        return fallback
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    if not _NUMERIC_RE.match(text):
        return fallback
    return float(text) if '.' in text else int(text)


def _non_empty(value: Optional[str]) -> Optional[str]:
    return value or None


def to_save_payload(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Default FormValues → save payload transform.

    Renames flat SEO and dimension keys into nested objects, coerces numeric
    strings and drops empty optional strings. Payload keys with None values
    are omitted (the platform keeps its current value).
    """
    has_dimensions = any(values.get(k) for k in ('dimensions_length', 'dimensions_width', 'dimensions_height'))
    payload = {
        'title': values.get('title'),
        'description': values.get('description'),
        'short_description': values.get('short_description'),
        'sku': _non_empty(values.get('sku')),
        'slug': values.get('slug'),
        'status': values.get('status'),
        'global_unique_id': _non_empty(values.get('global_unique_id')),
        'regular_price': _coerce_number(values.get('regular_price')),
        'sale_price': _coerce_number(values.get('sale_price')),
        'on_sale': values.get('on_sale'),
        'date_on_sale_from': values.get('date_on_sale_from') or None,
        'date_on_sale_to': values.get('date_on_sale_to') or None,
        'stock': _coerce_number(values.get('stock')),
        'manage_stock': values.get('manage_stock'),
        'stock_status': values.get('stock_status'),
        'backorders': values.get('backorders'),
        'low_stock_amount': _coerce_number(values.get('low_stock_amount')),
        'weight': _coerce_number(values.get('weight')),
        'dimensions': {
            'length': values.get('dimensions_length') or '',
            'width': values.get('dimensions_width') or '',
            'height': values.get('dimensions_height') or '',
        } if has_dimensions else None,
        'tax_status': values.get('tax_status'),
        'tax_class': values.get('tax_class'),
        'shipping_class': values.get('shipping_class'),
        'seo': {
            'title': values.get('meta_title'),
            'description': values.get('meta_description'),
            'focus_keyword': values.get('focus_keyword'),
        },
        'categories': [{'name': name.strip()} for name in values.get('categories') or []],
        'tags': list(values.get('tags') or []),
        'images': copy.deepcopy(values.get('images') or []),
        'vendor': values.get('brand'),
        'product_type': _non_empty(values.get('product_type')),
        'catalog_visibility': values.get('catalog_visibility'),
        'virtual': values.get('virtual'),
        'downloadable': values.get('downloadable'),
        'purchasable': values.get('purchasable'),
        'featured': values.get('featured'),
        'sold_individually': values.get('sold_individually'),
        'reviews_allowed': values.get('reviews_allowed'),
        'menu_order': values.get('menu_order'),
        'purchase_note': values.get('purchase_note'),
        'external_url': _non_empty(values.get('external_url')),
        'button_text': _non_empty(values.get('button_text')),
        'upsell_ids': list(values.get('upsell_ids') or []),
        'cross_sell_ids': list(values.get('cross_sell_ids') or []),
        'related_ids': list(values.get('related_ids') or []),
        'attributes': copy.deepcopy(values.get('attributes') or []),
    }
    return {k: v for k, v in payload.items() if v is not None}
