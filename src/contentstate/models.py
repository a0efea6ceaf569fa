"""
Record types exchanged with the external platform and exposed to the UI.

Design notes:
- Content objects stay plain nested dicts (the platform owns their shape)
- Records are dataclasses with to_dict()/from_dict() for the wire boundary
- Derived values (ConflictSet, SaveResult) are never persisted
"""
import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from contentstate.errors import ContentStateError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp ('Z' suffix accepted). None passes through."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value)
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class TriggerType(str, Enum):
    """Why a version record was created."""
    MANUAL_SAVE = 'manual_save'
    AI_APPROVAL = 'ai_approval'
    RESTORE = 'restore'


class SaveStatus(str, Enum):
    IDLE = 'idle'
    SAVING = 'saving'
    SAVED = 'saved'
    ERROR = 'error'


class ContentStatus(str, Enum):
    """Sync badge for a product, highest priority first."""
    CONFLICT = 'CONFLICT'
    PENDING_APPROVAL = 'PENDING_APPROVAL'
    READY_TO_SYNC = 'READY_TO_SYNC'
    SYNCED = 'SYNCED'


class ResolutionAction(str, Enum):
    KEEP_LOCAL = 'keep_local'
    USE_STORE = 'use_store'
    MERGE = 'merge'


@dataclass
class ProductRecord:
    """Authoritative platform copy as last synchronized (read-only cache).

    The legacy columns (title, sku, prices, stock, image_url, metadata) are
    the fallbacks used when working_content lacks a field.
    """
    id: str
    working_content: Dict[str, Any] = field(default_factory=dict)
    draft_generated_content: Optional[Dict[str, Any]] = None
    dirty_fields_content: List[str] = field(default_factory=list)
    last_synced_at: Optional[datetime] = None
    title: Optional[str] = None
    sku: Optional[str] = None
    price: Any = None
    regular_price: Any = None
    sale_price: Any = None
    stock: Any = None
    product_type: Optional[str] = None
    image_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def sync_key(self) -> Tuple[str, Optional[datetime]]:
        """Identity + sync timestamp. A change means the form must be re-projected."""
        return (self.id, self.last_synced_at)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProductRecord':
        return cls(
            id=str(data['id']),
            working_content=dict(data.get('working_content') or {}),
            draft_generated_content=data.get('draft_generated_content'),
            dirty_fields_content=list(data.get('dirty_fields_content') or []),
            last_synced_at=parse_timestamp(data.get('last_synced_at')),
            title=data.get('title'),
            sku=data.get('sku'),
            price=data.get('price'),
            regular_price=data.get('regular_price'),
            sale_price=data.get('sale_price'),
            stock=data.get('stock'),
            product_type=data.get('product_type'),
            image_url=data.get('image_url'),
            metadata=dict(data.get('metadata') or {}),
        )


@dataclass
class ContentBuffer:
    """Per-record tuple of the three content views plus bookkeeping.

    Invariant: dirty_fields_content ⊆ paths that differ between
    working_content and store_snapshot_content. It is a cached derivation and
    is recomputed (dirty_tracker.reconcile_buffer) rather than trusted across
    a sync boundary.
    """
    product_id: str
    store_snapshot_content: Dict[str, Any] = field(default_factory=dict)
    working_content: Dict[str, Any] = field(default_factory=dict)
    draft_generated_content: Optional[Dict[str, Any]] = None
    dirty_fields_content: List[str] = field(default_factory=list)
    last_synced_at: Optional[datetime] = None
    store_content_updated_at: Optional[datetime] = None
    working_content_updated_at: Optional[datetime] = None

    @property
    def has_draft(self) -> bool:
        return bool(self.draft_generated_content)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ContentBuffer':
        return cls(
            product_id=str(data.get('product_id') or data.get('id')),
            store_snapshot_content=dict(data.get('store_snapshot_content') or {}),
            working_content=dict(data.get('working_content') or {}),
            draft_generated_content=data.get('draft_generated_content'),
            dirty_fields_content=list(data.get('dirty_fields_content') or []),
            last_synced_at=parse_timestamp(data.get('last_synced_at')),
            store_content_updated_at=parse_timestamp(data.get('store_content_updated_at')),
            working_content_updated_at=parse_timestamp(data.get('working_content_updated_at')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'product_id': self.product_id,
            'store_snapshot_content': copy.deepcopy(self.store_snapshot_content),
            'working_content': copy.deepcopy(self.working_content),
            'draft_generated_content': copy.deepcopy(self.draft_generated_content),
            'dirty_fields_content': list(self.dirty_fields_content),
            'last_synced_at': format_timestamp(self.last_synced_at),
            'store_content_updated_at': format_timestamp(self.store_content_updated_at),
            'working_content_updated_at': format_timestamp(self.working_content_updated_at),
        }


@dataclass(frozen=True)
class RemoteSnapshot:
    """Freshly fetched external-platform content, independent of the cache."""
    content: Dict[str, Any]
    updated_at: Optional[datetime] = None
    fetched_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RemoteSnapshot':
        return cls(
            content=dict(data.get('content') or data.get('store_snapshot_content') or {}),
            updated_at=parse_timestamp(data.get('updated_at') or data.get('store_content_updated_at')),
        )


@dataclass(frozen=True)
class ConflictEntry:
    field: str
    local_value: Any
    remote_value: Any
    base_value: Any = None  # value captured at last sync


@dataclass(frozen=True)
class ConflictSet:
    """Derived conflict state. Not an error: a state requiring user resolution."""
    conflicts: Tuple[ConflictEntry, ...] = ()
    last_synced_at: Optional[datetime] = None
    store_updated_at: Optional[datetime] = None
    local_updated_at: Optional[datetime] = None

    @property
    def has_conflict(self) -> bool:
        return len(self.conflicts) > 0

    @property
    def fields(self) -> List[str]:
        return [c.field for c in self.conflicts]

    @classmethod
    def empty(cls, last_synced_at: Optional[datetime] = None) -> 'ConflictSet':
        return cls(conflicts=(), last_synced_at=last_synced_at)


@dataclass(frozen=True)
class ConflictResolution:
    field: str
    action: ResolutionAction
    merged_value: Any = None


@dataclass(frozen=True)
class VersionRecord:
    """Durably persisted named snapshot. Never mutated once created."""
    product_id: str
    form_snapshot: Dict[str, Any]
    trigger_type: TriggerType
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    version_number: int = 0
    title: str = ''
    field_count: int = 0
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'product_id': self.product_id,
            'form_data': copy.deepcopy(self.form_snapshot),
            'trigger_type': self.trigger_type.value,
            'created_at': format_timestamp(self.created_at),
            'version_number': self.version_number,
            'title': self.title,
            'field_count': self.field_count,
            'metadata': copy.deepcopy(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VersionRecord':
        return cls(
            id=str(data['id']),
            product_id=str(data['product_id']),
            form_snapshot=dict(data.get('form_data') or data.get('form_snapshot') or {}),
            trigger_type=TriggerType(data['trigger_type']),
            created_at=parse_timestamp(data.get('created_at')) or utcnow(),
            version_number=int(data.get('version_number') or 0),
            title=data.get('title') or '',
            field_count=int(data.get('field_count') or 0),
            metadata=data.get('metadata'),
        )


@dataclass(frozen=True)
class SaveResult:
    """Outcome of EditorSession.save()."""
    status: SaveStatus
    error: Optional[ContentStateError] = None
    partial_failures: Tuple[ContentStateError, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status == SaveStatus.SAVED and not self.partial_failures

    @property
    def partial(self) -> bool:
        return self.status == SaveStatus.SAVED and bool(self.partial_failures)
