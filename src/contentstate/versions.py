"""
Version Manager: durable, named snapshots of the form, decoupled from the
in-memory undo stack.

create_version() is fire-and-forget. Persistence failures are logged and
recorded, never raised to the caller. restore_version() always goes through
FormHistory.restore(), so a restore is an undoable history step like any
other.
"""
import asyncio
import copy
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Union

from contentstate.config import EditorConfig, get_editor_config
from contentstate.errors import BackendError, VersionPersistenceFailure
from contentstate.history import VERSION_RESTORED_LABEL, FormHistory
from contentstate.models import TriggerType, VersionRecord, utcnow

logger = logging.getLogger(__name__)


def count_non_empty_fields(form_data: Dict[str, Any]) -> int:
    """Fields holding a value (None, '' and empty lists do not count)."""
    count = 0
    for value in form_data.values():
        if value is None or value == '':
            continue
        if isinstance(value, list) and not value:
            continue
        count += 1
    return count


class VersionStore:
    """Durable version persistence. Implementations assign version numbers."""

    async def create(
        self,
        product_id: str,
        form_data: Dict[str, Any],
        trigger_type: TriggerType,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> VersionRecord:
        raise NotImplementedError

    async def list(self, product_id: str, limit: int) -> List[VersionRecord]:
        """Newest first."""
        raise NotImplementedError

    async def get(self, version_id: str) -> VersionRecord:
        raise NotImplementedError


class InMemoryVersionStore(VersionStore):
    """Process-local store with per-product monotonic version numbers."""

    def __init__(self):
        self._records: Dict[str, VersionRecord] = {}

    async def create(self, product_id, form_data, trigger_type, metadata=None) -> VersionRecord:
        numbers = [r.version_number for r in self._records.values() if r.product_id == product_id]
        record = VersionRecord(
            product_id=product_id,
            form_snapshot=copy.deepcopy(form_data),
            trigger_type=TriggerType(trigger_type),
            created_at=utcnow(),
            version_number=max(numbers, default=0) + 1,
            title=form_data.get('title') or '',
            field_count=count_non_empty_fields(form_data),
            metadata=copy.deepcopy(metadata),
        )
        self._records[record.id] = record
        return record

    async def list(self, product_id, limit) -> List[VersionRecord]:
        records = [r for r in self._records.values() if r.product_id == product_id]
        records.sort(key=lambda r: r.version_number, reverse=True)
        return records[:limit]

    async def get(self, version_id) -> VersionRecord:
        try:
            return self._records[version_id]
        except KeyError:
            raise BackendError(f"Version {version_id} not found", status_code=404) from None


class VersionManager:
    """Create, list and restore versions for the editor."""

    def __init__(self, store: VersionStore, config: Optional[EditorConfig] = None):
        self._config = config or get_editor_config()
        self._store = store
        self._pending: Set[asyncio.Task] = set()
        self.failures: List[VersionPersistenceFailure] = []
        self._on_created_callbacks: List[Callable[[VersionRecord], None]] = []

    @property
    def store(self) -> VersionStore:
        return self._store

    @property
    def pending(self) -> int:
        return len(self._pending)

    def create_version(
        self,
        product_id: str,
        form_snapshot: Dict[str, Any],
        trigger_type: TriggerType,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional['asyncio.Task']:
        """Persist a version without blocking the caller.

        Inside a running loop the write is scheduled as a task (returned so
        callers may await it). Without a loop it runs to completion inline.
        """
        coro = self._persist(product_id, copy.deepcopy(form_snapshot), TriggerType(trigger_type), metadata)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(coro)
            return None
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _persist(
        self,
        product_id: str,
        form_snapshot: Dict[str, Any],
        trigger_type: TriggerType,
        metadata: Optional[Dict[str, Any]],
    ) -> Optional[VersionRecord]:
        try:
            record = await self._store.create(product_id, form_snapshot, trigger_type, metadata)
        except Exception as e:
            failure = VersionPersistenceFailure(product_id, trigger_type.value, e)
            logger.exception(f"VERSION: {failure}")
            self.failures.append(failure)
            return None

        logger.info(f"VERSION: product={product_id} v{record.version_number} ({trigger_type.value})")
        for callback in list(self._on_created_callbacks):
            try:
                callback(record)
            except Exception as e:
                logger.warning(f"Error in version_created callback: {e}")
        return record

    async def wait_pending(self) -> None:
        """Wait for in-flight version writes (teardown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def list_versions(self, product_id: str, limit: Optional[int] = None) -> List[VersionRecord]:
        """Newest first. Fetch errors propagate (the history panel shows them)."""
        return await self._store.list(product_id, limit or self._config.version_list_limit)

    async def restore_version(
        self,
        version: Union[VersionRecord, str],
        history: FormHistory,
    ) -> VersionRecord:
        """Feed a stored snapshot back through the history restoring path.

        Records a new 'restore' version pointing at the restored one.
        """
        if not isinstance(version, VersionRecord):
            version = await self._store.get(version)

        history.restore(version.form_snapshot, VERSION_RESTORED_LABEL)
        self.create_version(
            version.product_id,
            version.form_snapshot,
            TriggerType.RESTORE,
            metadata={
                'restored_from_version': version.version_number,
                'restored_from_id': version.id,
            },
        )
        logger.info(f"VERSION: restored product={version.product_id} to v{version.version_number}")
        return version

    def on_created(self, callback: Callable[[VersionRecord], None]) -> None:
        if callback not in self._on_created_callbacks:
            self._on_created_callbacks.append(callback)
