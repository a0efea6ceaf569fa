"""
EditorSession: orchestration boundary for editing one product.

Wires the components together and owns every ordering rule between them:

- load()/sync(): project a fetched record into the form, unless a restore or
  an in-flight save owns the form right now
- save(): validate, arm the post-save guard, persist core fields, persist
  sub-records, re-baseline the form, mark history saved, record a version;
  the guard is always released in finally
- detect_conflicts()/resolve_conflicts(): compare against a fresh remote
  snapshot and fold resolutions back through the history restore path
- accept_field()/reject_field(): AI draft proposals, each accept recorded as
  an ai_approval version
- context(): the memoized EditorContext handed to UI collaborators
"""
import copy
import dataclasses
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from contentstate.config import EditorConfig, get_editor_config
from contentstate.conflicts import ConflictDetector
from contentstate.context import (
    CacheKey, ContextCache, DirtyFieldsSummary, EditorContext, HistoryHandle,
)
from contentstate.dirty_tracker import compute_dirty_fields, content_status, merge_dirty_variations
from contentstate.drafts import NO_OVERRIDE, DraftReconciler
from contentstate.errors import ConflictDetectionError, PartialSaveFailure, SaveFailure
from contentstate.field_paths import DraftField
from contentstate.form_state import FormChange, FormState
from contentstate.guards import RestoreGuard
from contentstate.history import FormHistory
from contentstate.models import (
    ConflictResolution, ConflictSet, ContentBuffer, ProductRecord, RemoteSnapshot,
    SaveResult, SaveStatus, TriggerType, VersionRecord,
)
from contentstate.schema import project_form_values, to_save_payload
from contentstate.stabilization import StabilizationGuard
from contentstate.timers import AsyncioScheduler, Scheduler, TimerHandle
from contentstate.versions import InMemoryVersionStore, VersionManager, VersionStore

logger = logging.getLogger(__name__)

SYNCED_LABEL = "Synced"
CONFLICTS_RESOLVED_LABEL = "Conflicts resolved"
VARIATIONS_PART = "variations"


class ProductBackend:
    """External collaborators the session consumes."""

    async def fetch_product(self, product_id: str) -> ProductRecord:
        raise NotImplementedError

    async def fetch_content_buffer(self, product_id: str) -> Optional[ContentBuffer]:
        raise NotImplementedError

    async def fetch_remote_snapshot(self, product_id: str) -> RemoteSnapshot:
        raise NotImplementedError

    async def save_product(self, product_id: str, payload: Dict[str, Any]) -> Any:
        raise NotImplementedError


class EditorSession:
    """One editing session for one product.

    Args:
        product_id: Product being edited.
        backend: ProductBackend implementation (HTTP adapter, in-memory fake).
        version_store: Durable version store. Defaults to in-memory.
        scheduler: Timer source. Defaults to the running asyncio loop.
        config: EditorConfig. Defaults to get_editor_config().
        transform: FormValues → save payload. Defaults to to_save_payload.
    """

    def __init__(
        self,
        product_id: str,
        backend: ProductBackend,
        version_store: Optional[VersionStore] = None,
        scheduler: Optional[Scheduler] = None,
        config: Optional[EditorConfig] = None,
        transform: Callable[[Mapping[str, Any]], Dict[str, Any]] = to_save_payload,
    ):
        self._config = config or get_editor_config()
        self._scheduler = scheduler or AsyncioScheduler()
        self.product_id = str(product_id)
        self.backend = backend
        self._transform = transform

        self.form = FormState()
        self.guard = RestoreGuard(self._scheduler)
        self.history = FormHistory(self.form, self._scheduler, self.guard, self._config)
        self.stabilization = StabilizationGuard(
            self.form, self.history, self.guard, self._scheduler, self._config
        )
        self.drafts = DraftReconciler(self.form)
        self.versions = VersionManager(version_store or InMemoryVersionStore(), self._config)
        self.conflicts = ConflictDetector(backend.fetch_remote_snapshot)

        self.record: Optional[ProductRecord] = None
        self.buffer: Optional[ContentBuffer] = None
        self.conflict_set: ConflictSet = ConflictSet.empty()
        self.conflict_error: Optional[ConflictDetectionError] = None
        self.save_status = SaveStatus.IDLE
        self.last_save_result: Optional[SaveResult] = None

        self._synced_key = None
        self._deferred: Optional[tuple] = None
        self._status_handle: Optional[TimerHandle] = None
        self._variation_save: Optional[Callable[[], Awaitable[Any]]] = None
        self._dirty_variations_count = 0
        self._revision = 0
        self._context_cache: ContextCache[EditorContext] = ContextCache(lambda: self._revision)
        self._status_callbacks: List[Callable[[SaveStatus], None]] = []
        self._closed = False

        self._unwatch_form = self.form.watch(self._on_form_change)
        self.history.add_history_changed_callback(self._bump)
        self.stabilization.on_stable(self._bump)
        self.drafts.on_changed(lambda _remaining: self._bump())
        self.drafts.on_accepted(self._on_draft_accepted)

    # ==================== LOAD / SYNC ====================

    @property
    def revision(self) -> int:
        return self._revision

    async def load(self) -> bool:
        """Fetch the product and its content buffer, then sync the form."""
        self.stabilization.on_fetch_started()
        record = await self.backend.fetch_product(self.product_id)
        buffer = await self.backend.fetch_content_buffer(self.product_id)
        return self.sync(record, buffer)

    async def refetch(self) -> bool:
        return await self.load()

    def sync(self, record: ProductRecord, buffer: Optional[ContentBuffer] = None) -> bool:
        """Apply a fetched record.

        The form is re-projected only when the record's identity or sync
        timestamp changed. A restore in progress defers the sync to the next
        frame. While the post-save guard is armed the record is cached but
        the form is left alone: the save re-baselines it itself.

        Returns:
            True if the form was reset from the record.
        """
        if buffer is not None:
            self.buffer = buffer

        if self.guard.is_restoring:
            logger.debug(f"SYNC: product={record.id} deferred (restoring)")
            self._deferred = (record, buffer)
            self._scheduler.call_soon(self._apply_deferred)
            return False

        if self.stabilization.post_save_armed:
            logger.debug(f"SYNC: product={record.id} cached only (post-save guard armed)")
            self.record = record
            self._synced_key = record.sync_key
            self._bump()
            return False

        if record.sync_key == self._synced_key:
            self.record = record
            self.stabilization.on_fetch_finished()
            self._bump()
            return False

        identity_changed = self.record is None or self.record.id != record.id
        self.record = record
        self._synced_key = record.sync_key

        if identity_changed:
            self.history.clear()
        self.form.reset(project_form_values(record))
        if not identity_changed:
            self.history.capture_snapshot(SYNCED_LABEL)
        self.history.initialize()
        self.stabilization.on_record_loaded()

        if record.draft_generated_content != self.drafts.draft:
            self.drafts.set_draft(record.draft_generated_content, record.working_content)

        logger.info(f"SYNC: product={record.id} loaded (synced_at={record.last_synced_at})")
        self._bump()
        return True

    def _apply_deferred(self) -> None:
        if self._deferred is None or self._closed:
            return
        record, buffer = self._deferred
        self._deferred = None
        self.sync(record, buffer)

    # ==================== DIRTY / STATUS ====================

    def set_dirty_variations_count(self, count: int) -> None:
        self._dirty_variations_count = max(0, int(count))
        self._bump()

    @property
    def dirty_variations_count(self) -> int:
        return self._dirty_variations_count

    @property
    def is_dirty(self) -> bool:
        return self.stabilization.is_dirty

    def dirty_fields(self) -> List[str]:
        """Dirty paths of the persisted working copy against the store snapshot."""
        if self.buffer is not None:
            return compute_dirty_fields(
                self.buffer.working_content,
                self.buffer.store_snapshot_content,
                self._dirty_variations_count,
            )
        cached = self.record.dirty_fields_content if self.record is not None else []
        return merge_dirty_variations(cached, self._dirty_variations_count)

    def dirty_summary(self) -> DirtyFieldsSummary:
        return DirtyFieldsSummary(
            fields=tuple(self.dirty_fields()),
            conflict_fields=tuple(self.conflict_set.fields),
            form_dirty=self.stabilization.is_dirty,
            dirty_variations_count=self._dirty_variations_count,
        )

    def content_status(self):
        return content_status(self.dirty_fields(), self.drafts.has_draft, self.conflict_set.has_conflict)

    def add_status_callback(self, callback: Callable[[SaveStatus], None]) -> None:
        if callback not in self._status_callbacks:
            self._status_callbacks.append(callback)

    def _set_status(self, status: SaveStatus) -> None:
        if self._status_handle is not None:
            self._status_handle.cancel()
            self._status_handle = None
        self.save_status = status
        if status is SaveStatus.SAVED:
            self._status_handle = self._scheduler.call_later(self._config.saved_status_display, self._reset_status)
        elif status is SaveStatus.ERROR:
            self._status_handle = self._scheduler.call_later(self._config.error_status_display, self._reset_status)
        for callback in list(self._status_callbacks):
            try:
                callback(status)
            except Exception as e:
                logger.warning(f"Error in save status callback: {e}")
        self._bump()

    def _reset_status(self) -> None:
        self._status_handle = None
        self._set_status(SaveStatus.IDLE)

    # ==================== SAVE ====================

    def register_variation_save(self, callback: Callable[[], Awaitable[Any]]) -> Callable[[], None]:
        """Register the sub-record save run after the core save. Returns an unregister callable."""
        self._variation_save = callback

        def unregister() -> None:
            if self._variation_save is callback:
                self._variation_save = None

        return unregister

    async def save(self) -> SaveResult:
        """Save the live form values.

        Raises:
            FormValidationError: before any network call or state change.

        Backend failures never propagate: they are reported through the
        returned SaveResult and save_status.
        """
        if self.save_status is SaveStatus.SAVING:
            logger.warning(f"SAVE: product={self.product_id} save already in flight, ignoring")
            return SaveResult(status=SaveStatus.SAVING)

        values = self.form.get_values()
        self.form.validate()

        self._set_status(SaveStatus.SAVING)
        self.stabilization.arm_post_save()
        core_saved = False
        try:
            try:
                payload = self._transform(values)
                await self.backend.save_product(self.product_id, payload)
            except Exception as e:
                failure = SaveFailure(f"Saving product {self.product_id} failed: {e}", e)
                logger.error(f"SAVE: {failure}")
                self._set_status(SaveStatus.ERROR)
                result = SaveResult(status=SaveStatus.ERROR, error=failure)
                self.last_save_result = result
                return result
            core_saved = True

            partial: List[PartialSaveFailure] = []
            if self._variation_save is not None:
                try:
                    await self._variation_save()
                    self._dirty_variations_count = 0
                except Exception as e:
                    partial.append(PartialSaveFailure(VARIATIONS_PART, e))
                    logger.warning(f"SAVE: product={self.product_id} variations failed: {e}")

            # Edits made while the request was in flight stay live and dirty
            self.form.rebaseline(values)
            self.history.mark_as_saved(values=values)
            self._set_status(SaveStatus.SAVED)
            self.versions.create_version(self.product_id, values, TriggerType.MANUAL_SAVE)

            result = SaveResult(status=SaveStatus.SAVED, partial_failures=tuple(partial))
            logger.info(f"SAVE: product={self.product_id} saved{' (partial)' if partial else ''}")
            self.last_save_result = result
            return result
        finally:
            self.stabilization.release_post_save(settled=core_saved)

    # ==================== CONFLICTS ====================

    async def detect_conflicts(self) -> ConflictSet:
        """Fetch the remote snapshot and compute conflicts.

        Raises:
            ConflictDetectionError: the fetch failed; conflict_error is set so
                the UI can warn and let the user decide.
        """
        if self.buffer is None:
            self.buffer = await self.backend.fetch_content_buffer(self.product_id)
        if self.buffer is None:
            return self.conflict_set
        try:
            self.conflict_set = await self.conflicts.detect(self.buffer)
            self.conflict_error = None
        except ConflictDetectionError as e:
            self.conflict_error = e
            raise
        finally:
            self._bump()
        return self.conflict_set

    def resolve_conflicts(self, resolutions: Iterable[ConflictResolution]) -> ContentBuffer:
        """Apply resolutions and bring the resolved working copy into the form (undoable)."""
        if self.buffer is None:
            raise ConflictDetectionError(self.product_id, RuntimeError("no content buffer loaded"))
        resolved = self.conflicts.resolve(self.buffer, list(resolutions))
        self.buffer = resolved
        self.conflict_set = ConflictSet.empty(resolved.last_synced_at)

        base = self.record or ProductRecord(id=self.product_id)
        projected = dataclasses.replace(base, working_content=copy.deepcopy(resolved.working_content))
        self.history.restore(project_form_values(projected), CONFLICTS_RESOLVED_LABEL)
        logger.info(f"CONFLICT: product={self.product_id} resolved")
        self._bump()
        return resolved

    # ==================== DRAFTS / VERSIONS / HISTORY ====================

    @property
    def remaining_proposals(self) -> List[str]:
        return self.drafts.remaining

    def accept_field(self, path: str, override: Any = NO_OVERRIDE) -> bool:
        return self.drafts.accept_field(path, override)

    def reject_field(self, path: str) -> bool:
        return self.drafts.reject_field(path)

    def _on_draft_accepted(self, field: DraftField, values: Dict[str, Any]) -> None:
        self.versions.create_version(
            self.product_id, values, TriggerType.AI_APPROVAL, metadata={'field': field.value}
        )

    async def restore_version(self, version) -> VersionRecord:
        return await self.versions.restore_version(version, self.history)

    async def list_versions(self, limit: Optional[int] = None) -> List[VersionRecord]:
        return await self.versions.list_versions(self.product_id, limit)

    def undo(self) -> bool:
        return self.history.undo()

    def redo(self) -> bool:
        return self.history.redo()

    # ==================== CONTEXT ====================

    def _bump(self) -> None:
        self._revision += 1

    def _on_form_change(self, change: FormChange) -> None:
        self._bump()

    def context(self) -> EditorContext:
        """Memoized EditorContext; the same object until something changes."""
        return self._context_cache.get_or_compute(CacheKey.from_args(self.product_id), self._build_context)

    def _build_context(self) -> EditorContext:
        history = self.history
        return EditorContext(
            product_id=self.product_id,
            form=self.form,
            save_status=self.save_status,
            content_status=self.content_status(),
            dirty=self.dirty_summary(),
            remaining_proposals=tuple(self.drafts.remaining),
            history=HistoryHandle(
                undo=history.undo,
                redo=history.redo,
                capture_snapshot=history.capture_snapshot,
                mark_as_saved=history.mark_as_saved,
                can_undo=history.can_undo,
                can_redo=history.can_redo,
                is_at_saved_state=history.is_at_saved_state,
                history_index=history.history_index,
                history_length=history.history_length,
            ),
            accept_field=self.accept_field,
            reject_field=self.reject_field,
            save=self.save,
            form_stable=self.stabilization.form_stable,
            revision=self._revision,
        )

    # ==================== TEARDOWN ====================

    def close(self) -> None:
        """Cancel every owned timer and detach from the form."""
        if self._closed:
            return
        self._closed = True
        if self._status_handle is not None:
            self._status_handle.cancel()
            self._status_handle = None
        self._deferred = None
        self.history.close()
        self.stabilization.close()
        self.guard.close()
        self._unwatch_form()
        self._context_cache.invalidate()
        logger.debug(f"SESSION: product={self.product_id} closed")

    async def aclose(self) -> None:
        """close() and wait for in-flight version writes."""
        self.close()
        await self.versions.wait_pending()
