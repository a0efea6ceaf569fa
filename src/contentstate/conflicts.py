"""
Conflict Detector: has the external platform changed, since the last sync,
any field the user also changed locally?

detect_conflicts() is the pure three-way comparison (base = store snapshot,
local = working copy, remote = fresh fetch). ConflictDetector wraps the fetch
and turns fetch failures into ConflictDetectionError, never into "no conflict".
"""
import copy
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from contentstate.dirty_tracker import (
    TRACKED_FIELDS, VARIATIONS_FIELD, compute_dirty_fields, field_differs, field_value,
    reconcile_buffer,
)
from contentstate.errors import ConflictDetectionError
from contentstate.field_paths import delete_path, set_path
from contentstate.models import (
    ConflictEntry, ConflictResolution, ConflictSet, ContentBuffer, RemoteSnapshot,
    ResolutionAction, utcnow,
)

logger = logging.getLogger(__name__)

RemoteFetcher = Callable[[str], Awaitable[RemoteSnapshot]]


def remote_unchanged(buffer: ContentBuffer, remote: RemoteSnapshot) -> bool:
    """True when the remote timestamp is not after the last sync."""
    if remote.updated_at is None or buffer.last_synced_at is None:
        return False
    return remote.updated_at <= buffer.last_synced_at


def detect_conflicts(buffer: ContentBuffer, remote: RemoteSnapshot) -> ConflictSet:
    """Intersect locally dirty fields with fields the remote changed since the sync.

    The buffer's cached dirty list is recomputed first; a stale entry must
    not produce a conflict.
    """
    timestamps = dict(
        last_synced_at=buffer.last_synced_at,
        store_updated_at=remote.updated_at,
        local_updated_at=buffer.working_content_updated_at,
    )
    if remote_unchanged(buffer, remote):
        return ConflictSet(conflicts=(), **timestamps)

    base = buffer.store_snapshot_content
    entries = []
    for path in reconcile_buffer(buffer):
        if path == VARIATIONS_FIELD:
            continue
        if field_differs(path, remote.content, base):
            entries.append(ConflictEntry(
                field=path,
                local_value=copy.deepcopy(field_value(path, buffer.working_content)),
                remote_value=copy.deepcopy(field_value(path, remote.content)),
                base_value=copy.deepcopy(field_value(path, base)),
            ))

    if entries:
        logger.info(f"CONFLICT: product={buffer.product_id} conflicting fields {[e.field for e in entries]}")
    return ConflictSet(conflicts=tuple(entries), **timestamps)


def _apply_value(content: Dict[str, Any], path: str, source: Dict[str, Any]) -> None:
    value = field_value(path, source)
    if value is None:
        delete_path(content, path)
    else:
        set_path(content, path, copy.deepcopy(value))


def resolve_conflicts(
    buffer: ContentBuffer,
    remote: RemoteSnapshot,
    resolutions: Iterable[ConflictResolution],
) -> ContentBuffer:
    """Apply per-field resolutions and acknowledge the remote as the new baseline.

    - keep_local: working value stays (it becomes a dirty edit against the remote)
    - use_store: remote value replaces the working value
    - merge: the resolution's merged_value is written

    Remote changes on fields the user did not touch are taken as-is, so they
    are not reported dirty against the new snapshot.

    Raises:
        ValueError: if a conflicting field has no resolution.
    """
    conflict_set = detect_conflicts(buffer, remote)
    by_field = {r.field: r for r in resolutions}
    unresolved = [f for f in conflict_set.fields if f not in by_field]
    if unresolved:
        raise ValueError(f"Unresolved conflicts: {unresolved}")

    working = copy.deepcopy(buffer.working_content)
    locally_dirty = set(reconcile_buffer(buffer))
    for path in TRACKED_FIELDS:
        if path not in locally_dirty and field_differs(path, remote.content, buffer.store_snapshot_content):
            _apply_value(working, path, remote.content)

    for resolution in by_field.values():
        action = ResolutionAction(resolution.action)
        if action is ResolutionAction.USE_STORE:
            _apply_value(working, resolution.field, remote.content)
        elif action is ResolutionAction.MERGE:
            set_path(working, resolution.field, copy.deepcopy(resolution.merged_value))
        logger.debug(f"CONFLICT: product={buffer.product_id} {resolution.field} → {action.value}")

    snapshot = copy.deepcopy(remote.content)
    return ContentBuffer(
        product_id=buffer.product_id,
        store_snapshot_content=snapshot,
        working_content=working,
        draft_generated_content=copy.deepcopy(buffer.draft_generated_content),
        dirty_fields_content=compute_dirty_fields(working, snapshot),
        last_synced_at=remote.updated_at or utcnow(),
        store_content_updated_at=remote.updated_at,
        working_content_updated_at=utcnow(),
    )


class ConflictDetector:
    """On-demand conflict check against a freshly fetched external snapshot."""

    def __init__(self, fetch_remote: RemoteFetcher):
        self._fetch_remote = fetch_remote
        self.last_result: Optional[ConflictSet] = None
        self.last_remote: Optional[RemoteSnapshot] = None

    async def detect(self, buffer: ContentBuffer) -> ConflictSet:
        """Fetch the remote snapshot and compare.

        Raises:
            ConflictDetectionError: the fetch failed; conflict state is unknown.
        """
        try:
            remote = await self._fetch_remote(buffer.product_id)
        except Exception as e:
            logger.error(f"CONFLICT: remote fetch failed for product={buffer.product_id}: {e}")
            raise ConflictDetectionError(buffer.product_id, e) from e

        result = detect_conflicts(buffer, remote)
        self.last_remote = remote
        self.last_result = result
        return result

    def resolve(self, buffer: ContentBuffer, resolutions: List[ConflictResolution]) -> ContentBuffer:
        """Resolve against the snapshot fetched by the last detect() call."""
        if self.last_remote is None:
            raise ConflictDetectionError(buffer.product_id, RuntimeError("detect() has not completed"))
        resolved = resolve_conflicts(buffer, self.last_remote, resolutions)
        self.last_result = ConflictSet.empty(resolved.last_synced_at)
        return resolved
