"""Tests for conflict detection and resolution."""
import asyncio

import pytest

from conftest import SYNCED_AT, later, make_content
from contentstate import (
    BackendError, ConflictDetectionError, ConflictDetector, ConflictResolution, ContentBuffer,
    RemoteSnapshot, ResolutionAction, detect_conflicts, resolve_conflicts,
)


def make_buffer(**working_overrides):
    return ContentBuffer(
        product_id='42',
        store_snapshot_content=make_content(),
        working_content=make_content(**working_overrides),
        dirty_fields_content=list(working_overrides),
        last_synced_at=SYNCED_AT,
    )


class TestDetectConflicts:

    def test_unchanged_remote_never_conflicts(self):
        """Test that an unchanged remote yields no conflict regardless of local edits."""
        buffer = make_buffer(title='Local title', sku='LOCAL')
        remote = RemoteSnapshot(content=make_content(title='Remote title'), updated_at=SYNCED_AT)
        assert detect_conflicts(buffer, remote).has_conflict is False

    def test_identical_remote_content_never_conflicts(self):
        """Test that a newer timestamp with unchanged content is not a conflict."""
        buffer = make_buffer(title='Local title')
        remote = RemoteSnapshot(content=make_content(), updated_at=later(60))
        assert detect_conflicts(buffer, remote).conflicts == ()

    def test_title_changed_on_both_sides(self):
        """Test that a field changed locally and remotely yields exactly one entry."""
        buffer = make_buffer(title='Local title')
        remote = RemoteSnapshot(content=make_content(title='Remote title', stock=3), updated_at=later(60))

        result = detect_conflicts(buffer, remote)

        assert result.has_conflict
        assert len(result.conflicts) == 1
        entry = result.conflicts[0]
        assert entry.field == 'title'
        assert entry.local_value == 'Local title'
        assert entry.remote_value == 'Remote title'
        assert entry.base_value == 'Linen Shirt'
        assert result.store_updated_at == later(60)

    def test_remote_change_on_clean_field_is_not_a_conflict(self):
        """Test that only locally dirty fields can conflict."""
        buffer = make_buffer(title='Local title')
        remote = RemoteSnapshot(content=make_content(sku='REMOTE'), updated_at=later(60))
        assert detect_conflicts(buffer, remote).has_conflict is False

    def test_stale_cached_dirty_path_is_ignored(self):
        """Test that a cached dirty path that no longer differs cannot conflict."""
        buffer = make_buffer()
        buffer.dirty_fields_content = ['title']
        remote = RemoteSnapshot(content=make_content(title='Remote title'), updated_at=later(60))
        assert detect_conflicts(buffer, remote).has_conflict is False


class TestResolveConflicts:

    def _conflicted(self):
        buffer = make_buffer(title='Local title', seo={'title': 'Local SEO', 'description': 'Buy linen', 'focus_keyword': 'linen'})
        remote = RemoteSnapshot(
            content=make_content(
                title='Remote title', stock=3,
                seo={'title': 'Remote SEO', 'description': 'Buy linen', 'focus_keyword': 'linen'},
            ),
            updated_at=later(60),
        )
        return buffer, remote

    def test_actions_apply_per_field(self):
        """Test keep_local, use_store and merge, plus acknowledgement of the remote."""
        buffer, remote = self._conflicted()
        resolved = resolve_conflicts(buffer, remote, [
            ConflictResolution('title', ResolutionAction.KEEP_LOCAL),
            ConflictResolution('seo.title', ResolutionAction.MERGE, merged_value='Merged SEO'),
        ])

        assert resolved.working_content['title'] == 'Local title'
        assert resolved.working_content['seo']['title'] == 'Merged SEO'
        # Remote-only change taken as-is
        assert resolved.working_content['stock'] == 3
        assert resolved.store_snapshot_content == remote.content
        assert resolved.last_synced_at == later(60)
        assert resolved.dirty_fields_content == ['title', 'seo.title']

    def test_use_store_clears_dirtiness(self):
        """Test that taking the store value leaves the field clean."""
        buffer, remote = self._conflicted()
        resolved = resolve_conflicts(buffer, remote, [
            ConflictResolution('title', ResolutionAction.USE_STORE),
            ConflictResolution('seo.title', ResolutionAction.USE_STORE),
        ])
        assert resolved.dirty_fields_content == []

    def test_unresolved_conflict_is_rejected(self):
        """Test that every conflicting field needs a resolution."""
        buffer, remote = self._conflicted()
        with pytest.raises(ValueError):
            resolve_conflicts(buffer, remote, [ConflictResolution('title', ResolutionAction.KEEP_LOCAL)])


class TestConflictDetector:

    def test_fetch_failure_surfaces_as_error(self):
        """Test that a failed fetch raises instead of reporting no conflict."""
        async def failing_fetch(product_id):
            raise BackendError("timeout")

        detector = ConflictDetector(failing_fetch)
        with pytest.raises(ConflictDetectionError) as excinfo:
            asyncio.run(detector.detect(make_buffer(title='Local')))
        assert excinfo.value.product_id == '42'
        assert detector.last_result is None

    def test_detect_then_resolve(self):
        """Test resolving against the snapshot fetched by detect()."""
        remote = RemoteSnapshot(content=make_content(title='Remote title'), updated_at=later(60))

        async def fetch(product_id):
            return remote

        detector = ConflictDetector(fetch)
        buffer = make_buffer(title='Local title')
        result = asyncio.run(detector.detect(buffer))
        assert result.fields == ['title']

        resolved = detector.resolve(buffer, [ConflictResolution('title', ResolutionAction.USE_STORE)])
        assert resolved.working_content['title'] == 'Remote title'
        assert detector.last_result.has_conflict is False
