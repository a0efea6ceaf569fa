"""Pytest configuration and shared fixtures."""
import asyncio
import copy
from datetime import datetime, timedelta, timezone

import pytest

import contentstate.config as config_module
from contentstate import (
    BackendError,
    ContentBuffer,
    EditorConfig,
    EditorSession,
    InMemoryVersionStore,
    ManualScheduler,
    ProductBackend,
    ProductRecord,
    RemoteSnapshot,
)

SYNCED_AT = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

# Short, distinct timings so tests can step across each window explicitly
TEST_CONFIG = EditorConfig(
    max_snapshots=50,
    capture_debounce=0.5,
    settle_delay=0.5,
    post_save_settle_delay=0.2,
    saved_status_display=3.0,
    error_status_display=5.0,
)


def make_content(**overrides):
    """Working/store content for a typical simple product."""
    content = {
        'title': 'Linen Shirt',
        'description': '<p>Soft linen shirt</p>',
        'short_description': 'Linen',
        'sku': 'LS-01',
        'regular_price': '49.90',
        'stock': 10,
        'status': 'publish',
        'seo': {'title': 'Linen Shirt | Shop', 'description': 'Buy linen', 'focus_keyword': 'linen'},
        'categories': [{'name': 'Shirts'}, {'name': 'Summer'}],
        'tags': ['linen'],
        'images': [
            {'id': 1, 'src': 'https://cdn.example.com/1.jpg', 'alt': ''},
            {'id': 2, 'src': 'https://cdn.example.com/2.jpg', 'alt': 'back'},
        ],
    }
    content.update(overrides)
    return content


def make_record(product_id='42', synced_at=SYNCED_AT, draft=None, **content_overrides):
    return ProductRecord(
        id=product_id,
        working_content=make_content(**content_overrides),
        draft_generated_content=draft,
        last_synced_at=synced_at,
    )


class FakeProductBackend(ProductBackend):
    """In-memory ProductBackend with controllable failures and a save gate."""

    def __init__(self, record: ProductRecord):
        self.record = record
        self.buffer = ContentBuffer(
            product_id=record.id,
            store_snapshot_content=copy.deepcopy(record.working_content),
            working_content=copy.deepcopy(record.working_content),
            last_synced_at=record.last_synced_at,
        )
        self.remote = RemoteSnapshot(content=copy.deepcopy(record.working_content), updated_at=record.last_synced_at)
        self.saved_payloads = []
        self.save_error = None
        self.remote_error = None
        self.save_gate = None  # asyncio.Event: save_product waits on it when set
        self.fetch_count = 0

    async def fetch_product(self, product_id):
        self.fetch_count += 1
        return self.record

    async def fetch_content_buffer(self, product_id):
        return self.buffer

    async def fetch_remote_snapshot(self, product_id):
        if self.remote_error is not None:
            raise self.remote_error
        return self.remote

    async def save_product(self, product_id, payload):
        if self.save_gate is not None:
            await self.save_gate.wait()
        if self.save_error is not None:
            raise self.save_error
        self.saved_payloads.append(payload)
        return {'id': product_id}


class FailingVersionStore(InMemoryVersionStore):
    """Version store whose writes always fail."""

    async def create(self, product_id, form_data, trigger_type, metadata=None):
        raise BackendError("version service unavailable", status_code=503)


@pytest.fixture(autouse=True)
def reset_editor_config():
    """Restore the process-wide editor config after each test."""
    original = config_module._base_editor_config
    yield
    config_module._base_editor_config = original


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def record():
    return make_record()


@pytest.fixture
def backend(record):
    return FakeProductBackend(record)


@pytest.fixture
def version_store():
    return InMemoryVersionStore()


@pytest.fixture
def session(backend, version_store, scheduler):
    editor = EditorSession('42', backend, version_store=version_store, scheduler=scheduler, config=TEST_CONFIG)
    yield editor
    editor.close()


@pytest.fixture
def loaded_session(session, scheduler):
    """Session with the record loaded and the form settled."""
    asyncio.run(session.load())
    scheduler.advance(TEST_CONFIG.settle_delay)
    return session


def later(seconds):
    return SYNCED_AT + timedelta(seconds=seconds)
