"""Tests for the httpx backend adapters using httpx.MockTransport."""
import asyncio
import json

import httpx
import pytest

from contentstate import BackendError, HttpProductApi, HttpVersionStore, TriggerType

BASE_URL = 'https://api.example.com'

PRODUCT = {
    'id': 42,
    'working_content': {'title': 'Linen Shirt', 'seo': {'title': 'Linen'}},
    'draft_generated_content': None,
    'last_synced_at': '2026-01-01T12:00:00Z',
    'title': 'Legacy',
}


def make_client(handler):
    return httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


def run_with(api_class, handler, call):
    async def scenario():
        async with make_client(handler) as client:
            api = api_class(BASE_URL, client=client)
            return await call(api)

    return asyncio.run(scenario())


class TestHttpProductApi:

    def test_fetch_product(self):
        """Test that the product record is parsed with a UTC sync timestamp."""
        def handler(request):
            assert request.url.path == '/products/42'
            return httpx.Response(200, json=PRODUCT)

        record = run_with(HttpProductApi, handler, lambda api: api.fetch_product('42'))
        assert record.id == '42'
        assert record.working_content['seo']['title'] == 'Linen'
        assert record.last_synced_at.isoformat() == '2026-01-01T12:00:00+00:00'
        assert record.title == 'Legacy'

    def test_missing_content_buffer_is_none(self):
        """Test that a 404 buffer means 'no buffer', not an error."""
        def handler(request):
            return httpx.Response(404, json={'detail': 'not found'})

        assert run_with(HttpProductApi, handler, lambda api: api.fetch_content_buffer('42')) is None

    def test_remote_snapshot(self):
        """Test that the remote snapshot keeps its update timestamp."""
        def handler(request):
            assert request.url.path == '/products/42/remote'
            return httpx.Response(200, json={'content': {'title': 'Remote'}, 'updated_at': '2026-01-02T08:00:00Z'})

        remote = run_with(HttpProductApi, handler, lambda api: api.fetch_remote_snapshot('42'))
        assert remote.content == {'title': 'Remote'}
        assert remote.updated_at.day == 2

    def test_save_sends_payload(self):
        """Test that save issues a PUT with the JSON payload."""
        seen = []

        def handler(request):
            seen.append((request.method, json.loads(request.content)))
            return httpx.Response(204)

        result = run_with(HttpProductApi, handler, lambda api: api.save_product('42', {'title': 'A'}))
        assert result is None
        assert seen == [('PUT', {'title': 'A'})]

    def test_http_status_maps_to_backend_error(self):
        """Test that error statuses surface as BackendError with the code."""
        def handler(request):
            return httpx.Response(502)

        with pytest.raises(BackendError) as excinfo:
            run_with(HttpProductApi, handler, lambda api: api.save_product('42', {}))
        assert excinfo.value.status_code == 502

    def test_transport_error_maps_to_backend_error(self):
        """Test that connection failures surface as BackendError without a code."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BackendError) as excinfo:
            run_with(HttpProductApi, handler, lambda api: api.fetch_product('42'))
        assert excinfo.value.status_code is None


class TestHttpVersionStore:

    def test_create_and_list(self):
        """Test the version endpoints and their wire format."""
        created = {
            'id': 'v-1', 'product_id': '42', 'form_data': {'title': 'A'}, 'trigger_type': 'ai_approval',
            'created_at': '2026-01-01T12:00:00Z', 'version_number': 7, 'title': 'A', 'field_count': 1,
            'metadata': {'field': 'title'},
        }
        requests = []

        def handler(request):
            requests.append(request)
            if request.method == 'POST':
                return httpx.Response(201, json=created)
            return httpx.Response(200, json=[created])

        async def call(store):
            record = await store.create('42', {'title': 'A'}, TriggerType.AI_APPROVAL, {'field': 'title'})
            listed = await store.list('42', 5)
            return record, listed

        record, listed = run_with(HttpVersionStore, handler, call)

        assert record.version_number == 7
        assert record.trigger_type is TriggerType.AI_APPROVAL
        assert listed == [record]
        body = json.loads(requests[0].content)
        assert body['trigger_type'] == 'ai_approval'
        assert body['metadata'] == {'field': 'title'}
        assert requests[1].url.params['limit'] == '5'
