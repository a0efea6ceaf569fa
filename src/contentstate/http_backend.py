"""
httpx adapters for the external collaborators: product fetch, content
buffer fetch, remote snapshot fetch, product save and version persistence.

Every transport or HTTP status failure surfaces as BackendError (with the
status code when there is one); callers decide what it means for them.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from contentstate.errors import BackendError
from contentstate.models import (
    ContentBuffer, ProductRecord, RemoteSnapshot, TriggerType, VersionRecord,
)
from contentstate.session import ProductBackend
from contentstate.versions import VersionStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class _HttpClient:
    """Shared request plumbing. Owns the AsyncClient unless one is injected."""

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"HTTP: {method} {url} → {status}")
            raise BackendError(f"{method} {url} failed with status {status}", status_code=status) from e
        except httpx.HTTPError as e:
            logger.warning(f"HTTP: {method} {url} failed: {e}")
            raise BackendError(f"{method} {url} failed: {e}") from e

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


class HttpProductApi(_HttpClient, ProductBackend):
    """Product, content buffer, remote snapshot and save endpoints.

        async with HttpProductApi("https://api.example.com") as api:
            session = EditorSession("42", api)
            await session.load()
    """

    async def fetch_product(self, product_id: str) -> ProductRecord:
        data = await self._request('GET', f"/products/{product_id}")
        return ProductRecord.from_dict(data)

    async def fetch_content_buffer(self, product_id: str) -> Optional[ContentBuffer]:
        try:
            data = await self._request('GET', f"/products/{product_id}/content-buffer")
        except BackendError as e:
            if e.status_code == 404:
                return None
            raise
        return ContentBuffer.from_dict(data) if data else None

    async def fetch_remote_snapshot(self, product_id: str) -> RemoteSnapshot:
        data = await self._request('GET', f"/products/{product_id}/remote")
        return RemoteSnapshot.from_dict(data or {})

    async def save_product(self, product_id: str, payload: Dict[str, Any]) -> Any:
        return await self._request('PUT', f"/products/{product_id}", json=payload)


class HttpVersionStore(_HttpClient, VersionStore):
    """Version endpoints. The server assigns ids and version numbers."""

    async def create(
        self,
        product_id: str,
        form_data: Dict[str, Any],
        trigger_type: TriggerType,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> VersionRecord:
        data = await self._request('POST', f"/products/{product_id}/versions", json={
            'product_id': product_id,
            'form_data': form_data,
            'trigger_type': TriggerType(trigger_type).value,
            'metadata': metadata,
        })
        return VersionRecord.from_dict(data)

    async def list(self, product_id: str, limit: int) -> List[VersionRecord]:
        data = await self._request('GET', f"/products/{product_id}/versions", params={'limit': limit})
        return [VersionRecord.from_dict(item) for item in data or []]

    async def get(self, version_id: str) -> VersionRecord:
        data = await self._request('GET', f"/versions/{version_id}")
        return VersionRecord.from_dict(data)
