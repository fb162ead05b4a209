"""
Blob store client

Thin HTTP wrapper over an object store that accepts PUT/DELETE on
`{base_url}/{key}` (S3-style presigned gateways, MinIO, local dev server).
"""

import uuid
from typing import Optional

import httpx

from chatfeed.core.config import settings
from chatfeed.core.logging import get_logger

logger = get_logger(__name__)


class BlobStore:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.blob_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.blob_api_key
        self._transport = transport

    def _headers(self) -> dict:
        if self.api_key:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self._headers(), timeout=30.0, transport=self._transport
        )

    def owns(self, url: str) -> bool:
        return url.startswith(self.base_url + "/")

    async def upload(self, filename: str, data: bytes, content_type: str) -> str:
        """Store bytes under a fresh key and return the public URL."""
        key = f"{uuid.uuid4().hex}_{filename}"
        url = f"{self.base_url}/{key}"
        try:
            async with self._client() as client:
                response = await client.put(
                    url, content=data, headers={"Content-Type": content_type}
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Blob upload failed for {filename}: {e}")
            raise
        return url

    async def delete(self, url: str) -> None:
        if not self.owns(url):
            raise ValueError(f"URL is not in this blob store: {url}")
        try:
            async with self._client() as client:
                response = await client.delete(url)
                # Already gone is fine
                if response.status_code != 404:
                    response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Blob delete failed for {url}: {e}")
            raise
