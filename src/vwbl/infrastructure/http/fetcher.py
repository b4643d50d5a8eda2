"""Plain HTTP reads of public metadata and encrypted content."""

from collections.abc import AsyncIterator
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from vwbl.shared.logging import get_logger

logger = get_logger(__name__)

_retry_transport_errors = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    reraise=True,
)


class ContentFetcher:
    """Fetches metadata documents and content by locator.

    Idempotent GETs are retried on transport errors only; HTTP errors and the
    final transport error propagate unchanged.
    """

    def __init__(
        self,
        timeout: float | None = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @_retry_transport_errors
    async def fetch_json(self, url: str) -> Any | None:
        """Fetch a JSON document. Returns None when the document is gone."""
        client = await self._get_client()
        response = await client.get(url)
        if response.status_code == 404:
            logger.info("metadata_missing", url=url)
            return None
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    @_retry_transport_errors
    async def fetch_text(self, url: str) -> str:
        client = await self._get_client()
        response = await client.get(url)
        response.raise_for_status()
        return response.text

    @_retry_transport_errors
    async def fetch_bytes(self, url: str) -> bytes:
        client = await self._get_client()
        response = await client.get(url)
        response.raise_for_status()
        return response.content

    async def stream(self, url: str) -> AsyncIterator[bytes]:
        """Stream the response body chunk by chunk (not retried)."""
        client = await self._get_client()
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            async for chunk in response.aiter_bytes():
                yield chunk
