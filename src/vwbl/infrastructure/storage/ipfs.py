"""IPFS pinning storage (nft.storage compatible upload API)."""

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass

import httpx

from vwbl.domain.metadata import build_metadata_document
from vwbl.domain.types import EncryptLogic
from vwbl.shared.exceptions import StorageError
from vwbl.shared.files import FileOrPath, get_mime_type, read_file
from vwbl.shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class IPFSConfig:
    api_key: str
    endpoint: str
    gateway_url: str


class IPFSStorage:
    """Pins content through an HTTP upload endpoint and returns gateway URLs."""

    def __init__(
        self,
        config: IPFSConfig,
        timeout: float | None = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.gateway_url = config.gateway_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {self.config.api_key}",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _pin(self, content: bytes | AsyncIterator[bytes], content_type: str) -> str:
        client = await self._get_client()
        try:
            response = await client.post(
                self.config.endpoint,
                content=content,
                headers={"Content-Type": content_type},
            )
            response.raise_for_status()
            cid = response.json()["value"]["cid"]
        except httpx.HTTPStatusError as e:
            logger.error("ipfs_upload_failed", status_code=e.response.status_code)
            raise StorageError(
                f"upload to IPFS failed: {e.response.status_code}",
                details={"status_code": e.response.status_code},
            ) from e
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError("IPFS upload response has no CID") from e

        url = f"{self.gateway_url}/{cid}"
        logger.info("file_pinned", cid=cid)
        return url

    async def upload_encrypted_file(
        self,
        file_name: str,
        payload: str | bytes | AsyncIterator[bytes],
        batch_id: str,
    ) -> str:
        if isinstance(payload, str):
            return await self._pin(payload.encode("utf-8"), "text/plain")
        if isinstance(payload, bytes | bytearray):
            return await self._pin(bytes(payload), "application/octet-stream")
        return await self._pin(payload, "application/octet-stream")

    async def upload_thumbnail(self, image: FileOrPath, batch_id: str) -> str:
        content_type = get_mime_type(image) or "application/octet-stream"
        return await self._pin(await read_file(image), content_type)

    async def upload_metadata(
        self,
        token_id: int | None,
        name: str,
        description: str,
        image_url: str,
        encrypted_data_urls: list[str],
        mime_type: str,
        encrypt_logic: EncryptLogic,
    ) -> str:
        document = build_metadata_document(
            name, description, image_url, encrypted_data_urls, mime_type, encrypt_logic
        )
        return await self._pin(json.dumps(document).encode("utf-8"), "application/json")
