"""S3-compatible storage for encrypted content, thumbnails and metadata."""

import json
import tempfile
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import IO, Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from vwbl.domain.metadata import build_metadata_document
from vwbl.domain.types import EncryptLogic
from vwbl.shared.concurrency import to_thread_limited
from vwbl.shared.exceptions import ConfigurationError, StorageError
from vwbl.shared.files import FileOrPath, file_name_of, get_mime_type, read_file
from vwbl.shared.logging import get_logger

logger = get_logger(__name__)

# Stream payloads stay in memory up to this size before spilling to disk
_SPOOL_MAX_SIZE = 8 * 1024 * 1024


@dataclass(frozen=True)
class AWSConfig:
    bucket: str
    region: str
    public_url: str
    endpoint_url: str | None = None
    access_key: str | None = None
    secret_key: str | None = None


class S3Storage:
    """Uploads VWBL objects to S3 (or MinIO).

    Key layout:
    - data/{batch_id}-{file_name}.vwbl
    - thumbnail/{batch_id}-{file_name}
    - metadata/{token_id}

    boto3 is synchronous; every call runs through `to_thread_limited`.
    """

    def __init__(self, config: AWSConfig, client: Any | None = None) -> None:
        self.config = config
        self.bucket = config.bucket
        self.public_url = config.public_url.rstrip("/")
        self.client = client or boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            region_name=config.region,
            config=Config(signature_version="s3v4"),
        )

    def _url(self, key: str) -> str:
        return f"{self.public_url}/{key}"

    async def _put(self, key: str, body: bytes, content_type: str) -> str:
        try:
            await to_thread_limited(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )
        except ClientError as e:
            logger.error("s3_upload_failed", key=key, error=str(e))
            raise StorageError(f"upload to S3 failed: {e}", details={"key": key}) from e

        logger.info("file_uploaded", key=key, size=len(body))
        return self._url(key)

    async def _put_stream(self, key: str, payload: AsyncIterator[bytes]) -> str:
        size = 0
        with tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_SIZE) as spool:
            async for chunk in payload:
                spool.write(chunk)
                size += len(chunk)
            spool.seek(0)
            try:
                await to_thread_limited(self._upload_fileobj, spool, key)
            except ClientError as e:
                logger.error("s3_upload_failed", key=key, error=str(e))
                raise StorageError(f"upload to S3 failed: {e}", details={"key": key}) from e

        logger.info("file_uploaded", key=key, size=size, streamed=True)
        return self._url(key)

    def _upload_fileobj(self, fileobj: IO[bytes], key: str) -> None:
        self.client.upload_fileobj(
            fileobj,
            self.bucket,
            key,
            ExtraArgs={"ContentType": "application/octet-stream"},
        )

    async def upload_encrypted_file(
        self,
        file_name: str,
        payload: str | bytes | AsyncIterator[bytes],
        batch_id: str,
    ) -> str:
        """Upload encrypted content and return its public URL.

        Raises:
            StorageError: If the upload fails
        """
        key = f"data/{batch_id}-{file_name}.vwbl"
        if isinstance(payload, str):
            return await self._put(key, payload.encode("utf-8"), "text/plain")
        if isinstance(payload, bytes | bytearray):
            return await self._put(key, bytes(payload), "application/octet-stream")
        return await self._put_stream(key, payload)

    async def upload_thumbnail(self, image: FileOrPath, batch_id: str) -> str:
        key = f"thumbnail/{batch_id}-{file_name_of(image)}"
        content_type = get_mime_type(image) or "application/octet-stream"
        return await self._put(key, await read_file(image), content_type)

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
        if token_id is None:
            raise ConfigurationError("S3 metadata is keyed by token ID; upload it after minting")
        document = build_metadata_document(
            name, description, image_url, encrypted_data_urls, mime_type, encrypt_logic
        )
        body = json.dumps(document).encode("utf-8")
        return await self._put(f"metadata/{token_id}", body, "application/json")
