"""Resolve where encrypted content, thumbnails and metadata are uploaded.

The choice between a built-in adapter and a caller-supplied callback is made
once, when the client is constructed. A selected mode whose collaborator is
missing fails here, before any network activity.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Union

from vwbl.config import Settings
from vwbl.domain.types import EncryptLogic, UploadContentType, UploadMetadataType
from vwbl.infrastructure.storage.ipfs import IPFSConfig, IPFSStorage
from vwbl.infrastructure.storage.s3 import AWSConfig, S3Storage
from vwbl.shared.concurrency import maybe_await
from vwbl.shared.exceptions import ConfigurationError
from vwbl.shared.files import FileOrPath

EncryptedPayload = Union[str, bytes, AsyncIterator[bytes]]

UploadEncryptedFile = Callable[[str, EncryptedPayload, str], Union[Awaitable[str], str]]
UploadThumbnail = Callable[[FileOrPath, str], Union[Awaitable[str], str]]
UploadMetadata = Callable[
    [int, str, str, str, list[str], str, EncryptLogic],
    Union[Awaitable[Any], Any],
]


@dataclass(frozen=True)
class UseBuiltinStorage:
    backend: S3Storage | IPFSStorage


@dataclass(frozen=True)
class UseCallback:
    fn: Callable[..., Any]


StorageChoice = UseBuiltinStorage | UseCallback


@dataclass(frozen=True)
class StoragePlan:
    """Resolved upload targets. `None` means no uploader was configured."""

    encrypted_file: StorageChoice | None = None
    thumbnail: StorageChoice | None = None
    metadata: StorageChoice | None = None

    def require_content(self) -> None:
        if self.encrypted_file is None or self.thumbnail is None:
            raise ConfigurationError(
                "please specify upload content type or give upload callbacks"
            )

    def require_metadata(self) -> None:
        if self.metadata is None:
            raise ConfigurationError(
                "please specify upload metadata type or give an upload metadata callback"
            )

    def require_token_metadata(self) -> None:
        """Metadata stored after minting, addressed by token ID.

        An IPFS pin gets a new address the minted token cannot point to.
        """
        self.require_metadata()
        choice = self.metadata
        if isinstance(choice, UseBuiltinStorage) and isinstance(choice.backend, IPFSStorage):
            raise ConfigurationError(
                "IPFS metadata must be uploaded before minting; use managed_create_token_for_ipfs",
                details={"backend": type(choice.backend).__name__},
            )

    def require_pre_mint_metadata(self) -> None:
        """Metadata stored before minting, addressed by the URL the upload returns.

        S3 keys metadata by token ID, which does not exist yet.
        """
        self.require_metadata()
        choice = self.metadata
        if isinstance(choice, UseBuiltinStorage) and not isinstance(choice.backend, IPFSStorage):
            raise ConfigurationError(
                "metadata uploaded before minting needs IPFS or an upload_metadata callback",
                details={"backend": type(choice.backend).__name__},
            )

    async def upload_encrypted_file(
        self, file_name: str, payload: EncryptedPayload, batch_id: str
    ) -> str:
        self.require_content()
        choice = self.encrypted_file
        if isinstance(choice, UseBuiltinStorage):
            return await choice.backend.upload_encrypted_file(file_name, payload, batch_id)
        return await maybe_await(choice.fn(file_name, payload, batch_id))

    async def upload_thumbnail(self, image: FileOrPath, batch_id: str) -> str:
        self.require_content()
        choice = self.thumbnail
        if isinstance(choice, UseBuiltinStorage):
            return await choice.backend.upload_thumbnail(image, batch_id)
        return await maybe_await(choice.fn(image, batch_id))

    async def upload_metadata(
        self,
        token_id: int | None,
        name: str,
        description: str,
        image_url: str,
        encrypted_data_urls: list[str],
        mime_type: str,
        encrypt_logic: EncryptLogic,
    ) -> str | None:
        self.require_metadata()
        choice = self.metadata
        args = (token_id, name, description, image_url, encrypted_data_urls, mime_type, encrypt_logic)
        if isinstance(choice, UseBuiltinStorage):
            return await choice.backend.upload_metadata(*args)
        return await maybe_await(choice.fn(*args))


def aws_config_from_settings(settings: Settings) -> AWSConfig | None:
    if not settings.s3_bucket:
        return None
    return AWSConfig(
        bucket=settings.s3_bucket,
        region=settings.s3_region,
        public_url=settings.s3_public_url
        or f"https://{settings.s3_bucket}.s3.{settings.s3_region}.amazonaws.com",
        endpoint_url=settings.s3_endpoint,
        access_key=settings.s3_access_key,
        secret_key=settings.s3_secret_key,
    )


def ipfs_config_from_settings(settings: Settings) -> IPFSConfig | None:
    if not settings.ipfs_api_key:
        return None
    return IPFSConfig(
        api_key=settings.ipfs_api_key,
        endpoint=settings.ipfs_endpoint,
        gateway_url=settings.ipfs_gateway_url,
    )


def build_storage_plan(
    upload_content_type: UploadContentType | None,
    upload_metadata_type: UploadMetadataType | None,
    *,
    aws_config: AWSConfig | None = None,
    ipfs_config: IPFSConfig | None = None,
    upload_encrypted_file: UploadEncryptedFile | None = None,
    upload_thumbnail: UploadThumbnail | None = None,
    upload_metadata: UploadMetadata | None = None,
    http_timeout: float | None = 30.0,
) -> StoragePlan:
    """Resolve the storage plan.

    Raises:
        ConfigurationError: If S3 is selected without AWS config, IPFS without
            an API key, or CUSTOM without the matching callbacks
    """
    s3: S3Storage | None = None
    ipfs: IPFSStorage | None = None
    if upload_content_type == UploadContentType.S3 or upload_metadata_type == UploadMetadataType.S3:
        if aws_config is None:
            raise ConfigurationError("please specify S3 bucket (AWS config)")
        s3 = S3Storage(aws_config)
    if (
        upload_content_type == UploadContentType.IPFS
        or upload_metadata_type == UploadMetadataType.IPFS
    ):
        if ipfs_config is None:
            raise ConfigurationError("please specify an IPFS pinning API key")
        ipfs = IPFSStorage(ipfs_config, timeout=http_timeout)

    encrypted_file: StorageChoice | None = None
    thumbnail: StorageChoice | None = None
    if upload_content_type == UploadContentType.S3:
        assert s3 is not None
        encrypted_file = thumbnail = UseBuiltinStorage(s3)
    elif upload_content_type == UploadContentType.IPFS:
        assert ipfs is not None
        encrypted_file = thumbnail = UseBuiltinStorage(ipfs)
    elif upload_content_type == UploadContentType.CUSTOM:
        if upload_encrypted_file is None or upload_thumbnail is None:
            raise ConfigurationError(
                "upload content type CUSTOM needs upload_encrypted_file and upload_thumbnail callbacks"
            )
        encrypted_file = UseCallback(upload_encrypted_file)
        thumbnail = UseCallback(upload_thumbnail)

    metadata: StorageChoice | None = None
    if upload_metadata_type == UploadMetadataType.S3:
        assert s3 is not None
        metadata = UseBuiltinStorage(s3)
    elif upload_metadata_type == UploadMetadataType.IPFS:
        assert ipfs is not None
        metadata = UseBuiltinStorage(ipfs)
    elif upload_metadata_type == UploadMetadataType.CUSTOM:
        if upload_metadata is None:
            raise ConfigurationError(
                "upload metadata type CUSTOM needs an upload_metadata callback"
            )
        metadata = UseCallback(upload_metadata)

    return StoragePlan(encrypted_file=encrypted_file, thumbnail=thumbnail, metadata=metadata)
