"""Unit tests for storage adapters and storage plan resolution."""

import json
from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError

from vwbl.domain.types import EncryptLogic, UploadContentType, UploadMetadataType
from vwbl.infrastructure.storage.factory import (
    StoragePlan,
    UseBuiltinStorage,
    UseCallback,
    build_storage_plan,
)
from vwbl.infrastructure.storage.ipfs import IPFSConfig, IPFSStorage
from vwbl.infrastructure.storage.s3 import AWSConfig, S3Storage
from vwbl.shared.exceptions import ConfigurationError, StorageError
from vwbl.shared.files import PlainFile

AWS_CONFIG = AWSConfig(
    bucket="vwbl-test",
    region="ap-northeast-1",
    public_url="https://cdn.test/",
    access_key="test",
    secret_key="test",
)
IPFS_CONFIG = IPFSConfig(
    api_key="ipfs-token",
    endpoint="https://pin.test/upload",
    gateway_url="https://gw.test/ipfs/",
)


async def aiter_chunks(*chunks: bytes):
    for chunk in chunks:
        yield chunk


class TestBuildStoragePlan:
    """Test resolving uploaders at construction time."""

    def test_s3_without_config_raises(self):
        """Test that S3 without AWS config fails immediately."""
        with pytest.raises(ConfigurationError):
            build_storage_plan(UploadContentType.S3, None)

    def test_ipfs_without_config_raises(self):
        """Test that IPFS without an API key fails immediately."""
        with pytest.raises(ConfigurationError):
            build_storage_plan(None, UploadMetadataType.IPFS)

    def test_custom_content_without_callbacks_raises(self):
        """Test that CUSTOM content needs both callbacks."""
        with pytest.raises(ConfigurationError):
            build_storage_plan(
                UploadContentType.CUSTOM,
                None,
                upload_encrypted_file=lambda name, payload, batch_id: "url",
            )

    def test_custom_metadata_without_callback_raises(self):
        """Test that CUSTOM metadata needs its callback."""
        with pytest.raises(ConfigurationError):
            build_storage_plan(None, UploadMetadataType.CUSTOM)

    def test_unconfigured_plan_fails_on_use(self):
        """Test that a plan without uploaders fails before any upload."""
        plan = build_storage_plan(None, None)

        assert plan.encrypted_file is None
        with pytest.raises(ConfigurationError):
            plan.require_content()
        with pytest.raises(ConfigurationError):
            plan.require_metadata()

    def test_s3_content_with_custom_metadata(self):
        """Test mixing a builtin adapter with a callback."""
        plan = build_storage_plan(
            UploadContentType.S3,
            UploadMetadataType.CUSTOM,
            aws_config=AWS_CONFIG,
            upload_metadata=lambda *args: None,
        )

        assert isinstance(plan.encrypted_file, UseBuiltinStorage)
        assert isinstance(plan.encrypted_file.backend, S3Storage)
        assert plan.thumbnail == plan.encrypted_file
        assert isinstance(plan.metadata, UseCallback)

    @pytest.mark.asyncio
    async def test_sync_callbacks_are_supported(self):
        """Test that plain functions work as upload callbacks."""
        plan = build_storage_plan(
            UploadContentType.CUSTOM,
            UploadMetadataType.CUSTOM,
            upload_encrypted_file=lambda name, payload, batch_id: f"https://x.test/{batch_id}-{name}",
            upload_thumbnail=lambda image, batch_id: "https://x.test/thumb",
            upload_metadata=lambda *args: None,
        )

        url = await plan.upload_encrypted_file("a.png", "cipher", "b1")

        assert url == "https://x.test/b1-a.png"
        assert await plan.upload_thumbnail(PlainFile("t.png", b"img"), "b1") == "https://x.test/thumb"


class TestS3Storage:
    """Test S3 uploads with a mocked boto3 client."""

    @pytest.fixture
    def s3_client(self):
        return MagicMock()

    @pytest.fixture
    def s3(self, s3_client):
        return S3Storage(AWS_CONFIG, client=s3_client)

    @pytest.mark.asyncio
    async def test_upload_text_payload(self, s3, s3_client):
        """Test that text payloads land under data/ with the .vwbl suffix."""
        url = await s3.upload_encrypted_file("photo.png", "Y2lwaGVy", "batch-1")

        assert url == "https://cdn.test/data/batch-1-photo.png.vwbl"
        kwargs = s3_client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "vwbl-test"
        assert kwargs["Key"] == "data/batch-1-photo.png.vwbl"
        assert kwargs["Body"] == b"Y2lwaGVy"
        assert kwargs["ContentType"] == "text/plain"

    @pytest.mark.asyncio
    async def test_upload_stream_payload(self, s3, s3_client):
        """Test that stream payloads are spooled and uploaded as one object."""
        uploaded = {}

        def upload_fileobj(fileobj, bucket, key, ExtraArgs=None):
            uploaded["body"] = fileobj.read()
            uploaded["key"] = key

        s3_client.upload_fileobj.side_effect = upload_fileobj

        url = await s3.upload_encrypted_file("movie.mp4", aiter_chunks(b"ab", b"cd"), "batch-1")

        assert url == "https://cdn.test/data/batch-1-movie.mp4.vwbl"
        assert uploaded == {"body": b"abcd", "key": "data/batch-1-movie.mp4.vwbl"}

    @pytest.mark.asyncio
    async def test_upload_thumbnail(self, s3, s3_client):
        """Test that thumbnails keep their content type."""
        url = await s3.upload_thumbnail(PlainFile("thumb.png", b"img"), "batch-1")

        assert url == "https://cdn.test/thumbnail/batch-1-thumb.png"
        assert s3_client.put_object.call_args.kwargs["ContentType"] == "image/png"

    @pytest.mark.asyncio
    async def test_upload_metadata(self, s3, s3_client):
        """Test that metadata is stored as JSON under metadata/{token_id}."""
        url = await s3.upload_metadata(
            5, "Art", "desc", "https://cdn.test/t", ["https://cdn.test/d"], "image/png", EncryptLogic.STREAM
        )

        assert url == "https://cdn.test/metadata/5"
        body = json.loads(s3_client.put_object.call_args.kwargs["Body"])
        assert body["encrypt_logic"] == "stream"
        assert body["encrypted_data"] == ["https://cdn.test/d"]

    @pytest.mark.asyncio
    async def test_upload_metadata_without_token_id_raises(self, s3, s3_client):
        """Test that metadata is never written under metadata/None."""
        with pytest.raises(ConfigurationError):
            await s3.upload_metadata(
                None, "Art", "desc", "https://cdn.test/t", [], "", EncryptLogic.BASE64
            )

        s3_client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_client_error_raises_storage_error(self, s3, s3_client):
        """Test that boto3 errors are wrapped."""
        s3_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )

        with pytest.raises(StorageError):
            await s3.upload_encrypted_file("a.png", b"\x00", "batch-1")


class TestIPFSStorage:
    """Test IPFS pinning with a mocked transport."""

    @pytest.mark.asyncio
    async def test_pin_returns_gateway_url(self):
        """Test that the CID is turned into a gateway URL."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True, "value": {"cid": "bafy123"}})

        ipfs = IPFSStorage(IPFS_CONFIG, transport=httpx.MockTransport(handler))
        url = await ipfs.upload_encrypted_file("a.png", b"\x01\x02", "batch-1")
        await ipfs.close()

        assert url == "https://gw.test/ipfs/bafy123"
        assert seen[0].headers["Authorization"] == "Bearer ipfs-token"
        assert seen[0].content == b"\x01\x02"

    @pytest.mark.asyncio
    async def test_upload_metadata_without_token_id(self):
        """Test that metadata can be pinned before minting."""
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"value": {"cid": "bafymeta"}})

        ipfs = IPFSStorage(IPFS_CONFIG, transport=httpx.MockTransport(handler))
        url = await ipfs.upload_metadata(
            None, "Art", "desc", "https://gw.test/ipfs/t", ["https://gw.test/ipfs/d"], "", EncryptLogic.BASE64
        )

        assert url == "https://gw.test/ipfs/bafymeta"
        assert bodies[0]["name"] == "Art"
        assert bodies[0]["encrypt_logic"] == "base64"

    @pytest.mark.asyncio
    async def test_http_error_raises_storage_error(self):
        """Test that a rejected pin raises StorageError."""
        ipfs = IPFSStorage(IPFS_CONFIG, transport=httpx.MockTransport(lambda r: httpx.Response(401)))

        with pytest.raises(StorageError):
            await ipfs.upload_thumbnail(PlainFile("t.png", b"img"), "batch-1")

    @pytest.mark.asyncio
    async def test_missing_cid_raises_storage_error(self):
        """Test that a response without a CID raises StorageError."""
        ipfs = IPFSStorage(IPFS_CONFIG, transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))

        with pytest.raises(StorageError):
            await ipfs.upload_encrypted_file("a.png", "cipher", "batch-1")


class TestMetadataFlow:
    """Test which metadata targets each minting flow accepts."""

    @pytest.fixture
    def s3_plan(self):
        return StoragePlan(metadata=UseBuiltinStorage(S3Storage(AWS_CONFIG, client=MagicMock())))

    @pytest.fixture
    def ipfs_plan(self):
        return StoragePlan(metadata=UseBuiltinStorage(IPFSStorage(IPFS_CONFIG)))

    @pytest.fixture
    def callback_plan(self):
        return StoragePlan(metadata=UseCallback(lambda *args: "https://x.test/meta"))

    def test_s3_is_keyed_by_token_id(self, s3_plan):
        """Test that S3 metadata is accepted after minting only."""
        s3_plan.require_token_metadata()

        with pytest.raises(ConfigurationError) as exc_info:
            s3_plan.require_pre_mint_metadata()
        assert exc_info.value.details["backend"] == "S3Storage"

    def test_ipfs_is_addressed_by_pin(self, ipfs_plan):
        """Test that IPFS metadata is accepted before minting only."""
        ipfs_plan.require_pre_mint_metadata()

        with pytest.raises(ConfigurationError) as exc_info:
            ipfs_plan.require_token_metadata()
        assert exc_info.value.details["backend"] == "IPFSStorage"

    def test_callback_serves_both_flows(self, callback_plan):
        """Test that a metadata callback is accepted by both flows."""
        callback_plan.require_token_metadata()
        callback_plan.require_pre_mint_metadata()

    def test_missing_metadata_uploader_raises(self):
        """Test that both flows need a metadata uploader."""
        with pytest.raises(ConfigurationError):
            StoragePlan().require_token_metadata()
        with pytest.raises(ConfigurationError):
            StoragePlan().require_pre_mint_metadata()
