"""
Pytest configuration and fixtures for vwbl tests.
"""
import json
from typing import Any

import httpx
import pytest

from vwbl.config import Settings
from vwbl.domain.types import EncryptLogic, UploadContentType, UploadMetadataType
from vwbl.domain.vwbl import VWBL
from vwbl.infrastructure.api.client import VWBLApi
from vwbl.infrastructure.http.fetcher import ContentFetcher
from vwbl.shared.crypto import collect_stream

CONTRACT_ADDRESS = "0x2c7e967093d7fe0eeb5440bf49e5D148417B0412"
NETWORK_URL = "https://vwbl.test"
STORAGE_URL = "https://storage.test"
CHAIN_ID = 80002
ALICE = "0x1111111111111111111111111111111111111111"
SIGN_MESSAGE = "Please sign to access VWBL"


class FakeSigner:
    """Signer double counting wallet prompts."""

    def __init__(self, address: str = ALICE, chain_id: int = CHAIN_ID) -> None:
        self._address = address
        self._chain_id = chain_id
        self.prompts: list[str] = []

    async def chain_id(self) -> int:
        return self._chain_id

    async def address(self) -> str:
        return self._address

    async def sign_message(self, message: str) -> str:
        self.prompts.append(message)
        return f"0xsig:{self._address}:{len(self.prompts)}"


class FakeNFT:
    """In-memory VWBL ERC721 contract."""

    def __init__(self, caller: str = ALICE) -> None:
        self.caller = caller
        self.next_token_id = 1
        self.tokens: dict[int, dict[str, Any]] = {}
        self.mint_calls: list[tuple] = []
        self.approvals: dict[int, str] = {}
        self.operators: set[tuple[str, str]] = set()

    def _mint(self, document_id: str, metadata_url: str | None) -> int:
        token_id = self.next_token_id
        self.next_token_id += 1
        self.tokens[token_id] = {
            "document_id": document_id,
            "owner": self.caller,
            "minter": self.caller,
            "metadata_url": metadata_url or f"{STORAGE_URL}/metadata/{token_id}",
        }
        return token_id

    async def mint_token(self, decrypt_url, fee_numerator, document_id, gas_settings=None) -> int:
        self.mint_calls.append((decrypt_url, fee_numerator, document_id, gas_settings))
        return self._mint(document_id, None)

    async def mint_token_for_ipfs(
        self, metadata_url, decrypt_url, fee_numerator, document_id, gas_settings=None
    ) -> int:
        self.mint_calls.append((metadata_url, decrypt_url, fee_numerator, document_id, gas_settings))
        return self._mint(document_id, metadata_url)

    async def get_metadata_url(self, token_id: int) -> str:
        return self.tokens[token_id]["metadata_url"]

    async def get_document_id(self, token_id: int) -> str:
        return self.tokens[token_id]["document_id"]

    async def owner_of(self, token_id: int) -> str:
        return self.tokens[token_id]["owner"]

    async def get_minter(self, token_id: int) -> str:
        return self.tokens[token_id]["minter"]

    async def get_own_token_ids(self, address: str) -> list[int]:
        return [
            token_id
            for token_id, token in self.tokens.items()
            if token["owner"].lower() == address.lower()
        ]

    async def get_token_by_minter(self, address: str) -> list[int]:
        return [
            token_id
            for token_id, token in self.tokens.items()
            if token["minter"].lower() == address.lower()
        ]

    async def approve(self, operator, token_id, gas_settings=None) -> None:
        self.approvals[token_id] = operator

    async def get_approved(self, token_id) -> str:
        return self.approvals.get(token_id, "0x0000000000000000000000000000000000000000")

    async def set_approval_for_all(self, operator, gas_settings=None) -> None:
        self.operators.add((self.caller, operator))

    async def is_approved_for_all(self, owner, operator) -> bool:
        return (owner, operator) in self.operators

    async def safe_transfer(self, to, token_id, gas_settings=None) -> None:
        self.tokens[token_id]["owner"] = to


class KeyService:
    """Fake VWBL network served through httpx.MockTransport.

    Releases a key only to the current owner or minter of the token bound to
    the document, like the real service.
    """

    def __init__(self, nft: FakeNFT, sign_message: str | None = SIGN_MESSAGE) -> None:
        self.nft = nft
        self.sign_message = sign_message
        self.keys: dict[tuple[str, int], str] = {}
        self.requests: list[httpx.Request] = []

    def _allowed(self, document_id: str, address: str | None) -> bool:
        for token in self.nft.tokens.values():
            if token["document_id"] == document_id and address:
                return address.lower() in (token["owner"].lower(), token["minter"].lower())
        return False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")

        if parts[0] == "signature":
            if self.sign_message is None:
                return httpx.Response(503, json={"error": "unavailable"})
            return httpx.Response(200, json={"signMessage": self.sign_message})

        if parts == ["keys"] and request.method == "POST":
            body = json.loads(request.content)
            self.keys[(body["document_id"], body["chain_id"])] = body["key"]
            return httpx.Response(200, json={"ok": True})

        if parts[0] == "keys" and request.method == "GET":
            document_id, chain_id = parts[1], int(parts[2])
            if not self._allowed(document_id, request.url.params.get("address")):
                return httpx.Response(401, json={"error": "not owner"})
            key = self.keys.get((document_id, chain_id))
            if key is None:
                return httpx.Response(404, json={"error": "no key"})
            return httpx.Response(200, json={"documentKey": {"key": key}})

        return httpx.Response(404)


class MemoryStorage:
    """Upload callbacks that keep objects in memory and serve them over HTTP."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.uploaded_names: list[str] = []
        self.metadata_calls: list[tuple] = []
        self.fail_names: set[str] = set()

    async def upload_encrypted_file(self, file_name: str, payload, batch_id: str) -> str:
        if file_name in self.fail_names:
            raise RuntimeError(f"upload rejected for {file_name}")
        if isinstance(payload, str):
            body = payload.encode("utf-8")
        elif isinstance(payload, bytes):
            body = payload
        else:
            body = await collect_stream(payload)
        url = f"{STORAGE_URL}/data/{batch_id}-{file_name}.vwbl"
        self.objects[url] = body
        self.uploaded_names.append(file_name)
        return url

    async def upload_thumbnail(self, image, batch_id: str) -> str:
        url = f"{STORAGE_URL}/thumbnail/{batch_id}"
        self.objects[url] = b"thumbnail"
        return url

    async def upload_metadata(
        self, token_id, name, description, image_url, encrypted_data_urls, mime_type, encrypt_logic
    ) -> str:
        self.metadata_calls.append(
            (token_id, name, description, image_url, encrypted_data_urls, mime_type, encrypt_logic)
        )
        url = f"{STORAGE_URL}/metadata/{token_id if token_id is not None else 'ipfs'}"
        self.objects[url] = json.dumps(
            {
                "name": name,
                "description": description,
                "image": image_url,
                "encrypted_data": encrypted_data_urls,
                "mime_type": mime_type,
                "encrypt_logic": EncryptLogic(encrypt_logic).value,
            }
        ).encode("utf-8")
        return url

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = self.objects.get(str(request.url))
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, content=body)


class RecordingSubscriber:
    def __init__(self) -> None:
        self.steps: list = []

    def kick_step(self, step) -> None:
        self.steps.append(step)


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment."""
    return Settings(
        _env_file=None,
        app_env="development",
        vwbl_network_url=NETWORK_URL,
        contract_address=CONTRACT_ADDRESS,
    )


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def nft() -> FakeNFT:
    return FakeNFT()


@pytest.fixture
def key_service(nft: FakeNFT) -> KeyService:
    return KeyService(nft)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def signer_factory():
    """Build signers for other wallets (buyers, third parties)."""
    return FakeSigner


@pytest.fixture
def subscriber() -> RecordingSubscriber:
    return RecordingSubscriber()


@pytest.fixture
def make_vwbl(
    test_settings: Settings,
    nft: FakeNFT,
    key_service: KeyService,
    storage: MemoryStorage,
):
    """Build VWBL clients sharing one in-memory chain, key service and storage."""

    def _make(signer, **overrides) -> VWBL:
        options = {
            "upload_content_type": UploadContentType.CUSTOM,
            "upload_metadata_type": UploadMetadataType.CUSTOM,
            "upload_encrypted_file": storage.upload_encrypted_file,
            "upload_thumbnail": storage.upload_thumbnail,
            "upload_metadata": storage.upload_metadata,
            "settings": test_settings,
            "api": VWBLApi(NETWORK_URL, transport=httpx.MockTransport(key_service.handler)),
            "fetcher": ContentFetcher(transport=httpx.MockTransport(storage.handler)),
        }
        options.update(overrides)
        return VWBL(signer, nft, **options)

    return _make


@pytest.fixture
def vwbl_client(make_vwbl, signer: FakeSigner) -> VWBL:
    """VWBL client for the minting wallet."""
    return make_vwbl(signer)
