"""VWBL client: token registration and gated retrieval.

Registration (`managed_create_token`):
    MintToken -> CreateKey -> EncryptContent -> UploadContent -> UploadMetadata -> RegisterKey

Retrieval (`get_token_by_id`):
    FetchMetadata -> Classify(caller) -> FetchKey + Decrypt (owner/minter) | metadata only

A failure at any registration step aborts the remaining steps. A token minted
before a failed upload is left as is.
"""

import uuid
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import asdict
from types import TracebackType

from vwbl.config import Settings, get_settings
from vwbl.domain.access import Classification, OwnershipGate
from vwbl.domain.auth import SignatureAuthenticator
from vwbl.domain.metadata import (
    ExtractedMetadata,
    FileDecryptResult,
    Metadata,
    file_name_from_locator,
)
from vwbl.domain.ports import VWBLNFTPort
from vwbl.domain.signer import Signer
from vwbl.domain.types import (
    EncryptLogic,
    GasSettings,
    ProgressSubscriber,
    StepStatus,
    UploadContentType,
    UploadMetadataType,
)
from vwbl.infrastructure.api.client import VWBLApi
from vwbl.infrastructure.http.fetcher import ContentFetcher
from vwbl.infrastructure.storage.factory import (
    EncryptedPayload,
    StoragePlan,
    UploadEncryptedFile,
    UploadMetadata,
    UploadThumbnail,
    UseBuiltinStorage,
    aws_config_from_settings,
    build_storage_plan,
    ipfs_config_from_settings,
)
from vwbl.infrastructure.storage.ipfs import IPFSConfig, IPFSStorage
from vwbl.infrastructure.storage.s3 import AWSConfig
from vwbl.shared import crypto
from vwbl.shared.concurrency import gather_settled, to_thread_limited
from vwbl.shared.exceptions import (
    ConfigurationError,
    ContentUploadError,
    ExternalServiceError,
    MetadataNotFoundError,
)
from vwbl.shared.files import (
    FileOrPath,
    file_name_of,
    get_mime_type,
    iter_file,
    read_file,
    to_base64,
)
from vwbl.shared.logging import get_logger

logger = get_logger(__name__)


class VWBL:
    """Client for minting VWBL tokens and reading their gated content.

    Call `sign()` before any operation that touches keys.
    """

    def __init__(
        self,
        signer: Signer,
        nft: VWBLNFTPort,
        *,
        contract_address: str | None = None,
        vwbl_network_url: str | None = None,
        upload_content_type: UploadContentType | None = None,
        upload_metadata_type: UploadMetadataType | None = None,
        aws_config: AWSConfig | None = None,
        ipfs_config: IPFSConfig | None = None,
        upload_encrypted_file: UploadEncryptedFile | None = None,
        upload_thumbnail: UploadThumbnail | None = None,
        upload_metadata: UploadMetadata | None = None,
        settings: Settings | None = None,
        api: VWBLApi | None = None,
        fetcher: ContentFetcher | None = None,
    ) -> None:
        """Initialize the client.

        Explicit arguments override the corresponding settings.

        Raises:
            ConfigurationError: If the contract address is missing or the
                selected storage mode lacks its collaborator
        """
        settings = settings or get_settings()
        self.settings = settings
        self.signer = signer
        self.nft = nft
        self.contract_address = contract_address or settings.contract_address
        self.vwbl_network_url = vwbl_network_url or settings.vwbl_network_url
        if not self.contract_address:
            raise ConfigurationError("please specify the VWBL contract address")

        self.storage: StoragePlan = build_storage_plan(
            upload_content_type or settings.upload_content_type,
            upload_metadata_type or settings.upload_metadata_type,
            aws_config=aws_config or aws_config_from_settings(settings),
            ipfs_config=ipfs_config or ipfs_config_from_settings(settings),
            upload_encrypted_file=upload_encrypted_file,
            upload_thumbnail=upload_thumbnail,
            upload_metadata=upload_metadata,
            http_timeout=settings.http_timeout,
        )
        self.api = api or VWBLApi(self.vwbl_network_url, timeout=settings.http_timeout)
        self.fetcher = fetcher or ContentFetcher(timeout=settings.http_timeout)
        self.auth = SignatureAuthenticator(
            self.api,
            default_sign_message=settings.default_sign_message,
            fallback_enabled=settings.sign_message_fallback_enabled,
        )
        self.gate = OwnershipGate(nft)

    async def __aenter__(self) -> "VWBL":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close HTTP clients owned by the client."""
        await self.api.close()
        await self.fetcher.close()
        for choice in (self.storage.encrypted_file, self.storage.metadata):
            if isinstance(choice, UseBuiltinStorage) and isinstance(choice.backend, IPFSStorage):
                await choice.backend.close()

    # ----- Authentication -----

    @property
    def signature(self) -> str | None:
        return self.auth.signature

    async def sign(self) -> str:
        """Sign to VWBL.

        Must be called before minting or reading gated content. Repeated calls
        reuse the signature while the network's challenge text is unchanged.
        """
        chain_id = await self.signer.chain_id()
        return await self.auth.sign(self.signer, self.contract_address, chain_id)

    def create_key(self) -> str:
        """Create a key used for encryption and decryption."""
        return crypto.create_key()

    # ----- Registration -----

    async def managed_create_token(
        self,
        name: str,
        description: str,
        plain_file: FileOrPath | Sequence[FileOrPath],
        thumbnail_image: FileOrPath,
        fee_numerator: int,
        encrypt_logic: EncryptLogic = EncryptLogic.BASE64,
        subscriber: ProgressSubscriber | None = None,
        gas_settings: GasSettings | None = None,
    ) -> int:
        """Create a VWBL token.

        Mints the token, encrypts and uploads every file, uploads the
        thumbnail and metadata, then registers the key with the network.

        Args:
            name: Token name
            description: Token description
            plain_file: File(s) only the owner or minter can view
            thumbnail_image: Public image of the token
            fee_numerator: Royalty in basis points (350 = 3.5%)
            encrypt_logic: BASE64 for small data, BINARY or STREAM for large data
            subscriber: Optional progress observer
            gas_settings: Optional fee settings for the mint transaction

        Returns:
            The minted token ID

        Raises:
            PreconditionError: If `sign()` has not succeeded
            ConfigurationError: If no content or metadata uploader is configured,
                or metadata goes to IPFS (see `managed_create_token_for_ipfs`)
            ContentUploadError: If one or more files failed to encrypt or upload
        """
        signature = self.auth.require_signature("managed_create_token")
        self.storage.require_content()
        self.storage.require_token_metadata()
        files = _as_file_list(plain_file)
        encrypt_logic = EncryptLogic(encrypt_logic)

        # 1. mint token
        document_id = crypto.create_document_id()
        token_id = await self.nft.mint_token(
            self.vwbl_network_url, fee_numerator, document_id, gas_settings
        )
        self._kick(subscriber, StepStatus.MINT_TOKEN, token_id=token_id)

        # 2. create key
        key = crypto.create_key()
        self._kick(subscriber, StepStatus.CREATE_KEY, token_id=token_id)

        # 3. encrypt data
        payloads = await self._encrypt_files(files, key, encrypt_logic)
        self._kick(subscriber, StepStatus.ENCRYPT_DATA, token_id=token_id)

        # 4. upload data
        batch_id = str(uuid.uuid4())
        encrypted_data_urls = await self._upload_files(files, payloads, batch_id)
        thumbnail_url = await self.storage.upload_thumbnail(thumbnail_image, batch_id)
        self._kick(subscriber, StepStatus.UPLOAD_CONTENT, token_id=token_id)

        # 5. upload metadata
        await self.storage.upload_metadata(
            token_id,
            name,
            description,
            thumbnail_url,
            encrypted_data_urls,
            get_mime_type(files[0]),
            encrypt_logic,
        )
        self._kick(subscriber, StepStatus.UPLOAD_METADATA, token_id=token_id)

        # 6. set key to vwbl network
        await self._register_key(document_id, key, signature)
        self._kick(subscriber, StepStatus.SET_KEY, token_id=token_id)

        return token_id

    async def managed_create_token_for_ipfs(
        self,
        name: str,
        description: str,
        plain_file: FileOrPath | Sequence[FileOrPath],
        thumbnail_image: FileOrPath,
        fee_numerator: int,
        encrypt_logic: EncryptLogic = EncryptLogic.BASE64,
        subscriber: ProgressSubscriber | None = None,
        gas_settings: GasSettings | None = None,
    ) -> int:
        """Create a VWBL token whose metadata lives on IPFS.

        Content and metadata are uploaded first; the token is minted with the
        metadata URL, then the key is registered.
        Metadata must go to IPFS or an `upload_metadata` callback returning its URL.
        """
        signature = self.auth.require_signature("managed_create_token_for_ipfs")
        self.storage.require_content()
        self.storage.require_pre_mint_metadata()
        files = _as_file_list(plain_file)
        encrypt_logic = EncryptLogic(encrypt_logic)

        key = crypto.create_key()
        self._kick(subscriber, StepStatus.CREATE_KEY)

        payloads = await self._encrypt_files(files, key, encrypt_logic)
        self._kick(subscriber, StepStatus.ENCRYPT_DATA)

        batch_id = str(uuid.uuid4())
        encrypted_data_urls = await self._upload_files(files, payloads, batch_id)
        thumbnail_url = await self.storage.upload_thumbnail(thumbnail_image, batch_id)
        self._kick(subscriber, StepStatus.UPLOAD_CONTENT)

        metadata_url = await self.storage.upload_metadata(
            None,
            name,
            description,
            thumbnail_url,
            encrypted_data_urls,
            get_mime_type(files[0]),
            encrypt_logic,
        )
        if not metadata_url:
            raise ExternalServiceError("metadata uploader returned no URL to mint with")
        self._kick(subscriber, StepStatus.UPLOAD_METADATA)

        document_id = crypto.create_document_id()
        token_id = await self.nft.mint_token_for_ipfs(
            metadata_url, self.vwbl_network_url, fee_numerator, document_id, gas_settings
        )
        self._kick(subscriber, StepStatus.MINT_TOKEN, token_id=token_id)

        await self._register_key(document_id, key, signature)
        self._kick(subscriber, StepStatus.SET_KEY, token_id=token_id)

        return token_id

    async def _encrypt_files(
        self,
        files: list[FileOrPath],
        key: str,
        encrypt_logic: EncryptLogic,
    ) -> list[EncryptedPayload]:
        outcomes = await gather_settled(
            self._encrypt_one(file, key, encrypt_logic) for file in files
        )
        self._raise_for_failures(files, outcomes, "encrypt")
        return outcomes  # type: ignore[return-value]

    async def _encrypt_one(
        self, file: FileOrPath, key: str, encrypt_logic: EncryptLogic
    ) -> EncryptedPayload:
        if encrypt_logic is EncryptLogic.BASE64:
            return await to_thread_limited(crypto.encrypt_string, await to_base64(file), key)
        if encrypt_logic is EncryptLogic.BINARY:
            return await to_thread_limited(crypto.encrypt_file, await read_file(file), key)
        # Stream payloads are lazy; the uploader drives encryption chunk by chunk
        return crypto.encrypt_stream(iter_file(file), key)

    async def _upload_files(
        self,
        files: list[FileOrPath],
        payloads: list[EncryptedPayload],
        batch_id: str,
    ) -> list[str]:
        outcomes = await gather_settled(
            self.storage.upload_encrypted_file(file_name_of(file), payload, batch_id)
            for file, payload in zip(files, payloads)
        )
        self._raise_for_failures(files, outcomes, "upload")
        return outcomes  # type: ignore[return-value]

    def _raise_for_failures(
        self,
        files: list[FileOrPath],
        outcomes: list,
        stage: str,
    ) -> None:
        failures = [
            (index, file_name_of(file), outcome)
            for index, (file, outcome) in enumerate(zip(files, outcomes))
            if isinstance(outcome, BaseException)
        ]
        if not failures:
            return
        for index, file_name, error in failures:
            logger.error(
                "content_file_failed",
                stage=stage,
                index=index,
                file_name=file_name,
                error=str(error),
            )
        raise ContentUploadError(failures, stage=stage) from failures[0][2]

    async def _register_key(
        self,
        document_id: str,
        key: str,
        signature: str,
        has_nonce: bool | None = None,
        auto_migration: bool | None = None,
    ) -> None:
        chain_id = await self.signer.chain_id()
        address = await self.signer.address()
        await self.api.set_key(
            document_id,
            chain_id,
            key,
            signature,
            address,
            has_nonce=has_nonce,
            auto_migration=auto_migration,
        )

    def _kick(self, subscriber: ProgressSubscriber | None, step: StepStatus, **context: object) -> None:
        logger.info("registration_step", step=step.value, **context)
        if subscriber is not None:
            subscriber.kick_step(step)

    async def set_key(
        self,
        token_id: int,
        key: str,
        has_nonce: bool | None = None,
        auto_migration: bool | None = None,
    ) -> None:
        """Register `key` for an already minted token."""
        signature = self.auth.require_signature("set_key")
        document_id = await self.nft.get_document_id(token_id)
        await self._register_key(document_id, key, signature, has_nonce, auto_migration)

    async def mint_token(self, fee_numerator: int, gas_settings: GasSettings | None = None) -> int:
        """Mint a token with a fresh document ID and return its token ID."""
        document_id = crypto.create_document_id()
        return await self.nft.mint_token(
            self.vwbl_network_url, fee_numerator, document_id, gas_settings
        )

    async def upload_metadata(
        self,
        token_id: int,
        name: str,
        description: str,
        thumbnail_image_url: str,
        encrypted_data_urls: list[str],
        mime_type: str,
        encrypt_logic: EncryptLogic,
    ) -> None:
        """Upload metadata through the configured metadata uploader."""
        self.storage.require_token_metadata()
        await self.storage.upload_metadata(
            token_id,
            name,
            description,
            thumbnail_image_url,
            encrypted_data_urls,
            mime_type,
            EncryptLogic(encrypt_logic),
        )

    async def upload_metadata_to_ipfs(
        self,
        name: str,
        description: str,
        thumbnail_image_url: str,
        encrypted_data_urls: list[str],
        mime_type: str,
        encrypt_logic: EncryptLogic,
    ) -> str:
        """Upload metadata before minting and return its URL."""
        self.storage.require_pre_mint_metadata()
        metadata_url = await self.storage.upload_metadata(
            None,
            name,
            description,
            thumbnail_image_url,
            encrypted_data_urls,
            mime_type,
            EncryptLogic(encrypt_logic),
        )
        if not metadata_url:
            raise ExternalServiceError("metadata uploader returned no URL")
        return metadata_url

    # ----- Token operations (delegated to the contract binding) -----

    async def approve(self, operator: str, token_id: int, gas_settings: GasSettings | None = None) -> None:
        await self.nft.approve(operator, token_id, gas_settings)

    async def get_approved(self, token_id: int) -> str:
        return await self.nft.get_approved(token_id)

    async def set_approval_for_all(self, operator: str, gas_settings: GasSettings | None = None) -> None:
        await self.nft.set_approval_for_all(operator, gas_settings)

    async def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return await self.nft.is_approved_for_all(owner, operator)

    async def safe_transfer(self, to: str, token_id: int, gas_settings: GasSettings | None = None) -> None:
        await self.nft.safe_transfer(to, token_id, gas_settings)

    async def get_own_token_ids(self) -> list[int]:
        return list(await self.nft.get_own_token_ids(await self.signer.address()))

    async def get_token_by_minter(self, address: str) -> list[int]:
        return list(await self.nft.get_token_by_minter(address))

    # ----- Retrieval -----

    async def get_metadata(self, token_id: int) -> Metadata:
        """Get public metadata of a token.

        Raises:
            MetadataNotFoundError: If the metadata document is gone
        """
        metadata_url = await self.nft.get_metadata_url(token_id)
        if not metadata_url:
            raise MetadataNotFoundError(token_id)
        document = await self.fetcher.fetch_json(metadata_url)
        return Metadata.from_document(token_id, document)

    async def get_own_tokens(self) -> list[Metadata]:
        """Metadata of every token held by the signer.

        Tokens whose metadata is no longer available are skipped.
        """
        self.auth.require_signature("get_own_tokens")
        token_ids = await self.get_own_token_ids()
        outcomes = await gather_settled(self.get_metadata(token_id) for token_id in token_ids)

        tokens: list[Metadata] = []
        for token_id, outcome in zip(token_ids, outcomes):
            if isinstance(outcome, MetadataNotFoundError):
                logger.info("token_metadata_skipped", token_id=token_id)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            tokens.append(outcome)
        return tokens

    async def classify(self, token_id: int) -> Classification:
        """Classify the signer against the token's current owner and minter."""
        return await self.gate.classify(token_id, await self.signer.address())

    async def get_token_by_id(self, token_id: int) -> Metadata:
        """Get a token, decrypted when the signer is its owner or minter.

        Returns:
            `ExtractedMetadata` for owners and minters, `Metadata` otherwise;
            `owner` is always set
        """
        classification = await self.classify(token_id)
        if classification.can_decrypt:
            metadata: Metadata = await self.extract_metadata(token_id)
        else:
            metadata = await self.get_metadata(token_id)
        metadata.owner = classification.owner
        return metadata

    async def extract_metadata(self, token_id: int) -> ExtractedMetadata:
        """Get metadata and decrypted content of a token.

        The key service performs the actual ownership check; this should be
        called by the owner or minter. Each file is decrypted independently:
        a failing file is reported in `results` without affecting the others.

        Raises:
            PreconditionError: If `sign()` has not succeeded
            MetadataNotFoundError: If the metadata document is gone
            UnauthorizedError: If the key service rejects the signature
        """
        signature = self.auth.require_signature("extract_metadata")
        metadata = await self.get_metadata(token_id)

        document_id = await self.nft.get_document_id(token_id)
        chain_id = await self.signer.chain_id()
        key = await self.api.get_key(
            document_id, chain_id, signature, await self.signer.address()
        )

        locators = metadata.encrypted_data
        outcomes = await gather_settled(
            self._decrypt_locator(locator, metadata.encrypt_logic, key) for locator in locators
        )

        results: list[FileDecryptResult] = []
        for locator, outcome in zip(locators, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "content_file_decrypt_failed",
                    token_id=token_id,
                    locator=locator,
                    error=str(outcome),
                )
                results.append(FileDecryptResult(locator=locator, error=outcome))
            else:
                results.append(FileDecryptResult(locator=locator, data=outcome))

        extracted = ExtractedMetadata(
            **asdict(metadata),
            own_data_base64=[r.data for r in results if r.ok and isinstance(r.data, str)],
            own_files=[r.data for r in results if r.ok and isinstance(r.data, bytes)],
            file_name=file_name_from_locator(locators[0]) if locators else "",
            results=results,
        )
        return extracted

    async def _decrypt_locator(self, locator: str, encrypt_logic: EncryptLogic, key: str) -> str | bytes:
        if encrypt_logic is EncryptLogic.BASE64:
            return await to_thread_limited(
                crypto.decrypt_string, await self.fetcher.fetch_text(locator), key
            )
        if encrypt_logic is EncryptLogic.BINARY:
            return await to_thread_limited(
                crypto.decrypt_file, await self.fetcher.fetch_bytes(locator), key
            )
        async with aclosing(self.fetcher.stream(locator)) as chunks:
            return await crypto.collect_stream(crypto.decrypt_stream(chunks, key))

    # ----- Cipher helpers -----

    async def encrypt_data_via_base64(self, plain_data: FileOrPath, key: str) -> str:
        """Encode `plain_data` to base64 and encrypt it."""
        return await to_thread_limited(crypto.encrypt_string, await to_base64(plain_data), key)

    async def encrypt_file(self, plain_file: FileOrPath, key: str) -> bytes:
        return await to_thread_limited(crypto.encrypt_file, await read_file(plain_file), key)

    async def decrypt_file(self, encrypted: bytes, key: str) -> bytes:
        return await to_thread_limited(crypto.decrypt_file, encrypted, key)

    def encrypt_stream(self, plain: AsyncIterable[bytes], key: str) -> AsyncIterator[bytes]:
        return crypto.encrypt_stream(plain, key)

    def decrypt_stream(self, encrypted: AsyncIterable[bytes], key: str) -> AsyncIterator[bytes]:
        return crypto.decrypt_stream(encrypted, key)


def _as_file_list(plain_file: FileOrPath | Sequence[FileOrPath]) -> list[FileOrPath]:
    if isinstance(plain_file, (str, bytes)) or not isinstance(plain_file, Sequence):
        files = [plain_file]
    else:
        files = list(plain_file)
    if not files:
        raise ValueError("at least one file is required")
    return files  # type: ignore[return-value]
