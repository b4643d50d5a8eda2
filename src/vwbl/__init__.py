"""Client library for VWBL: content gated by on-chain token ownership."""

from vwbl.domain.access import AccessDecision, AccessRole, Classification, OwnershipGate
from vwbl.domain.auth import SignatureAuthenticator
from vwbl.domain.metadata import ExtractedMetadata, FileDecryptResult, Metadata
from vwbl.domain.ports import VWBLNFTPort
from vwbl.domain.signer import LocalAccountSigner, Signer
from vwbl.domain.types import (
    EncryptLogic,
    GasSettings,
    ProgressSubscriber,
    StepStatus,
    UploadContentType,
    UploadMetadataType,
)
from vwbl.domain.vwbl import VWBL
from vwbl.infrastructure.api.client import VWBLApi
from vwbl.infrastructure.storage.ipfs import IPFSConfig
from vwbl.infrastructure.storage.s3 import AWSConfig
from vwbl.shared.crypto import (
    create_key,
    decrypt_file,
    decrypt_stream,
    decrypt_string,
    encrypt_file,
    encrypt_stream,
    encrypt_string,
)
from vwbl.shared.exceptions import (
    CipherError,
    ConfigurationError,
    ContentUploadError,
    MetadataNotFoundError,
    PreconditionError,
    UnauthorizedError,
    VWBLError,
)
from vwbl.shared.files import PlainFile
from vwbl.shared.logging import setup_logging

__all__ = [
    # Client
    "VWBL",
    "VWBLApi",
    "VWBLNFTPort",
    "SignatureAuthenticator",
    "OwnershipGate",
    # Signers
    "Signer",
    "LocalAccountSigner",
    # Types
    "AccessDecision",
    "AccessRole",
    "Classification",
    "EncryptLogic",
    "GasSettings",
    "ProgressSubscriber",
    "StepStatus",
    "UploadContentType",
    "UploadMetadataType",
    "Metadata",
    "ExtractedMetadata",
    "FileDecryptResult",
    "PlainFile",
    "AWSConfig",
    "IPFSConfig",
    # Cipher
    "create_key",
    "encrypt_string",
    "decrypt_string",
    "encrypt_file",
    "decrypt_file",
    "encrypt_stream",
    "decrypt_stream",
    # Errors
    "VWBLError",
    "PreconditionError",
    "UnauthorizedError",
    "CipherError",
    "MetadataNotFoundError",
    "ConfigurationError",
    "ContentUploadError",
    # Logging
    "setup_logging",
]
