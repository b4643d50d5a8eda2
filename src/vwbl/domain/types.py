"""Enums and value types shared across the client."""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class EncryptLogic(str, Enum):
    """Encoding tag stored in metadata as `encrypt_logic`.

    Selects the decode path for every content locator of a token.
    """

    BASE64 = "base64"  # small data, text container
    BINARY = "binary"  # whole file in memory
    STREAM = "stream"  # large data, chunked container


class UploadContentType(str, Enum):
    S3 = "s3"
    IPFS = "ipfs"
    CUSTOM = "custom"


class UploadMetadataType(str, Enum):
    S3 = "s3"
    IPFS = "ipfs"
    CUSTOM = "custom"


class StepStatus(str, Enum):
    """Registration steps reported to a progress subscriber."""

    MINT_TOKEN = "mint_token"
    CREATE_KEY = "create_key"
    ENCRYPT_DATA = "encrypt_data"
    UPLOAD_CONTENT = "upload_content"
    UPLOAD_METADATA = "upload_metadata"
    SET_KEY = "set_key"


class ProgressSubscriber(Protocol):
    """Observer notified after each registration step completes."""

    def kick_step(self, step: StepStatus) -> None:
        """Called with the step that just finished."""


@dataclass(frozen=True)
class GasSettings:
    """Fee settings forwarded untouched to the contract binding."""

    max_priority_fee_per_gas: int | None = None
    max_fee_per_gas: int | None = None
    gas_price: int | None = None
