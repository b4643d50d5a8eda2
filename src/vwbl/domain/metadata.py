"""Token metadata models."""

import re
from dataclasses import dataclass, field
from typing import Any

from vwbl.domain.types import EncryptLogic
from vwbl.shared.exceptions import CipherError, MetadataNotFoundError

_VWBL_SUFFIX = re.compile(r"\.vwbl$")


@dataclass
class Metadata:
    """Public token metadata, readable by anyone."""

    id: int
    name: str
    description: str
    image: str
    mime_type: str
    encrypt_logic: EncryptLogic
    encrypted_data: list[str] = field(default_factory=list)
    owner: str | None = None

    @classmethod
    def from_document(cls, token_id: int, document: Any) -> "Metadata":
        """Build from the stored JSON document.

        Raises:
            MetadataNotFoundError: If the document is empty or not an object
        """
        if not document or not isinstance(document, dict):
            raise MetadataNotFoundError(token_id)

        encrypted_data = document.get("encrypted_data") or []
        if isinstance(encrypted_data, str):
            encrypted_data = [encrypted_data]

        raw_logic = document.get("encrypt_logic") or EncryptLogic.BASE64.value
        try:
            encrypt_logic = EncryptLogic(raw_logic)
        except ValueError as e:
            raise CipherError(
                f"unknown encoding tag {raw_logic!r}",
                details={"token_id": token_id},
            ) from e

        return cls(
            id=token_id,
            name=document.get("name", ""),
            description=document.get("description", ""),
            image=document.get("image", ""),
            mime_type=document.get("mime_type", ""),
            encrypt_logic=encrypt_logic,
            encrypted_data=list(encrypted_data),
        )


def build_metadata_document(
    name: str,
    description: str,
    image: str,
    encrypted_data: list[str],
    mime_type: str,
    encrypt_logic: EncryptLogic,
) -> dict[str, Any]:
    """JSON document stored by the metadata uploaders."""
    return {
        "name": name,
        "description": description,
        "image": image,
        "encrypted_data": encrypted_data,
        "mime_type": mime_type,
        "encrypt_logic": EncryptLogic(encrypt_logic).value,
    }


@dataclass
class FileDecryptResult:
    """Outcome of decrypting one content locator."""

    locator: str
    data: str | bytes | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ExtractedMetadata(Metadata):
    """Metadata plus decrypted content, returned to owners and minters."""

    own_data_base64: list[str] = field(default_factory=list)
    own_files: list[bytes] = field(default_factory=list)
    file_name: str = ""
    results: list[FileDecryptResult] = field(default_factory=list)

    @property
    def failed(self) -> list[FileDecryptResult]:
        return [result for result in self.results if not result.ok]


def file_name_from_locator(locator: str) -> str:
    """Last path segment of a content locator without the `.vwbl` suffix."""
    last = locator.split("?", 1)[0].rstrip("/").split("/")[-1]
    return _VWBL_SUFFIX.sub("", last)
