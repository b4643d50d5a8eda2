"""Custom exception hierarchy for vwbl."""

from typing import Any


class VWBLError(Exception):
    """Base exception for all vwbl errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ----- Authentication Errors -----


class PreconditionError(VWBLError):
    """A key operation was attempted before a successful sign()."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            message=f"please sign first before {operation}",
            details={"operation": operation},
        )


class UnauthorizedError(VWBLError):
    """Key service rejected the signature/address pair."""

    pass


# ----- Content Errors -----


class CipherError(VWBLError):
    """Ciphertext container is malformed, tampered or sealed with another key."""

    pass


class MetadataNotFoundError(VWBLError):
    """Token metadata is no longer available."""

    def __init__(self, token_id: int, locator: str | None = None) -> None:
        super().__init__(
            message=f"metadata not found for token {token_id}",
            details={"token_id": token_id, "locator": locator},
        )
        self.token_id = token_id


# ----- Configuration Errors -----


class ConfigurationError(VWBLError):
    """A required collaborator was not supplied for the selected mode."""

    pass


# ----- External Service Errors -----


class ExternalServiceError(VWBLError):
    """Unexpected response from an external service."""

    pass


class StorageError(ExternalServiceError):
    """Error from a storage adapter (S3, IPFS)."""

    pass


class ContentUploadError(StorageError):
    """One or more content files could not be encrypted or uploaded."""

    def __init__(
        self, failures: list[tuple[int, str, BaseException]], stage: str = "upload"
    ) -> None:
        names = ", ".join(f"#{index} {name}" for index, name, _ in failures)
        super().__init__(
            message=f"content {stage} failed for {len(failures)} file(s): {names}",
            details={
                "stage": stage,
                "failed": [
                    {"index": index, "file_name": name, "error": str(error)}
                    for index, name, error in failures
                ],
            },
        )
        self.failures = failures
        self.stage = stage

    @property
    def failed_indexes(self) -> list[int]:
        return [index for index, _, _ in self.failures]
