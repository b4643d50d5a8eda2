"""Client for the VWBL network key-custody service.

The service stores one key per (document_id, chain_id) and releases it only
to a signature whose address it verifies on chain as owner or minter.

API:
- POST /keys                                   register a key
- GET  /keys/{document_id}/{chain_id}          fetch a key
- GET  /signature/{contract_address}/{chain_id} challenge text to sign
"""

from typing import Any

import httpx

from vwbl.shared.exceptions import (
    ExternalServiceError,
    PreconditionError,
    UnauthorizedError,
)
from vwbl.shared.logging import get_logger

logger = get_logger(__name__)

_UNAUTHORIZED_STATUS = {401, 403}


class VWBLApi:
    """Async HTTP client for the key-custody service."""

    def __init__(
        self,
        base_url: str,
        timeout: float | None = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: VWBL network endpoint
            timeout: Request timeout in seconds (None disables it)
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def set_key(
        self,
        document_id: str,
        chain_id: int,
        key: str,
        signature: str | None,
        address: str | None = None,
        has_nonce: bool | None = None,
        auto_migration: bool | None = None,
    ) -> dict[str, Any]:
        """Register `key` for a document.

        Raises:
            PreconditionError: If no signature is supplied (no request is sent)
            UnauthorizedError: If the service rejects the signature
        """
        if not signature:
            raise PreconditionError("set_key")

        client = await self._get_client()
        response = await client.post(
            "/keys",
            json={
                "document_id": document_id,
                "chain_id": chain_id,
                "key": key,
                "signature": signature,
                "address": address,
                "has_nonce": has_nonce,
                "auto_migration": auto_migration,
            },
        )
        self._raise_for_status(response, "set_key", document_id=document_id, chain_id=chain_id)
        logger.info("key_registered", document_id=document_id, chain_id=chain_id)
        return self._json(response, "set_key")

    async def get_key(
        self,
        document_id: str,
        chain_id: int,
        signature: str | None,
        address: str | None = None,
    ) -> str:
        """Fetch the key of a document.

        Raises:
            PreconditionError: If no signature is supplied (no request is sent)
            UnauthorizedError: If the service does not accept the caller as
                owner or minter
        """
        if not signature:
            raise PreconditionError("get_key")

        client = await self._get_client()
        params = {"signature": signature}
        if address:
            params["address"] = address
        response = await client.get(f"/keys/{document_id}/{chain_id}", params=params)
        self._raise_for_status(response, "get_key", document_id=document_id, chain_id=chain_id)

        data = self._json(response, "get_key")
        try:
            key = data["documentKey"]["key"]
        except (KeyError, TypeError) as e:
            raise ExternalServiceError(
                "key service response has no documentKey.key",
                details={"document_id": document_id},
            ) from e
        if not isinstance(key, str) or not key:
            raise ExternalServiceError(
                "key service returned an empty key",
                details={"document_id": document_id},
            )
        return key

    async def get_sign_message(
        self,
        contract_address: str,
        chain_id: int,
        address: str | None = None,
    ) -> str:
        """Fetch the challenge message the wallet has to sign."""
        client = await self._get_client()
        params = {"address": address} if address else None
        response = await client.get(f"/signature/{contract_address}/{chain_id}", params=params)
        response.raise_for_status()

        data = self._json(response, "get_sign_message")
        message = data.get("signMessage")
        if not isinstance(message, str) or not message:
            raise ExternalServiceError(
                "key service response has no signMessage",
                details={"contract_address": contract_address, "chain_id": chain_id},
            )
        return message

    def _raise_for_status(self, response: httpx.Response, operation: str, **context: Any) -> None:
        if response.status_code in _UNAUTHORIZED_STATUS:
            logger.warning(
                "key_service_rejected_signature",
                operation=operation,
                status_code=response.status_code,
                **context,
            )
            raise UnauthorizedError(
                "key service rejected the signature",
                details={"operation": operation, "status_code": response.status_code, **context},
            )
        response.raise_for_status()

    def _json(self, response: httpx.Response, operation: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceError(
                "key service returned invalid JSON",
                details={"operation": operation, "status_code": response.status_code},
            ) from e
        if not isinstance(data, dict):
            raise ExternalServiceError(
                "key service returned an unexpected payload",
                details={"operation": operation},
            )
        return data
