"""Signature-based authentication against the key-custody service."""

from typing import Protocol

from vwbl.domain.signer import Signer
from vwbl.shared.exceptions import PreconditionError
from vwbl.shared.logging import get_logger

logger = get_logger(__name__)


class SignMessageSource(Protocol):
    """Anything that can serve the challenge text (normally `VWBLApi`)."""

    async def get_sign_message(
        self,
        contract_address: str,
        chain_id: int,
        address: str | None = None,
    ) -> str: ...


class SignatureAuthenticator:
    """Produces and caches the wallet signature used for key operations.

    The cache holds one {challenge, signature} pair. A `sign()` whose
    challenge text equals the cached one returns the cached signature without
    prompting the wallet; a changed challenge drops the cached signature.
    """

    def __init__(
        self,
        api: SignMessageSource,
        default_sign_message: str,
        fallback_enabled: bool = True,
    ) -> None:
        self._api = api
        self._default_sign_message = default_sign_message
        self._fallback_enabled = fallback_enabled
        self._sign_message: str | None = None
        self._signature: str | None = None

    @property
    def signature(self) -> str | None:
        return self._signature

    @property
    def sign_message(self) -> str | None:
        return self._sign_message

    def require_signature(self, operation: str) -> str:
        """Return the cached signature or fail before any network call."""
        if not self._signature:
            raise PreconditionError(operation)
        return self._signature

    def reset(self) -> None:
        self._sign_message = None
        self._signature = None

    async def sign(self, signer: Signer, contract_address: str, chain_id: int) -> str:
        """Sign the current challenge for (contract, chain, signer address).

        Returns:
            The signature, reused from cache when the challenge is unchanged
        """
        address = await signer.address()
        message = await self._fetch_sign_message(contract_address, chain_id, address)

        if self._signature and message == self._sign_message:
            logger.debug("signature_reused", address=address, chain_id=chain_id)
            return self._signature

        # Drop the stale pair before prompting so a rejected prompt leaves no signature
        self.reset()
        signature = await signer.sign_message(message)
        self._sign_message = message
        self._signature = signature
        logger.info("signed", address=address, chain_id=chain_id)
        return signature

    async def _fetch_sign_message(self, contract_address: str, chain_id: int, address: str) -> str:
        try:
            return await self._api.get_sign_message(contract_address, chain_id, address)
        except Exception as e:
            if not self._fallback_enabled:
                raise
            logger.warning(
                "sign_message_fallback",
                contract_address=contract_address,
                chain_id=chain_id,
                error=str(e),
            )
            return self._default_sign_message
