"""Wallet signer capability.

The orchestrator only needs three things from a wallet: the chain it is on,
its address, and a personal_sign over a text message. Each wallet kind is a
class implementing `Signer`; the choice is made once when the client is built.
"""

from typing import Protocol, runtime_checkable

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount


@runtime_checkable
class Signer(Protocol):
    """Wallet interface used for authentication against the key service."""

    async def chain_id(self) -> int:
        """Return the chain ID the wallet is connected to."""

    async def address(self) -> str:
        """Return the wallet address (checksummed hex)."""

    async def sign_message(self, message: str) -> str:
        """Sign `message` with EIP-191 personal_sign and return 0x-prefixed hex."""


class LocalAccountSigner:
    """Signer backed by a private key held in process (scripts, backends, tests)."""

    def __init__(self, account: LocalAccount, chain_id: int) -> None:
        self._account = account
        self._chain_id = chain_id

    @classmethod
    def from_key(cls, private_key: str, chain_id: int) -> "LocalAccountSigner":
        return cls(Account.from_key(private_key), chain_id)

    async def chain_id(self) -> int:
        return self._chain_id

    async def address(self) -> str:
        return self._account.address

    async def sign_message(self, message: str) -> str:
        signed = self._account.sign_message(encode_defunct(text=message))
        return "0x" + bytes(signed.signature).hex()


def recover_signer(message: str, signature: str) -> str:
    """Recover the address that produced `signature` over `message`."""
    return Account.recover_message(encode_defunct(text=message), signature=signature)
