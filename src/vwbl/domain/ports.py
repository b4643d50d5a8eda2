"""Ports for the on-chain contract binding.

The client never talks to a node itself; it drives an implementation of
`VWBLNFTPort` (web3.py, viem bridge, test double). Chain errors raised by the
binding propagate unchanged.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from vwbl.domain.types import GasSettings


class VWBLNFTPort(Protocol):
    """VWBL ERC721 contract interface."""

    async def mint_token(
        self,
        decrypt_url: str,
        fee_numerator: int,
        document_id: str,
        gas_settings: GasSettings | None = None,
    ) -> int:
        """Mint a token bound to `document_id` and return its token ID."""

    async def mint_token_for_ipfs(
        self,
        metadata_url: str,
        decrypt_url: str,
        fee_numerator: int,
        document_id: str,
        gas_settings: GasSettings | None = None,
    ) -> int:
        """Mint a token whose metadata already lives at `metadata_url`."""

    async def get_metadata_url(self, token_id: int) -> str:
        """Return tokenURI."""

    async def get_document_id(self, token_id: int) -> str:
        """Return the document ID stored in the token info."""

    async def owner_of(self, token_id: int) -> str:
        """Return the current owner address."""

    async def get_minter(self, token_id: int) -> str:
        """Return the address that minted the token."""

    async def get_own_token_ids(self, address: str) -> Sequence[int]:
        """Return token IDs held by `address`."""

    async def get_token_by_minter(self, address: str) -> Sequence[int]:
        """Return token IDs minted by `address`."""

    async def approve(self, operator: str, token_id: int, gas_settings: GasSettings | None = None) -> None:
        """Approve `operator` to transfer `token_id`."""

    async def get_approved(self, token_id: int) -> str:
        """Return the approved address for `token_id`."""

    async def set_approval_for_all(self, operator: str, gas_settings: GasSettings | None = None) -> None:
        """Approve `operator` for all tokens of the signer."""

    async def is_approved_for_all(self, owner: str, operator: str) -> bool:
        """Tell whether `operator` is approved by `owner`."""

    async def safe_transfer(self, to: str, token_id: int, gas_settings: GasSettings | None = None) -> None:
        """Transfer `token_id` from the signer to `to`."""
