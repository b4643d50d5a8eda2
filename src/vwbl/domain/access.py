"""Ownership gate deciding who gets the decrypt path."""

import asyncio
from dataclasses import dataclass
from enum import Enum

from vwbl.domain.ports import VWBLNFTPort
from vwbl.shared.logging import get_logger

logger = get_logger(__name__)


class AccessRole(str, Enum):
    OWNER = "owner"
    MINTER = "minter"
    NEITHER = "neither"


class AccessDecision(str, Enum):
    PUBLIC_ONLY = "public_only"
    OWNER_OR_MINTER = "owner_or_minter"


def same_address(a: str | None, b: str | None) -> bool:
    """Compare hex addresses ignoring checksum casing."""
    if not a or not b:
        return False
    return a.lower() == b.lower()


@dataclass(frozen=True)
class Classification:
    """Caller's relation to a token at the time of the chain read.

    `is_owner` and `is_minter` are kept apart: a minter keeps access after
    transferring the token away.
    """

    token_id: int
    caller: str
    owner: str
    minter: str
    is_owner: bool
    is_minter: bool

    @property
    def role(self) -> AccessRole:
        if self.is_owner:
            return AccessRole.OWNER
        if self.is_minter:
            return AccessRole.MINTER
        return AccessRole.NEITHER

    @property
    def decision(self) -> AccessDecision:
        if self.is_owner or self.is_minter:
            return AccessDecision.OWNER_OR_MINTER
        return AccessDecision.PUBLIC_ONLY

    @property
    def can_decrypt(self) -> bool:
        return self.decision is AccessDecision.OWNER_OR_MINTER


class OwnershipGate:
    """Reads current owner and original minter; never caches the result."""

    def __init__(self, nft: VWBLNFTPort) -> None:
        self.nft = nft

    async def classify(self, token_id: int, caller_address: str) -> Classification:
        owner, minter = await asyncio.gather(
            self.nft.owner_of(token_id),
            self.nft.get_minter(token_id),
        )
        classification = Classification(
            token_id=token_id,
            caller=caller_address,
            owner=owner,
            minter=minter,
            is_owner=same_address(owner, caller_address),
            is_minter=same_address(minter, caller_address),
        )
        logger.debug(
            "access_classified",
            token_id=token_id,
            caller=caller_address,
            role=classification.role.value,
        )
        return classification
