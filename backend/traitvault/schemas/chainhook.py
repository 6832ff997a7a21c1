"""
Chainhook webhook payload schemas.

Only the envelope is strict (blocks and their identifiers). Receipt events and
operations stay loosely typed here and are validated entry by entry in the
extractor, so one bad entry cannot reject the whole delivery.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class BlockIdentifier(BaseModel):
    index: int
    hash: Optional[str] = None


class TransactionIdentifier(BaseModel):
    hash: str = Field(min_length=1)


class ChainhookTransaction(BaseModel):
    """A transaction as delivered inside a block."""

    transaction_identifier: Optional[TransactionIdentifier] = None
    metadata: Optional[dict[str, Any]] = None
    operations: list[Any] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    @property
    def tx_hash(self) -> Optional[str]:
        if self.transaction_identifier is None:
            return None
        return self.transaction_identifier.hash


class ChainhookBlock(BaseModel):
    block_identifier: BlockIdentifier
    timestamp: Optional[int] = None  # seconds since epoch
    transactions: list[ChainhookTransaction] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    @property
    def height(self) -> int:
        return self.block_identifier.index


class ChainhookPayload(BaseModel):
    """Body of a chainhook delivery: blocks to apply and blocks to roll back."""

    apply: list[ChainhookBlock] = Field(default_factory=list)
    rollback: list[ChainhookBlock] = Field(default_factory=list)

    model_config = {"extra": "allow"}


# ── Entries validated one by one by the extractor ─────────────────────────


class PrintEventData(BaseModel):
    """``data`` of a ``print_event`` receipt entry emitted by the NFT contract."""

    event: str
    token_id: Any = Field(alias="token-id")
    recipient: str = Field(min_length=1)
    traits: dict[str, Any] = Field(default_factory=dict)
    contract_identifier: Optional[str] = None

    model_config = {"extra": "allow", "populate_by_name": True}


class TransferMetadata(BaseModel):
    """``metadata`` of an ``NFT_TRANSFER_EVENT`` operation."""

    token_id: Any
    recipient: str = Field(min_length=1)
    sender: Optional[str] = None
    asset_class_identifier: Optional[str] = None
    asset_identifier: Optional[str] = None

    model_config = {"extra": "allow"}
