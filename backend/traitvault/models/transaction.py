from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from traitvault.models.base import Base

TX_MINT = "mint"
TX_TRANSFER = "transfer"


class TransactionRecord(Base):
    """
    One NFT event of an on-chain transaction.

    Keyed by (tx_hash, event_index): a transaction carrying several mints or
    transfers gets one row per event, and a redelivery hits the same keys.
    ``event_index`` is the event's position in the extractor output.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    nft_id: Mapped[int] = mapped_column(ForeignKey("nfts.id", ondelete="CASCADE"), index=True)
    tx_hash: Mapped[str] = mapped_column(String(128), index=True)
    event_index: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    tx_type: Mapped[str] = mapped_column(String(20))  # mint / transfer
    from_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    to_address: Mapped[str] = mapped_column(String(255))
    block_height: Mapped[int] = mapped_column(BigInteger, index=True)
    block_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime)

    __table_args__ = (
        UniqueConstraint("tx_hash", "event_index", name="uq_transactions_tx_event"),
        Index("ix_transactions_nft_height", "nft_id", "block_height"),
    )
