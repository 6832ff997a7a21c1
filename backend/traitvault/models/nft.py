from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from traitvault.models.base import Base


class NFT(Base):
    """
    A single token of a collection.

    ``rarity_score`` / ``rarity_rank`` stay NULL until the rarity engine has
    scored the collection.
    """

    __tablename__ = "nfts"

    id: Mapped[int] = mapped_column(primary_key=True)
    collection_id: Mapped[int] = mapped_column(ForeignKey("collections.id"), index=True)
    token_id: Mapped[int] = mapped_column(BigInteger)
    owner_address: Mapped[str] = mapped_column(String(255), index=True)
    minted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    rarity_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    rarity_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("collection_id", "token_id", name="uq_nfts_collection_token"),
        Index("ix_nfts_collection_rank", "collection_id", "rarity_rank"),
    )
