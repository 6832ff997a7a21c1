from sqlalchemy import Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from traitvault.models.base import Base


class TraitStatistic(Base):
    """
    Occurrence count of one trait value within a collection.

    ``count`` is maintained by ingestion; ``rarity_score`` is derived by the
    rarity engine as total_supply / count.
    """

    __tablename__ = "trait_statistics"

    id: Mapped[int] = mapped_column(primary_key=True)
    collection_id: Mapped[int] = mapped_column(ForeignKey("collections.id"), index=True)
    trait_type: Mapped[str] = mapped_column(String(100))
    trait_value: Mapped[str] = mapped_column(String(255))
    count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    rarity_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "collection_id", "trait_type", "trait_value", name="uq_trait_statistics_key"
        ),
    )
