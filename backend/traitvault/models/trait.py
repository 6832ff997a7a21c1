from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from traitvault.models.base import Base


class Trait(Base):
    """Attribute/value pair attached to a token at mint time. Never updated."""

    __tablename__ = "traits"

    id: Mapped[int] = mapped_column(primary_key=True)
    nft_id: Mapped[int] = mapped_column(ForeignKey("nfts.id", ondelete="CASCADE"), index=True)
    trait_type: Mapped[str] = mapped_column(String(100))
    trait_value: Mapped[str] = mapped_column(String(255))

    __table_args__ = (
        UniqueConstraint("nft_id", "trait_type", "trait_value", name="uq_traits_nft_type_value"),
    )
