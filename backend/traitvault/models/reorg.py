from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from traitvault.models.base import Base, utcnow


class ReorgEvent(Base):
    """Audit row written for every block chainhook asked us to roll back."""

    __tablename__ = "reorg_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    block_height: Mapped[int] = mapped_column(BigInteger, index=True)
    block_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    policy: Mapped[str] = mapped_column(String(20))
    reverted_count: Mapped[int] = mapped_column(Integer, default=0)
    observed_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, server_default=func.now()
    )
