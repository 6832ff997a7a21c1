"""
Seed the collections table with the configured NFT contract.
Run:  python -m traitvault.seeds
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from traitvault.core.config import settings
from traitvault.core.database import async_session
from traitvault.models import Collection
from traitvault.services.ledger import dialect_insert

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def seed_collection(
    session: AsyncSession,
    contract_address: str,
    name: str,
    description: str | None = None,
) -> Collection:
    """Insert the collection unless its contract address already exists."""
    await session.execute(
        dialect_insert(session, Collection)
        .values(contract_address=contract_address, name=name, description=description)
        .on_conflict_do_nothing(index_elements=["contract_address"])
    )
    result = await session.execute(
        select(Collection).where(Collection.contract_address == contract_address)
    )
    return result.scalar_one()


async def seed():
    async with async_session() as session, session.begin():
        collection = await seed_collection(
            session,
            settings.NFT_CONTRACT_ADDRESS,
            settings.NFT_COLLECTION_NAME,
            settings.NFT_COLLECTION_DESCRIPTION,
        )
    logger.info("Collection %s ready (id=%d)", collection.contract_address, collection.id)


if __name__ == "__main__":
    asyncio.run(seed())
