"""
Ledger store access layer.

Every function takes the caller's session and never commits: the caller owns
the transaction boundary (one unit of work per chainhook transaction or per
rarity pass). Inserts are insert-or-ignore / upsert statements so redelivered
webhooks are absorbed by the store's unique constraints.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from traitvault.core.exceptions import CollectionNotFound
from traitvault.models import (
    NFT,
    TX_MINT,
    Collection,
    Trait,
    TraitStatistic,
    TransactionRecord,
)

logger = logging.getLogger(__name__)


def dialect_insert(session: AsyncSession, model):
    """INSERT construct with ON CONFLICT support for the session's dialect."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


# ── Resolve ───────────────────────────────────────────────────────────────


async def get_collection_by_address(
    session: AsyncSession, contract_address: str
) -> Collection:
    result = await session.execute(
        select(Collection).where(Collection.contract_address == contract_address)
    )
    collection = result.scalar_one_or_none()
    if collection is None:
        raise CollectionNotFound(contract_address)
    return collection


async def get_collection(
    session: AsyncSession, collection_id: int, lock: bool = False
) -> Collection:
    """Load a collection by id; ``lock`` takes a row lock (FOR UPDATE)."""
    stmt = select(Collection).where(Collection.id == collection_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    collection = result.scalar_one_or_none()
    if collection is None:
        raise CollectionNotFound(collection_id)
    return collection


async def find_token(
    session: AsyncSession, contract_address: str, token_id: int
) -> Optional[NFT]:
    result = await session.execute(
        select(NFT)
        .join(Collection, NFT.collection_id == Collection.id)
        .where(Collection.contract_address == contract_address)
        .where(NFT.token_id == token_id)
    )
    return result.scalar_one_or_none()


# ── Upsert ────────────────────────────────────────────────────────────────


async def insert_token(
    session: AsyncSession,
    collection_id: int,
    token_id: int,
    owner_address: str,
    minted_at: datetime,
) -> tuple[int, bool]:
    """
    Insert a token row if (collection_id, token_id) is new.

    Returns ``(nft_id, created)``. Ownership of an existing row is left to
    :func:`set_owner`, which applies the block-height precedence rule.
    """
    stmt = (
        dialect_insert(session, NFT)
        .values(
            collection_id=collection_id,
            token_id=token_id,
            owner_address=owner_address,
            minted_at=minted_at,
        )
        .on_conflict_do_nothing(index_elements=["collection_id", "token_id"])
        .returning(NFT.id)
    )
    nft_id = (await session.execute(stmt)).scalar_one_or_none()
    if nft_id is not None:
        return nft_id, True

    existing = await session.execute(
        select(NFT.id)
        .where(NFT.collection_id == collection_id)
        .where(NFT.token_id == token_id)
    )
    return existing.scalar_one(), False


async def set_owner(
    session: AsyncSession, nft_id: int, owner_address: str, block_height: int
) -> bool:
    """
    Move ownership to ``owner_address`` unless a later block already did.

    A transaction recorded at a strictly greater height wins, so redelivered
    or late events from older blocks cannot regress ownership.
    """
    newer = await session.execute(
        select(func.count())
        .select_from(TransactionRecord)
        .where(TransactionRecord.nft_id == nft_id)
        .where(TransactionRecord.block_height > block_height)
    )
    if newer.scalar_one():
        logger.info(
            "NFT row %d has activity after block %d, keeping current owner",
            nft_id, block_height,
        )
        return False

    await session.execute(
        update(NFT).where(NFT.id == nft_id).values(owner_address=owner_address)
    )
    return True


async def insert_trait(
    session: AsyncSession, nft_id: int, trait_type: str, trait_value: str
) -> bool:
    """Insert-once; returns False when the trait was already attached."""
    stmt = (
        dialect_insert(session, Trait)
        .values(nft_id=nft_id, trait_type=trait_type, trait_value=trait_value)
        .on_conflict_do_nothing(index_elements=["nft_id", "trait_type", "trait_value"])
        .returning(Trait.id)
    )
    return (await session.execute(stmt)).scalar_one_or_none() is not None


async def increment_trait_statistic(
    session: AsyncSession, collection_id: int, trait_type: str, trait_value: str
) -> None:
    stmt = dialect_insert(session, TraitStatistic).values(
        collection_id=collection_id,
        trait_type=trait_type,
        trait_value=trait_value,
        count=1,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["collection_id", "trait_type", "trait_value"],
        set_={"count": TraitStatistic.count + 1},
    )
    await session.execute(stmt)


async def decrement_trait_statistic(
    session: AsyncSession, collection_id: int, trait_type: str, trait_value: str
) -> None:
    """Drop one occurrence; rows that reach zero are removed."""
    key = (
        (TraitStatistic.collection_id == collection_id)
        & (TraitStatistic.trait_type == trait_type)
        & (TraitStatistic.trait_value == trait_value)
    )
    await session.execute(
        update(TraitStatistic).where(key).values(count=TraitStatistic.count - 1)
    )
    await session.execute(delete(TraitStatistic).where(key & (TraitStatistic.count <= 0)))


async def adjust_total_supply(session: AsyncSession, collection_id: int, delta: int) -> None:
    await session.execute(
        update(Collection)
        .where(Collection.id == collection_id)
        .values(total_supply=Collection.total_supply + delta)
    )


# ── Record ────────────────────────────────────────────────────────────────


async def record_transaction(
    session: AsyncSession,
    *,
    nft_id: int,
    tx_hash: str,
    tx_type: str,
    to_address: str,
    block_height: int,
    timestamp: datetime,
    event_index: int = 0,
    from_address: Optional[str] = None,
    block_hash: Optional[str] = None,
) -> bool:
    """
    Insert-or-ignore on (tx_hash, event_index); returns False for a redelivery.

    An event seen again under a different block hash was re-included after a
    reorg: the existing row is moved to the new block instead of ignored, so
    rolling back the orphaned block does not take it along.
    """
    stmt = dialect_insert(session, TransactionRecord).values(
        nft_id=nft_id,
        tx_hash=tx_hash,
        event_index=event_index,
        tx_type=tx_type,
        from_address=from_address,
        to_address=to_address,
        block_height=block_height,
        block_hash=block_hash,
        timestamp=timestamp,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["tx_hash", "event_index"],
        set_={
            "block_height": stmt.excluded.block_height,
            "block_hash": stmt.excluded.block_hash,
            "timestamp": stmt.excluded.timestamp,
        },
        where=TransactionRecord.block_hash.is_distinct_from(stmt.excluded.block_hash),
    ).returning(TransactionRecord.id)
    return (await session.execute(stmt)).scalar_one_or_none() is not None


# ── Reorg compensation ────────────────────────────────────────────────────


def _in_block(block_height: int, block_hash: Optional[str]):
    # With a hash, only records of that exact block (or hashless ones) match,
    # so a replacement block already applied at the same height survives.
    clause = TransactionRecord.block_height == block_height
    if block_hash:
        clause = clause & (
            (TransactionRecord.block_hash == block_hash)
            | TransactionRecord.block_hash.is_(None)
        )
    return clause


async def records_in_block(
    session: AsyncSession, block_height: int, block_hash: Optional[str] = None
) -> list[TransactionRecord]:
    result = await session.execute(
        select(TransactionRecord)
        .where(_in_block(block_height, block_hash))
        .order_by(TransactionRecord.id)
    )
    return list(result.scalars())


async def delete_records_in_block(
    session: AsyncSession, block_height: int, block_hash: Optional[str] = None
) -> int:
    result = await session.execute(
        delete(TransactionRecord)
        .where(_in_block(block_height, block_hash))
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount or 0


async def latest_record(session: AsyncSession, nft_id: int) -> Optional[TransactionRecord]:
    result = await session.execute(
        select(TransactionRecord)
        .where(TransactionRecord.nft_id == nft_id)
        .order_by(TransactionRecord.block_height.desc(), TransactionRecord.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def has_mint_record(session: AsyncSession, nft_id: int) -> bool:
    result = await session.execute(
        select(func.count())
        .select_from(TransactionRecord)
        .where(TransactionRecord.nft_id == nft_id)
        .where(TransactionRecord.tx_type == TX_MINT)
    )
    return result.scalar_one() > 0


async def remove_token(session: AsyncSession, nft: NFT) -> None:
    """
    Delete a token whose mint was rolled back, with everything derived from it.

    Trait statistics and the collection supply are decremented so the counts
    keep matching the tokens that still exist.
    """
    traits = await session.execute(select(Trait).where(Trait.nft_id == nft.id))
    for trait in traits.scalars():
        await decrement_trait_statistic(
            session, nft.collection_id, trait.trait_type, trait.trait_value
        )

    await session.execute(delete(Trait).where(Trait.nft_id == nft.id))
    await session.execute(delete(TransactionRecord).where(TransactionRecord.nft_id == nft.id))
    await session.execute(delete(NFT).where(NFT.id == nft.id))
    await adjust_total_supply(session, nft.collection_id, -1)
