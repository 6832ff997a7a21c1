"""
Read-only collection API plus the on-demand rarity trigger.
"""

from collections import defaultdict
from datetime import timedelta
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import and_, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from traitvault.api.deps import get_cache, get_rarity_engine
from traitvault.core.database import get_session
from traitvault.core.exceptions import CollectionNotFound
from traitvault.models import (
    NFT,
    TX_MINT,
    TX_TRANSFER,
    Collection,
    Trait,
    TraitStatistic,
    TransactionRecord,
    utcnow,
)
from traitvault.schemas.collection import (
    ActivityOut,
    CollectionOut,
    CollectionStats,
    HolderListResponse,
    HolderOut,
    NFTDetail,
    NFTListResponse,
    NFTOut,
    NFTSearchRequest,
    NFTSearchResponse,
    RarityResponse,
    TraitOut,
    TraitValueOut,
    TransactionOut,
)
from traitvault.services.rarity import RarityEngine

router = APIRouter(prefix="/collections", tags=["collections"])

SORT_COLUMNS = {
    "token_id": NFT.token_id,
    "rarity_rank": NFT.rarity_rank,
    "rarity_score": NFT.rarity_score,
    "minted_at": NFT.minted_at,
}

PERIOD_HOURS = {"24h": 24, "7d": 168, "30d": 720}


async def _get_collection_or_404(session: AsyncSession, collection_id: int) -> Collection:
    collection = await session.get(Collection, collection_id)
    if collection is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return collection


async def _with_traits(
    session: AsyncSession, collection_id: int, nfts: list[NFT]
) -> list[NFTOut]:
    """Attach traits (with their statistic's rarity score) to NFT rows."""
    if not nfts:
        return []

    rows = await session.execute(
        select(Trait.nft_id, Trait.trait_type, Trait.trait_value, TraitStatistic.rarity_score)
        .outerjoin(
            TraitStatistic,
            and_(
                TraitStatistic.collection_id == collection_id,
                TraitStatistic.trait_type == Trait.trait_type,
                TraitStatistic.trait_value == Trait.trait_value,
            ),
        )
        .where(Trait.nft_id.in_([n.id for n in nfts]))
        .order_by(Trait.nft_id, Trait.trait_type)
    )
    by_nft: dict[int, list[TraitOut]] = defaultdict(list)
    for row in rows:
        by_nft[row.nft_id].append(
            TraitOut(
                trait_type=row.trait_type,
                trait_value=row.trait_value,
                rarity_score=row.rarity_score,
            )
        )

    result = []
    for nft in nfts:
        out = NFTOut.model_validate(nft)
        out.traits = by_nft.get(nft.id, [])
        result.append(out)
    return result


@router.get("", response_model=list[CollectionOut])
async def list_collections(session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(Collection).order_by(Collection.created_at.desc()))
    return [CollectionOut.model_validate(c) for c in result.scalars()]


@router.get("/{collection_id}", response_model=CollectionOut)
async def get_collection(collection_id: int, session: AsyncSession = Depends(get_session)):
    return CollectionOut.model_validate(await _get_collection_or_404(session, collection_id))


@router.get("/{collection_id}/stats", response_model=CollectionStats)
async def get_collection_stats(
    collection_id: int,
    period: Literal["24h", "7d", "30d"] = "24h",
    session: AsyncSession = Depends(get_session),
):
    """Token/holder totals and mint/transfer counts within ``period``."""
    collection = await _get_collection_or_404(session, collection_id)
    since = utcnow() - timedelta(hours=PERIOD_HOURS[period])

    total_nfts = await session.scalar(
        select(func.count()).select_from(NFT).where(NFT.collection_id == collection_id)
    )
    total_holders = await session.scalar(
        select(func.count(func.distinct(NFT.owner_address))).where(
            NFT.collection_id == collection_id
        )
    )

    async def recent(tx_type: str) -> int:
        return await session.scalar(
            select(func.count())
            .select_from(TransactionRecord)
            .join(NFT, TransactionRecord.nft_id == NFT.id)
            .where(NFT.collection_id == collection_id)
            .where(TransactionRecord.tx_type == tx_type)
            .where(TransactionRecord.timestamp > since)
        )

    return CollectionStats(
        collection=CollectionOut.model_validate(collection),
        total_nfts=total_nfts or 0,
        total_holders=total_holders or 0,
        recent_mints=await recent(TX_MINT) or 0,
        recent_transfers=await recent(TX_TRANSFER) or 0,
        period=period,
    )


@router.get("/{collection_id}/nfts", response_model=NFTListResponse)
async def list_nfts(
    collection_id: int,
    sort: Literal["token_id", "rarity_rank", "rarity_score", "minted_at"] = "token_id",
    order: Literal["asc", "desc"] = "asc",
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
    cache=Depends(get_cache),
):
    # Cache-first: try Redis before hitting DB
    params = dict(sort=sort, order=order, limit=limit, offset=offset)
    if cache is not None:
        cached = await cache.get(collection_id, "nfts", **params)
        if cached is not None:
            return cached

    await _get_collection_or_404(session, collection_id)

    column = SORT_COLUMNS[sort]
    ordering = column.asc() if order == "asc" else column.desc()
    result = await session.execute(
        select(NFT)
        .where(NFT.collection_id == collection_id)
        .order_by(ordering.nulls_last(), NFT.token_id)
        .limit(limit)
        .offset(offset)
    )
    nfts = list(result.scalars())
    total = await session.scalar(
        select(func.count()).select_from(NFT).where(NFT.collection_id == collection_id)
    )

    response = NFTListResponse(
        nfts=await _with_traits(session, collection_id, nfts),
        total=total or 0,
        limit=limit,
        offset=offset,
    )
    if cache is not None:
        await cache.set(collection_id, "nfts", response.model_dump(mode="json"), **params)
    return response


@router.get("/{collection_id}/nfts/{token_id}", response_model=NFTDetail)
async def get_nft(
    collection_id: int, token_id: int, session: AsyncSession = Depends(get_session)
):
    result = await session.execute(
        select(NFT).where(NFT.collection_id == collection_id).where(NFT.token_id == token_id)
    )
    nft = result.scalar_one_or_none()
    if nft is None:
        raise HTTPException(status_code=404, detail="NFT not found")

    [out] = await _with_traits(session, collection_id, [nft])
    txs = await session.execute(
        select(TransactionRecord)
        .where(TransactionRecord.nft_id == nft.id)
        .order_by(TransactionRecord.timestamp.desc(), TransactionRecord.id.desc())
    )
    return NFTDetail(
        **out.model_dump(),
        transactions=[TransactionOut.model_validate(tx) for tx in txs.scalars()],
    )


@router.post("/{collection_id}/nfts/search", response_model=NFTSearchResponse)
async def search_nfts(
    collection_id: int,
    body: NFTSearchRequest,
    session: AsyncSession = Depends(get_session),
):
    """NFTs carrying every requested trait, rarest first."""
    stmt = select(NFT).where(NFT.collection_id == collection_id)
    for trait_type, trait_value in body.traits.items():
        stmt = stmt.where(
            exists().where(
                Trait.nft_id == NFT.id,
                Trait.trait_type == trait_type,
                Trait.trait_value == trait_value,
            )
        )
    stmt = stmt.order_by(NFT.rarity_rank.asc().nulls_last(), NFT.token_id)

    nfts = list((await session.execute(stmt)).scalars())
    return NFTSearchResponse(
        nfts=await _with_traits(session, collection_id, nfts), count=len(nfts)
    )


@router.post("/{collection_id}/calculate-rarity", response_model=RarityResponse)
async def calculate_rarity(
    collection_id: int, engine: RarityEngine = Depends(get_rarity_engine)
):
    try:
        result = await engine.recompute_rarity(collection_id)
    except CollectionNotFound:
        raise HTTPException(status_code=404, detail="Collection not found")

    return RarityResponse(
        success=True,
        message=(
            "Collection is empty, nothing to score"
            if result.skipped
            else "Rarity calculation completed"
        ),
        total_supply=result.total_supply,
        traits_scored=result.traits_scored,
        tokens_ranked=result.tokens_ranked,
    )


@router.get(
    "/{collection_id}/traits/distribution",
    response_model=dict[str, list[TraitValueOut]],
)
async def trait_distribution(
    collection_id: int,
    session: AsyncSession = Depends(get_session),
    cache=Depends(get_cache),
):
    """Trait values grouped by trait type, most common first."""
    if cache is not None:
        cached = await cache.get(collection_id, "traits")
        if cached is not None:
            return cached

    await _get_collection_or_404(session, collection_id)
    result = await session.execute(
        select(TraitStatistic)
        .where(TraitStatistic.collection_id == collection_id)
        .order_by(
            TraitStatistic.trait_type,
            TraitStatistic.count.desc(),
            TraitStatistic.trait_value,
        )
    )

    distribution: dict[str, list[TraitValueOut]] = {}
    for stat in result.scalars():
        distribution.setdefault(stat.trait_type, []).append(
            TraitValueOut(value=stat.trait_value, count=stat.count, rarity_score=stat.rarity_score)
        )

    if cache is not None:
        await cache.set(
            collection_id,
            "traits",
            {k: [v.model_dump() for v in values] for k, values in distribution.items()},
        )
    return distribution


@router.get("/{collection_id}/holders", response_model=HolderListResponse)
async def list_holders(
    collection_id: int,
    limit: int = Query(100, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),
):
    """Current owners by number of tokens held."""
    await _get_collection_or_404(session, collection_id)
    nft_count = func.count(NFT.id).label("nft_count")
    result = await session.execute(
        select(NFT.owner_address, nft_count)
        .where(NFT.collection_id == collection_id)
        .group_by(NFT.owner_address)
        .order_by(nft_count.desc(), NFT.owner_address)
        .limit(limit)
    )
    total = await session.scalar(
        select(func.count(func.distinct(NFT.owner_address))).where(
            NFT.collection_id == collection_id
        )
    )
    return HolderListResponse(
        holders=[
            HolderOut(holder_address=row.owner_address, nft_count=row.nft_count)
            for row in result
        ],
        total_holders=total or 0,
    )


@router.get("/{collection_id}/activity", response_model=list[ActivityOut])
async def recent_activity(
    collection_id: int,
    limit: int = Query(50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(
        select(TransactionRecord, NFT.token_id)
        .join(NFT, TransactionRecord.nft_id == NFT.id)
        .where(NFT.collection_id == collection_id)
        .order_by(TransactionRecord.timestamp.desc(), TransactionRecord.id.desc())
        .limit(limit)
    )
    activity: list[ActivityOut] = []
    for tx, token_id in result.all():
        data = TransactionOut.model_validate(tx).model_dump()
        activity.append(ActivityOut(**data, token_id=token_id))
    return activity