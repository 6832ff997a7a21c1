"""
Rarity engine: full recomputation of trait and token rarity for a collection.

    trait score  = total_supply / count
    token score  = sum of the scores of the token's traits (0 without traits)
    rarity rank  = 1..N by token score descending, ties by token_id ascending

The whole pass runs in one storage transaction with the collection row
locked, so a mint that changes the supply cannot interleave with scoring.
Running it twice over unchanged data yields identical scores and ranks.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from traitvault.models import NFT, Collection, Trait, TraitStatistic
from traitvault.services import ledger
from traitvault.services.notifications import NullNotifier, Notifier

logger = logging.getLogger(__name__)


@dataclass
class RarityResult:
    collection_id: int
    total_supply: int
    traits_scored: int = 0
    tokens_ranked: int = 0
    skipped: bool = False


def trait_rarity(total_supply: int, count: int) -> Optional[float]:
    """Score of one trait value; None for a zero count (excluded)."""
    if count <= 0:
        return None
    return total_supply / count


def rank_tokens(scores: dict[int, float]) -> dict[int, int]:
    """
    Dense ordinal ranking ``{token_id: rank}``.

    Highest score gets rank 1; equal scores are ordered by token id, so
    every token gets a distinct rank.
    """
    ordered = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    return {token_id: rank for rank, (token_id, _) in enumerate(ordered, start=1)}


class RarityEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: Optional[Notifier] = None,
        cache=None,
    ):
        self.session_factory = session_factory
        self.notifier = notifier or NullNotifier()
        self.cache = cache

    async def recompute_rarity(self, collection_id: int) -> RarityResult:
        """
        Rescore ``collection_id``. An empty collection is a no-op.

        Raises CollectionNotFound for an unknown id.
        """
        async with self.session_factory() as session, session.begin():
            collection = await ledger.get_collection(session, collection_id, lock=True)

            if not collection.total_supply:
                logger.info("Collection %d is empty, nothing to score", collection_id)
                return RarityResult(collection_id, 0, skipped=True)

            logger.info(
                "Calculating rarity for collection %d (supply %d)",
                collection_id, collection.total_supply,
            )
            result = await score_collection(session, collection)

        logger.info(
            "Rarity calculation complete for collection %d: %d traits, %d tokens",
            collection_id, result.traits_scored, result.tokens_ranked,
        )

        if self.cache is not None:
            await self.cache.invalidate_collection(collection_id)
        try:
            self.notifier.publish(
                "rarity:updated",
                {
                    "collectionId": collection_id,
                    "totalSupply": result.total_supply,
                    "tokensRanked": result.tokens_ranked,
                },
            )
        except Exception as e:
            logger.debug("rarity:updated not delivered: %s", e)

        return result


async def score_collection(session: AsyncSession, collection: Collection) -> RarityResult:
    """Steps 2-4 of the pass, inside the caller's transaction."""
    total_supply = collection.total_supply
    result = RarityResult(collection.id, total_supply)

    # Step 2: trait statistics
    stats = (
        await session.execute(
            select(TraitStatistic.id, TraitStatistic.trait_type, TraitStatistic.trait_value,
                   TraitStatistic.count)
            .where(TraitStatistic.collection_id == collection.id)
            .order_by(TraitStatistic.id)
        )
    ).all()

    trait_scores: dict[tuple[str, str], float] = {}
    stat_updates = []
    for stat in stats:
        score = trait_rarity(total_supply, stat.count)
        stat_updates.append({"id": stat.id, "rarity_score": score})
        if score is not None:
            trait_scores[(stat.trait_type, stat.trait_value)] = score

    if stat_updates:
        await session.execute(update(TraitStatistic), stat_updates)
    result.traits_scored = len(trait_scores)

    # Step 3: token scores. Traits are summed in a fixed order so repeated
    # runs produce bit-identical floats.
    tokens = (
        await session.execute(
            select(NFT.id, NFT.token_id)
            .where(NFT.collection_id == collection.id)
            .order_by(NFT.token_id)
        )
    ).all()
    if not tokens:
        return result

    traits = (
        await session.execute(
            select(Trait.nft_id, Trait.trait_type, Trait.trait_value)
            .join(NFT, Trait.nft_id == NFT.id)
            .where(NFT.collection_id == collection.id)
            .order_by(Trait.nft_id, Trait.trait_type, Trait.trait_value)
        )
    ).all()

    score_by_nft: dict[int, float] = defaultdict(float)
    for trait in traits:
        score_by_nft[trait.nft_id] += trait_scores.get((trait.trait_type, trait.trait_value), 0.0)

    token_scores = {token.token_id: score_by_nft.get(token.id, 0.0) for token in tokens}

    # Step 4: ranks
    ranks = rank_tokens(token_scores)
    await session.execute(
        update(NFT),
        [
            {
                "id": token.id,
                "rarity_score": token_scores[token.token_id],
                "rarity_rank": ranks[token.token_id],
            }
            for token in tokens
        ],
    )
    result.tokens_ranked = len(tokens)
    return result
