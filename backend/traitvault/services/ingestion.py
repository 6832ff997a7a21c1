"""
Ingestion coordinator: chainhook payload -> ledger writes -> notifications.

Pipeline per chainhook transaction (one storage transaction each):

    extract -> resolve collection / token -> upsert token, traits, stats
            -> record transaction -> commit -> publish

Apply blocks are walked in order, then rollback blocks. A failing unit is
rolled back on its own and collected; the rest of the payload is still
attempted and the failures are raised together at the end, so chainhook
redelivers the whole payload (safe, every write is idempotent).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from traitvault.core.config import settings
from traitvault.core.exceptions import IngestionFailed
from traitvault.models import NFT, TX_MINT, TX_TRANSFER, ReorgEvent, utcnow
from traitvault.schemas.chainhook import ChainhookBlock, ChainhookPayload, ChainhookTransaction
from traitvault.schemas.events import MintEvent, TransferEvent
from traitvault.services import ledger
from traitvault.services.extractor import extract_events
from traitvault.services.notifications import NullNotifier, Notifier

logger = logging.getLogger(__name__)

REORG_COMPENSATE = "compensate"
REORG_LOG_ONLY = "log_only"
REORG_POLICIES = (REORG_COMPENSATE, REORG_LOG_ONLY)


@dataclass
class TxContext:
    """Where a transaction sits on chain."""

    tx_hash: str
    block_height: int
    block_hash: Optional[str]
    timestamp: datetime


@dataclass
class UnitOutcome:
    """Effects of one committed unit of work."""

    mints: int = 0
    transfers: int = 0
    skipped: int = 0
    collections: set[int] = field(default_factory=set)
    notifications: list[tuple[str, dict[str, Any]]] = field(default_factory=list)


@dataclass
class IngestionReport:
    blocks_applied: int = 0
    transactions_seen: int = 0
    mints_applied: int = 0
    transfers_applied: int = 0
    events_skipped: int = 0
    transactions_failed: int = 0
    rollbacks_failed: int = 0
    rolled_back_heights: list[int] = field(default_factory=list)
    records_reverted: int = 0
    touched_collections: set[int] = field(default_factory=set)

    def merge(self, outcome: UnitOutcome) -> None:
        self.mints_applied += outcome.mints
        self.transfers_applied += outcome.transfers
        self.events_skipped += outcome.skipped
        self.touched_collections |= outcome.collections

    def to_dict(self) -> dict[str, Any]:
        return {
            "blocks_applied": self.blocks_applied,
            "transactions_seen": self.transactions_seen,
            "mints_applied": self.mints_applied,
            "transfers_applied": self.transfers_applied,
            "events_skipped": self.events_skipped,
            "transactions_failed": self.transactions_failed,
            "rollbacks_failed": self.rollbacks_failed,
            "rolled_back_heights": list(self.rolled_back_heights),
            "records_reverted": self.records_reverted,
            "touched_collections": sorted(self.touched_collections),
        }


class IngestionCoordinator:
    """Applies chainhook deliveries to the ledger."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: Optional[Notifier] = None,
        reorg_policy: Optional[str] = None,
        default_contract: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.notifier = notifier or NullNotifier()
        self.reorg_policy = reorg_policy or settings.REORG_POLICY
        if self.reorg_policy not in REORG_POLICIES:
            raise ValueError(
                f"Unknown reorg policy {self.reorg_policy!r}, expected one of {REORG_POLICIES}"
            )
        self.default_contract = default_contract or settings.NFT_CONTRACT_ADDRESS

    # ------------------------------------------------------------------
    # Payload
    # ------------------------------------------------------------------

    async def apply_blocks(self, payload: ChainhookPayload) -> IngestionReport:
        """
        Apply every block of ``payload`` then process its rollbacks.

        Raises IngestionFailed (with ``.report`` attached) if any unit failed.
        """
        report = IngestionReport()
        failures: list[tuple[str, Exception]] = []

        for block in payload.apply:
            logger.info(
                "Processing block %d (%d transactions)", block.height, len(block.transactions)
            )
            for tx in block.transactions:
                report.transactions_seen += 1
                try:
                    outcome = await self.apply_transaction(tx, block)
                except Exception as e:
                    ref = tx.tx_hash or f"block {block.height}"
                    logger.error("Failed to apply tx %s: %s", ref, e, exc_info=True)
                    failures.append((ref, e))
                    report.transactions_failed += 1
                    continue
                report.merge(outcome)
            report.blocks_applied += 1

        for block in payload.rollback:
            try:
                reverted, collections = await self.rollback_block(block)
            except Exception as e:
                ref = f"rollback of block {block.height}"
                logger.error("Failed %s: %s", ref, e, exc_info=True)
                failures.append((ref, e))
                report.rollbacks_failed += 1
                continue
            report.rolled_back_heights.append(block.height)
            report.records_reverted += reverted
            report.touched_collections |= collections

        logger.info(
            "Ingestion finished: %d blocks, %d mints, %d transfers, %d skipped, %d failed, "
            "%d rolled back",
            report.blocks_applied,
            report.mints_applied,
            report.transfers_applied,
            report.events_skipped,
            len(failures),
            len(report.rolled_back_heights),
        )

        if failures:
            error = IngestionFailed(failures)
            error.report = report
            raise error from failures[0][1]
        return report

    # ------------------------------------------------------------------
    # One transaction = one unit of work
    # ------------------------------------------------------------------

    async def apply_transaction(
        self, tx: ChainhookTransaction, block: ChainhookBlock
    ) -> UnitOutcome:
        outcome = UnitOutcome()

        if not tx.tx_hash:
            logger.warning("Skipping transaction without hash in block %d", block.height)
            outcome.skipped += 1
            return outcome

        events = extract_events(tx, block, self.default_contract)
        if not events:
            logger.debug("No NFT events in tx %s", tx.tx_hash)
            return outcome

        ctx = TxContext(
            tx_hash=tx.tx_hash,
            block_height=block.height,
            block_hash=block.block_identifier.hash,
            timestamp=_block_time(block),
        )

        async with self.session_factory() as session, session.begin():
            for index, event in enumerate(events):
                if isinstance(event, MintEvent):
                    await self._apply_mint(session, event, index, ctx, outcome)
                else:
                    await self._apply_transfer(session, event, index, ctx, outcome)

        # Committed: fan out outside the storage transaction
        for event_name, data in outcome.notifications:
            self._publish(event_name, data)
        return outcome

    async def _apply_mint(
        self,
        session: AsyncSession,
        event: MintEvent,
        event_index: int,
        ctx: TxContext,
        outcome: UnitOutcome,
    ) -> None:
        logger.info("Minting NFT #%d to %s (tx %s)", event.token_id, event.recipient, ctx.tx_hash)

        # Unknown collection is a configuration error: abort the whole unit
        collection = await ledger.get_collection_by_address(session, event.contract_address)

        nft_id, created = await ledger.insert_token(
            session, collection.id, event.token_id, event.recipient, ctx.timestamp
        )
        if created:
            await ledger.adjust_total_supply(session, collection.id, 1)

        for trait_type, trait_value in event.traits.items():
            if await ledger.insert_trait(session, nft_id, trait_type, trait_value):
                await ledger.increment_trait_statistic(
                    session, collection.id, trait_type, trait_value
                )

        recorded = await ledger.record_transaction(
            session,
            nft_id=nft_id,
            tx_hash=ctx.tx_hash,
            event_index=event_index,
            tx_type=TX_MINT,
            to_address=event.recipient,
            block_height=ctx.block_height,
            block_hash=ctx.block_hash,
            timestamp=ctx.timestamp,
        )
        # A redelivered mint must not pull ownership back from later transfers
        if recorded and not created:
            await ledger.set_owner(session, nft_id, event.recipient, ctx.block_height)

        outcome.mints += 1
        outcome.collections.add(collection.id)
        if created or recorded:
            outcome.notifications.append(
                (
                    "nft:minted",
                    {
                        "collectionId": collection.id,
                        "contractAddress": collection.contract_address,
                        "tokenId": event.token_id,
                        "recipient": event.recipient,
                        "traits": dict(event.traits),
                        "txHash": ctx.tx_hash,
                        "blockHeight": ctx.block_height,
                    },
                )
            )

    async def _apply_transfer(
        self,
        session: AsyncSession,
        event: TransferEvent,
        event_index: int,
        ctx: TxContext,
        outcome: UnitOutcome,
    ) -> None:
        nft = await ledger.find_token(session, event.contract_address, event.token_id)
        if nft is None:
            # Mint may simply not have been delivered yet
            logger.info(
                "NFT #%d of %s not found, skipping transfer in tx %s",
                event.token_id, event.contract_address, ctx.tx_hash,
            )
            outcome.skipped += 1
            return

        logger.info(
            "Transferring NFT #%d from %s to %s (tx %s)",
            event.token_id, event.sender, event.recipient, ctx.tx_hash,
        )
        recorded = await ledger.record_transaction(
            session,
            nft_id=nft.id,
            tx_hash=ctx.tx_hash,
            event_index=event_index,
            tx_type=TX_TRANSFER,
            from_address=event.sender,
            to_address=event.recipient,
            block_height=ctx.block_height,
            block_hash=ctx.block_hash,
            timestamp=ctx.timestamp,
        )
        if recorded:
            await ledger.set_owner(session, nft.id, event.recipient, ctx.block_height)

        outcome.transfers += 1
        outcome.collections.add(nft.collection_id)
        if recorded:
            outcome.notifications.append(
                (
                    "nft:transferred",
                    {
                        "collectionId": nft.collection_id,
                        "tokenId": event.token_id,
                        "from": event.sender,
                        "to": event.recipient,
                        "txHash": ctx.tx_hash,
                        "blockHeight": ctx.block_height,
                    },
                )
            )

    # ------------------------------------------------------------------
    # Chain reorganization
    # ------------------------------------------------------------------

    async def rollback_block(self, block: ChainhookBlock) -> tuple[int, set[int]]:
        """
        Invalidate one block according to the configured reorg policy.

        ``compensate`` deletes the block's transaction records, re-derives
        owners from the remaining history and removes tokens whose mint is
        gone. ``log_only`` changes nothing but the audit log. Returns
        ``(records_reverted, touched_collection_ids)``.
        """
        height = block.height
        block_hash = block.block_identifier.hash
        logger.warning(
            "Chain reorganization detected: rolling back block %d (%s), policy=%s",
            height, block_hash or "no hash", self.reorg_policy,
        )

        reverted = 0
        touched: set[int] = set()

        async with self.session_factory() as session, session.begin():
            if self.reorg_policy == REORG_COMPENSATE:
                records = await ledger.records_in_block(session, height, block_hash)
                nft_ids = list(dict.fromkeys(r.nft_id for r in records))
                reverted = await ledger.delete_records_in_block(session, height, block_hash)

                for nft_id in nft_ids:
                    nft = await session.get(NFT, nft_id)
                    if nft is None:
                        continue
                    touched.add(nft.collection_id)

                    if not await ledger.has_mint_record(session, nft_id):
                        logger.info("Removing NFT #%d, its mint was rolled back", nft.token_id)
                        await ledger.remove_token(session, nft)
                        continue

                    latest = await ledger.latest_record(session, nft_id)
                    nft.owner_address = latest.to_address

            session.add(
                ReorgEvent(
                    block_height=height,
                    block_hash=block_hash,
                    policy=self.reorg_policy,
                    reverted_count=reverted,
                )
            )

        payload = {"blockHeight": height, "blockHash": block_hash, "recordsReverted": reverted}
        if not touched:
            self._publish("chain:reorg", payload)
        for collection_id in sorted(touched):
            self._publish("chain:reorg", {**payload, "collectionId": collection_id})

        return reverted, touched

    def _publish(self, event_name: str, payload: dict[str, Any]) -> None:
        try:
            self.notifier.publish(event_name, payload)
        except Exception as e:
            logger.debug("Notification %s not delivered: %s", event_name, e)


def _block_time(block: ChainhookBlock) -> datetime:
    # Stored as naive UTC like every other timestamp column
    if block.timestamp is None:
        return utcnow()
    return datetime.fromtimestamp(block.timestamp, tz=timezone.utc).replace(tzinfo=None)
