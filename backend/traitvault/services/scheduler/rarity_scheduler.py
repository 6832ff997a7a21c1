"""
Debounced rarity recomputation.

Ingestion marks the collections it touched as dirty. Every
``RARITY_INTERVAL_SEC`` the scheduler drains the dirty set and recomputes
each collection in its own transaction, so a burst of webhooks costs one
scoring pass instead of one per delivery.
"""

import asyncio
import logging
from datetime import datetime
from typing import Iterable, Optional

from traitvault.core.config import settings
from traitvault.core.database import async_session
from traitvault.core.exceptions import CollectionNotFound
from traitvault.models import utcnow
from traitvault.services.cache import CacheService
from traitvault.services.notifications import broadcaster
from traitvault.services.rarity import RarityEngine

logger = logging.getLogger(__name__)


class RarityScheduler:
    """
    Background loop that rescores dirty collections.

    Features:
    - Configurable interval (default from settings)
    - Collections marked dirty by ingestion or reorgs
    - Failed collections stay dirty and are retried next cycle
    - Statistics tracking
    """

    def __init__(self, engine: RarityEngine, interval: int = None):
        """
        Args:
            engine: Rarity engine used for every recomputation
            interval: Seconds between passes (default from settings)
        """
        self.engine = engine
        self.interval = interval or settings.RARITY_INTERVAL_SEC
        self._dirty: set[int] = set()
        self._is_running = False
        self._task: Optional[asyncio.Task] = None

        # Statistics
        self.total_runs = 0
        self.total_recomputed = 0
        self.last_run_time: Optional[datetime] = None

    def mark_dirty(self, collection_ids: Iterable[int]) -> None:
        self._dirty.update(collection_ids)

    @property
    def pending(self) -> set[int]:
        return set(self._dirty)

    async def start(self):
        """Start the background loop."""
        if self._is_running:
            logger.warning("RarityScheduler already running")
            return

        self._is_running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("RarityScheduler started with %ds interval", self.interval)

    async def stop(self):
        """Stop the loop gracefully."""
        if not self._is_running:
            return

        logger.info("Stopping RarityScheduler...")
        self._is_running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info("RarityScheduler stopped")

    async def _loop(self):
        while self._is_running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("RarityScheduler cycle failed: %s", e, exc_info=True)

            if self._is_running:
                await asyncio.sleep(self.interval)

    async def run_once(self) -> int:
        """Recompute every dirty collection; returns how many succeeded."""
        if not self._dirty:
            return 0

        batch = sorted(self._dirty)
        self._dirty.difference_update(batch)
        self.total_runs += 1
        self.last_run_time = utcnow()

        done = 0
        for collection_id in batch:
            try:
                await self.engine.recompute_rarity(collection_id)
                done += 1
            except CollectionNotFound:
                logger.warning("Dropping unknown collection %d from rarity queue", collection_id)
            except Exception as e:
                logger.error(
                    "Rarity recomputation failed for collection %d: %s",
                    collection_id, e, exc_info=True,
                )
                self._dirty.add(collection_id)

        self.total_recomputed += done
        return done

    def get_stats(self) -> dict:
        return {
            "is_running": self._is_running,
            "total_runs": self.total_runs,
            "total_recomputed": self.total_recomputed,
            "pending": sorted(self._dirty),
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_sec": self.interval,
        }


# Global scheduler instance
_rarity_scheduler: Optional[RarityScheduler] = None


def get_rarity_scheduler() -> RarityScheduler:
    """Get or create the global scheduler instance."""
    global _rarity_scheduler
    if _rarity_scheduler is None:
        _rarity_scheduler = RarityScheduler(
            RarityEngine(async_session, notifier=broadcaster, cache=CacheService)
        )
    return _rarity_scheduler


async def start_rarity_scheduler():
    await get_rarity_scheduler().start()


async def stop_rarity_scheduler():
    await get_rarity_scheduler().stop()
