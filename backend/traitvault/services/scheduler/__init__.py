"""
Background rarity recomputation after ingestion bursts.
"""

from traitvault.services.scheduler.rarity_scheduler import (
    RarityScheduler,
    get_rarity_scheduler,
    start_rarity_scheduler,
    stop_rarity_scheduler,
)

__all__ = [
    "RarityScheduler",
    "get_rarity_scheduler",
    "start_rarity_scheduler",
    "stop_rarity_scheduler",
]
