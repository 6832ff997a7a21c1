"""
Shared FastAPI dependencies: webhook auth and service wiring.

Tests swap the service factories through ``app.dependency_overrides``.
"""

import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException

from traitvault.core.config import settings
from traitvault.core.database import async_session
from traitvault.services.cache import CacheService
from traitvault.services.ingestion import IngestionCoordinator
from traitvault.services.notifications import broadcaster
from traitvault.services.rarity import RarityEngine
from traitvault.services.scheduler import RarityScheduler, get_rarity_scheduler

logger = logging.getLogger(__name__)

_coordinator: Optional[IngestionCoordinator] = None
_rarity_engine: Optional[RarityEngine] = None


async def verify_webhook(authorization: Optional[str] = Header(None)) -> None:
    """
    Require ``Authorization: Bearer <WEBHOOK_AUTH_TOKEN>``.

    WEBHOOK_AUTH_BYPASS=true skips the check for local testing, except in
    production where it is ignored.
    """
    if settings.WEBHOOK_AUTH_BYPASS:
        if not settings.is_production:
            return
        logger.warning("WEBHOOK_AUTH_BYPASS is ignored in production")

    expected = f"Bearer {settings.WEBHOOK_AUTH_TOKEN}"
    if (
        not settings.WEBHOOK_AUTH_TOKEN
        or not authorization
        or not hmac.compare_digest(authorization.encode(), expected.encode())
    ):
        logger.warning("Unauthorized webhook request")
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_coordinator() -> IngestionCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = IngestionCoordinator(async_session, notifier=broadcaster)
    return _coordinator


def get_rarity_engine() -> RarityEngine:
    global _rarity_engine
    if _rarity_engine is None:
        _rarity_engine = RarityEngine(async_session, notifier=broadcaster, cache=CacheService)
    return _rarity_engine


def get_scheduler() -> Optional[RarityScheduler]:
    if not settings.RARITY_AUTO_RECOMPUTE:
        return None
    return get_rarity_scheduler()


def get_cache():
    return CacheService
