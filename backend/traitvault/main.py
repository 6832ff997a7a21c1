import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from traitvault.core.config import settings
from traitvault.core.database import async_session
from traitvault.api.routes.collections import router as collections_router
from traitvault.api.routes.realtime import router as realtime_router
from traitvault.api.routes.webhooks import router as webhooks_router
from traitvault.services.cache import CacheService
from traitvault.services.notifications import broadcaster
from traitvault.services.scheduler import (
    get_rarity_scheduler,
    start_rarity_scheduler,
    stop_rarity_scheduler,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.WEBHOOK_AUTH_BYPASS and not settings.is_production:
        logger.warning("Webhook authentication is DISABLED (WEBHOOK_AUTH_BYPASS=true)")

    # Startup: rescore collections touched by ingestion in the background
    if settings.RARITY_AUTO_RECOMPUTE:
        await start_rarity_scheduler()
    yield
    # Shutdown
    await stop_rarity_scheduler()
    await CacheService.close()


app = FastAPI(title=settings.PROJECT_NAME, debug=settings.DEBUG, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks_router)
app.include_router(collections_router, prefix="/api/v1")
app.include_router(realtime_router)


@app.get("/health")
async def health():
    try:
        async with async_session() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {e}"

    return {
        "status": "ok" if db_status == "connected" else "degraded",
        "service": "traitvault-backend",
        "db": db_status,
        "cache": "connected" if await CacheService.health_check() else "unavailable",
        "realtime_clients": broadcaster.connection_count,
        "rarity_scheduler": get_rarity_scheduler().get_stats(),
    }
