"""
Chainhook webhook endpoints.

``/mint`` and ``/transfer`` are kept as separate hooks for the upstream
configuration, but both run the full extractor: either hook may carry
either kind of event. A failure in any transaction unit answers 500 so
chainhook redelivers the payload.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from traitvault.api.deps import get_cache, get_coordinator, get_scheduler, verify_webhook
from traitvault.core.exceptions import IngestionFailed
from traitvault.schemas.chainhook import ChainhookPayload
from traitvault.services.ingestion import IngestionCoordinator, IngestionReport
from traitvault.services.scheduler import RarityScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _ingest(
    label: str,
    payload: ChainhookPayload,
    coordinator: IngestionCoordinator,
    scheduler: Optional[RarityScheduler],
    cache,
):
    logger.info(
        "Received %s webhook: %d apply, %d rollback blocks",
        label, len(payload.apply), len(payload.rollback),
    )

    try:
        report = await coordinator.apply_blocks(payload)
    except IngestionFailed as e:
        await _after_ingest(e.report, scheduler, cache)
        logger.error("Error processing %s webhook: %s", label, e)
        return JSONResponse(status_code=500, content={"success": False, "message": str(e)})
    except Exception as e:
        logger.error("Error processing %s webhook: %s", label, e, exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "message": str(e)})

    await _after_ingest(report, scheduler, cache)
    return {
        "success": True,
        "message": f"{label.capitalize()} events processed",
        "report": report.to_dict(),
    }


async def _after_ingest(report: IngestionReport, scheduler: Optional[RarityScheduler], cache):
    if not report.touched_collections:
        return
    if scheduler is not None:
        scheduler.mark_dirty(report.touched_collections)
    if cache is not None:
        for collection_id in sorted(report.touched_collections):
            await cache.invalidate_collection(collection_id)


@router.post("/mint", dependencies=[Depends(verify_webhook)])
async def mint_webhook(
    payload: ChainhookPayload,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
    scheduler: Optional[RarityScheduler] = Depends(get_scheduler),
    cache=Depends(get_cache),
):
    return await _ingest("mint", payload, coordinator, scheduler, cache)


@router.post("/transfer", dependencies=[Depends(verify_webhook)])
async def transfer_webhook(
    payload: ChainhookPayload,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
    scheduler: Optional[RarityScheduler] = Depends(get_scheduler),
    cache=Depends(get_cache),
):
    return await _ingest("transfer", payload, coordinator, scheduler, cache)


@router.post("/chainhook", dependencies=[Depends(verify_webhook)])
async def chainhook_webhook(
    payload: ChainhookPayload,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
    scheduler: Optional[RarityScheduler] = Depends(get_scheduler),
    cache=Depends(get_cache),
):
    return await _ingest("chainhook", payload, coordinator, scheduler, cache)


@router.get("/health")
async def webhook_health():
    return {
        "status": "ok",
        "service": "traitvault-webhooks",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
