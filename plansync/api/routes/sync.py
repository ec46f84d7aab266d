"""Sync trigger endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from plansync.api.deps import get_sync_service, require_admin_api_key, require_cron_secret
from plansync.config import settings
from plansync.sync.orchestrator import SyncRequest
from plansync.sync.service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/energy-plans", tags=["sync"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("/sync", dependencies=[Depends(require_admin_api_key)])
async def sync_plans(
    retailer: Optional[str] = Query(None, description="Retailer slug"),
    priority_only: bool = Query(False, alias="priorityOnly"),
    all_retailers: bool = Query(False, alias="all", description="Every registered retailer"),
    force_sync: bool = Query(False, alias="forceSync", description="Refetch every listed plan"),
    cursor: int = Query(0, ge=0),
    chunk_size: int = Query(
        settings.default_chunk_size, alias="chunkSize", ge=1, le=settings.max_chunk_size
    ),
    service: SyncService = Depends(get_sync_service),
):
    """
    Run one sync chunk and stream its progress as server-sent events.

    Each event is ``data: <json>``; the last one is the terminal result
    carrying ``nextCursor`` (null when every retailer is complete).
    """
    request = SyncRequest(
        retailer=retailer,
        priority_only=priority_only,
        all_retailers=all_retailers,
        force=force_sync,
        cursor=cursor,
        chunk_size=chunk_size,
    )
    logger.info(
        f"Sync requested: retailer={retailer or '-'} priority_only={priority_only} "
        f"all={all_retailers} force={force_sync} "
        f"cursor={cursor} chunk_size={chunk_size}"
    )
    channel = service.start(request)
    return StreamingResponse(
        service.stream(channel),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.api_route("/cron-sync", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
async def cron_sync(
    force_sync: bool = Query(False, alias="forceSync"),
    service: SyncService = Depends(get_sync_service),
):
    """Sync every top retailer chunk by chunk until complete."""
    logger.info(f"Starting automated CDR sync ({'full refresh' if force_sync else 'incremental'})...")
    return await service.run_to_completion(trigger="cron", force=force_sync)
