"""
Studio Ops Hub — Monday.com Sync Router
=========================================
Manual project sync streamed as Server-Sent Events, plus the automatic-sync
settings the cron endpoint honours.

Endpoints:
  POST /api/sync/monday      - Run a sync, streaming progress events (admin)
  GET  /api/sync/settings    - Automatic sync settings
  PUT  /api/sync/settings    - Update automatic sync settings (admin)

Each SSE message is ``data: {json}\\n\\n`` where the JSON is a progress event:
phase (fetching | checking | syncing | complete | error), message, progress
and, while syncing, the project index / total / name.
"""
from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from dashboard.api.middleware import get_actor, require_scope
from dashboard.api.responses import result_response
from dashboard.api.websocket import SYNC_COMPLETE, ws_manager
from integrations.monday import MondayClient
from models.monday_models import SyncProgressEvent, SyncSettingsResult, SyncSettingsUpdate
from scripts.lib.actor import Actor
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import get_client
from scripts.monday.sync import MondaySync, load_sync_settings, save_sync_settings

logger = setup_logger("sync_router")

router = APIRouter(prefix="/api/sync", tags=["sync"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def sse_message(event: SyncProgressEvent) -> str:
    return f"data: {json.dumps(event.model_dump(mode='json', exclude_none=True))}\n\n"


def _monday_client(request: Request) -> MondayClient:
    return getattr(request.app.state, "monday", None) or MondayClient()


@router.post("/monday", dependencies=[Depends(require_scope("admin"))])
async def sync_monday(
    request: Request,
    all_boards: bool = Query(False, description="Also rescan completed boards in full"),
    avoid_deletion: Optional[bool] = Query(None, description="Override the stored avoid_deletion setting"),
    actor: Actor = Depends(get_actor),
):
    """Stream Monday.com sync progress. The run itself happens in a worker thread."""
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Unauthorized: Admin access required")

    monday = _monday_client(request)
    if not monday.is_configured:
        raise HTTPException(status_code=424, detail="Monday.com API token not configured")

    client = get_client()
    if avoid_deletion is None:
        avoid_deletion = load_sync_settings(client).avoid_deletion

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_progress(event: SyncProgressEvent):
        loop.call_soon_threadsafe(queue.put_nowait, event)

    async def run():
        try:
            return await asyncio.to_thread(
                MondaySync(client=client, monday=monday).sync_all,
                on_progress, all_boards, avoid_deletion,
            )
        finally:
            queue.put_nowait(None)

    async def stream() -> AsyncIterator[str]:
        task = asyncio.create_task(run())
        while True:
            event = await queue.get()
            if event is None:
                break
            yield sse_message(event)

        result = await task
        logger.info("Manual sync finished: %s", result.message)
        if result.success:
            await ws_manager.broadcast({"event": SYNC_COMPLETE, "data": result.model_dump(mode="json")})

    return StreamingResponse(stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/settings")
async def get_sync_settings():
    try:
        settings = load_sync_settings(get_client())
    except Exception as e:
        logger.error("Load sync settings failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to load sync settings")
    return result_response(SyncSettingsResult(settings=settings))


@router.put("/settings", dependencies=[Depends(require_scope("admin"))])
async def update_sync_settings(
    body: SyncSettingsUpdate,
    actor: Actor = Depends(get_actor),
):
    result = save_sync_settings(
        get_client(), actor,
        enabled=body.enabled,
        interval_minutes=body.interval_minutes,
        avoid_deletion=body.avoid_deletion,
    )
    return result_response(result)
