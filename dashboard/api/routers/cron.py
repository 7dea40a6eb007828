"""
Studio Ops Hub — Cron Router
==============================
Scheduled jobs called by an external cron service. Both endpoints bypass
API key auth and check CRON_SECRET instead (when it is set).

Endpoints:
  GET /api/cron/sync-scorecard   - Reconcile the 3 most recent scorecard weeks
                                   (secret via ?secret= or Authorization: Bearer)
  GET /api/sync/cron             - Monday.com sync when automatic sync is enabled
                                   (secret via X-Cron-Secret)
"""
from __future__ import annotations

import asyncio
import hmac
import os
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import JSONResponse

from dashboard.api.websocket import SCORECARD_SYNCED, SYNC_COMPLETE, ws_manager
from integrations.monday import MondayClient
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import get_client
from scripts.monday.sync import MondaySync, load_sync_settings, update_sync_timestamp
from scripts.scorecard.reconciler import ScorecardReconciler

logger = setup_logger("cron_router")

router = APIRouter(tags=["cron"])

SCORECARD_WEEKS = 3


def secret_matches(provided: Optional[str]) -> bool:
    """True when CRON_SECRET is unset, or the provided secret equals it."""
    expected = os.getenv("CRON_SECRET")
    if not expected:
        return True
    return bool(provided) and hmac.compare_digest(provided, expected)


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):]
    return None


@router.get("/api/cron/sync-scorecard")
async def cron_sync_scorecard(
    secret: Optional[str] = Query(None),
    authorization: Optional[str] = Header(None),
):
    if not secret_matches(secret or _bearer(authorization)):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    result = await ScorecardReconciler().reconcile_recent_weeks(SCORECARD_WEEKS)
    body = {
        "success": result.success,
        "message": result.message,
        "totalEntriesSynced": result.entries_synced,
        "weeksSynced": result.weeks_synced,
        "weekStarts": [w.isoformat() for w in result.week_starts],
        "errors": result.errors,
    }
    if not result.success and result.weeks_synced == 0:
        logger.error("Scorecard cron failed: %s", result.message)
        return JSONResponse(status_code=500, content={**body, "error": result.message})

    await ws_manager.broadcast({"event": SCORECARD_SYNCED, "data": body})
    return body


@router.get("/api/sync/cron")
async def cron_sync_monday(
    request: Request,
    x_cron_secret: Optional[str] = Header(None),
):
    if not secret_matches(x_cron_secret):
        return JSONResponse(status_code=401, content={"error": "Unauthorized: Invalid cron secret"})

    try:
        client = get_client()
        settings = load_sync_settings(client)
    except Exception as e:
        logger.error("Cron sync could not read settings: %s", e)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to check sync settings", "details": str(e)},
        )

    if not settings.enabled:
        return {"message": "Automatic sync is disabled", "skipped": True}

    monday = getattr(request.app.state, "monday", None) or MondayClient()
    if not monday.is_configured:
        return JSONResponse(status_code=500, content={"error": "Monday.com API token not configured"})

    result = await asyncio.to_thread(
        MondaySync(client=client, monday=monday).sync_all,
        None, False, settings.avoid_deletion,
    )
    if not result.success:
        return JSONResponse(status_code=500, content={"error": "Sync failed", "message": result.message})

    try:
        update_sync_timestamp(client, settings)
    except Exception as e:
        logger.warning("Could not stamp sync timestamps: %s", e)

    body = {
        "success": True,
        "message": f"Synced {result.projects_synced} projects",
        "projectsSynced": result.projects_synced,
        "archived": result.archived,
        "deleted": result.deleted,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    await ws_manager.broadcast({"event": SYNC_COMPLETE, "data": body})
    return body
