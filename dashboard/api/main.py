"""
Studio Ops Hub — API Server
==============================

Studio operations API over Supabase: weekly scorecard, Monday.com project
sync, time tracking and Xero financials.

Route groups:
  /api/health                  - Health check + capability flags
  /api/scorecard/*             - Scorecard definition, entries, reconcile
  /api/time-entries/*          - Time tracking
  /api/projects/*              - Projects, hour rollups, deletion
  /api/monday/*                - Column mappings, board roles, duplicates
  /api/sync/*                  - Manual Monday.com sync (SSE) + settings
  /api/cron/sync-scorecard     - Scheduled scorecard reconcile
  /api/sync/cron               - Scheduled Monday.com sync
  /api/xero/status             - Xero connection status
  /ws/dashboard                - WebSocket live feed
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# ─── Lifespan ─────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app):
    """Application startup and shutdown."""
    logger.info("Starting Studio Ops Hub...")

    from integrations.monday import MondayClient
    app.state.monday = MondayClient()
    logger.info("Monday.com integration: %s",
                "configured" if app.state.monday.is_configured else "not configured")

    app.state.xero = None
    try:
        from scripts.lib.capabilities import detect_capabilities
        from scripts.lib.supabase_client import get_client
        client = get_client()
        caps = detect_capabilities(client)
        logger.info("Supabase connected; capabilities: %s", caps.as_dict())

        from integrations.xero import XeroIntegration
        app.state.xero = XeroIntegration(client=client)
    except Exception as e:
        logger.warning("Supabase not available: %s", e)

    logger.info("Studio Ops Hub ready")
    yield
    logger.info("Shutting down Studio Ops Hub...")


# ─── App Setup ────────────────────────────────────────────────

cors_origins = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:8001"
).split(",")

app = FastAPI(
    title="Studio Ops Hub",
    version=VERSION,
    description="Studio operations dashboard: scorecard, Monday.com sync, time tracking",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from dashboard.api.middleware import APIKeyMiddleware

require_auth = os.getenv("REQUIRE_API_KEY", "false").lower() == "true"
app.add_middleware(APIKeyMiddleware, require_auth=require_auth)


# ─── Include Routers ──────────────────────────────────────────

from dashboard.api.routers.cron import router as cron_router
from dashboard.api.routers.monday import router as monday_router
from dashboard.api.routers.projects import router as projects_router
from dashboard.api.routers.scorecard import router as scorecard_router
from dashboard.api.routers.sync import router as sync_router
from dashboard.api.routers.time_tracking import router as time_tracking_router

app.include_router(cron_router)
app.include_router(scorecard_router)
app.include_router(time_tracking_router)
app.include_router(projects_router)
app.include_router(monday_router)
app.include_router(sync_router)


# ─── WebSocket ────────────────────────────────────────────────

from dashboard.api.websocket import websocket_endpoint

app.add_api_websocket_route("/ws/dashboard", websocket_endpoint)


# ─── Health ───────────────────────────────────────────────────

@app.get("/api/health", tags=["system"])
async def health():
    """Health check with service status."""
    from scripts.lib.capabilities import get_capabilities

    supabase_ok = False
    capabilities = {}
    try:
        from scripts.lib.supabase_client import get_client
        get_client()
        supabase_ok = True
        capabilities = get_capabilities().as_dict()
    except Exception as e:
        logger.debug("Supabase health check failed: %s", e)

    from dashboard.api.websocket import ws_manager

    monday = getattr(app.state, "monday", None)
    return {
        "status": "healthy",
        "service": "Studio Ops Hub",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "integrations": {
            "supabase": supabase_ok,
            "monday": bool(monday and monday.is_configured),
            "xero": getattr(app.state, "xero", None) is not None,
        },
        "capabilities": capabilities,
        "websocket_connections": ws_manager.connection_count,
    }


# ─── Xero ─────────────────────────────────────────────────────

@app.get("/api/xero/status", tags=["xero"])
async def xero_status():
    """Xero configuration and circuit state."""
    if not getattr(app.state, "xero", None):
        raise HTTPException(status_code=503, detail="Xero integration not loaded")
    return app.state.xero.get_status()
