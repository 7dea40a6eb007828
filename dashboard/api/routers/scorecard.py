"""
Studio Ops Hub — Scorecard Router
====================================
Weekly scorecard: definition, entry grid, manual edits, automated sync.

Endpoints:
  GET   /api/scorecard                 - Categories and metrics
  GET   /api/scorecard/entries         - Entry grid for one or more weeks
  POST  /api/scorecard/entries         - Create (or overwrite) a manual entry
  PATCH /api/scorecard/entries/{id}    - Update value / target / notes
  POST  /api/scorecard/sync            - Reconcile automated metrics for one week
  POST  /api/scorecard/sync-recent     - Reconcile the N most recent weeks
"""
from __future__ import annotations

import asyncio
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from dashboard.api.middleware import get_actor, require_scope
from dashboard.api.responses import result_response
from dashboard.api.websocket import SCORECARD_SYNCED, ws_manager
from models.scorecard_models import EntryCreate, EntryUpdate
from scripts.lib.actor import Actor
from scripts.lib.logger import setup_logger
from scripts.lib.utils import week_start
from scripts.scorecard.reconciler import ScorecardReconciler

logger = setup_logger("scorecard_router")

router = APIRouter(prefix="/api/scorecard", tags=["scorecard"])


def get_reconciler() -> ScorecardReconciler:
    return ScorecardReconciler()


@router.get("")
async def get_scorecard(reconciler: ScorecardReconciler = Depends(get_reconciler)):
    """Categories and metrics in display order."""
    return result_response(reconciler.get_scorecard())


@router.get("/entries")
async def get_entries(
    weeks: List[date] = Query(..., description="Week start dates (any day is normalised to its Monday)"),
    reconciler: ScorecardReconciler = Depends(get_reconciler),
):
    """One entry per metric per week; unsaved weeks come back as zero placeholders."""
    return result_response(reconciler.get_entries_for_weeks(weeks))


@router.post("/entries", dependencies=[Depends(require_scope("write"))])
async def create_entry(
    body: EntryCreate,
    actor: Actor = Depends(get_actor),
    reconciler: ScorecardReconciler = Depends(get_reconciler),
):
    result = reconciler.create_entry(
        actor, body.metric_id, body.week_start_date, body.value,
        target_value=body.target_value, notes=body.notes,
    )
    return result_response(result)


@router.patch("/entries/{entry_id}", dependencies=[Depends(require_scope("write"))])
async def update_entry(
    entry_id: str,
    body: EntryUpdate,
    actor: Actor = Depends(get_actor),
    reconciler: ScorecardReconciler = Depends(get_reconciler),
):
    result = reconciler.update_entry(
        actor, entry_id, value=body.value, target_value=body.target_value, notes=body.notes,
    )
    return result_response(result)


@router.post("/sync", dependencies=[Depends(require_scope("write"))])
async def sync_week(
    week: Optional[date] = Query(None, description="Any day in the week; defaults to the current week"),
    actor: Actor = Depends(get_actor),
    reconciler: ScorecardReconciler = Depends(get_reconciler),
):
    """Compute and store automated metric values for a single week."""
    target = week_start(week or date.today())
    result = await asyncio.to_thread(reconciler.reconcile_week, target, actor)
    response = result_response(result)
    await ws_manager.broadcast({"event": SCORECARD_SYNCED, "data": response})
    return response


@router.post("/sync-recent", dependencies=[Depends(require_scope("write"))])
async def sync_recent(
    weeks: int = Query(3, ge=1, le=12, description="Number of most recent weeks"),
    actor: Actor = Depends(get_actor),
    reconciler: ScorecardReconciler = Depends(get_reconciler),
):
    result = await reconciler.reconcile_recent_weeks(weeks, actor=actor)
    response = result_response(result)
    await ws_manager.broadcast({"event": SCORECARD_SYNCED, "data": response})
    return response
