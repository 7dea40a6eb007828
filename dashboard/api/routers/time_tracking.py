"""
Studio Ops Hub — Time Entries Router
======================================
Logging hours against Monday.com tasks.

Endpoints:
  GET    /api/time-entries          - Entries in a date range (optionally one user)
  POST   /api/time-entries          - Log hours for a task on a date
  PATCH  /api/time-entries/{id}     - Change hours / date / notes
  DELETE /api/time-entries/{id}     - Remove an entry
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from dashboard.api.middleware import get_actor, require_scope
from dashboard.api.responses import result_response
from models.time_tracking_models import TimeEntryCreate, TimeEntryUpdate
from scripts.lib.actor import Actor
from scripts.time_tracking import TimeTrackingService

router = APIRouter(prefix="/api/time-entries", tags=["time-tracking"])


def get_service() -> TimeTrackingService:
    return TimeTrackingService()


@router.get("")
async def list_entries(
    start: date = Query(..., description="First day (inclusive)"),
    end: date = Query(..., description="Last day (inclusive)"),
    user_id: Optional[str] = Query(None, description="Only this user's entries"),
    service: TimeTrackingService = Depends(get_service),
):
    return result_response(service.list_entries(start, end, user_id=user_id))


@router.post("", dependencies=[Depends(require_scope("write"))])
async def create_entry(
    body: TimeEntryCreate,
    user_id: Optional[str] = Query(None, description="Log on behalf of another user (admin only)"),
    actor: Actor = Depends(get_actor),
    service: TimeTrackingService = Depends(get_service),
):
    result = service.create_entry(
        actor, body.task_id, body.project_id, body.date, body.hours,
        notes=body.notes, user_id=user_id,
    )
    return result_response(result)


@router.patch("/{entry_id}", dependencies=[Depends(require_scope("write"))])
async def update_entry(
    entry_id: str,
    body: TimeEntryUpdate,
    actor: Actor = Depends(get_actor),
    service: TimeTrackingService = Depends(get_service),
):
    result = service.update_entry(
        actor, entry_id, hours=body.hours, entry_date=body.date, notes=body.notes,
    )
    return result_response(result)


@router.delete("/{entry_id}", dependencies=[Depends(require_scope("write"))])
async def delete_entry(
    entry_id: str,
    actor: Actor = Depends(get_actor),
    service: TimeTrackingService = Depends(get_service),
):
    return result_response(service.delete_entry(actor, entry_id))
