"""
Studio Ops Hub — Monday.com Router
====================================
Board roles, column mapping administration, duplicate project checks and
integration status.

Endpoints:
  GET    /api/monday/status               - Monday.com client + circuit status
  GET    /api/monday/boards               - Board roles (completed / Flexi / leads / active)
  PUT    /api/monday/boards/completed     - Mark a board completed (admin)
  DELETE /api/monday/boards/completed/{id} - Unmark a completed board (admin)
  PUT    /api/monday/boards/leads         - Set the leads board (admin)
  DELETE /api/monday/boards/leads         - Clear the leads board (admin)
  PUT    /api/monday/boards/flexi-completed - Set the Flexi-Design completed board (admin)
  DELETE /api/monday/boards/flexi-completed - Clear the Flexi-Design completed board (admin)
  GET    /api/monday/leads-status-config  - Lead status include/exclude lists (admin)
  PUT    /api/monday/leads-status-config  - Replace them (admin)
  GET    /api/monday/column-mappings      - Effective mappings (global, or for ?board_id=)
  PUT    /api/monday/column-mappings      - Save one mapping (admin)
  DELETE /api/monday/column-mappings      - Delete a board's mappings, or the global set (admin)
  GET    /api/monday/duplicates           - Projects sharing a monday_item_id (admin, read-only)
  POST   /api/monday/duplicates/fix       - Merge duplicate projects (admin)
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from dashboard.api.middleware import get_actor, require_scope
from dashboard.api.responses import result_response
from models.monday_models import BoardRoleSave, ColumnMappingSave, LeadsStatusConfig
from scripts.lib.actor import Actor
from scripts.lib.logger import setup_logger
from scripts.monday.boards import BoardConfigService
from scripts.monday.column_mappings import ColumnMappingService
from scripts.monday.duplicates import DuplicateService

logger = setup_logger("monday_router")

router = APIRouter(prefix="/api/monday", tags=["monday"])


def get_mapping_service() -> ColumnMappingService:
    return ColumnMappingService()


def get_board_service() -> BoardConfigService:
    return BoardConfigService()


def get_duplicate_service() -> DuplicateService:
    return DuplicateService()


@router.get("/status")
async def monday_status(request: Request):
    monday = getattr(request.app.state, "monday", None)
    if monday is None:
        raise HTTPException(status_code=503, detail="Monday.com integration not loaded")
    return monday.get_status()


# ─── Board Roles ──────────────────────────────────────────────

@router.get("/boards")
async def list_boards(service: BoardConfigService = Depends(get_board_service)):
    """Board roles from the configuration tables, plus boards made active by mappings."""
    return result_response(service.get_board_roles())


@router.put("/boards/completed", dependencies=[Depends(require_scope("admin"))])
async def add_completed_board(
    body: BoardRoleSave,
    actor: Actor = Depends(get_actor),
    service: BoardConfigService = Depends(get_board_service),
):
    return result_response(service.add_completed_board(actor, body.board_id, body.board_name))


@router.delete("/boards/completed/{board_id}", dependencies=[Depends(require_scope("admin"))])
async def remove_completed_board(
    board_id: str,
    actor: Actor = Depends(get_actor),
    service: BoardConfigService = Depends(get_board_service),
):
    return result_response(service.remove_completed_board(actor, board_id))


@router.put("/boards/leads", dependencies=[Depends(require_scope("admin"))])
async def set_leads_board(
    body: BoardRoleSave,
    actor: Actor = Depends(get_actor),
    service: BoardConfigService = Depends(get_board_service),
):
    return result_response(service.set_leads_board(actor, body.board_id, body.board_name))


@router.delete("/boards/leads", dependencies=[Depends(require_scope("admin"))])
async def remove_leads_board(
    actor: Actor = Depends(get_actor),
    service: BoardConfigService = Depends(get_board_service),
):
    return result_response(service.remove_leads_board(actor))


@router.put("/boards/flexi-completed", dependencies=[Depends(require_scope("admin"))])
async def set_flexi_completed_board(
    body: BoardRoleSave,
    actor: Actor = Depends(get_actor),
    service: BoardConfigService = Depends(get_board_service),
):
    return result_response(service.set_flexi_completed_board(actor, body.board_id, body.board_name))


@router.delete("/boards/flexi-completed", dependencies=[Depends(require_scope("admin"))])
async def remove_flexi_completed_board(
    actor: Actor = Depends(get_actor),
    service: BoardConfigService = Depends(get_board_service),
):
    return result_response(service.remove_flexi_completed_board(actor))


@router.get("/leads-status-config", dependencies=[Depends(require_scope("admin"))])
async def get_leads_status_config(
    actor: Actor = Depends(get_actor),
    service: BoardConfigService = Depends(get_board_service),
):
    return result_response(service.get_leads_status_config(actor))


@router.put("/leads-status-config", dependencies=[Depends(require_scope("admin"))])
async def update_leads_status_config(
    body: LeadsStatusConfig,
    actor: Actor = Depends(get_actor),
    service: BoardConfigService = Depends(get_board_service),
):
    result = service.update_leads_status_config(actor, body.included_statuses, body.excluded_statuses)
    return result_response(result)


# ─── Column Mappings ──────────────────────────────────────────

@router.get("/column-mappings")
async def list_column_mappings(
    board_id: Optional[str] = Query(None, description="Board to resolve for; omit for global"),
    service: ColumnMappingService = Depends(get_mapping_service),
):
    return result_response(service.list_mappings(board_id))


@router.put("/column-mappings", dependencies=[Depends(require_scope("admin"))])
async def save_column_mapping(
    body: ColumnMappingSave,
    actor: Actor = Depends(get_actor),
    service: ColumnMappingService = Depends(get_mapping_service),
):
    result = service.save_mapping(
        actor, body.column_type, body.monday_column_id,
        board_id=body.board_id, workspace_id=body.workspace_id,
    )
    return result_response(result)


@router.delete("/column-mappings", dependencies=[Depends(require_scope("admin"))])
async def delete_column_mappings(
    board_id: Optional[str] = Query(None, description="Board whose mappings to delete; omit for global"),
    actor: Actor = Depends(get_actor),
    service: ColumnMappingService = Depends(get_mapping_service),
):
    return result_response(service.delete_mappings(actor, board_id))


# ─── Duplicates ───────────────────────────────────────────────

@router.get("/duplicates", dependencies=[Depends(require_scope("admin"))])
async def check_duplicates(
    actor: Actor = Depends(get_actor),
    service: DuplicateService = Depends(get_duplicate_service),
):
    return result_response(service.check_duplicates(actor))


@router.post("/duplicates/fix", dependencies=[Depends(require_scope("admin"))])
async def fix_duplicates(
    actor: Actor = Depends(get_actor),
    service: DuplicateService = Depends(get_duplicate_service),
):
    return result_response(service.fix_duplicates(actor))
