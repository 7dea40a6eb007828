"""
Studio Ops Hub — Projects Router
==================================
Projects mirrored from Monday.com, with logged-hour rollups.

Endpoints:
  GET    /api/projects            - List projects with filters
  GET    /api/projects/hours      - Quoted vs logged hours per active/locked project
  GET    /api/projects/{id}       - Single project with its tasks
  DELETE /api/projects/{id}       - Delete a project with no logged time (admin)
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from dashboard.api.middleware import get_actor, require_scope
from dashboard.api.responses import result_response
from scripts.lib.actor import Actor
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import get_client
from scripts.projects import ProjectService

logger = setup_logger("projects_router")

router = APIRouter(prefix="/api/projects", tags=["projects"])


def get_service() -> ProjectService:
    return ProjectService()


@router.get("")
async def list_projects(
    status: Optional[str] = Query(None, description="active, archived, locked or lead"),
    board_id: Optional[str] = Query(None, description="Filter by Monday.com board"),
    client_name: Optional[str] = Query(None, description="Filter by client name"),
    sort: str = Query("name", description="Sort field"),
    order: str = Query("asc", description="Sort order: asc or desc"),
    limit: int = Query(50, ge=1, le=500, description="Max results"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
):
    """List projects with filtering and pagination."""
    try:
        client = get_client()
        query = client.table("monday_projects").select(
            "id, monday_item_id, monday_board_id, name, status, client_name, agency, "
            "quoted_hours, quote_value, due_date, completed_date, updated_at"
        )

        if status:
            query = query.eq("status", status)
        if board_id:
            query = query.eq("monday_board_id", board_id)
        if client_name:
            query = query.ilike("client_name", f"%{client_name}%")

        query = query.order(sort, desc=order.lower() == "desc")
        query = query.range(offset, offset + limit - 1)

        projects = query.execute().data or []
        return {
            "results": projects,
            "count": len(projects),
            "offset": offset,
            "limit": limit,
        }
    except Exception as e:
        logger.error("List projects failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch projects")


@router.get("/hours")
async def project_hours(
    exclude_board_ids: Optional[List[str]] = Query(None, description="Boards to leave out"),
    service: ProjectService = Depends(get_service),
):
    return result_response(service.project_hours_summary(exclude_board_ids))


@router.get("/{project_id}")
async def get_project(project_id: str):
    """Get a single project and its tasks."""
    try:
        client = get_client()
        result = (
            client.table("monday_projects")
            .select("*")
            .eq("id", project_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            raise HTTPException(status_code=404, detail="Project not found")

        tasks = (
            client.table("monday_tasks")
            .select("id, monday_item_id, name, quoted_hours, timeline_start, timeline_end, assigned_user_ids")
            .eq("project_id", project_id)
            .order("name")
            .execute()
        )
        return {**result.data[0], "tasks": tasks.data or []}
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Get project failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch project")


@router.delete("/{project_id}", dependencies=[Depends(require_scope("admin"))])
async def delete_project(
    project_id: str,
    actor: Actor = Depends(get_actor),
    service: ProjectService = Depends(get_service),
):
    """Refused with 409 while any time entry references the project."""
    return result_response(service.delete_project(actor, project_id))
