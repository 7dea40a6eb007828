"""
Project Service
================

Project-level operations that must respect recorded hours:

- ``remove_project``: hard delete, refused while any time entry references the project
- ``ProjectService.delete_project``: admin-only wrapper returning a typed result
- ``ProjectService.project_hours_summary``: logged vs quoted hours per project and task

Locked projects report ``max(task-level total, project-level total)`` as their
logged hours.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional

from models.time_tracking_models import ProjectHours, ProjectHoursList, TaskHours
from scripts.lib.actor import Actor
from scripts.lib.errors import IntegrityViolationError, NotFoundError
from scripts.lib.logger import setup_logger
from scripts.lib.results import OperationResult, operation_boundary
from scripts.lib.supabase_client import select_in
from scripts.lib.utils import safe_float

logger = setup_logger(__name__)

SUMMARY_STATUSES = ("active", "locked")


def has_time_entries(client, project_id: str) -> bool:
    result = (
        client.table("time_entries")
        .select("id")
        .eq("project_id", project_id)
        .limit(1)
        .execute()
    )
    return bool(result.data)


def task_has_time_entries(client, task_id: str) -> bool:
    result = client.table("time_entries").select("id").eq("task_id", task_id).limit(1).execute()
    return bool(result.data)


def remove_project(client, project_id: str):
    """
    Delete a project and its tasks.

    Raises:
        IntegrityViolationError: At least one time entry references the project.
    """
    if has_time_entries(client, project_id):
        raise IntegrityViolationError(
            "Cannot delete a project with recorded time entries; archive it instead",
            entity="project", entity_id=project_id,
        )
    client.table("monday_tasks").delete().eq("project_id", project_id).execute()
    client.table("monday_projects").delete().eq("id", project_id).execute()
    logger.info("Deleted project %s", project_id)


class ProjectService:
    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            from scripts.lib.supabase_client import get_client
            self._client = get_client()
        return self._client

    @operation_boundary(OperationResult, "Delete project")
    def delete_project(self, actor: Actor, project_id: str) -> OperationResult:
        actor.require_admin()
        existing = self.client.table("monday_projects").select("id").eq("id", project_id).limit(1).execute()
        if not existing.data:
            raise NotFoundError("Project", project_id)
        remove_project(self.client, project_id)
        return OperationResult(message="Project deleted")

    @operation_boundary(ProjectHoursList, "Project hours summary")
    def project_hours_summary(self, exclude_board_ids: Optional[List[str]] = None) -> ProjectHoursList:
        """Active and locked projects with quoted, logged and remaining hours."""
        result = (
            self.client.table("monday_projects")
            .select("id, name, client_name, status, quoted_hours, monday_board_id")
            .in_("status", list(SUMMARY_STATUSES))
            .order("name")
            .execute()
        )
        excluded = {str(b) for b in exclude_board_ids or ()}
        projects = [p for p in result.data or [] if str(p.get("monday_board_id")) not in excluded]
        if not projects:
            return ProjectHoursList(projects=[])

        project_ids = [p["id"] for p in projects]
        tasks = select_in(
            self.client, "monday_tasks", "project_id", project_ids,
            select="id, name, project_id, quoted_hours",
        )
        entries = select_in(
            self.client, "time_entries", "project_id", project_ids,
            select="task_id, project_id, hours",
        )

        by_task: Dict[str, float] = defaultdict(float)
        by_project: Dict[str, float] = defaultdict(float)
        for entry in entries:
            hours = safe_float(entry.get("hours"))
            by_task[entry["task_id"]] += hours
            by_project[entry["project_id"]] += hours

        tasks_by_project: Dict[str, List[dict]] = defaultdict(list)
        for task in tasks:
            tasks_by_project[task["project_id"]].append(task)

        summaries = []
        for project in projects:
            task_rows = []
            for task in tasks_by_project.get(project["id"], []):
                quoted = safe_float(task.get("quoted_hours"), None)
                logged = by_task.get(task["id"], 0.0)
                task_rows.append(TaskHours(
                    id=task["id"],
                    name=task["name"],
                    quoted_hours=quoted,
                    logged_hours=logged,
                    time_left=max(0.0, quoted - logged) if quoted is not None else None,
                ))

            task_total = sum(t.logged_hours for t in task_rows)
            if project["status"] == "locked":
                total = max(task_total, by_project.get(project["id"], 0.0))
            else:
                total = task_total

            summaries.append(ProjectHours(
                id=project["id"],
                name=project["name"],
                client_name=project.get("client_name"),
                status=project["status"],
                quoted_hours=safe_float(project.get("quoted_hours"), None),
                total_logged_hours=total,
                tasks=task_rows,
            ))
        return ProjectHoursList(projects=summaries)
