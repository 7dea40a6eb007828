"""
Time Tracking Service
======================

Create / update / delete / list time entries.

Rules enforced on every write, for every caller (admins included):
    - the owning project must not be locked
    - hours must be positive
    - one entry per (user, task, date)
    - only the entry's owner or an admin may change it
    - the task must belong to the project
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Dict, Optional

from models.time_tracking_models import TimeEntry, TimeEntryList, TimeEntryResult
from scripts.lib.actor import Actor
from scripts.lib.errors import IntegrityViolationError, NotFoundError, UnauthorizedError, ValidationError
from scripts.lib.logger import setup_logger
from scripts.lib.results import OperationResult, operation_boundary
from scripts.lib.supabase_client import is_unique_violation
from scripts.lib.utils import safe_float, to_date

logger = setup_logger(__name__)

ENTRY_FIELDS = "id, user_id, task_id, project_id, date, hours, notes"


def _entry(row: Dict) -> TimeEntry:
    return TimeEntry(**{k: row.get(k) for k in ENTRY_FIELDS.split(", ")})


class LockedProjectError(IntegrityViolationError):
    """Time entries under a locked project are frozen."""

    def __init__(self, action: str, project_id: str):
        super().__init__(
            f"Cannot {action} time entries for locked projects",
            entity="project", entity_id=project_id,
        )


class TimeTrackingService:
    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            from scripts.lib.supabase_client import get_client
            self._client = get_client()
        return self._client

    # ─── Guards ─────────────────────────────────────────────

    def _project(self, project_id: str) -> Dict:
        result = self.client.table("monday_projects").select("id, status").eq("id", project_id).limit(1).execute()
        if not result.data:
            raise NotFoundError("Project", project_id)
        return result.data[0]

    def _ensure_unlocked(self, project_id: str, action: str):
        if self._project(project_id).get("status") == "locked":
            raise LockedProjectError(action, project_id)

    def _writable_entry(self, actor: Actor, entry_id: str, action: str) -> Dict:
        """Entry row, once the project lock and ownership checks pass."""
        result = self.client.table("time_entries").select(ENTRY_FIELDS).eq("id", entry_id).limit(1).execute()
        if not result.data:
            raise NotFoundError("Time entry", entry_id)
        row = result.data[0]
        self._ensure_unlocked(row["project_id"], action)
        if not actor.can_modify(row.get("user_id")):
            raise UnauthorizedError("You can only change your own time entries", required_role="owner")
        return row

    @staticmethod
    def _validate_hours(hours) -> float:
        value = safe_float(hours, None)
        if value is None or value <= 0:
            raise ValidationError("Hours must be greater than zero", field="hours")
        return value

    def _duplicate_exists(self, user_id: str, task_id: str, entry_date: date,
                          exclude_id: Optional[str] = None) -> bool:
        result = (
            self.client.table("time_entries")
            .select("id")
            .eq("user_id", user_id)
            .eq("task_id", task_id)
            .eq("date", entry_date.isoformat())
            .execute()
        )
        return any(r["id"] != exclude_id for r in result.data or [])

    # ─── Operations ─────────────────────────────────────────

    @operation_boundary(TimeEntryResult, "Create time entry")
    def create_entry(self, actor: Actor, task_id: str, project_id: str, entry_date,
                     hours, notes: Optional[str] = None,
                     user_id: Optional[str] = None) -> TimeEntryResult:
        actor.require_user()
        self._ensure_unlocked(project_id, "add")
        owner = user_id or actor.user_id
        if owner != actor.user_id and not actor.is_admin:
            raise UnauthorizedError("You can only log your own time", required_role="owner")
        if not owner:
            raise ValidationError("An owning user is required", field="user_id")

        hours = self._validate_hours(hours)
        entry_date = to_date(entry_date)
        if entry_date is None:
            raise ValidationError("A valid date is required", field="date")

        task = self.client.table("monday_tasks").select("id, project_id").eq("id", task_id).limit(1).execute()
        if not task.data:
            raise NotFoundError("Task", task_id)
        if task.data[0]["project_id"] != project_id:
            raise ValidationError("Task does not belong to the project", field="task_id")

        duplicate_message = "Time entry already exists for this task and date. Please update the existing entry."
        if self._duplicate_exists(owner, task_id, entry_date):
            raise IntegrityViolationError(duplicate_message, entity="time_entry")

        try:
            inserted = self.client.table("time_entries").insert({
                "user_id": owner,
                "task_id": task_id,
                "project_id": project_id,
                "date": entry_date.isoformat(),
                "hours": hours,
                "notes": notes,
            }).execute()
        except Exception as e:
            if is_unique_violation(e):
                raise IntegrityViolationError(duplicate_message, entity="time_entry")
            raise

        logger.info("Time entry created: user=%s task=%s date=%s hours=%.2f", owner, task_id, entry_date, hours)
        return TimeEntryResult(entry=_entry(inserted.data[0]), message="Time entry created")

    @operation_boundary(TimeEntryResult, "Update time entry")
    def update_entry(self, actor: Actor, entry_id: str, hours=None, entry_date=None,
                     notes: Optional[str] = None) -> TimeEntryResult:
        actor.require_user()
        row = self._writable_entry(actor, entry_id, "update")

        changes: Dict = {}
        if hours is not None:
            changes["hours"] = self._validate_hours(hours)
        if entry_date is not None:
            parsed = to_date(entry_date)
            if parsed is None:
                raise ValidationError("A valid date is required", field="date")
            if self._duplicate_exists(row["user_id"], row["task_id"], parsed, exclude_id=row["id"]):
                raise IntegrityViolationError(
                    "Time entry already exists for this task and date", entity="time_entry",
                )
            changes["date"] = parsed.isoformat()
        if notes is not None:
            changes["notes"] = notes
        if not changes:
            raise ValidationError("Nothing to update")
        changes["updated_at"] = datetime.now(timezone.utc).isoformat()

        self.client.table("time_entries").update(changes).eq("id", entry_id).execute()
        updated = self.client.table("time_entries").select(ENTRY_FIELDS).eq("id", entry_id).limit(1).execute()
        return TimeEntryResult(entry=_entry(updated.data[0]), message="Time entry updated")

    @operation_boundary(OperationResult, "Delete time entry")
    def delete_entry(self, actor: Actor, entry_id: str) -> OperationResult:
        actor.require_user()
        self._writable_entry(actor, entry_id, "delete")
        self.client.table("time_entries").delete().eq("id", entry_id).execute()
        logger.info("Time entry %s deleted by %s", entry_id, actor.user_id or "system")
        return OperationResult(message="Time entry deleted")

    @operation_boundary(TimeEntryList, "List time entries")
    def list_entries(self, start, end, user_id: Optional[str] = None) -> TimeEntryList:
        start, end = to_date(start), to_date(end)
        if start is None or end is None or start > end:
            raise ValidationError("A valid date range is required", field="start")

        query = (
            self.client.table("time_entries")
            .select(ENTRY_FIELDS)
            .gte("date", start.isoformat())
            .lte("date", end.isoformat())
        )
        if user_id:
            query = query.eq("user_id", user_id)
        rows = query.order("date").execute().data or []
        entries = [_entry(r) for r in rows]
        return TimeEntryList(entries=entries, total_hours=sum(e.hours for e in entries))
