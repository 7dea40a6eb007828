"""
Monday.com Project/Task Sync
=============================

Mirrors Monday.com items (projects) and subitems (tasks) into
monday_projects / monday_tasks, keyed by monday_item_id.

Flow:
    1. fetching   scan mapped boards in full; items on completed boards are
                  fetched by id (only those already stored) unless sync_all_boards
    2. checking   projects absent upstream are archived (time entries exist)
                  or deleted; skipped entirely when avoid_deletion is set
    3. syncing    per project: map columns, decide status, upsert, sync tasks
    4. complete   duplicate rows sharing a monday_item_id are merged

Status policy:
    locked board (completed / Flexi-Design completed)  -> locked
    leads board                                       -> lead
    board with board-specific mappings                -> active
    anything else                                     -> archived
    an existing locked project stays locked

A project that moved boards keeps its row; only monday_board_id changes.
Per-project failures are collected and the run continues.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from integrations.monday import MondayClient
from models.monday_models import (
    ColumnType,
    MondayProjectRecord,
    MondayTaskRecord,
    ProjectStatus,
    SyncPhase,
    SyncProgressEvent,
    SyncResult,
    SyncSettings,
    SyncSettingsResult,
)
from scripts.lib.actor import Actor
from scripts.lib.capabilities import Capabilities, Capability, get_capabilities
from scripts.lib.errors import NotConfiguredError, ValidationError
from scripts.lib.logger import setup_logger
from scripts.lib.results import operation_boundary
from scripts.lib.supabase_client import select_all, select_in
from scripts.lib.utils import iso, safe_float
from scripts.monday import column_values as cv
from scripts.monday.boards import BoardConfig, load_board_config
from scripts.monday.column_mappings import ColumnResolver, load_mappings
from scripts.monday.duplicates import merge_duplicates
from scripts.projects import has_time_entries, remove_project, task_has_time_entries

logger = setup_logger(__name__)

SYNC_SETTINGS_ID = "00000000-0000-0000-0000-000000000000"
LEGACY_COMPLETED_DATE_COLUMN = "date__1"
DELETED_STATE = "deleted"

ProgressCallback = Callable[[SyncProgressEvent], None]


# ─── Item mapping ───────────────────────────────────────────

def map_item(item: Dict, board_id: str, board_name: str, resolver: ColumnResolver,
             completed_board_ids: Set[str]) -> MondayProjectRecord:
    """Monday item -> project record, extracting mapped columns."""
    columns = {c["id"]: c for c in item.get("column_values") or []}
    is_completed = board_id in completed_board_ids

    def column(field: ColumnType, require_board_specific: bool = False) -> Optional[Dict]:
        column_id = resolver.column_id(field, board_id, board_name, require_board_specific)
        return columns.get(column_id) if column_id else None

    completed_date = cv.parse_date(column(ColumnType.COMPLETED_DATE))
    if completed_date is None:
        completed_date = cv.parse_date(columns.get(LEGACY_COMPLETED_DATE_COLUMN))

    return MondayProjectRecord(
        monday_item_id=str(item["id"]),
        monday_board_id=str(board_id),
        board_name=board_name or "",
        name=item.get("name") or "",
        client_name=cv.parse_text(column(ColumnType.CLIENT)),
        agency=cv.parse_text(column(ColumnType.AGENCY)),
        monday_status=cv.parse_text(column(ColumnType.STATUS)),
        quoted_hours=cv.parse_positive_number(column(ColumnType.QUOTED_HOURS)),
        quote_value=cv.parse_number(column(ColumnType.QUOTE_VALUE, require_board_specific=is_completed)),
        due_date=cv.parse_date(column(ColumnType.DUE_DATE)),
        completed_date=completed_date,
        deleted_upstream=item.get("state") == DELETED_STATE,
        monday_data=cv.index_columns(item.get("column_values") or []),
    )


def map_subitem(subitem: Dict, board_id: str, board_name: str,
                resolver: ColumnResolver) -> MondayTaskRecord:
    columns = {c["id"]: c for c in subitem.get("column_values") or []}

    def column(field: ColumnType) -> Optional[Dict]:
        column_id = resolver.column_id(field, board_id, board_name)
        return columns.get(column_id) if column_id else None

    assigned: List[str] = []
    for value in subitem.get("column_values") or []:
        if value.get("type") == "people":
            assigned.extend(cv.parse_people(value))

    start, end = cv.parse_timeline(column(ColumnType.TIMELINE))
    return MondayTaskRecord(
        monday_item_id=str(subitem["id"]),
        name=subitem.get("name") or "",
        assigned_user_ids=list(dict.fromkeys(assigned)),
        quoted_hours=cv.parse_positive_number(column(ColumnType.QUOTED_HOURS)),
        timeline_start=start,
        timeline_end=end,
        monday_data=cv.index_columns(subitem.get("column_values") or []),
    )


def board_status(config: BoardConfig, board_id: str) -> ProjectStatus:
    if config.is_locked_board(board_id):
        return ProjectStatus.LOCKED
    if config.is_leads_board(board_id):
        return ProjectStatus.LEAD
    if config.is_active_board(board_id):
        return ProjectStatus.ACTIVE
    return ProjectStatus.ARCHIVED


def next_status(existing_status: Optional[str], status: ProjectStatus) -> ProjectStatus:
    """Locked is sticky; every other status follows the board."""
    if existing_status == ProjectStatus.LOCKED.value:
        return ProjectStatus.LOCKED
    return status


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─── Sync settings ──────────────────────────────────────────

def load_sync_settings(client, capabilities: Capabilities = None) -> SyncSettings:
    caps = capabilities or get_capabilities()
    if not caps.has(Capability.SYNC_SETTINGS):
        return SyncSettings()
    result = client.table("monday_sync_settings").select("*").eq("id", SYNC_SETTINGS_ID).limit(1).execute()
    if not result.data:
        return SyncSettings()
    row = result.data[0]
    return SyncSettings(
        enabled=bool(row.get("enabled")),
        interval_minutes=int(row.get("interval_minutes") or 60),
        avoid_deletion=row.get("avoid_deletion", True) is not False,
        last_sync_at=row.get("last_sync_at"),
        next_sync_at=row.get("next_sync_at"),
    )


def update_sync_timestamp(client, settings: SyncSettings, capabilities: Capabilities = None):
    """Stamp last_sync_at / next_sync_at after a scheduled run."""
    caps = capabilities or get_capabilities()
    caps.require(Capability.SYNC_SETTINGS)
    now = datetime.now(timezone.utc)
    client.table("monday_sync_settings").update({
        "last_sync_at": now.isoformat(),
        "next_sync_at": (now + timedelta(minutes=settings.interval_minutes)).isoformat(),
        "updated_at": now.isoformat(),
    }).eq("id", SYNC_SETTINGS_ID).execute()


@operation_boundary(SyncSettingsResult, "Save sync settings")
def save_sync_settings(client, actor: Actor, enabled: Optional[bool] = None,
                       interval_minutes: Optional[int] = None, avoid_deletion: Optional[bool] = None,
                       capabilities: Capabilities = None) -> SyncSettingsResult:
    actor.require_admin()
    caps = capabilities or get_capabilities()
    caps.require(Capability.SYNC_SETTINGS)

    current = load_sync_settings(client, caps)
    settings = current.model_copy(update={
        k: v for k, v in {
            "enabled": enabled,
            "interval_minutes": interval_minutes,
            "avoid_deletion": avoid_deletion,
        }.items() if v is not None
    })
    if settings.interval_minutes < 1:
        raise ValidationError("Sync interval must be at least one minute", field="interval_minutes")

    now = datetime.now(timezone.utc)
    if settings.enabled:
        settings.next_sync_at = now + timedelta(minutes=settings.interval_minutes)
    else:
        settings.next_sync_at = None

    client.table("monday_sync_settings").upsert({
        "id": SYNC_SETTINGS_ID,
        "enabled": settings.enabled,
        "interval_minutes": settings.interval_minutes,
        "avoid_deletion": settings.avoid_deletion,
        "next_sync_at": iso(settings.next_sync_at),
        "updated_at": now.isoformat(),
    }).execute()
    logger.info("Sync settings saved: enabled=%s interval=%dm", settings.enabled, settings.interval_minutes)
    return SyncSettingsResult(settings=settings, message="Sync settings saved")


# ─── Sync service ───────────────────────────────────────────

class MondaySync:
    """Reconciles Monday.com boards into Supabase."""

    def __init__(self, client=None, monday: Optional[MondayClient] = None,
                 capabilities: Optional[Capabilities] = None):
        self._client = client
        self.monday = monday or MondayClient()
        self._capabilities = capabilities

    @property
    def client(self):
        if self._client is None:
            from scripts.lib.supabase_client import get_client
            self._client = get_client()
        return self._client

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities or get_capabilities()

    # ─── Fetch ───────────────────────────────────────────────

    def _existing_projects(self) -> List[Dict]:
        return select_all(
            self.client, "monday_projects",
            select="id, monday_item_id, monday_board_id, status, quoted_hours, quote_value, monday_data",
        )

    def fetch_projects(self, config: BoardConfig, resolver: ColumnResolver,
                       existing: List[Dict], sync_all_boards: bool) -> List[MondayProjectRecord]:
        scan_ids = sorted(config.scan_board_ids(sync_all_boards))
        boards = self.monday.fetch_board_items(scan_ids)
        resolver.index.board_names.update({b["id"]: b["name"] for b in boards})

        raw: List[Tuple[Dict, str, str]] = []
        seen: Set[str] = set()
        for board in boards:
            for item in board["items"]:
                raw.append((item, board["id"], board["name"]))
                seen.add(str(item["id"]))

        locked_boards = config.locked_board_ids
        if not sync_all_boards and locked_boards:
            stored_ids = [
                str(p["monday_item_id"]) for p in existing
                if str(p.get("monday_board_id")) in locked_boards and p.get("monday_item_id")
            ]
            wanted = [i for i in dict.fromkeys(stored_ids) if i not in seen]
            for item in self.monday.fetch_items_by_id(wanted) if wanted else []:
                board = item.get("board") or {}
                board_id = str(board.get("id") or "")
                if not board_id:
                    continue
                if board.get("name"):
                    resolver.index.board_names.setdefault(board_id, board["name"])
                raw.append((item, board_id, board.get("name") or resolver.index.board_names.get(board_id, "")))
                seen.add(str(item["id"]))

        return [
            map_item(item, board_id, board_name, resolver, locked_boards)
            for item, board_id, board_name in raw
        ]

    # ─── Removal pass ───────────────────────────────────────

    def remove_absent(self, existing: List[Dict], present_ids: Set[str],
                      config: BoardConfig) -> Tuple[int, int]:
        archived = deleted = 0
        for project in existing:
            if str(project.get("monday_item_id")) in present_ids:
                continue
            if config.is_locked_board(project.get("monday_board_id")):
                continue
            if project.get("status") == ProjectStatus.LOCKED.value:
                continue

            if has_time_entries(self.client, project["id"]):
                if project.get("status") != ProjectStatus.ARCHIVED.value:
                    self.client.table("monday_projects").update(
                        {"status": ProjectStatus.ARCHIVED.value, "updated_at": _now()}
                    ).eq("id", project["id"]).execute()
                    archived += 1
            else:
                remove_project(self.client, project["id"])
                deleted += 1
        return archived, deleted

    # ─── Upsert ──────────────────────────────────────────────

    def _final_quote_value(self, record: MondayProjectRecord, existing: Optional[Dict],
                           resolver: ColumnResolver) -> Optional[float]:
        if record.quote_value:
            return record.quote_value
        if existing and existing.get("status") == ProjectStatus.LOCKED.value:
            stored = safe_float(existing.get("quote_value"), None)
            if stored:
                return stored
            column_id = resolver.column_id(ColumnType.QUOTE_VALUE, record.monday_board_id)
            if column_id and existing.get("monday_data"):
                return cv.parse_number((existing["monday_data"] or {}).get(column_id))
        return record.quote_value

    def upsert_project(self, record: MondayProjectRecord, existing: Optional[Dict],
                       config: BoardConfig, resolver: ColumnResolver) -> Dict:
        """Insert or update one project row and return it."""
        status = next_status(existing.get("status") if existing else None,
                             board_status(config, record.monday_board_id))

        quoted_hours = record.quoted_hours
        if not quoted_hours and existing and existing.get("status") == ProjectStatus.LOCKED.value:
            quoted_hours = safe_float(existing.get("quoted_hours"), None)

        row = {
            "monday_item_id": record.monday_item_id,
            "monday_board_id": record.monday_board_id,
            "name": record.name,
            "client_name": record.client_name,
            "agency": record.agency,
            "monday_status": record.monday_status,
            "due_date": iso(record.due_date),
            "completed_date": iso(record.completed_date),
            "quoted_hours": quoted_hours,
            "quote_value": self._final_quote_value(record, existing, resolver),
            "monday_data": record.monday_data,
            "status": status.value,
            "updated_at": _now(),
        }

        if existing:
            if str(existing.get("monday_board_id")) != record.monday_board_id:
                logger.info(
                    "Project %s moved from board %s to %s",
                    record.monday_item_id, existing.get("monday_board_id"), record.monday_board_id,
                )
            self.client.table("monday_projects").update(row).eq("id", existing["id"]).execute()
            return {**existing, **row}

        inserted = self.client.table("monday_projects").insert(row).execute()
        return inserted.data[0]

    def sync_tasks(self, project: Dict, subitems: List[Dict], board_name: str,
                   resolver: ColumnResolver, previous_quoted: Optional[float]) -> int:
        """Upsert subitems as tasks, roll quoted hours up, drop orphans without time entries."""
        is_locked = project["status"] == ProjectStatus.LOCKED.value
        board_id = str(project["monday_board_id"])
        tasks = [map_subitem(s, board_id, board_name, resolver) for s in subitems]

        stored = select_in(
            self.client, "monday_tasks", "monday_item_id", [t.monday_item_id for t in tasks],
            select="id, monday_item_id, quoted_hours",
        )
        stored_by_item = {str(t["monday_item_id"]): t for t in stored}

        total_quoted = 0.0
        for task in tasks:
            existing_task = stored_by_item.get(task.monday_item_id)
            quoted = task.quoted_hours
            if not quoted and is_locked and existing_task:
                quoted = safe_float(existing_task.get("quoted_hours"), None)
            total_quoted += quoted or 0.0

            row = {
                "monday_item_id": task.monday_item_id,
                "project_id": project["id"],
                "name": task.name,
                "is_subtask": True,
                "assigned_user_ids": task.assigned_user_ids or None,
                "quoted_hours": quoted,
                "timeline_start": iso(task.timeline_start),
                "timeline_end": iso(task.timeline_end),
                "monday_data": task.monday_data,
                "updated_at": _now(),
            }
            if existing_task:
                self.client.table("monday_tasks").update(row).eq("id", existing_task["id"]).execute()
            else:
                self.client.table("monday_tasks").insert(row).execute()

        quoted_hours = total_quoted if total_quoted > 0 else (project.get("quoted_hours") or previous_quoted)
        if quoted_hours != project.get("quoted_hours"):
            self.client.table("monday_projects").update(
                {"quoted_hours": quoted_hours, "updated_at": _now()}
            ).eq("id", project["id"]).execute()

        synced_ids = {t.monday_item_id for t in tasks}
        current = (
            self.client.table("monday_tasks")
            .select("id, monday_item_id")
            .eq("project_id", project["id"])
            .execute()
        )
        for task in current.data or []:
            if str(task["monday_item_id"]) in synced_ids:
                continue
            if not task_has_time_entries(self.client, task["id"]):
                self.client.table("monday_tasks").delete().eq("id", task["id"]).execute()
        return len(tasks)

    # ─── Entry point ────────────────────────────────────────

    @operation_boundary(SyncResult, "Monday sync")
    def sync_all(self, on_progress: Optional[ProgressCallback] = None,
                 sync_all_boards: bool = False, avoid_deletion: bool = True) -> SyncResult:
        report = on_progress or (lambda event: None)
        try:
            return self._sync(report, sync_all_boards, avoid_deletion)
        except Exception as e:
            report(SyncProgressEvent(phase=SyncPhase.ERROR, message=getattr(e, "message", str(e))))
            raise

    def _sync(self, report: ProgressCallback, sync_all_boards: bool,
              avoid_deletion: bool) -> SyncResult:
        if not self.monday.is_configured:
            raise NotConfiguredError("MONDAY_API_TOKEN is not configured")

        report(SyncProgressEvent(
            phase=SyncPhase.FETCHING,
            message="Fetching all boards from Monday.com..." if sync_all_boards
            else "Fetching projects from Monday.com...",
            progress=0.0,
        ))

        mappings = load_mappings(self.client)
        resolver = ColumnResolver(mappings)
        config = load_board_config(self.client, resolver.index.mapped_board_ids, self.capabilities)
        resolver.completed_board_ids = config.locked_board_ids
        if not config.active_board_ids and not config.locked_board_ids:
            raise NotConfiguredError("No Monday.com boards have column mappings configured")

        existing = self._existing_projects()
        records = self.fetch_projects(config, resolver, existing, sync_all_boards)
        present = [r for r in records if not r.deleted_upstream]
        present_ids = {r.monday_item_id for r in present}

        report(SyncProgressEvent(phase=SyncPhase.CHECKING, message="Checking for removed projects...", progress=0.05))
        result = SyncResult()
        if not avoid_deletion:
            result.archived, result.deleted = self.remove_absent(existing, present_ids, config)
            existing = self._existing_projects()

        existing_by_item: Dict[str, Dict] = {}
        for row in existing:
            existing_by_item.setdefault(str(row.get("monday_item_id")), row)

        subitems: Dict[str, List[Dict]] = {}
        try:
            subitems = self.monday.fetch_subitems([r.monday_item_id for r in present])
        except Exception as e:
            logger.error("Subitem fetch failed, tasks will not be synced: %s", e)
            result.errors.append(f"Subitems: {e}")

        total = len(present)
        for i, record in enumerate(present):
            report(SyncProgressEvent(
                phase=SyncPhase.SYNCING,
                message=f"Syncing {record.name}",
                project_index=i + 1,
                total_projects=total,
                project_name=record.name,
                progress=0.1 + 0.85 * (i / max(1, total)),
            ))
            existing_row = existing_by_item.get(record.monday_item_id)
            try:
                project = self.upsert_project(record, existing_row, config, resolver)
                if record.monday_item_id in subitems:
                    result.tasks_synced += self.sync_tasks(
                        project, subitems[record.monday_item_id], record.board_name, resolver,
                        safe_float(existing_row.get("quoted_hours"), None) if existing_row else None,
                    )
                result.projects_synced += 1
            except Exception as e:
                logger.error("Sync failed for project %s (%s): %s", record.name, record.monday_item_id, e)
                result.errors.append(f"{record.name}: {e}")

        merge = merge_duplicates(self.client, config.locked_board_ids)
        result.merged = merge.projects_deleted
        result.errors.extend(merge.errors)

        result.message = (
            f"Synced {result.projects_synced} projects "
            f"({result.archived} archived, {result.deleted} deleted)"
        )
        logger.info(result.message)
        report(SyncProgressEvent(
            phase=SyncPhase.COMPLETE,
            message="Sync complete",
            progress=1.0,
            projects_synced=result.projects_synced,
            archived=result.archived,
            deleted=result.deleted,
        ))
        return result
