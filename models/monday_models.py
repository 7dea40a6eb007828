"""
Studio Ops Hub — Monday.com Sync Pydantic Models
==================================================

Column mappings, sync settings, sync progress events and the rows the
project/task sync writes.
"""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from scripts.lib.results import OperationResult


# ─── Enums ──────────────────────────────────────────────────

class ColumnType(str, Enum):
    CLIENT = "client"
    AGENCY = "agency"
    QUOTED_HOURS = "quoted_hours"
    TIMELINE = "timeline"
    QUOTE_VALUE = "quote_value"
    DUE_DATE = "due_date"
    COMPLETED_DATE = "completed_date"
    STATUS = "status"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    LOCKED = "locked"
    LEAD = "lead"


# ─── Column Mappings ────────────────────────────────────────

class ColumnMapping(BaseModel):
    """One (field, board) -> Monday column correspondence. board_id None = global."""
    id: Optional[str] = None
    column_type: ColumnType
    board_id: Optional[str] = None
    monday_column_id: str
    workspace_id: Optional[str] = None

    @property
    def is_global(self) -> bool:
        return self.board_id is None


class ColumnMappingSave(BaseModel):
    column_type: ColumnType
    monday_column_id: str = Field(..., min_length=1)
    board_id: Optional[str] = None
    workspace_id: Optional[str] = None


class ColumnMappingList(OperationResult):
    board_id: Optional[str] = None
    mappings: List[ColumnMapping] = Field(default_factory=list)


# ─── Sync Settings ──────────────────────────────────────────

class SyncSettings(BaseModel):
    enabled: bool = False
    interval_minutes: int = 60
    avoid_deletion: bool = True
    last_sync_at: Optional[datetime] = None
    next_sync_at: Optional[datetime] = None


class SyncSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    interval_minutes: Optional[int] = Field(None, ge=5, le=1440)
    avoid_deletion: Optional[bool] = None


class SyncSettingsResult(OperationResult):
    settings: Optional[SyncSettings] = None


class LeadsStatusConfig(BaseModel):
    included_statuses: List[str] = Field(default_factory=list)
    excluded_statuses: List[str] = Field(default_factory=list)


class LeadsStatusConfigResult(OperationResult):
    config: LeadsStatusConfig = Field(default_factory=LeadsStatusConfig)


# ─── Board Roles ────────────────────────────────────────────

class BoardRef(BaseModel):
    monday_board_id: str
    board_name: Optional[str] = None


class BoardRoleSave(BaseModel):
    board_id: str = Field(..., min_length=1)
    board_name: Optional[str] = None


class BoardRoles(OperationResult):
    """Configured board roles plus the boards made active by board-specific mappings."""
    completed_boards: List[BoardRef] = Field(default_factory=list)
    flexi_completed_board: Optional[BoardRef] = None
    leads_board: Optional[BoardRef] = None
    active_board_ids: List[str] = Field(default_factory=list)


# ─── Sync Progress ──────────────────────────────────────────

class SyncPhase(str, Enum):
    FETCHING = "fetching"
    CHECKING = "checking"
    SYNCING = "syncing"
    COMPLETE = "complete"
    ERROR = "error"


class SyncProgressEvent(BaseModel):
    """Streamed to the manual sync client as one SSE ``data:`` frame."""
    phase: SyncPhase
    message: str
    progress: Optional[float] = None
    project_index: Optional[int] = None
    total_projects: Optional[int] = None
    project_name: Optional[str] = None
    projects_synced: Optional[int] = None
    archived: Optional[int] = None
    deleted: Optional[int] = None


# ─── Sync Rows / Results ────────────────────────────────────

class MondayProjectRecord(BaseModel):
    """A Monday item mapped onto monday_projects columns."""
    monday_item_id: str
    monday_board_id: str
    board_name: str = ""
    name: str
    client_name: Optional[str] = None
    agency: Optional[str] = None
    monday_status: Optional[str] = None
    quoted_hours: Optional[float] = None
    quote_value: Optional[float] = None
    due_date: Optional[date] = None
    completed_date: Optional[date] = None
    deleted_upstream: bool = False
    monday_data: Dict[str, Any] = Field(default_factory=dict)


class MondayTaskRecord(BaseModel):
    monday_item_id: str
    name: str
    assigned_user_ids: List[str] = Field(default_factory=list)
    quoted_hours: Optional[float] = None
    timeline_start: Optional[date] = None
    timeline_end: Optional[date] = None
    monday_data: Dict[str, Any] = Field(default_factory=dict)


class SyncResult(OperationResult):
    projects_synced: int = 0
    archived: int = 0
    deleted: int = 0
    merged: int = 0
    tasks_synced: int = 0


class DuplicateGroup(BaseModel):
    monday_item_id: str
    keep_id: str
    duplicate_ids: List[str]
    board_ids: List[Optional[str]] = Field(default_factory=list)


class DuplicateCheckResult(OperationResult):
    duplicates: List[DuplicateGroup] = Field(default_factory=list)


class DuplicateFixResult(OperationResult):
    groups_fixed: int = 0
    projects_deleted: int = 0
    tasks_moved: int = 0
    time_entries_moved: int = 0
