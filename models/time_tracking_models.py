"""
Studio Ops Hub — Time Tracking Pydantic Models
================================================

Time entries and per-project logged-hours summaries.
"""
from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field

from scripts.lib.results import OperationResult


# ─── Time Entries ───────────────────────────────────────────

class TimeEntry(BaseModel):
    id: str
    user_id: str
    task_id: str
    project_id: str
    date: dt.date
    hours: float
    notes: Optional[str] = None


class TimeEntryCreate(BaseModel):
    task_id: str
    project_id: str
    date: dt.date
    hours: float = Field(..., gt=0)
    notes: Optional[str] = None


class TimeEntryUpdate(BaseModel):
    hours: Optional[float] = Field(None, gt=0)
    date: Optional[dt.date] = None
    notes: Optional[str] = None


class TimeEntryResult(OperationResult):
    entry: Optional[TimeEntry] = None


class TimeEntryList(OperationResult):
    entries: List[TimeEntry] = Field(default_factory=list)
    total_hours: float = 0.0


# ─── Project Summaries ──────────────────────────────────────

class TaskHours(BaseModel):
    id: str
    name: str
    quoted_hours: Optional[float] = None
    logged_hours: float = 0.0
    time_left: Optional[float] = None


class ProjectHours(BaseModel):
    id: str
    name: str
    client_name: Optional[str] = None
    status: str
    quoted_hours: Optional[float] = None
    total_logged_hours: float = 0.0
    tasks: List[TaskHours] = Field(default_factory=list)


class ProjectHoursList(OperationResult):
    projects: List[ProjectHours] = Field(default_factory=list)
