"""
Studio Ops Hub — Scorecard Pydantic Models
============================================

Metrics, categories, weekly entries and the results of metric calculation
and weekly reconciliation.
"""
from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from scripts.lib.results import OperationResult


class AutomationSource(str, Enum):
    TIME_TRACKING = "time_tracking"
    LEADS = "leads"
    FINANCIAL = "financial"
    CAPACITY = "capacity"


# Older metrics were configured with the provider name
SOURCE_ALIASES = {"xero": AutomationSource.FINANCIAL}


# ─── Scorecard Definition ───────────────────────────────────

class Category(BaseModel):
    id: str
    name: str
    display_order: int = 0


class Metric(BaseModel):
    id: str
    category_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    unit: Optional[str] = None
    target_value: Optional[float] = None
    is_automated: bool = False
    automation_source: Optional[str] = None
    automation_config: Dict[str, Any] = Field(default_factory=dict)
    display_order: int = 0

    @property
    def source(self) -> Optional[AutomationSource]:
        """Declared source, or None when unset or unrecognized."""
        if not self.automation_source:
            return None
        raw = self.automation_source.strip().lower()
        if raw in SOURCE_ALIASES:
            return SOURCE_ALIASES[raw]
        try:
            return AutomationSource(raw)
        except ValueError:
            return None


class WeeklyEntry(BaseModel):
    """One persisted value per (metric, week). ``id == ""`` marks an unsaved placeholder."""
    id: str = ""
    metric_id: str
    week_start_date: dt.date
    value: float = 0.0
    target_value: Optional[float] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @property
    def is_placeholder(self) -> bool:
        return self.id == ""


class EntryCreate(BaseModel):
    metric_id: str
    week_start_date: dt.date
    value: float
    target_value: Optional[float] = None
    notes: Optional[str] = None


class EntryUpdate(BaseModel):
    value: Optional[float] = None
    target_value: Optional[float] = None
    notes: Optional[str] = None


# ─── Results ────────────────────────────────────────────────

class CalculationResult(BaseModel):
    """``value is None`` means no data: the reconciler writes nothing."""
    metric_id: str
    value: Optional[float] = None
    error: Optional[str] = None


class ReconcileResult(OperationResult):
    entries_synced: int = 0
    weeks_synced: int = 0
    week_starts: List[dt.date] = Field(default_factory=list)


class WeekEntries(BaseModel):
    week_start_date: dt.date
    entries: List[WeeklyEntry] = Field(default_factory=list)


class EntriesForWeeks(OperationResult):
    weeks: List[WeekEntries] = Field(default_factory=list)


class EntryResult(OperationResult):
    entry: Optional[WeeklyEntry] = None


class ScorecardDefinition(OperationResult):
    categories: List[Category] = Field(default_factory=list)
    metrics: List[Metric] = Field(default_factory=list)
