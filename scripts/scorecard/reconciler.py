"""
Weekly Entry Reconciler
========================

Keeps scorecard_entries at exactly one row per (metric, week).

    reconcile_week(week)            compute every automated metric; skip None;
                                    existing row -> update value only;
                                    no row -> insert with the metric's target
    reconcile_recent_weeks(n)       the n most recent Monday weeks, concurrently
    get_entries_for_weeks(weeks)    read-only grid with unsaved placeholders

Writes are read-before-write on (metric_id, week_start_date). An insert that
loses a race with a concurrent run hits the unique constraint and falls back
to updating the winner's row (last write wins on ``value``).
"""
from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from models.scorecard_models import (
    Category,
    EntriesForWeeks,
    EntryResult,
    Metric,
    ReconcileResult,
    ScorecardDefinition,
    WeekEntries,
    WeeklyEntry,
)
from scripts.lib.actor import SYSTEM_ACTOR, Actor
from scripts.lib.capabilities import Capabilities, Capability, get_capabilities
from scripts.lib.errors import NotFoundError, ValidationError
from scripts.lib.logger import setup_logger
from scripts.lib.results import operation_boundary
from scripts.lib.supabase_client import is_unique_violation
from scripts.lib.utils import recent_week_starts, safe_float, week_start
from scripts.scorecard.calculator import MetricCalculator

logger = setup_logger(__name__)

ENTRY_FIELDS = "id, metric_id, week_start_date, value, target_value, notes, created_by, created_at, updated_at"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _entry(row: Dict) -> WeeklyEntry:
    return WeeklyEntry(
        id=str(row["id"]),
        metric_id=str(row["metric_id"]),
        week_start_date=row["week_start_date"],
        value=safe_float(row.get("value")),
        target_value=safe_float(row.get("target_value"), None),
        notes=row.get("notes"),
        created_by=row.get("created_by"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class ScorecardReconciler:
    """Reconciles computed metric values into weekly scorecard entries."""

    def __init__(self, client=None, capabilities: Optional[Capabilities] = None,
                 calculator_factory: Optional[Callable[[], MetricCalculator]] = None):
        self._client = client
        self._capabilities = capabilities
        self._calculator_factory = calculator_factory

    @property
    def client(self):
        if self._client is None:
            from scripts.lib.supabase_client import get_client
            self._client = get_client()
        return self._client

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities or get_capabilities()

    def new_calculator(self) -> MetricCalculator:
        """A fresh calculator per week; sources cache per instance."""
        if self._calculator_factory:
            return self._calculator_factory()
        return MetricCalculator.for_client(self.client, self.capabilities)

    # ─── Reads ──────────────────────────────────────────────

    def load_metrics(self, automated_only: bool = False) -> List[Metric]:
        self.capabilities.require(Capability.SCORECARD)
        query = self.client.table("scorecard_metrics").select("*")
        if automated_only:
            query = query.eq("is_automated", True)
        result = query.order("display_order").execute()
        return [
            Metric(**{**row, "id": str(row["id"]), "automation_config": row.get("automation_config") or {}})
            for row in result.data or []
        ]

    def load_entries(self, week_starts: Iterable[date]) -> List[Dict]:
        weeks = [w.isoformat() for w in week_starts]
        if not weeks:
            return []
        result = (
            self.client.table("scorecard_entries")
            .select(ENTRY_FIELDS)
            .in_("week_start_date", weeks)
            .execute()
        )
        return result.data or []

    @operation_boundary(ScorecardDefinition, "Load scorecard")
    def get_scorecard(self) -> ScorecardDefinition:
        self.capabilities.require(Capability.SCORECARD)
        categories = self.client.table("scorecard_categories").select("*").order("display_order").execute()
        return ScorecardDefinition(
            categories=[Category(**{**c, "id": str(c["id"])}) for c in categories.data or []],
            metrics=self.load_metrics(),
        )

    @operation_boundary(EntriesForWeeks, "Load scorecard entries")
    def get_entries_for_weeks(self, week_starts: List) -> EntriesForWeeks:
        """One entry per metric per requested week: the stored row or an unsaved zero placeholder."""
        weeks = list(dict.fromkeys(week_start(w) for w in week_starts))
        metrics = self.load_metrics()
        stored = {(str(r["metric_id"]), str(r["week_start_date"])[:10]): r for r in self.load_entries(weeks)}

        grid = []
        for week in weeks:
            entries = []
            for metric in metrics:
                row = stored.get((metric.id, week.isoformat()))
                if row:
                    entries.append(_entry(row))
                else:
                    entries.append(WeeklyEntry(
                        metric_id=metric.id,
                        week_start_date=week,
                        value=0.0,
                        target_value=metric.target_value,
                    ))
            grid.append(WeekEntries(week_start_date=week, entries=entries))
        return EntriesForWeeks(weeks=grid)

    # ─── Reconciliation ─────────────────────────────────────

    def _existing_entry(self, metric_id: str, week: date) -> Optional[Dict]:
        result = (
            self.client.table("scorecard_entries")
            .select("id")
            .eq("metric_id", metric_id)
            .eq("week_start_date", week.isoformat())
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def _update_value(self, entry_id: str, value: float):
        self.client.table("scorecard_entries").update(
            {"value": value, "updated_at": _now()}
        ).eq("id", entry_id).execute()

    def write_value(self, metric: Metric, week: date, value: float, actor: Actor = SYSTEM_ACTOR):
        existing = self._existing_entry(metric.id, week)
        if existing:
            self._update_value(existing["id"], value)
            return

        try:
            self.client.table("scorecard_entries").insert({
                "metric_id": metric.id,
                "week_start_date": week.isoformat(),
                "value": value,
                "target_value": metric.target_value,
                "created_by": actor.user_id,
            }).execute()
        except Exception as e:
            if not is_unique_violation(e):
                raise
            winner = self._existing_entry(metric.id, week)
            if winner is None:
                raise
            logger.info("Concurrent insert for metric %s week %s; updating instead", metric.id, week)
            self._update_value(winner["id"], value)

    @operation_boundary(ReconcileResult, "Scorecard week sync")
    def reconcile_week(self, week, actor: Actor = SYSTEM_ACTOR) -> ReconcileResult:
        week = week_start(week)
        metrics = self.load_metrics(automated_only=True)
        calculator = self.new_calculator()
        result = ReconcileResult(weeks_synced=1, week_starts=[week])

        for metric in metrics:
            calc = calculator.calculate(metric, week)
            if calc.error:
                result.errors.append(calc.error)
            if calc.value is None:
                continue
            try:
                self.write_value(metric, week, calc.value, actor)
                result.entries_synced += 1
            except Exception as e:
                logger.error("Failed to write entry for metric %s week %s: %s", metric.id, week, e)
                result.errors.append(f"{metric.name}: {e}")

        result.message = f"Synced {result.entries_synced} entries for week {week.isoformat()}"
        logger.info("%s (%d errors)", result.message, len(result.errors))
        return result

    @operation_boundary(ReconcileResult, "Scorecard recent weeks sync")
    async def reconcile_recent_weeks(self, n: int = 3, today=None,
                                     actor: Actor = SYSTEM_ACTOR) -> ReconcileResult:
        if n < 1:
            raise ValidationError("Number of weeks must be at least 1", field="weeks")
        self.capabilities.require(Capability.SCORECARD)

        weeks = recent_week_starts(n, today)
        results = await asyncio.gather(*[
            asyncio.to_thread(self.reconcile_week, week, actor) for week in weeks
        ])

        total = ReconcileResult(week_starts=weeks)
        for week, week_result in zip(weeks, results):
            total.entries_synced += week_result.entries_synced
            if week_result.success:
                total.weeks_synced += 1
                total.errors.extend(week_result.errors)
                continue
            logger.warning("Week %s failed: %s", week, week_result.message)
            failures = week_result.errors or [week_result.message or "unknown error"]
            total.errors.extend(f"{week.isoformat()}: {error}" for error in failures)
            total.code = total.code or week_result.code

        # Partial runs succeed; the failed weeks are itemized in errors.
        total.success = total.weeks_synced > 0
        if total.success:
            total.code = None
            total.message = f"Synced {total.entries_synced} entries across {total.weeks_synced} weeks"
        else:
            total.message = f"All {len(weeks)} weeks failed: {results[0].message}"
        return total

    # ─── Manual edits ───────────────────────────────────────

    @operation_boundary(EntryResult, "Create scorecard entry")
    def create_entry(self, actor: Actor, metric_id: str, week, value: float,
                     target_value: Optional[float] = None, notes: Optional[str] = None) -> EntryResult:
        actor.require_user()
        self.capabilities.require(Capability.SCORECARD)
        week = week_start(week)

        metric = self.client.table("scorecard_metrics").select("id, target_value").eq("id", metric_id).limit(1).execute()
        if not metric.data:
            raise NotFoundError("Metric", metric_id)

        existing = self._existing_entry(metric_id, week)
        if existing:
            return self.update_entry(actor, existing["id"], value=value, target_value=target_value, notes=notes)

        inserted = self.client.table("scorecard_entries").insert({
            "metric_id": metric_id,
            "week_start_date": week.isoformat(),
            "value": value,
            "target_value": target_value if target_value is not None else metric.data[0].get("target_value"),
            "notes": notes,
            "created_by": actor.user_id,
        }).execute()
        return EntryResult(entry=_entry(inserted.data[0]), message="Entry created")

    @operation_boundary(EntryResult, "Update scorecard entry")
    def update_entry(self, actor: Actor, entry_id: str, value: Optional[float] = None,
                     target_value: Optional[float] = None, notes: Optional[str] = None) -> EntryResult:
        actor.require_user()
        self.capabilities.require(Capability.SCORECARD)

        changes = {k: v for k, v in {"value": value, "target_value": target_value, "notes": notes}.items()
                   if v is not None}
        if not changes:
            raise ValidationError("Nothing to update")
        changes["updated_at"] = _now()

        self.client.table("scorecard_entries").update(changes).eq("id", entry_id).execute()
        row = self.client.table("scorecard_entries").select(ENTRY_FIELDS).eq("id", entry_id).limit(1).execute()
        if not row.data:
            raise NotFoundError("Scorecard entry", entry_id)
        return EntryResult(entry=_entry(row.data[0]), message="Entry updated")
