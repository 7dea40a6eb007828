"""Tests for weekly scorecard entry reconciliation."""

from datetime import date

import pytest

from models.scorecard_models import CalculationResult
from scripts.lib.actor import Actor
from scripts.lib.capabilities import Capabilities, Capability
from scripts.scorecard.reconciler import ScorecardReconciler
from tests.fakes import FakeSupabase


class StubCalculator:
    """Fixed value per metric id; ``None`` means no data."""

    def __init__(self, values, errors=None):
        self.values = values
        self.errors = errors or {}

    def calculate(self, metric, week_start):
        return CalculationResult(
            metric_id=metric.id,
            value=self.values.get(metric.id),
            error=self.errors.get(metric.id),
        )


def metric_row(id_, name, source, target=None, automated=True, order=0):
    return {
        "id": id_, "category_id": "c1", "name": name, "unit": "count",
        "target_value": target, "is_automated": automated,
        "automation_source": source, "automation_config": {}, "display_order": order,
    }


@pytest.fixture
def db():
    return FakeSupabase({
        "scorecard_categories": [{"id": "c1", "name": "Sales", "display_order": 0}],
        "scorecard_metrics": [
            metric_row("hours", "Hours logged", "time_tracking", target=120, order=1),
            metric_row("leads", "New leads", "leads", target=5, order=2),
            metric_row("manual", "NPS", None, target=50, automated=False, order=3),
            metric_row("weird", "Mystery", "weather", order=4),
        ],
        "scorecard_entries": [],
    })


def reconciler(db, values=None, errors=None):
    return ScorecardReconciler(
        client=db,
        calculator_factory=lambda: StubCalculator(values or {}, errors),
    )


class TestReconcileWeek:
    def test_inserts_with_metric_target(self, db):
        result = reconciler(db, {"hours": 5.5, "leads": 1}).reconcile_week(date(2024, 3, 11))
        assert result.success
        assert result.entries_synced == 2
        rows = {r["metric_id"]: r for r in db.rows("scorecard_entries")}
        assert rows["hours"]["value"] == 5.5
        assert rows["hours"]["target_value"] == 120
        assert rows["hours"]["week_start_date"] == "2024-03-11"

    def test_idempotent_single_row_per_metric_week(self, db):
        rec = reconciler(db, {"hours": 5.5})
        rec.reconcile_week(date(2024, 3, 11))
        rec.reconcile_week(date(2024, 3, 13))
        rows = [r for r in db.rows("scorecard_entries") if r["metric_id"] == "hours"]
        assert len(rows) == 1

    def test_update_changes_value_only(self, db):
        db.tables["scorecard_entries"].append({
            "id": "e1", "metric_id": "hours", "week_start_date": "2024-03-11",
            "value": 1.0, "target_value": 99, "notes": "kept",
        })
        reconciler(db, {"hours": 8.0}).reconcile_week(date(2024, 3, 11))
        row = db.rows("scorecard_entries")[0]
        assert row["value"] == 8.0
        assert row["target_value"] == 99
        assert row["notes"] == "kept"

    def test_none_value_writes_nothing(self, db):
        result = reconciler(db, {}).reconcile_week(date(2024, 3, 11))
        assert result.entries_synced == 0
        assert db.writes("scorecard_entries") == []

    def test_unknown_source_writes_nothing(self, db):
        reconciler(db, {"hours": 2}).reconcile_week(date(2024, 3, 11))
        assert {r["metric_id"] for r in db.rows("scorecard_entries")} == {"hours"}

    def test_metric_errors_are_collected(self, db):
        result = reconciler(db, {"hours": 3}, {"leads": "New leads: boom"}).reconcile_week(date(2024, 3, 11))
        assert result.success
        assert result.entries_synced == 1
        assert result.errors == ["New leads: boom"]

    def test_insert_race_falls_back_to_update(self, db):
        rec = reconciler(db, {"hours": 9.0})
        original = rec._existing_entry
        calls = {"n": 0}

        def stale_first_read(metric_id, week):
            calls["n"] += 1
            if calls["n"] == 1:
                # Another run inserts between our read and our insert
                db.tables["scorecard_entries"].append({
                    "id": "winner", "metric_id": "hours", "week_start_date": "2024-03-11", "value": 1.0,
                })
                return None
            return original(metric_id, week)

        rec._existing_entry = stale_first_read
        result = rec.reconcile_week(date(2024, 3, 11))
        assert result.success
        rows = db.rows("scorecard_entries")
        assert len(rows) == 1
        assert rows[0]["id"] == "winner"
        assert rows[0]["value"] == 9.0

    def test_missing_scorecard_tables(self):
        db = FakeSupabase()
        caps = Capabilities({cap: True for cap in Capability if cap != Capability.SCORECARD})
        result = ScorecardReconciler(client=db, capabilities=caps).reconcile_week(date(2024, 3, 11))
        assert not result.success
        assert result.code == "NOT_CONFIGURED"
        assert "029_add_scorecard_tables.sql" in result.message


class FlakyCalculator(StubCalculator):
    """Raises for one week, as when the entry store times out mid-run."""

    def __init__(self, values, failing_week):
        super().__init__(values)
        self.failing_week = failing_week

    def calculate(self, metric, week_start):
        if week_start == self.failing_week:
            raise ConnectionError("store timeout")
        return super().calculate(metric, week_start)


class TestReconcileRecentWeeks:
    @pytest.mark.asyncio
    async def test_three_weeks_ending_this_week(self, db):
        result = await reconciler(db, {"hours": 1.0}).reconcile_recent_weeks(3, today=date(2024, 3, 13))
        assert result.success
        assert result.week_starts == [date(2024, 2, 26), date(2024, 3, 4), date(2024, 3, 11)]
        assert result.weeks_synced == 3
        assert result.entries_synced == 3
        assert result.message == "Synced 3 entries across 3 weeks"
        weeks = sorted(r["week_start_date"] for r in db.rows("scorecard_entries"))
        assert weeks == ["2024-02-26", "2024-03-04", "2024-03-11"]

    @pytest.mark.asyncio
    async def test_one_failed_week_is_partial_success(self, db):
        flaky = ScorecardReconciler(
            client=db,
            calculator_factory=lambda: FlakyCalculator({"hours": 2.0, "leads": 1.0}, date(2024, 3, 4)),
        )
        result = await flaky.reconcile_recent_weeks(3, today=date(2024, 3, 13))

        assert result.success
        assert result.code is None
        assert result.weeks_synced == 2
        assert result.entries_synced == 4
        assert result.message == "Synced 4 entries across 2 weeks"
        assert result.errors == ["2024-03-04: store timeout"]
        weeks = sorted({r["week_start_date"] for r in db.rows("scorecard_entries")})
        assert weeks == ["2024-02-26", "2024-03-11"]

    @pytest.mark.asyncio
    async def test_every_week_failing_is_failure(self, db):
        broken = ScorecardReconciler(
            client=db,
            calculator_factory=lambda: FlakyCalculator({}, date(2024, 3, 11)),
        )
        result = await broken.reconcile_recent_weeks(1, today=date(2024, 3, 13))

        assert not result.success
        assert result.weeks_synced == 0
        assert result.message == "All 1 weeks failed: store timeout"
        assert result.errors == ["2024-03-11: store timeout"]

    @pytest.mark.asyncio
    async def test_rejects_zero_weeks(self, db):
        result = await reconciler(db).reconcile_recent_weeks(0)
        assert not result.success
        assert result.code == "VALIDATION_ERROR"


class TestEntriesForWeeks:
    def test_placeholders_never_written(self, db):
        db.tables["scorecard_entries"].append({
            "id": "e1", "metric_id": "hours", "week_start_date": "2024-03-11", "value": 7.0, "target_value": 120,
        })
        result = reconciler(db).get_entries_for_weeks([date(2024, 3, 11), date(2024, 3, 18)])
        assert result.success
        assert db.writes() == []

        first, second = result.weeks
        assert len(first.entries) == 4
        stored = next(e for e in first.entries if e.metric_id == "hours")
        assert stored.id == "e1"
        assert stored.value == 7.0

        placeholder = next(e for e in second.entries if e.metric_id == "leads")
        assert placeholder.id == ""
        assert placeholder.is_placeholder
        assert placeholder.value == 0.0
        assert placeholder.target_value == 5


class TestManualEntries:
    def test_create_then_update(self, db):
        rec = reconciler(db)
        actor = Actor("u1", "employee")
        created = rec.create_entry(actor, "manual", date(2024, 3, 12), 42, notes="survey")
        assert created.success
        assert created.entry.week_start_date == date(2024, 3, 11)
        assert created.entry.target_value == 50

        updated = rec.update_entry(actor, created.entry.id, value=45)
        assert updated.entry.value == 45
        assert updated.entry.notes == "survey"

    def test_create_for_existing_week_updates(self, db):
        rec = reconciler(db)
        actor = Actor("u1", "employee")
        rec.create_entry(actor, "manual", date(2024, 3, 11), 40)
        rec.create_entry(actor, "manual", date(2024, 3, 11), 41)
        rows = [r for r in db.rows("scorecard_entries") if r["metric_id"] == "manual"]
        assert len(rows) == 1
        assert rows[0]["value"] == 41

    def test_anonymous_caller_rejected(self, db):
        result = reconciler(db).create_entry(Actor(None), "manual", date(2024, 3, 11), 1)
        assert result.code == "UNAUTHORIZED"
        assert db.writes() == []

    def test_unknown_metric(self, db):
        result = reconciler(db).create_entry(Actor("u1"), "nope", date(2024, 3, 11), 1)
        assert result.code == "NOT_FOUND"
