"""Tests for time entry writes and the locked-project rule."""

from datetime import date

import pytest

from scripts.lib.actor import Actor
from scripts.time_tracking import TimeTrackingService
from tests.fakes import FakeSupabase

ADMIN = Actor("admin-1", "admin")
ALICE = Actor("alice", "employee")
BOB = Actor("bob", "employee")


@pytest.fixture
def db():
    return FakeSupabase({
        "monday_projects": [
            {"id": "p-open", "status": "active"},
            {"id": "p-locked", "status": "locked"},
        ],
        "monday_tasks": [
            {"id": "t-open", "project_id": "p-open"},
            {"id": "t-other", "project_id": "p-open"},
            {"id": "t-locked", "project_id": "p-locked"},
        ],
        "time_entries": [
            {"id": "e-locked", "user_id": "alice", "task_id": "t-locked", "project_id": "p-locked",
             "date": "2024-03-11", "hours": 2.0, "notes": None},
            {"id": "e-open", "user_id": "alice", "task_id": "t-open", "project_id": "p-open",
             "date": "2024-03-12", "hours": 1.5, "notes": None},
        ],
    })


@pytest.fixture
def service(db):
    return TimeTrackingService(db)


class TestCreate:
    def test_creates_entry_for_self(self, service, db):
        result = service.create_entry(ALICE, "t-other", "p-open", "2024-03-13", 3)
        assert result.success
        assert result.entry.user_id == "alice"
        assert result.entry.date == date(2024, 3, 13)
        assert result.entry.hours == 3.0
        assert len(db.rows("time_entries")) == 3

    def test_admin_logs_for_another_user(self, service):
        result = service.create_entry(ADMIN, "t-other", "p-open", "2024-03-13", 1, user_id="bob")
        assert result.entry.user_id == "bob"

    def test_employee_cannot_log_for_another_user(self, service, db):
        result = service.create_entry(ALICE, "t-other", "p-open", "2024-03-13", 1, user_id="bob")
        assert result.code == "UNAUTHORIZED"
        assert db.writes() == []

    @pytest.mark.parametrize("actor", [ALICE, ADMIN])
    def test_locked_project_rejected_for_everyone(self, service, db, actor):
        result = service.create_entry(actor, "t-locked", "p-locked", "2024-03-13", 1, user_id="alice")
        assert result.code == "INTEGRITY_VIOLATION"
        assert result.message == "Cannot add time entries for locked projects"
        assert db.writes() == []

    @pytest.mark.parametrize("hours", [0, -1, "abc"])
    def test_hours_must_be_positive(self, service, hours):
        result = service.create_entry(ALICE, "t-other", "p-open", "2024-03-13", hours)
        assert result.code == "VALIDATION_ERROR"

    def test_duplicate_user_task_date(self, service):
        result = service.create_entry(ALICE, "t-open", "p-open", "2024-03-12", 1)
        assert result.code == "INTEGRITY_VIOLATION"
        assert result.message.startswith("Time entry already exists for this task and date")

    def test_task_must_belong_to_project(self, service):
        result = service.create_entry(ALICE, "t-locked", "p-open", "2024-03-13", 1)
        assert result.code == "VALIDATION_ERROR"

    def test_unknown_project(self, service):
        assert service.create_entry(ALICE, "t-open", "nope", "2024-03-13", 1).code == "NOT_FOUND"

    def test_anonymous_rejected(self, service):
        assert service.create_entry(Actor(None), "t-open", "p-open", "2024-03-13", 1).code == "UNAUTHORIZED"


class TestUpdate:
    def test_owner_updates_hours_and_notes(self, service):
        result = service.update_entry(ALICE, "e-open", hours=4, notes="revisions")
        assert result.success
        assert result.entry.hours == 4.0
        assert result.entry.notes == "revisions"

    def test_other_employee_rejected(self, service, db):
        result = service.update_entry(BOB, "e-open", hours=4)
        assert result.code == "UNAUTHORIZED"
        assert db.writes() == []

    def test_admin_may_update_any_open_entry(self, service):
        assert service.update_entry(ADMIN, "e-open", hours=2).success

    @pytest.mark.parametrize("actor", [ALICE, ADMIN])
    def test_locked_entry_is_frozen(self, service, db, actor):
        result = service.update_entry(actor, "e-locked", hours=5)
        assert result.code == "INTEGRITY_VIOLATION"
        assert result.message == "Cannot update time entries for locked projects"
        assert db.rows("time_entries")[0]["hours"] == 2.0

    def test_moving_onto_existing_date_rejected(self, service, db):
        db.tables["time_entries"].append({
            "id": "e-next", "user_id": "alice", "task_id": "t-open", "project_id": "p-open",
            "date": "2024-03-13", "hours": 1.0,
        })
        result = service.update_entry(ALICE, "e-next", entry_date="2024-03-12")
        assert result.code == "INTEGRITY_VIOLATION"

    def test_nothing_to_update(self, service):
        assert service.update_entry(ALICE, "e-open").code == "VALIDATION_ERROR"

    def test_missing_entry(self, service):
        assert service.update_entry(ALICE, "missing", hours=1).code == "NOT_FOUND"


class TestDelete:
    def test_owner_deletes(self, service, db):
        assert service.delete_entry(ALICE, "e-open").success
        assert {r["id"] for r in db.rows("time_entries")} == {"e-locked"}

    @pytest.mark.parametrize("actor", [ALICE, ADMIN])
    def test_locked_entry_cannot_be_deleted(self, service, db, actor):
        result = service.delete_entry(actor, "e-locked")
        assert result.code == "INTEGRITY_VIOLATION"
        assert result.message == "Cannot delete time entries for locked projects"
        assert len(db.rows("time_entries")) == 2


class TestList:
    def test_filters_by_range_and_user(self, service, db):
        db.tables["time_entries"].append({
            "id": "e-bob", "user_id": "bob", "task_id": "t-open", "project_id": "p-open",
            "date": "2024-03-12", "hours": 0.5,
        })
        result = service.list_entries("2024-03-12", "2024-03-17", user_id="alice")
        assert [e.id for e in result.entries] == ["e-open"]
        assert result.total_hours == 1.5

    def test_rejects_inverted_range(self, service):
        assert service.list_entries("2024-03-17", "2024-03-11").code == "VALIDATION_ERROR"
