"""Tests for project deletion and the logged-hours summary."""

import pytest

from scripts.lib.actor import Actor
from scripts.lib.errors import IntegrityViolationError
from scripts.projects import ProjectService, remove_project
from tests.fakes import FakeSupabase

ADMIN = Actor("admin-1", "admin")


@pytest.fixture
def db():
    return FakeSupabase({
        "monday_projects": [
            {"id": "p1", "name": "Brand refresh", "client_name": "Acme", "status": "active",
             "quoted_hours": 20, "monday_board_id": "100"},
            {"id": "p2", "name": "Old campaign", "client_name": "Globex", "status": "locked",
             "quoted_hours": 10, "monday_board_id": "200"},
            {"id": "p3", "name": "Enquiry", "status": "lead", "monday_board_id": "300"},
        ],
        "monday_tasks": [
            {"id": "t1", "name": "Logo", "project_id": "p1", "quoted_hours": 8},
            {"id": "t2", "name": "Guidelines", "project_id": "p1", "quoted_hours": None},
            {"id": "t3", "name": "Launch", "project_id": "p2", "quoted_hours": 5},
        ],
        "time_entries": [
            {"id": "e1", "task_id": "t1", "project_id": "p1", "hours": 3.0},
            {"id": "e2", "task_id": "t1", "project_id": "p1", "hours": 6.5},
            {"id": "e3", "task_id": "t2", "project_id": "p1", "hours": 1.0},
            {"id": "e4", "task_id": "t3", "project_id": "p2", "hours": 2.0},
            # Task since removed upstream
            {"id": "e5", "task_id": "t-gone", "project_id": "p2", "hours": 4.0},
        ],
    })


class TestRemoveProject:
    def test_refuses_when_time_entries_exist(self, db):
        with pytest.raises(IntegrityViolationError):
            remove_project(db, "p1")
        assert {r["id"] for r in db.rows("monday_projects")} == {"p1", "p2", "p3"}

    def test_deletes_project_and_tasks(self, db):
        db.tables["monday_tasks"].append({"id": "t9", "name": "Call", "project_id": "p3"})
        remove_project(db, "p3")
        assert "p3" not in {r["id"] for r in db.rows("monday_projects")}
        assert "t9" not in {r["id"] for r in db.rows("monday_tasks")}


class TestDeleteProject:
    def test_with_entries_is_integrity_violation(self, db):
        result = ProjectService(db).delete_project(ADMIN, "p1")
        assert result.code == "INTEGRITY_VIOLATION"

    def test_without_entries_succeeds(self, db):
        assert ProjectService(db).delete_project(ADMIN, "p3").success

    def test_non_admin_rejected_before_any_write(self, db):
        result = ProjectService(db).delete_project(Actor("u1", "manager"), "p3")
        assert result.code == "UNAUTHORIZED"
        assert db.writes() == []

    def test_missing_project(self, db):
        assert ProjectService(db).delete_project(ADMIN, "nope").code == "NOT_FOUND"


class TestProjectHoursSummary:
    def test_active_and_locked_only(self, db):
        result = ProjectService(db).project_hours_summary()
        assert [p.id for p in result.projects] == ["p1", "p2"]

    def test_task_level_totals_and_time_left(self, db):
        summary = {p.id: p for p in ProjectService(db).project_hours_summary().projects}
        active = summary["p1"]
        assert active.total_logged_hours == 10.5
        tasks = {t.id: t for t in active.tasks}
        assert tasks["t1"].logged_hours == 9.5
        assert tasks["t1"].time_left == 0.0
        assert tasks["t2"].time_left is None

    def test_locked_project_uses_larger_total(self, db):
        summary = {p.id: p for p in ProjectService(db).project_hours_summary().projects}
        # Task-level total is 2.0; project-level total includes the orphaned entry
        assert summary["p2"].total_logged_hours == 6.0

    def test_excluded_boards(self, db):
        result = ProjectService(db).project_hours_summary(exclude_board_ids=["200"])
        assert [p.id for p in result.projects] == ["p1"]
