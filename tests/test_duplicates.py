"""Tests for duplicate project detection and merging."""

from unittest.mock import patch

import pytest

from scripts.lib.actor import Actor
from scripts.lib.errors import IntegrityViolationError
from scripts.monday.duplicates import DuplicateService, find_duplicate_groups, merge_duplicates, merge_group
from tests.fakes import FakeSupabase


def project(id_, item_id, board_id="100", status="active", updated_at="2024-01-01T00:00:00+00:00"):
    return {
        "id": id_, "monday_item_id": item_id, "monday_board_id": board_id, "status": status,
        "created_at": "2024-01-01T00:00:00+00:00", "updated_at": updated_at,
    }


@pytest.fixture
def db():
    return FakeSupabase({
        "monday_projects": [
            project("old", "i1", updated_at="2024-01-01T00:00:00+00:00"),
            project("new", "i1", updated_at="2024-02-01T00:00:00+00:00"),
            project("solo", "i2"),
        ],
        "monday_tasks": [
            {"id": "t1", "project_id": "old", "monday_item_id": "s1"},
            {"id": "t2", "project_id": "new", "monday_item_id": "s2"},
        ],
        "time_entries": [
            {"id": "e1", "project_id": "old", "task_id": "t1", "hours": 2},
        ],
    })


class TestFindDuplicateGroups:
    def test_scans_past_the_first_page(self, db):
        db.tables["monday_projects"][0:0] = [project(f"a{i}", f"x{i}") for i in range(3)]
        with patch("scripts.lib.supabase_client.PAGE_SIZE", 2):
            groups = find_duplicate_groups(db)
        assert [g.monday_item_id for g in groups] == ["i1"]

    def test_most_recent_row_is_kept(self, db):
        groups = find_duplicate_groups(db)
        assert len(groups) == 1
        assert groups[0].monday_item_id == "i1"
        assert groups[0].keep_id == "new"
        assert groups[0].duplicate_ids == ["old"]

    def test_locked_board_row_preferred(self, db):
        db.tables["monday_projects"][0]["monday_board_id"] = "200"
        groups = find_duplicate_groups(db, locked_board_ids={"200"})
        assert groups[0].keep_id == "old"

    def test_locked_status_preferred(self, db):
        db.tables["monday_projects"][0]["status"] = "locked"
        assert find_duplicate_groups(db)[0].keep_id == "old"


class TestMerge:
    def test_moves_tasks_and_entries_then_deletes(self, db):
        result = merge_duplicates(db)
        assert result.success
        assert result.groups_fixed == 1
        assert result.projects_deleted == 1
        assert result.tasks_moved == 1
        assert result.time_entries_moved == 1

        assert {p["id"] for p in db.rows("monday_projects")} == {"new", "solo"}
        assert {t["project_id"] for t in db.rows("monday_tasks")} == {"new"}
        assert db.rows("time_entries")[0]["project_id"] == "new"

    def test_entry_on_foreign_task_blocks_merge(self, db):
        db.tables["monday_tasks"].append({"id": "t9", "project_id": "elsewhere", "monday_item_id": "s9"})
        db.tables["time_entries"].append({"id": "e9", "project_id": "old", "task_id": "t9", "hours": 1})

        group = find_duplicate_groups(db)[0]
        with pytest.raises(IntegrityViolationError):
            merge_group(db, group)
        assert "old" in {p["id"] for p in db.rows("monday_projects")}

    def test_failed_group_is_reported(self, db):
        db.tables["monday_tasks"].append({"id": "t9", "project_id": "elsewhere", "monday_item_id": "s9"})
        db.tables["time_entries"].append({"id": "e9", "project_id": "old", "task_id": "t9", "hours": 1})

        result = merge_duplicates(db)
        assert not result.success
        assert result.groups_fixed == 0
        assert result.errors[0].startswith("Item i1:")

    def test_nothing_to_merge(self):
        db = FakeSupabase({"monday_projects": [project("a", "i1")]})
        assert merge_duplicates(db).message == "No duplicate projects found"


class TestDuplicateService:
    def test_check_requires_admin(self, db):
        result = DuplicateService(db, locked_board_ids=set()).check_duplicates(Actor("u1", "manager"))
        assert result.code == "UNAUTHORIZED"

    def test_check_lists_groups(self, db):
        result = DuplicateService(db, locked_board_ids=set()).check_duplicates(Actor("u1", "admin"))
        assert result.success
        assert [g.keep_id for g in result.duplicates] == ["new"]

    def test_fix_merges(self, db):
        result = DuplicateService(db, locked_board_ids=set()).fix_duplicates(Actor("u1", "admin"))
        assert result.projects_deleted == 1
