"""Tests for the Supabase query helpers."""

from unittest.mock import patch

from postgrest.exceptions import APIError

from scripts.lib import supabase_client
from scripts.lib.supabase_client import (
    is_missing_table_error,
    is_unique_violation,
    select_all,
    select_in,
)
from tests.fakes import FakeSupabase


def projects(n):
    return [{"id": f"p{i:03d}", "monday_item_id": f"i{i}"} for i in range(n)]


class TestSelectAll:
    def test_reads_every_page(self):
        db = FakeSupabase({"monday_projects": projects(7)})
        rows = select_all(db, "monday_projects", select="id", page_size=3)
        assert [r["id"] for r in rows] == [f"p{i:03d}" for i in range(7)]
        assert db.calls.count(("monday_projects", "select")) == 3

    def test_exact_multiple_reads_one_empty_page(self):
        db = FakeSupabase({"monday_projects": projects(4)})
        assert len(select_all(db, "monday_projects", page_size=2)) == 4
        assert db.calls.count(("monday_projects", "select")) == 3

    def test_default_page_size(self):
        db = FakeSupabase({"monday_projects": projects(5)})
        with patch.object(supabase_client, "PAGE_SIZE", 2):
            assert len(select_all(db, "monday_projects")) == 5
        assert db.calls.count(("monday_projects", "select")) == 3


class TestSelectIn:
    def test_chunks_large_value_lists(self):
        db = FakeSupabase({"time_entries": [{"id": f"e{i}", "task_id": f"t{i}"} for i in range(450)]})
        rows = select_in(db, "time_entries", "task_id", [f"t{i}" for i in range(450)] + [None, "t0"])
        assert len(rows) == 450
        assert db.calls.count(("time_entries", "select")) == 3


class TestErrorCodes:
    def test_missing_table(self):
        err = APIError({"message": "relation does not exist", "code": "42P01", "hint": None, "details": None})
        assert is_missing_table_error(err)
        assert not is_unique_violation(err)

    def test_unique_violation(self):
        err = APIError({"message": "duplicate key", "code": "23505", "hint": None, "details": None})
        assert is_unique_violation(err)
