"""Tests for board role configuration and its admin operations."""

import pytest
from fastapi.testclient import TestClient

from dashboard.api import main
from dashboard.api.routers import monday as monday_router
from scripts.lib.actor import Actor
from scripts.lib.capabilities import Capabilities, Capability
from scripts.monday.boards import BoardConfigService, load_board_config
from tests.fakes import FakeSupabase

ADMIN = Actor(user_id="admin-1", role="admin")
EMPLOYEE = Actor(user_id="u1", role="employee")


@pytest.fixture
def db():
    return FakeSupabase({
        "monday_completed_boards": [{"id": "cb1", "monday_board_id": "200", "board_name": "Done 2023"}],
        "monday_leads_board": [],
        "flexi_design_completed_board": [],
        "leads_status_config": [],
        "monday_column_mappings": [
            {"id": "m1", "column_type": "client", "board_id": "100", "monday_column_id": "text_client"},
            {"id": "m2", "column_type": "client", "board_id": "200", "monday_column_id": "text_client"},
        ],
    })


@pytest.fixture
def service(db):
    return BoardConfigService(client=db)


class TestBoardRoles:
    def test_roles_and_active_boards(self, service):
        roles = service.get_board_roles()
        assert roles.success
        assert [b.monday_board_id for b in roles.completed_boards] == ["200"]
        assert roles.leads_board is None
        assert roles.active_board_ids == ["100"]

    def test_unmigrated_tables_contribute_nothing(self, db):
        caps = Capabilities({Capability.COMPLETED_BOARDS: False})
        roles = BoardConfigService(client=db, capabilities=caps).get_board_roles()
        assert roles.completed_boards == []
        assert roles.active_board_ids == ["100", "200"]


class TestCompletedBoards:
    def test_add_locks_board_for_sync(self, service, db):
        result = service.add_completed_board(ADMIN, "100", "Studio Projects")
        assert result.success
        config = load_board_config(db, ["100", "200"])
        assert config.locked_board_ids == {"100", "200"}
        assert config.active_board_ids == set()

    def test_add_existing_renames(self, service, db):
        service.add_completed_board(ADMIN, "200", "Done (archive)")
        rows = db.rows("monday_completed_boards")
        assert len(rows) == 1
        assert rows[0]["board_name"] == "Done (archive)"

    def test_remove(self, service, db):
        assert service.remove_completed_board(ADMIN, "200").success
        assert db.rows("monday_completed_boards") == []

    def test_remove_unknown_board(self, service):
        result = service.remove_completed_board(ADMIN, "999")
        assert result.code == "NOT_FOUND"

    def test_blank_board_id(self, service, db):
        result = service.add_completed_board(ADMIN, "  ")
        assert result.code == "VALIDATION_ERROR"
        assert db.writes("monday_completed_boards") == []

    def test_employee_rejected_before_any_write(self, service, db):
        result = service.add_completed_board(EMPLOYEE, "100")
        assert result.code == "UNAUTHORIZED"
        assert db.writes() == []

    def test_missing_table_names_migration(self, db):
        caps = Capabilities({Capability.COMPLETED_BOARDS: False})
        result = BoardConfigService(client=db, capabilities=caps).add_completed_board(ADMIN, "100")
        assert result.code == "NOT_CONFIGURED"
        assert "003_add_completed_boards.sql" in result.message
        assert db.writes() == []


class TestSingleBoardRoles:
    def test_set_leads_board_then_replace(self, service, db):
        service.set_leads_board(ADMIN, "300", "Leads")
        service.set_leads_board(ADMIN, "301", "Leads 2024")
        rows = db.rows("monday_leads_board")
        assert len(rows) == 1
        assert rows[0]["monday_board_id"] == "301"
        assert load_board_config(db, []).leads_board_id == "301"

    def test_remove_leads_board(self, service, db):
        service.set_leads_board(ADMIN, "300")
        assert service.remove_leads_board(ADMIN).success
        assert db.rows("monday_leads_board") == []
        assert load_board_config(db, []).leads_board_id is None

    def test_remove_when_unset_is_success(self, service):
        assert service.remove_leads_board(ADMIN).success

    def test_flexi_completed_board_is_locked(self, service, db):
        assert service.set_flexi_completed_board(ADMIN, "400", "Flexi done").success
        assert load_board_config(db, ["400"]).is_locked_board("400")
        service.remove_flexi_completed_board(ADMIN)
        assert db.rows("flexi_design_completed_board") == []

    def test_leads_board_needs_migration(self, db):
        caps = Capabilities({Capability.LEADS_BOARD: False})
        result = BoardConfigService(client=db, capabilities=caps).set_leads_board(ADMIN, "300")
        assert result.code == "NOT_CONFIGURED"
        assert "005_add_leads_board.sql" in result.message

    def test_employee_cannot_clear(self, service):
        assert service.remove_flexi_completed_board(EMPLOYEE).code == "UNAUTHORIZED"


class TestLeadsStatusConfig:
    def test_update_creates_then_updates_single_row(self, service, db):
        service.update_leads_status_config(ADMIN, ["Qualified"], ["Lost"])
        result = service.update_leads_status_config(ADMIN, [" Qualified ", "qualified", "Proposal", ""], [])
        assert result.success
        assert result.config.included_statuses == ["Qualified", "Proposal"]
        rows = db.rows("leads_status_config")
        assert len(rows) == 1
        assert rows[0]["excluded_statuses"] == []

    def test_read_back(self, service):
        service.update_leads_status_config(ADMIN, ["Qualified"], ["Lost"])
        config = service.get_leads_status_config(ADMIN).config
        assert config.included_statuses == ["Qualified"]
        assert config.excluded_statuses == ["Lost"]

    def test_status_in_both_lists_rejected(self, service, db):
        result = service.update_leads_status_config(ADMIN, ["Lost"], ["lost"])
        assert result.code == "VALIDATION_ERROR"
        assert db.rows("leads_status_config") == []

    def test_unmigrated_read_is_empty(self, db):
        caps = Capabilities({Capability.LEADS_STATUS_CONFIG: False})
        result = BoardConfigService(client=db, capabilities=caps).get_leads_status_config(ADMIN)
        assert result.success
        assert result.config.included_statuses == []

    def test_employee_rejected(self, service):
        assert service.update_leads_status_config(EMPLOYEE, [], []).code == "UNAUTHORIZED"


class TestBoardRoutes:
    @pytest.fixture
    def client(self, db):
        main.app.dependency_overrides[monday_router.get_board_service] = lambda: BoardConfigService(client=db)
        yield TestClient(main.app)
        main.app.dependency_overrides.clear()

    def test_list(self, client):
        resp = client.get("/api/monday/boards")
        assert resp.status_code == 200
        assert resp.json()["active_board_ids"] == ["100"]

    def test_mark_and_unmark_completed(self, client, db):
        resp = client.put("/api/monday/boards/completed", json={"board_id": "100", "board_name": "Studio"})
        assert resp.status_code == 200
        assert {r["monday_board_id"] for r in db.rows("monday_completed_boards")} == {"100", "200"}
        assert client.delete("/api/monday/boards/completed/100").status_code == 200
        assert client.delete("/api/monday/boards/completed/100").status_code == 404

    def test_set_and_clear_leads_board(self, client, db):
        assert client.put("/api/monday/boards/leads", json={"board_id": "300"}).status_code == 200
        assert db.rows("monday_leads_board")[0]["monday_board_id"] == "300"
        assert client.delete("/api/monday/boards/leads").status_code == 200
        assert db.rows("monday_leads_board") == []

    def test_empty_board_id_is_422(self, client):
        assert client.put("/api/monday/boards/flexi-completed", json={"board_id": ""}).status_code == 422

    def test_leads_status_config_conflict_is_400(self, client):
        resp = client.put(
            "/api/monday/leads-status-config",
            json={"included_statuses": ["Won"], "excluded_statuses": ["won"]},
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "VALIDATION_ERROR"
