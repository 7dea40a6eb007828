"""
Board role configuration for the Monday.com sync.

Boards play one of four roles, read from Supabase configuration tables:

    completed     monday_completed_boards (many)       -> projects locked
    flexi done    flexi_design_completed_board (one)   -> projects locked
    leads         monday_leads_board (one)             -> projects are leads
    active        any board with board-specific column mappings

Tables that have not been migrated yet simply contribute no boards.

Admins change roles and the leads status lists through ``BoardConfigService``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set

from models.monday_models import BoardRef, BoardRoles, LeadsStatusConfig, LeadsStatusConfigResult
from scripts.lib.actor import Actor
from scripts.lib.capabilities import Capabilities, Capability, get_capabilities
from scripts.lib.errors import NotFoundError, ValidationError
from scripts.lib.logger import setup_logger
from scripts.lib.results import OperationResult, operation_boundary
from scripts.monday.column_mappings import MappingIndex, load_mappings

logger = setup_logger(__name__)

COMPLETED_TABLE = "monday_completed_boards"
FLEXI_TABLE = "flexi_design_completed_board"
LEADS_TABLE = "monday_leads_board"
STATUS_CONFIG_TABLE = "leads_status_config"


@dataclass
class BoardConfig:
    completed_board_ids: Set[str] = field(default_factory=set)
    flexi_completed_board_id: Optional[str] = None
    leads_board_id: Optional[str] = None
    active_board_ids: Set[str] = field(default_factory=set)

    @property
    def locked_board_ids(self) -> Set[str]:
        """Completed boards plus the Flexi-Design completed board."""
        ids = set(self.completed_board_ids)
        if self.flexi_completed_board_id:
            ids.add(self.flexi_completed_board_id)
        return ids

    def is_locked_board(self, board_id: Optional[str]) -> bool:
        return board_id is not None and str(board_id) in self.locked_board_ids

    def is_leads_board(self, board_id: Optional[str]) -> bool:
        return board_id is not None and self.leads_board_id == str(board_id)

    def is_active_board(self, board_id: Optional[str]) -> bool:
        return board_id is not None and str(board_id) in self.active_board_ids

    def scan_board_ids(self, sync_all_boards: bool = False) -> Set[str]:
        """Boards whose items are fetched in full. The leads board is scanned only when mapped."""
        boards = set(self.active_board_ids)
        if sync_all_boards:
            boards |= self.locked_board_ids
        else:
            boards -= self.locked_board_ids
        return boards


def _board_id(board_id) -> str:
    board_id = str(board_id or "").strip()
    if not board_id:
        raise ValidationError("Board id is required", field="board_id")
    return board_id


def _single_board_id(client, table: str) -> Optional[str]:
    result = client.table(table).select("monday_board_id").limit(1).execute()
    if result.data and result.data[0].get("monday_board_id"):
        return str(result.data[0]["monday_board_id"])
    return None


def load_board_config(client, mapped_board_ids: Iterable[str],
                      capabilities: Capabilities = None) -> BoardConfig:
    """Read board roles. ``mapped_board_ids`` are boards with board-specific mappings."""
    caps = capabilities or get_capabilities()
    config = BoardConfig(active_board_ids={str(b) for b in mapped_board_ids if b})

    if caps.has(Capability.COMPLETED_BOARDS):
        result = client.table(COMPLETED_TABLE).select("monday_board_id").execute()
        config.completed_board_ids = {
            str(r["monday_board_id"]) for r in result.data or [] if r.get("monday_board_id")
        }
    if caps.has(Capability.FLEXI_COMPLETED_BOARD):
        config.flexi_completed_board_id = _single_board_id(client, FLEXI_TABLE)
    if caps.has(Capability.LEADS_BOARD):
        config.leads_board_id = _single_board_id(client, LEADS_TABLE)

    # A board that is completed is never also active
    config.active_board_ids -= config.locked_board_ids

    logger.debug(
        "Board config: %d active, %d locked, leads=%s",
        len(config.active_board_ids), len(config.locked_board_ids), config.leads_board_id,
    )
    return config


# ─── Admin ──────────────────────────────────────────────────────

def _clean_statuses(statuses: Iterable[str]) -> List[str]:
    cleaned = []
    for status in statuses or []:
        status = (status or "").strip()
        if status and status.lower() not in {s.lower() for s in cleaned}:
            cleaned.append(status)
    return cleaned


class BoardConfigService:
    """
    Admin management of board roles and the leads status lists.

    Every write checks the caller is an admin and that the backing table has
    been migrated, both before touching the database.
    """

    def __init__(self, client=None, capabilities: Capabilities = None):
        self._client = client
        self._capabilities = capabilities

    @property
    def client(self):
        if self._client is None:
            from scripts.lib.supabase_client import get_client
            self._client = get_client()
        return self._client

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities or get_capabilities()

    def _refs(self, table: str) -> List[BoardRef]:
        result = self.client.table(table).select("monday_board_id, board_name").execute()
        return [
            BoardRef(monday_board_id=str(r["monday_board_id"]), board_name=r.get("board_name"))
            for r in result.data or [] if r.get("monday_board_id")
        ]

    @operation_boundary(BoardRoles, "Load board roles")
    def get_board_roles(self) -> BoardRoles:
        caps = self.capabilities
        roles = BoardRoles()
        if caps.has(Capability.COMPLETED_BOARDS):
            roles.completed_boards = sorted(self._refs(COMPLETED_TABLE), key=lambda b: b.board_name or "")
        if caps.has(Capability.FLEXI_COMPLETED_BOARD):
            roles.flexi_completed_board = next(iter(self._refs(FLEXI_TABLE)), None)
        if caps.has(Capability.LEADS_BOARD):
            roles.leads_board = next(iter(self._refs(LEADS_TABLE)), None)

        mapped = MappingIndex(load_mappings(self.client)).mapped_board_ids
        locked = {b.monday_board_id for b in roles.completed_boards}
        if roles.flexi_completed_board:
            locked.add(roles.flexi_completed_board.monday_board_id)
        roles.active_board_ids = sorted(mapped - locked)
        return roles

    # ─── Completed boards (many) ─────────────────────────────

    @operation_boundary(OperationResult, "Add completed board")
    def add_completed_board(self, actor: Actor, board_id: str, board_name: Optional[str] = None) -> OperationResult:
        actor.require_admin()
        self.capabilities.require(Capability.COMPLETED_BOARDS)
        board_id = _board_id(board_id)

        table = self.client.table(COMPLETED_TABLE)
        existing = table.select("id").eq("monday_board_id", board_id).limit(1).execute()
        if existing.data:
            self.client.table(COMPLETED_TABLE).update({"board_name": board_name}).eq(
                "id", existing.data[0]["id"]
            ).execute()
        else:
            self.client.table(COMPLETED_TABLE).insert({
                "monday_board_id": board_id, "board_name": board_name,
            }).execute()

        logger.info("Board %s (%s) marked completed", board_id, board_name or "unnamed")
        return OperationResult(message="Completed board added")

    @operation_boundary(OperationResult, "Remove completed board")
    def remove_completed_board(self, actor: Actor, board_id: str) -> OperationResult:
        actor.require_admin()
        self.capabilities.require(Capability.COMPLETED_BOARDS)
        board_id = _board_id(board_id)

        removed = self.client.table(COMPLETED_TABLE).delete().eq("monday_board_id", board_id).execute()
        if not removed.data:
            raise NotFoundError("Completed board", board_id)
        logger.info("Board %s no longer completed", board_id)
        return OperationResult(message="Completed board removed")

    # ─── Single-board roles ──────────────────────────────────

    def _set_single(self, table: str, board_id: str, board_name: Optional[str]):
        row = {"monday_board_id": _board_id(board_id), "board_name": board_name}
        existing = self.client.table(table).select("id").limit(1).execute()
        if existing.data:
            self.client.table(table).update(row).eq("id", existing.data[0]["id"]).execute()
        else:
            self.client.table(table).insert(row).execute()

    def _clear_single(self, table: str) -> int:
        ids = [r["id"] for r in self.client.table(table).select("id").execute().data or []]
        if ids:
            self.client.table(table).delete().in_("id", ids).execute()
        return len(ids)

    @operation_boundary(OperationResult, "Set leads board")
    def set_leads_board(self, actor: Actor, board_id: str, board_name: Optional[str] = None) -> OperationResult:
        actor.require_admin()
        self.capabilities.require(Capability.LEADS_BOARD)
        self._set_single(LEADS_TABLE, board_id, board_name)
        logger.info("Leads board set to %s", board_id)
        return OperationResult(message="Leads board saved")

    @operation_boundary(OperationResult, "Remove leads board")
    def remove_leads_board(self, actor: Actor) -> OperationResult:
        actor.require_admin()
        self.capabilities.require(Capability.LEADS_BOARD)
        self._clear_single(LEADS_TABLE)
        return OperationResult(message="Leads board removed")

    @operation_boundary(OperationResult, "Set Flexi-Design completed board")
    def set_flexi_completed_board(self, actor: Actor, board_id: str,
                                  board_name: Optional[str] = None) -> OperationResult:
        actor.require_admin()
        self.capabilities.require(Capability.FLEXI_COMPLETED_BOARD)
        self._set_single(FLEXI_TABLE, board_id, board_name)
        logger.info("Flexi-Design completed board set to %s", board_id)
        return OperationResult(message="Flexi-Design completed board saved")

    @operation_boundary(OperationResult, "Remove Flexi-Design completed board")
    def remove_flexi_completed_board(self, actor: Actor) -> OperationResult:
        actor.require_admin()
        self.capabilities.require(Capability.FLEXI_COMPLETED_BOARD)
        self._clear_single(FLEXI_TABLE)
        return OperationResult(message="Flexi-Design completed board removed")

    # ─── Leads status lists ──────────────────────────────────

    @operation_boundary(LeadsStatusConfigResult, "Load leads status config")
    def get_leads_status_config(self, actor: Actor) -> LeadsStatusConfigResult:
        actor.require_admin()
        if not self.capabilities.has(Capability.LEADS_STATUS_CONFIG):
            return LeadsStatusConfigResult()
        result = self.client.table(STATUS_CONFIG_TABLE).select(
            "included_statuses, excluded_statuses"
        ).limit(1).execute()
        row = result.data[0] if result.data else {}
        return LeadsStatusConfigResult(config=LeadsStatusConfig(
            included_statuses=row.get("included_statuses") or [],
            excluded_statuses=row.get("excluded_statuses") or [],
        ))

    @operation_boundary(LeadsStatusConfigResult, "Update leads status config")
    def update_leads_status_config(self, actor: Actor, included_statuses: Iterable[str],
                                   excluded_statuses: Iterable[str]) -> LeadsStatusConfigResult:
        actor.require_admin()
        self.capabilities.require(Capability.LEADS_STATUS_CONFIG)
        config = LeadsStatusConfig(
            included_statuses=_clean_statuses(included_statuses),
            excluded_statuses=_clean_statuses(excluded_statuses),
        )
        overlap = {s.lower() for s in config.included_statuses} & {s.lower() for s in config.excluded_statuses}
        if overlap:
            raise ValidationError(
                f"Statuses cannot be both included and excluded: {', '.join(sorted(overlap))}",
                field="excluded_statuses",
            )

        row = config.model_dump()
        existing = self.client.table(STATUS_CONFIG_TABLE).select("id").limit(1).execute()
        if existing.data:
            row["updated_at"] = datetime.now(timezone.utc).isoformat()
            self.client.table(STATUS_CONFIG_TABLE).update(row).eq("id", existing.data[0]["id"]).execute()
        else:
            self.client.table(STATUS_CONFIG_TABLE).insert(row).execute()

        logger.info(
            "Leads status config saved: %d included, %d excluded",
            len(config.included_statuses), len(config.excluded_statuses),
        )
        return LeadsStatusConfigResult(config=config, message="Leads status config saved")
