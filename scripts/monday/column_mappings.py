"""
Column Mapping Resolver
========================

Decides which Monday.com column holds a semantic field (client, quoted hours,
quote value, timeline, dates, status) for a given board.

Resolution is an ordered chain of steps; the first step that yields a mapping
wins and an exhausted chain yields None (the field is skipped, never an error):

    1. board-specific mapping
    2. Flexi-Design sibling   (board name contains "flexi": borrow another board's mapping)
    3. global mapping         (skipped for quote_value on completed boards,
                               or when the caller requires a board-specific mapping)

Admin operations (list / save / delete) sit on ``ColumnMappingService``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Set

from models.monday_models import ColumnMapping, ColumnMappingList, ColumnType
from scripts.lib.actor import Actor
from scripts.lib.errors import ValidationError
from scripts.lib.logger import setup_logger
from scripts.lib.results import OperationResult, operation_boundary

logger = setup_logger(__name__)

FLEXI_MARKER = "flexi"

# Completed boards use their own column layouts for these fields
BOARD_SPECIFIC_ON_COMPLETED = {ColumnType.QUOTE_VALUE}


@dataclass(frozen=True)
class ResolutionContext:
    field: ColumnType
    board_id: Optional[str]
    board_name: str = ""
    is_completed_board: bool = False
    require_board_specific: bool = False

    @property
    def is_flexi(self) -> bool:
        return FLEXI_MARKER in (self.board_name or "").lower()


ResolutionStep = Callable[["MappingIndex", ResolutionContext], Optional[ColumnMapping]]


class MappingIndex:
    """All mappings, indexed by (field, board)."""

    def __init__(self, mappings: Iterable[ColumnMapping],
                 board_names: Optional[Dict[str, str]] = None):
        self.by_board: Dict[str, Dict[ColumnType, ColumnMapping]] = {}
        self.global_: Dict[ColumnType, ColumnMapping] = {}
        self.board_names = dict(board_names or {})

        for mapping in mappings:
            if mapping.board_id is None:
                self.global_[mapping.column_type] = mapping
            else:
                self.by_board.setdefault(str(mapping.board_id), {})[mapping.column_type] = mapping

    @property
    def mapped_board_ids(self) -> Set[str]:
        return set(self.by_board)

    def board_specific(self, field: ColumnType, board_id: Optional[str]) -> Optional[ColumnMapping]:
        if board_id is None:
            return None
        return self.by_board.get(str(board_id), {}).get(field)

    def global_mapping(self, field: ColumnType) -> Optional[ColumnMapping]:
        return self.global_.get(field)

    def sibling_mapping(self, field: ColumnType, board_id: Optional[str]) -> Optional[ColumnMapping]:
        """Same field mapped on another board, preferring other Flexi-Design boards."""
        others = [b for b in sorted(self.by_board) if b != str(board_id)]
        flexi_first = sorted(
            others, key=lambda b: FLEXI_MARKER not in self.board_names.get(b, "").lower(),
        )
        for other in flexi_first:
            mapping = self.by_board[other].get(field)
            if mapping:
                return mapping
        return None


# ─── Resolution steps ───────────────────────────────────────

def board_specific_step(index: MappingIndex, ctx: ResolutionContext) -> Optional[ColumnMapping]:
    return index.board_specific(ctx.field, ctx.board_id)


def flexi_sibling_step(index: MappingIndex, ctx: ResolutionContext) -> Optional[ColumnMapping]:
    if not ctx.is_flexi:
        return None
    return index.sibling_mapping(ctx.field, ctx.board_id)


def global_step(index: MappingIndex, ctx: ResolutionContext) -> Optional[ColumnMapping]:
    if ctx.require_board_specific:
        return None
    if ctx.is_completed_board and ctx.field in BOARD_SPECIFIC_ON_COMPLETED:
        return None
    return index.global_mapping(ctx.field)


DEFAULT_CHAIN: List[ResolutionStep] = [board_specific_step, flexi_sibling_step, global_step]


class ColumnResolver:
    """Runs the resolution chain against a mapping index."""

    def __init__(self, mappings: Iterable[ColumnMapping],
                 board_names: Optional[Dict[str, str]] = None,
                 completed_board_ids: Optional[Set[str]] = None,
                 chain: Optional[List[ResolutionStep]] = None):
        self.index = mappings if isinstance(mappings, MappingIndex) else MappingIndex(mappings, board_names)
        self.completed_board_ids = {str(b) for b in completed_board_ids or ()}
        self.chain = chain or DEFAULT_CHAIN

    def resolve(self, field, board_id: Optional[str], board_name: Optional[str] = None,
                require_board_specific: bool = False) -> Optional[ColumnMapping]:
        try:
            field = ColumnType(field)
        except ValueError:
            logger.debug("Unknown column type %r", field)
            return None

        board_id = str(board_id) if board_id is not None else None
        ctx = ResolutionContext(
            field=field,
            board_id=board_id,
            board_name=board_name if board_name is not None else self.index.board_names.get(board_id or "", ""),
            is_completed_board=board_id in self.completed_board_ids,
            require_board_specific=require_board_specific,
        )
        for step in self.chain:
            mapping = step(self.index, ctx)
            if mapping is not None:
                return mapping
        return None

    def column_id(self, field, board_id: Optional[str], board_name: Optional[str] = None,
                  require_board_specific: bool = False) -> Optional[str]:
        mapping = self.resolve(field, board_id, board_name, require_board_specific)
        return mapping.monday_column_id if mapping else None


def resolve(field, board_id: Optional[str], mappings: Iterable[ColumnMapping]) -> Optional[ColumnMapping]:
    """Board-specific mapping for ``field``, else the global one, else None."""
    return ColumnResolver(mappings, chain=[board_specific_step, global_step]).resolve(field, board_id)


# ─── Persistence & admin operations ─────────────────────────

def load_mappings(client) -> List[ColumnMapping]:
    result = (
        client.table("monday_column_mappings")
        .select("id, column_type, board_id, monday_column_id, workspace_id")
        .execute()
    )
    mappings = []
    for row in result.data or []:
        try:
            mappings.append(ColumnMapping(
                id=str(row["id"]) if row.get("id") is not None else None,
                column_type=row["column_type"],
                board_id=str(row["board_id"]) if row.get("board_id") else None,
                monday_column_id=row["monday_column_id"],
                workspace_id=row.get("workspace_id"),
            ))
        except ValueError:
            logger.warning("Ignoring mapping with unknown column type: %s", row.get("column_type"))
    return mappings


class ColumnMappingService:
    """Admin CRUD over monday_column_mappings."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            from scripts.lib.supabase_client import get_client
            self._client = get_client()
        return self._client

    @operation_boundary(ColumnMappingList, "List column mappings")
    def list_mappings(self, board_id: Optional[str] = None) -> ColumnMappingList:
        """Effective mappings for a board (board-specific over global), or the global set."""
        index = MappingIndex(load_mappings(self.client))
        effective = dict(index.global_)
        if board_id is not None:
            effective.update(index.by_board.get(str(board_id), {}))
        return ColumnMappingList(board_id=board_id, mappings=list(effective.values()))

    @operation_boundary(OperationResult, "Save column mapping")
    def save_mapping(self, actor: Actor, column_type, monday_column_id: str,
                     board_id: Optional[str] = None, workspace_id: Optional[str] = None) -> OperationResult:
        actor.require_admin()
        try:
            column_type = ColumnType(column_type)
        except ValueError:
            raise ValidationError(f"Unknown column type: {column_type}", field="column_type")
        if not monday_column_id:
            raise ValidationError("Monday column id is required", field="monday_column_id")

        table = self.client.table("monday_column_mappings")
        query = table.select("id").eq("column_type", column_type.value)
        query = query.eq("board_id", board_id) if board_id else query.is_("board_id", "null")
        existing = query.limit(1).execute()

        row = {
            "column_type": column_type.value,
            "monday_column_id": monday_column_id,
            "board_id": board_id,
            "workspace_id": workspace_id,
        }
        if existing.data:
            self.client.table("monday_column_mappings").update(row).eq("id", existing.data[0]["id"]).execute()
        else:
            self.client.table("monday_column_mappings").insert(row).execute()

        logger.info("Saved %s mapping for board %s -> %s", column_type.value, board_id or "global", monday_column_id)
        return OperationResult(message="Column mapping saved")

    @operation_boundary(OperationResult, "Delete column mappings")
    def delete_mappings(self, actor: Actor, board_id: Optional[str] = None) -> OperationResult:
        """Remove every mapping for a board (or the global set when board_id is None)."""
        actor.require_admin()
        query = self.client.table("monday_column_mappings").delete()
        query = query.eq("board_id", board_id) if board_id else query.is_("board_id", "null")
        query.execute()
        logger.info("Deleted column mappings for board %s", board_id or "global")
        return OperationResult(message="Column mappings deleted")
