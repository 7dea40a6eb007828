"""
Duplicate project detection and merge.

Two monday_projects rows sharing one monday_item_id are merged into a keeper:

    keeper   row on a locked board / with locked status, else most recently updated
    merge    tasks move first, then time entries (each entry's task must now
             belong to the keeper), then the redundant row is verified empty
             and deleted

A group that cannot be verified is left untouched and reported.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from models.monday_models import DuplicateCheckResult, DuplicateFixResult, DuplicateGroup
from scripts.lib.actor import Actor
from scripts.lib.errors import IntegrityViolationError
from scripts.lib.logger import setup_logger
from scripts.lib.results import operation_boundary
from scripts.lib.supabase_client import select_all

logger = setup_logger(__name__)


def _keeper_rank(row: Dict, locked_board_ids: set) -> Tuple:
    on_locked_board = str(row.get("monday_board_id")) in locked_board_ids
    is_locked = row.get("status") == "locked"
    return (on_locked_board or is_locked, str(row.get("updated_at") or ""), str(row.get("created_at") or ""))


def find_duplicate_groups(client, locked_board_ids: Optional[set] = None) -> List[DuplicateGroup]:
    locked_board_ids = {str(b) for b in locked_board_ids or ()}
    rows = select_all(
        client, "monday_projects", select="id, monday_item_id, monday_board_id, status, created_at, updated_at",
    )

    by_item: Dict[str, List[Dict]] = defaultdict(list)
    for row in rows:
        if row.get("monday_item_id"):
            by_item[str(row["monday_item_id"])].append(row)

    groups = []
    for item_id, rows in sorted(by_item.items()):
        if len(rows) < 2:
            continue
        ranked = sorted(rows, key=lambda r: _keeper_rank(r, locked_board_ids), reverse=True)
        groups.append(DuplicateGroup(
            monday_item_id=item_id,
            keep_id=ranked[0]["id"],
            duplicate_ids=[r["id"] for r in ranked[1:]],
            board_ids=[r.get("monday_board_id") for r in ranked],
        ))
    return groups


def merge_group(client, group: DuplicateGroup) -> Dict[str, int]:
    """
    Fold every duplicate row of a group into its keeper.

    Raises:
        IntegrityViolationError: Dependent rows still point at a duplicate after transfer.
    """
    counts = {"tasks_moved": 0, "time_entries_moved": 0, "projects_deleted": 0}
    keep_id = group.keep_id

    for dup_id in group.duplicate_ids:
        tasks = client.table("monday_tasks").select("id").eq("project_id", dup_id).execute().data or []
        for task in tasks:
            client.table("monday_tasks").update({"project_id": keep_id}).eq("id", task["id"]).execute()
        counts["tasks_moved"] += len(tasks)

        entries = (
            client.table("time_entries").select("id, task_id").eq("project_id", dup_id).execute().data or []
        )
        for entry in entries:
            owner = (
                client.table("monday_tasks").select("project_id").eq("id", entry["task_id"]).limit(1).execute()
            )
            if not owner.data or owner.data[0]["project_id"] != keep_id:
                raise IntegrityViolationError(
                    f"Time entry {entry['id']} references a task outside the kept project",
                    entity="time_entry", entity_id=entry["id"],
                )
            client.table("time_entries").update({"project_id": keep_id}).eq("id", entry["id"]).execute()
        counts["time_entries_moved"] += len(entries)

        remaining_entries = client.table("time_entries").select("id").eq("project_id", dup_id).limit(1).execute()
        remaining_tasks = client.table("monday_tasks").select("id").eq("project_id", dup_id).limit(1).execute()
        if remaining_entries.data or remaining_tasks.data:
            raise IntegrityViolationError(
                f"Project {dup_id} still has dependent rows after transfer",
                entity="project", entity_id=dup_id,
            )

        client.table("monday_projects").delete().eq("id", dup_id).execute()
        counts["projects_deleted"] += 1
        logger.info("Merged duplicate project %s into %s (item %s)", dup_id, keep_id, group.monday_item_id)

    return counts


def merge_duplicates(client, locked_board_ids: Optional[set] = None) -> DuplicateFixResult:
    """Merge every duplicate group; a failing group is reported, the rest proceed."""
    result = DuplicateFixResult()
    groups = find_duplicate_groups(client, locked_board_ids)

    for group in groups:
        try:
            counts = merge_group(client, group)
        except Exception as e:
            logger.error("Duplicate merge failed for item %s: %s", group.monday_item_id, e)
            result.errors.append(f"Item {group.monday_item_id}: {e}")
            continue
        result.groups_fixed += 1
        result.projects_deleted += counts["projects_deleted"]
        result.tasks_moved += counts["tasks_moved"]
        result.time_entries_moved += counts["time_entries_moved"]

    result.success = not result.errors
    result.message = (
        f"Merged {result.groups_fixed} of {len(groups)} duplicate groups"
        if groups else "No duplicate projects found"
    )
    return result


class DuplicateService:
    """Admin entry points for the duplicate checker."""

    def __init__(self, client=None, locked_board_ids: Optional[set] = None):
        self._client = client
        self.locked_board_ids = locked_board_ids

    @property
    def client(self):
        if self._client is None:
            from scripts.lib.supabase_client import get_client
            self._client = get_client()
        return self._client

    def _locked_boards(self) -> set:
        if self.locked_board_ids is not None:
            return self.locked_board_ids
        from scripts.monday.boards import load_board_config
        return load_board_config(self.client, ()).locked_board_ids

    @operation_boundary(DuplicateCheckResult, "Check duplicate projects")
    def check_duplicates(self, actor: Actor) -> DuplicateCheckResult:
        actor.require_admin()
        groups = find_duplicate_groups(self.client, self._locked_boards())
        return DuplicateCheckResult(
            duplicates=groups,
            message=f"Found {len(groups)} duplicate groups",
        )

    @operation_boundary(DuplicateFixResult, "Fix duplicate projects")
    def fix_duplicates(self, actor: Actor) -> DuplicateFixResult:
        actor.require_admin()
        return merge_duplicates(self.client, self._locked_boards())
