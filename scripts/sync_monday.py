"""
Monday.com Project Sync
========================

Mirrors Monday.com boards into monday_projects / monday_tasks from the
command line, printing the same progress events the dashboard streams.

By default projects that disappeared upstream are left alone; pass
--allow-deletion to archive or delete them.

Usage:
    python scripts/sync_monday.py
    python scripts/sync_monday.py --all-boards        # rescan completed boards too
    python scripts/sync_monday.py --allow-deletion
"""

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

from models.monday_models import SyncPhase, SyncProgressEvent
from scripts.lib.capabilities import detect_capabilities
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import get_client
from scripts.monday.sync import MondaySync

logger = setup_logger("sync_monday")


def log_progress(event: SyncProgressEvent):
    if event.phase == SyncPhase.SYNCING:
        logger.info("  [%d/%d] %s", event.project_index or 0, event.total_projects or 0, event.project_name)
    elif event.phase == SyncPhase.ERROR:
        logger.error("  %s", event.message)
    else:
        logger.info("%s: %s", event.phase.value, event.message)


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync Monday.com projects and tasks to Supabase")
    parser.add_argument("--all-boards", action="store_true",
                        help="Fetch completed boards in full instead of by known item id")
    parser.add_argument("--allow-deletion", action="store_true",
                        help="Archive or delete projects no longer on Monday.com")
    args = parser.parse_args()

    logger.info("=== Monday.com Sync ===")
    client = get_client()
    caps = detect_capabilities(client)

    result = MondaySync(client=client, capabilities=caps).sync_all(
        on_progress=log_progress,
        sync_all_boards=args.all_boards,
        avoid_deletion=not args.allow_deletion,
    )

    for error in result.errors:
        logger.warning("  %s", error)
    if not result.success:
        logger.error("Monday.com sync failed: %s", result.message)
        return 1

    logger.info(
        "%s; %d tasks, %d duplicates merged",
        result.message, result.tasks_synced, result.merged,
    )
    logger.info("=== Sync complete ===")
    return 0


if __name__ == "__main__":
    sys.exit(main())
