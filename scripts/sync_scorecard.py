"""
Scorecard Sync
===============

Reconciles automated scorecard metrics into weekly entries, the same job the
/api/cron/sync-scorecard endpoint runs.

Usage:
    python scripts/sync_scorecard.py                   # 3 most recent weeks
    python scripts/sync_scorecard.py --weeks 6
    python scripts/sync_scorecard.py --week 2024-03-11 # a single week
"""

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

from scripts.lib.capabilities import detect_capabilities
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import get_client
from scripts.scorecard.reconciler import ScorecardReconciler

logger = setup_logger("sync_scorecard")


def main() -> int:
    parser = argparse.ArgumentParser(description="Reconcile automated scorecard metrics")
    parser.add_argument("--weeks", type=int, default=3,
                        help="Number of most recent weeks to reconcile (default 3)")
    parser.add_argument("--week", type=date.fromisoformat,
                        help="Reconcile only the week containing this date (YYYY-MM-DD)")
    args = parser.parse_args()

    logger.info("=== Scorecard Sync ===")
    client = get_client()
    caps = detect_capabilities(client)
    reconciler = ScorecardReconciler(client=client, capabilities=caps)

    if args.week:
        result = reconciler.reconcile_week(args.week)
    else:
        result = asyncio.run(reconciler.reconcile_recent_weeks(args.weeks))

    for error in result.errors:
        logger.warning("  %s", error)
    if not result.success:
        logger.error("Scorecard sync failed: %s", result.message)
        return 1

    logger.info(result.message)
    logger.info("=== Sync complete ===")
    return 0


if __name__ == "__main__":
    sys.exit(main())
