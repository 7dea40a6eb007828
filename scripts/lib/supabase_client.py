"""
Supabase Client Helper for Studio Ops Hub.
Provides the shared connection and small query helpers used by the sync and
scorecard services.

Usage:
    from scripts.lib.supabase_client import get_client, select_all, select_in

    client = get_client()
    rows = select_in(client, "time_entries", "task_id", task_ids, select="id, hours")
    projects = select_all(client, "monday_projects", select="id, monday_item_id")
"""
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List

from dotenv import load_dotenv
from postgrest.exceptions import APIError as PostgrestAPIError

from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

# Load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(PROJECT_ROOT / ".env")

SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_KEY = (
    os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
    or os.environ.get("SUPABASE_KEY", "")
)

# Postgres / PostgREST codes for "relation does not exist"
MISSING_TABLE_CODES = {"42P01", "PGRST205"}
UNIQUE_VIOLATION_CODE = "23505"

IN_FILTER_CHUNK = 200
# PostgREST default max-rows
PAGE_SIZE = 1000

_client = None


def get_client():
    """Create and return a Supabase client (singleton)."""
    global _client
    if _client is not None:
        return _client

    if not SUPABASE_URL or not SUPABASE_KEY:
        raise RuntimeError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set in .env"
        )

    from supabase import create_client
    _client = create_client(SUPABASE_URL, SUPABASE_KEY)
    logger.info("Supabase client connected to %s", SUPABASE_URL)
    return _client


def error_code(exc: Exception) -> str:
    """Return the Postgres/PostgREST code carried by an exception, or ''."""
    if isinstance(exc, PostgrestAPIError):
        return str(exc.code or "")
    return str(getattr(exc, "code", "") or "")


def is_missing_table_error(exc: Exception) -> bool:
    return error_code(exc) in MISSING_TABLE_CODES


def is_unique_violation(exc: Exception) -> bool:
    return error_code(exc) == UNIQUE_VIOLATION_CODE


def select_in(
    client,
    table: str,
    column: str,
    values: Iterable[Any],
    select: str = "*",
) -> List[Dict]:
    """
    Select rows whose ``column`` is in ``values``.

    Large value lists are split into chunks so the request URL stays
    within PostgREST limits.
    """
    values = list(dict.fromkeys(v for v in values if v is not None))
    rows: List[Dict] = []
    for i in range(0, len(values), IN_FILTER_CHUNK):
        chunk = values[i:i + IN_FILTER_CHUNK]
        result = client.table(table).select(select).in_(column, chunk).execute()
        rows.extend(result.data or [])
    return rows


def select_all(client, table: str, select: str = "*", page_size: int = None) -> List[Dict]:
    """
    Read every row of ``table``, paging with ``range()``.

    PostgREST truncates a plain select at its max-rows setting, so full-table
    scans go through here. Pages are ordered by id to keep them stable.
    """
    page_size = page_size or PAGE_SIZE
    rows: List[Dict] = []
    offset = 0
    while True:
        result = (
            client.table(table)
            .select(select)
            .order("id")
            .range(offset, offset + page_size - 1)
            .execute()
        )
        page = result.data or []
        rows.extend(page)
        if len(page) < page_size:
            return rows
        offset += page_size
