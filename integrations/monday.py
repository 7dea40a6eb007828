"""
Monday.com Integration
=======================

GraphQL API v2 client used by the project/task sync.

- Cursor pagination over board items (500 per page)
- Fetch-by-id for completed boards (batches of 100)
- Subitem fetch for task sync (batches of 100 parents)
- Client-side rate limiting (55 req / 60s), 429 handling
- Retries with exponential backoff on transient network errors (tenacity)
- Circuit breaker per service

Setup:
    Set MONDAY_API_TOKEN in .env
"""

import os
import time
from typing import Any, Dict, Iterable, List, Optional

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from scripts.lib.circuit_breaker import CircuitBreaker
from scripts.lib.errors import MondayAPIError
from scripts.lib.logger import setup_logger

logger = setup_logger("monday_integration")

MONDAY_API_URL = "https://api.monday.com/v2"
MONDAY_API_VERSION = "2024-10"
MONDAY_RATE_LIMIT = 55  # stay under 60 req/min
MONDAY_RATE_WINDOW = 60  # seconds
MONDAY_REQUEST_TIMEOUT = 30
MONDAY_MAX_RETRIES = 3
MONDAY_PAGE_SIZE = 500
MONDAY_ID_BATCH = 100

COLUMN_FIELDS = "column_values { id text value type }"

BOARD_ITEMS_QUERY = f"""
query ($boardIds: [ID!]) {{
    boards (ids: $boardIds) {{
        id
        name
        items_page (limit: {MONDAY_PAGE_SIZE}) {{
            cursor
            items {{ id name state {COLUMN_FIELDS} board {{ id }} }}
        }}
    }}
}}
"""

NEXT_PAGE_QUERY = f"""
query ($cursor: String!) {{
    next_items_page (cursor: $cursor, limit: {MONDAY_PAGE_SIZE}) {{
        cursor
        items {{ id name state {COLUMN_FIELDS} board {{ id }} }}
    }}
}}
"""

ITEMS_BY_ID_QUERY = f"""
query ($itemIds: [ID!]) {{
    items (ids: $itemIds) {{
        id name state {COLUMN_FIELDS}
        board {{ id name }}
    }}
}}
"""

SUBITEMS_QUERY = f"""
query ($itemIds: [ID!]) {{
    items (ids: $itemIds) {{
        id
        board {{ id }}
        subitems {{ id name state {COLUMN_FIELDS} }}
    }}
}}
"""

TRANSIENT_ERRORS = (requests.ConnectionError, requests.Timeout)


def _chunks(values: List[str], size: int) -> Iterable[List[str]]:
    for i in range(0, len(values), size):
        yield values[i:i + size]


class MondayClient:
    """Monday.com GraphQL API v2 client with pagination and rate limiting."""

    def __init__(self, api_token: Optional[str] = None, session: Optional[requests.Session] = None):
        self.api_token = api_token if api_token is not None else os.getenv("MONDAY_API_TOKEN", "")
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Authorization": self.api_token,
            "API-Version": MONDAY_API_VERSION,
        })
        self.breaker = CircuitBreaker.get("monday", failure_threshold=5, reset_timeout=60)
        self._request_timestamps: List[float] = []

    @property
    def is_configured(self) -> bool:
        return bool(self.api_token)

    def _rate_limit_wait(self):
        now = time.time()
        self._request_timestamps = [
            t for t in self._request_timestamps if now - t < MONDAY_RATE_WINDOW
        ]
        if len(self._request_timestamps) >= MONDAY_RATE_LIMIT:
            sleep_time = MONDAY_RATE_WINDOW - (now - self._request_timestamps[0]) + 0.5
            logger.debug("Rate limit approaching, sleeping %.1fs", sleep_time)
            time.sleep(sleep_time)
        self._request_timestamps.append(time.time())

    @retry(
        stop=stop_after_attempt(MONDAY_MAX_RETRIES + 1),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )
    def _post(self, body: Dict[str, Any]) -> requests.Response:
        self._rate_limit_wait()
        return self.session.post(MONDAY_API_URL, json=body, timeout=MONDAY_REQUEST_TIMEOUT)

    def _execute(self, query: str, variables: Optional[dict]) -> Dict:
        body: Dict[str, Any] = {"query": query}
        if variables:
            body["variables"] = variables

        while True:
            try:
                resp = self._post(body)
            except TRANSIENT_ERRORS as e:
                raise MondayAPIError(f"Monday.com API request failed: {e}") from e

            if resp.status_code == 429:
                retry_after = int(resp.headers.get("Retry-After", 30))
                logger.warning("Rate limited (429). Waiting %ds", retry_after)
                time.sleep(retry_after)
                continue

            if not resp.ok:
                raise MondayAPIError(
                    f"Monday.com API error: {resp.status_code} {resp.reason}",
                    status_code=resp.status_code,
                )

            payload = resp.json()
            errors = payload.get("errors") or []
            if errors:
                messages = ", ".join(e.get("message", str(e)) for e in errors)
                raise MondayAPIError(f"Monday.com API errors: {messages}", errors=errors)
            return payload.get("data") or {}

    def query(self, query: str, variables: Optional[dict] = None) -> Dict:
        """Run a GraphQL query and return its ``data`` block."""
        if not self.is_configured:
            raise MondayAPIError("MONDAY_API_TOKEN is not configured")
        return self.breaker.call(self._execute, query, variables)

    # ─── Boards ──────────────────────────────────────────────

    def fetch_board_items(self, board_ids: List[str]) -> List[Dict]:
        """
        Fetch every item on the given boards.

        Returns:
            One dict per board: {"id", "name", "items": [...]} with all pages merged.
        """
        if not board_ids:
            return []

        logger.info("Fetching items for %d boards", len(board_ids))
        data = self.query(BOARD_ITEMS_QUERY, {"boardIds": [str(b) for b in board_ids]})

        boards = []
        for board in data.get("boards") or []:
            page = board.get("items_page") or {}
            items = list(page.get("items") or [])
            cursor = page.get("cursor")

            # Cursors stay valid for 60 minutes
            while cursor:
                next_data = self.query(NEXT_PAGE_QUERY, {"cursor": cursor})
                next_page = next_data.get("next_items_page") or {}
                page_items = next_page.get("items") or []
                if not page_items:
                    break
                items.extend(page_items)
                cursor = next_page.get("cursor")

            logger.info("Board %s (%s): %d items", board.get("id"), board.get("name"), len(items))
            boards.append({"id": str(board.get("id")), "name": board.get("name") or "", "items": items})
        return boards

    def fetch_items_by_id(self, item_ids: List[str]) -> List[Dict]:
        """Fetch specific items (completed boards are never scanned in full)."""
        items: List[Dict] = []
        for batch in _chunks([str(i) for i in item_ids], MONDAY_ID_BATCH):
            data = self.query(ITEMS_BY_ID_QUERY, {"itemIds": batch})
            items.extend(data.get("items") or [])
        logger.info("Fetched %d of %d items by id", len(items), len(item_ids))
        return items

    def fetch_subitems(self, item_ids: List[str]) -> Dict[str, List[Dict]]:
        """
        Fetch subitems for parent items.

        Returns:
            Mapping of parent item id -> list of subitems.
        """
        subitems: Dict[str, List[Dict]] = {}
        for batch in _chunks([str(i) for i in item_ids], MONDAY_ID_BATCH):
            data = self.query(SUBITEMS_QUERY, {"itemIds": batch})
            for item in data.get("items") or []:
                subitems[str(item["id"])] = item.get("subitems") or []
        return subitems

    def get_status(self) -> Dict:
        return {
            "name": "Monday.com",
            "configured": self.is_configured,
            "circuit": self.breaker.status(),
        }
