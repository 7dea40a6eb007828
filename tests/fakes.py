"""In-memory stand-ins for the Supabase client and the Monday.com client."""

import copy
import uuid
from datetime import datetime, timezone

from postgrest.exceptions import APIError

UNIQUE_KEYS = {
    "scorecard_entries": ("metric_id", "week_start_date"),
    "time_entries": ("user_id", "task_id", "date"),
    "monday_column_mappings": ("column_type", "board_id"),
}


def _cmp_value(value):
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else str(value)


def _compare(a, b, op) -> bool:
    if a is None or b is None:
        return False
    try:
        return op(_cmp_value(a), _cmp_value(b))
    except TypeError:
        return op(str(a), str(b))


class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Chainable query mirroring the postgrest builder methods the services use."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.action = "select"
        self.columns = "*"
        self.payload = None
        self.on_conflict = None
        self.count = None
        self.filters = []
        self.ordering = []
        self._limit = None
        self._range = None

    # ─── actions ─────────────────────────────────────────────

    def select(self, columns="*", count=None):
        self.action, self.columns, self.count = "select", columns, count
        return self

    def insert(self, rows):
        self.action, self.payload = "insert", rows
        return self

    def update(self, values):
        self.action, self.payload = "update", values
        return self

    def delete(self):
        self.action = "delete"
        return self

    def upsert(self, rows, on_conflict=None):
        self.action, self.payload, self.on_conflict = "upsert", rows, on_conflict
        return self

    # ─── filters ─────────────────────────────────────────────

    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) is not None and str(r.get(column)) == str(value))
        return self

    def neq(self, column, value):
        self.filters.append(lambda r: str(r.get(column)) != str(value))
        return self

    def in_(self, column, values):
        wanted = {str(v) for v in values}
        self.filters.append(lambda r: r.get(column) is not None and str(r.get(column)) in wanted)
        return self

    def gt(self, column, value):
        self.filters.append(lambda r: _compare(r.get(column), value, lambda a, b: a > b))
        return self

    def gte(self, column, value):
        self.filters.append(lambda r: _compare(r.get(column), value, lambda a, b: a >= b))
        return self

    def lt(self, column, value):
        self.filters.append(lambda r: _compare(r.get(column), value, lambda a, b: a < b))
        return self

    def lte(self, column, value):
        self.filters.append(lambda r: _compare(r.get(column), value, lambda a, b: a <= b))
        return self

    def is_(self, column, value):
        if value == "null":
            self.filters.append(lambda r: r.get(column) is None)
        else:
            self.filters.append(lambda r: r.get(column) is value)
        return self

    def ilike(self, column, pattern):
        needle = pattern.strip("%").lower()
        self.filters.append(lambda r: needle in str(r.get(column) or "").lower())
        return self

    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def limit(self, n):
        self._limit = n
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    # ─── execution ───────────────────────────────────────────

    def _matches(self, row) -> bool:
        return all(f(row) for f in self.filters)

    def _project(self, row):
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        return {c.strip(): copy.deepcopy(row.get(c.strip())) for c in self.columns.split(",")}

    def execute(self) -> FakeResult:
        self.db.calls.append((self.table_name, self.action))
        if self.table_name in self.db.missing_tables:
            raise APIError({
                "message": f'relation "public.{self.table_name}" does not exist',
                "code": "42P01", "hint": None, "details": None,
            })
        rows = self.db.tables.setdefault(self.table_name, [])
        handler = getattr(self, f"_execute_{self.action}")
        return handler(rows)

    def _execute_select(self, rows):
        matched = [r for r in rows if self._matches(r)]
        for column, desc in reversed(self.ordering):
            matched.sort(key=lambda r: (r.get(column) is None, _cmp_value(r.get(column) or "")), reverse=desc)
        total = len(matched)
        if self._range:
            matched = matched[self._range[0]:self._range[1] + 1]
        if self._limit is not None:
            matched = matched[:self._limit]
        return FakeResult([self._project(r) for r in matched], count=total if self.count else None)

    def _check_unique(self, rows, candidate, ignore=None):
        key = UNIQUE_KEYS.get(self.table_name)
        if not key or any(candidate.get(k) is None for k in key):
            return
        for row in rows:
            if row is ignore:
                continue
            if all(str(row.get(k)) == str(candidate.get(k)) for k in key):
                raise APIError({
                    "message": f'duplicate key value violates unique constraint "{self.table_name}_key"',
                    "code": "23505", "hint": None, "details": None,
                })

    def _new_row(self, values):
        now = datetime.now(timezone.utc).isoformat()
        row = {"created_at": now, "updated_at": now, **copy.deepcopy(values)}
        row.setdefault("id", str(uuid.uuid4()))
        if row.get("id") is None:
            row["id"] = str(uuid.uuid4())
        return row

    def _execute_insert(self, rows):
        payload = self.payload if isinstance(self.payload, list) else [self.payload]
        inserted = []
        for values in payload:
            row = self._new_row(values)
            self._check_unique(rows, row)
            rows.append(row)
            inserted.append(copy.deepcopy(row))
        return FakeResult(inserted)

    def _execute_update(self, rows):
        updated = []
        for row in rows:
            if self._matches(row):
                candidate = {**row, **self.payload}
                self._check_unique(rows, candidate, ignore=row)
                row.update(copy.deepcopy(self.payload))
                updated.append(copy.deepcopy(row))
        return FakeResult(updated)

    def _execute_delete(self, rows):
        removed = [r for r in rows if self._matches(r)]
        self.db.tables[self.table_name] = [r for r in rows if not self._matches(r)]
        return FakeResult([copy.deepcopy(r) for r in removed])

    def _execute_upsert(self, rows):
        payload = self.payload if isinstance(self.payload, list) else [self.payload]
        keys = [k.strip() for k in (self.on_conflict or "id").split(",")]
        written = []
        for values in payload:
            existing = next(
                (r for r in rows if all(k in values and str(r.get(k)) == str(values[k]) for k in keys)),
                None,
            )
            if existing is not None:
                existing.update(copy.deepcopy(values))
                written.append(copy.deepcopy(existing))
            else:
                row = self._new_row(values)
                rows.append(row)
                written.append(copy.deepcopy(row))
        return FakeResult(written)


class FakeSupabase:
    """Minimal supabase-py Client: ``client.table(name)`` returning a chainable query."""

    def __init__(self, tables=None, missing_tables=()):
        self.tables = {name: [dict(r) for r in rows] for name, rows in (tables or {}).items()}
        self.missing_tables = set(missing_tables)
        self.calls = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str):
        return self.tables.get(name, [])

    def writes(self, name: str = None):
        return [
            (t, a) for t, a in self.calls
            if a in ("insert", "update", "delete", "upsert") and (name is None or t == name)
        ]


class FakeMondayClient:
    """Canned Monday.com responses keyed by board and parent item id."""

    def __init__(self, boards=None, subitems=None, configured=True):
        self.boards = boards or {}
        self.subitems = subitems or {}
        self.is_configured = configured
        self.requested_boards = []
        self.requested_ids = []

    def fetch_board_items(self, board_ids):
        self.requested_boards.extend(board_ids)
        return [
            {"id": str(b), "name": self.boards[str(b)]["name"], "items": list(self.boards[str(b)]["items"])}
            for b in board_ids if str(b) in self.boards
        ]

    def fetch_items_by_id(self, item_ids):
        self.requested_ids.extend(item_ids)
        wanted = {str(i) for i in item_ids}
        found = []
        for board_id, board in self.boards.items():
            for item in board["items"]:
                if str(item["id"]) in wanted:
                    found.append({**item, "board": {"id": board_id, "name": board["name"]}})
        return found

    def fetch_subitems(self, item_ids):
        return {str(i): self.subitems[str(i)] for i in item_ids if str(i) in self.subitems}

    def get_status(self):
        return {"name": "Monday.com", "configured": self.is_configured}


def monday_item(item_id, name, columns=None, state="active"):
    """Monday item payload; ``columns`` maps column id -> (text, value)."""
    return {
        "id": str(item_id),
        "name": name,
        "state": state,
        "column_values": [
            {"id": cid, "type": "text", "text": text, "value": value}
            for cid, (text, value) in (columns or {}).items()
        ],
    }
