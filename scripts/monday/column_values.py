"""
Monday.com column value parsing.

Column values arrive as ``{"id", "text", "value", "type"}`` where ``value`` is
a JSON string from the API (already decoded once stored in ``monday_data``).
The payload is first classified into a tagged union, then each extractor
walks an explicit fallback order over the variants.

    number     NUMBER -> OBJECT{"value"} -> TEXT (currency stripped) -> column text
    date       OBJECT{"date"} -> column text
    timeline   OBJECT{"from","to"} -> OBJECT{"start","end"}
    people     OBJECT{"personsAndTeams"} -> OBJECT{"personIds"} -> LIST
"""
import json
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from scripts.lib.utils import to_date

CURRENCY_CHARS = re.compile(r"[£$€,\s]")
TEXT_DATE_FORMATS = ("%d %b %Y", "%b %d, %Y", "%d/%m/%Y", "%d %B %Y", "%B %d, %Y")


class PayloadKind(str, Enum):
    EMPTY = "empty"
    NUMBER = "number"
    OBJECT = "object"
    LIST = "list"
    TEXT = "text"


@dataclass(frozen=True)
class ColumnPayload:
    kind: PayloadKind
    value: Any = None
    text: Optional[str] = None


def classify(column: Optional[Dict]) -> ColumnPayload:
    """Decode a column's ``value`` and tag it by shape."""
    if not column:
        return ColumnPayload(PayloadKind.EMPTY)

    text = column.get("text") or None
    raw = column.get("value")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            pass

    if raw is None or raw == "":
        return ColumnPayload(PayloadKind.EMPTY, None, text)
    if isinstance(raw, bool):
        return ColumnPayload(PayloadKind.TEXT, str(raw), text)
    if isinstance(raw, (int, float)):
        return ColumnPayload(PayloadKind.NUMBER, float(raw), text)
    if isinstance(raw, dict):
        return ColumnPayload(PayloadKind.OBJECT, raw, text)
    if isinstance(raw, list):
        return ColumnPayload(PayloadKind.LIST, raw, text)
    return ColumnPayload(PayloadKind.TEXT, str(raw), text)


def _number_from_text(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    try:
        return float(CURRENCY_CHARS.sub("", text))
    except ValueError:
        return None


def _number_from_any(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return _number_from_text(str(value))


def parse_number(column: Optional[Dict]) -> Optional[float]:
    payload = classify(column)

    if payload.kind == PayloadKind.NUMBER:
        return payload.value
    if payload.kind == PayloadKind.OBJECT and payload.value.get("value") is not None:
        number = _number_from_any(payload.value["value"])
        if number is not None:
            return number
    if payload.kind == PayloadKind.TEXT:
        number = _number_from_text(payload.value)
        if number is not None:
            return number
    return _number_from_text(payload.text)


def parse_positive_number(column: Optional[Dict]) -> Optional[float]:
    number = parse_number(column)
    return number if number is not None and number > 0 else None


def _date_from_text(text: Optional[str]) -> Optional[date]:
    if not text:
        return None
    parsed = to_date(text)
    if parsed:
        return parsed
    for fmt in TEXT_DATE_FORMATS:
        try:
            return datetime.strptime(text.strip(), fmt).date()
        except ValueError:
            continue
    return None


def parse_date(column: Optional[Dict]) -> Optional[date]:
    payload = classify(column)
    if payload.kind == PayloadKind.OBJECT and payload.value.get("date"):
        parsed = to_date(payload.value["date"])
        if parsed:
            return parsed
    return _date_from_text(payload.text)


def parse_timeline(column: Optional[Dict]) -> Tuple[Optional[date], Optional[date]]:
    payload = classify(column)
    if payload.kind != PayloadKind.OBJECT:
        return None, None
    obj = payload.value
    start = to_date(obj.get("from")) or to_date(obj.get("start"))
    end = to_date(obj.get("to")) or to_date(obj.get("end"))
    return start, end


def parse_people(column: Optional[Dict]) -> List[str]:
    """Monday person ids assigned in a people column, de-duplicated in order."""
    payload = classify(column)
    ids: List[Any] = []

    if payload.kind == PayloadKind.OBJECT:
        if isinstance(payload.value.get("personsAndTeams"), list):
            ids = [
                p.get("id") for p in payload.value["personsAndTeams"]
                if isinstance(p, dict) and p.get("kind", "person") == "person"
            ]
        elif isinstance(payload.value.get("personIds"), list):
            ids = payload.value["personIds"]
    elif payload.kind == PayloadKind.LIST:
        for entry in payload.value:
            if isinstance(entry, dict):
                ids.append(entry.get("personId") or entry.get("id"))
            else:
                ids.append(entry)

    return list(dict.fromkeys(str(i) for i in ids if i not in (None, "")))


def parse_text(column: Optional[Dict]) -> Optional[str]:
    if not column:
        return None
    text = column.get("text")
    return text.strip() if isinstance(text, str) and text.strip() else None


def index_columns(column_values: List[Dict]) -> Dict[str, Dict]:
    """Column list from the API -> ``{column_id: {text, value, type}}`` with values decoded."""
    indexed: Dict[str, Dict] = {}
    for cv in column_values or []:
        payload = classify(cv)
        indexed[cv["id"]] = {
            "text": cv.get("text"),
            "value": payload.value if payload.kind != PayloadKind.EMPTY else None,
            "type": cv.get("type"),
        }
    return indexed
