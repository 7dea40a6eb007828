"""
Utility functions for Studio Ops Hub.
Week/quarter date arithmetic and tolerant value conversion.

Weeks start on Monday and are inclusive of Sunday. Dates travel through the
store as ISO strings (YYYY-MM-DD).

Usage:
    from scripts.lib.utils import week_start, week_bounds, recent_week_starts
"""
import calendar
from datetime import date, datetime, timedelta
from typing import Any, List, Optional, Tuple


def to_date(value: Any) -> Optional[date]:
    """Coerce a date, datetime or ISO string to a date. Returns None when unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def week_start(value: Any) -> date:
    """Monday of the week containing ``value``."""
    d = to_date(value)
    if d is None:
        raise ValueError(f"Invalid date: {value!r}")
    return d - timedelta(days=d.weekday())


def week_bounds(start: Any) -> Tuple[date, date]:
    """(Monday, Sunday) for the week starting at ``start``."""
    monday = week_start(start)
    return monday, monday + timedelta(days=6)


def recent_week_starts(n: int, today: Any = None) -> List[date]:
    """The ``n`` most recent week starts, oldest first, ending at the current week."""
    current = week_start(today or date.today())
    return [current - timedelta(weeks=i) for i in range(n - 1, -1, -1)]


def quarter_bounds(value: Any) -> Tuple[date, date]:
    """First and last day of the calendar quarter containing ``value``."""
    d = to_date(value)
    first_month = 3 * ((d.month - 1) // 3) + 1
    start = date(d.year, first_month, 1)
    last_month = first_month + 2
    end = date(d.year, last_month, calendar.monthrange(d.year, last_month)[1])
    return start, end


def add_months(d: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def iso(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


def safe_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """Float conversion that tolerates None, '' and garbage."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
