# utils/helpers.py
from __future__ import annotations

from datetime import date, datetime, time, timezone
import logging
from typing import Any, Optional, Tuple

_log = logging.getLogger(__name__)

DateRange = Tuple[Optional[datetime], Optional[datetime]]


def today_str() -> str:
    """Return today's date as ISO string (YYYY-MM-DD)."""
    return date.today().isoformat()


def _is_date_only(text: str) -> bool:
    return len(text) == 10 and text[4] == "-" and text[7] == "-"


def parse_instant(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 date/datetime into a naive UTC datetime.

    - '2025-07-01'              -> 2025-07-01 00:00
    - '2025-07-01T10:00:00Z'    -> 2025-07-01 10:00
    - '2025-07-01T14:00+04:00'  -> 2025-07-01 10:00
    Offsets are folded into UTC so aware and naive values compare; naive
    values are taken as already being in the business's reference time.
    Unreadable input returns None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            _log.debug("parse_instant: unreadable date %r", value)
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def range_bounds(start: Any = None, end: Any = None) -> DateRange:
    """
    Turn a (from, to) pair into comparable instants.

    A date-only `end` covers the whole day (23:59:59.999999), matching how
    report filters pick calendar days.
    """
    lo = parse_instant(start)
    hi = parse_instant(end)
    if hi is not None and isinstance(end, str) and _is_date_only(end.strip()):
        hi = datetime.combine(hi.date(), time.max)
    elif hi is not None and isinstance(end, date) and not isinstance(end, datetime):
        hi = datetime.combine(end, time.max)
    return lo, hi


def in_range(when: Optional[datetime], bounds: DateRange) -> bool:
    """Undated rows are always in range."""
    if when is None:
        return True
    lo, hi = bounds
    if lo is not None and when < lo:
        return False
    if hi is not None and when > hi:
        return False
    return True


def sort_instant(when: Optional[datetime]) -> datetime:
    """Sort key that puts undated rows first."""
    return when if when is not None else datetime.min
