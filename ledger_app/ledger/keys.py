"""Calendar keys used to detect bucket rollover, plus small display helpers."""
from __future__ import annotations

import time
from datetime import date, datetime, timedelta
from typing import Optional


def _local_date(t: Optional[float]) -> date:
    return datetime.fromtimestamp(time.time() if t is None else t).date()


def day_key(t: Optional[float] = None) -> str:
    """Local calendar day as ``YYYY-MM-DD``."""
    return _local_date(t).isoformat()


def week_key(t: Optional[float] = None) -> str:
    """ISO-8601 week as ``YYYY-Www``.

    The date is shifted to the Thursday of its Monday-based week; that
    Thursday's year owns the week, and the week number counts from the first
    Thursday of that year.
    """
    d = _local_date(t)
    thursday = d + timedelta(days=3 - d.weekday())
    week = (thursday.timetuple().tm_yday - 1) // 7 + 1
    return f"{thursday.year}-W{week:02d}"


def month_key(t: Optional[float] = None) -> str:
    d = _local_date(t)
    return f"{d.year}-{d.month:02d}"


def parse_day_key(key: str) -> Optional[date]:
    try:
        return date.fromisoformat(key)
    except (TypeError, ValueError):
        return None


def day_gap(earlier: str, later: str) -> Optional[int]:
    """Whole days between two day keys, or None when either is unparseable."""
    start = parse_day_key(earlier)
    end = parse_day_key(later)
    if start is None or end is None:
        return None
    return (end - start).days


def format_seconds(total_seconds) -> str:
    s = max(0, int(total_seconds or 0))
    return f"{s // 3600}h {(s % 3600) // 60}m"
