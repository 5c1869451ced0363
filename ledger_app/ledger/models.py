"""Data models for the usage ledger.

Persisted field names are the storage schema and must stay stable across
versions; every reader tolerates any of them being absent.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

TODAY_SECONDS = "todaySeconds"
WEEK_SECONDS = "weekSeconds"
MONTH_SECONDS = "monthSeconds"
DAY_KEY = "dayKey"
WEEK_KEY = "weekKey"
MONTH_KEY = "monthKey"
LAST_TICK_AT = "lastTickAt"
SESSIONS_TODAY = "sessionsToday"
LAST_SESSION_ACTIVITY_AT = "lastSessionActivityAt"
SESSION_DAY_KEY = "sessionDayKey"
STREAK_COUNT = "streakCount"
STREAK_LAST_ACTIVE_DAY = "streakLastActiveDay"
GOAL_DUE_AT = "goalDueAt"

ALL_FIELDS = (
    TODAY_SECONDS,
    WEEK_SECONDS,
    MONTH_SECONDS,
    DAY_KEY,
    WEEK_KEY,
    MONTH_KEY,
    LAST_TICK_AT,
    SESSIONS_TODAY,
    LAST_SESSION_ACTIVITY_AT,
    SESSION_DAY_KEY,
    STREAK_COUNT,
    STREAK_LAST_ACTIVE_DAY,
    GOAL_DUE_AT,
)


def coerce_count(value: Any) -> int:
    """Non-negative integer, or 0 for anything malformed."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if not math.isfinite(value) or value < 0:
        return 0
    return int(value)


def coerce_timestamp(value: Any) -> Optional[float]:
    """Finite positive timestamp, or None. A stored 0 means "absent"."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return float(value)


def coerce_key(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


@dataclass
class Bucket:
    """Accrued seconds for one calendar period, tagged with that period's key."""

    counter_field: str
    key_field: str
    seconds: int = 0
    key: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any], counter_field: str, key_field: str) -> "Bucket":
        return cls(
            counter_field=counter_field,
            key_field=key_field,
            seconds=coerce_count(record.get(counter_field)),
            key=coerce_key(record.get(key_field)),
        )

    def roll_to(self, current_key: str) -> bool:
        """Reset the counter when the period changed. Returns True on rollover."""
        if self.key == current_key:
            return False
        self.seconds = 0
        self.key = current_key
        return True


@dataclass
class LedgerState:
    """The whole persisted record, coerced to safe values."""

    today: Bucket = field(default_factory=lambda: Bucket(TODAY_SECONDS, DAY_KEY))
    week: Bucket = field(default_factory=lambda: Bucket(WEEK_SECONDS, WEEK_KEY))
    month: Bucket = field(default_factory=lambda: Bucket(MONTH_SECONDS, MONTH_KEY))
    last_tick_at: Optional[float] = None
    sessions_today: int = 0
    last_session_activity_at: Optional[float] = None
    session_day_key: Optional[str] = None
    streak_count: int = 0
    streak_last_active_day: Optional[str] = None
    goal_due_at: Optional[float] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "LedgerState":
        return cls(
            today=Bucket.from_record(record, TODAY_SECONDS, DAY_KEY),
            week=Bucket.from_record(record, WEEK_SECONDS, WEEK_KEY),
            month=Bucket.from_record(record, MONTH_SECONDS, MONTH_KEY),
            last_tick_at=coerce_timestamp(record.get(LAST_TICK_AT)),
            sessions_today=coerce_count(record.get(SESSIONS_TODAY)),
            last_session_activity_at=coerce_timestamp(record.get(LAST_SESSION_ACTIVITY_AT)),
            session_day_key=coerce_key(record.get(SESSION_DAY_KEY)),
            streak_count=coerce_count(record.get(STREAK_COUNT)),
            streak_last_active_day=coerce_key(record.get(STREAK_LAST_ACTIVE_DAY)),
            goal_due_at=coerce_timestamp(record.get(GOAL_DUE_AT)),
        )

    @property
    def buckets(self) -> tuple:
        return (self.today, self.week, self.month)


@dataclass
class GoalProjection:
    """Display-ready view of the optional goal countdown."""

    status: str
    goal_text: str = ""
    due_at: Optional[float] = None
    remaining_seconds: Optional[float] = None
    label: str = ""

    @property
    def active(self) -> bool:
        return self.status != "inactive"


@dataclass
class Snapshot:
    """Read-only view handed to the rendering layer after each tick."""

    today_seconds: int
    week_seconds: int
    month_seconds: int
    sessions_today: int
    streak_count: int
    day_key: Optional[str]
    last_tick_at: Optional[float]
    goal: GoalProjection
    today_display: str = ""
