"""Optional goal countdown derived from a stored deadline."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

from .models import GOAL_DUE_AT, GoalProjection, coerce_timestamp
from .storage import KeyValueStore

LOGGER = logging.getLogger(__name__)

INACTIVE = "inactive"
NO_DEADLINE = "no_deadline"
OVERDUE = "overdue"
WARNING = "warning"
NORMAL = "normal"

DEFAULT_WARNING_HOURS = 48


def format_remaining(seconds: float) -> str:
    """Largest whole unit left: days, else hours, else minutes."""
    seconds = max(0, int(seconds))
    days, rest = divmod(seconds, 86400)
    if days:
        return f"{days}d left"
    hours = rest // 3600
    if hours:
        return f"{hours}h left"
    return f"{rest // 60}m left"


def project_goal(
    goal_text: Optional[str],
    due_at: Any,
    now: float,
    warning_seconds: float = DEFAULT_WARNING_HOURS * 3600,
) -> GoalProjection:
    text = (goal_text or "").strip()
    if not text:
        return GoalProjection(status=INACTIVE)
    deadline = coerce_timestamp(due_at)
    if deadline is None:
        return GoalProjection(status=NO_DEADLINE, goal_text=text)
    remaining = deadline - now
    if remaining < 0:
        return GoalProjection(
            status=OVERDUE, goal_text=text, due_at=deadline, remaining_seconds=remaining, label="Overdue"
        )
    status = WARNING if remaining <= warning_seconds else NORMAL
    return GoalProjection(
        status=status,
        goal_text=text,
        due_at=deadline,
        remaining_seconds=remaining,
        label=format_remaining(remaining),
    )


class GoalCountdown:
    """Reads ``goalDueAt`` from the store; the goal text is owned by the host."""

    def __init__(
        self,
        store: KeyValueStore,
        warning_hours: float = DEFAULT_WARNING_HOURS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.warning_seconds = warning_hours * 3600
        self._clock = clock
        self.goal_text = ""

    def set_deadline(self, due_at: Optional[float]) -> bool:
        deadline = coerce_timestamp(due_at)
        if due_at is not None and deadline is None:
            LOGGER.warning("Ignoring invalid goal deadline %r", due_at)
            return False
        return self.store.set({GOAL_DUE_AT: deadline})

    def clear_deadline(self) -> bool:
        return self.store.set({GOAL_DUE_AT: None})

    def project(self, now: Optional[float] = None, record: Optional[Dict[str, Any]] = None) -> GoalProjection:
        now = self._clock() if now is None else now
        if record is None:
            record = self.store.get([GOAL_DUE_AT])
        return project_goal(self.goal_text, record.get(GOAL_DUE_AT), now, self.warning_seconds)
