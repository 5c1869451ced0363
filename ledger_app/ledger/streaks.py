"""Continuous-day engagement streak."""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from . import keys
from .models import STREAK_COUNT, STREAK_LAST_ACTIVE_DAY, LedgerState
from .storage import KeyValueStore, StorageUnavailable

LOGGER = logging.getLogger(__name__)

STREAK_FIELDS = (STREAK_COUNT, STREAK_LAST_ACTIVE_DAY)
DEFAULT_STREAK_THRESHOLD = 120


class StreakTracker:
    """Advance the streak once per day, the first time today's total crosses the threshold."""

    def __init__(
        self,
        store: KeyValueStore,
        threshold_seconds: int = DEFAULT_STREAK_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.threshold_seconds = threshold_seconds
        self._clock = clock

    def reconcile(self, today_seconds: int, now: Optional[float] = None) -> Optional[int]:
        """Return the streak after this tick, or None when storage was unavailable."""
        now = self._clock() if now is None else now
        today = keys.day_key(now)
        try:
            with self.store.transaction():
                state = LedgerState.from_record(self.store.read(STREAK_FIELDS))
                count = state.streak_count
                if today_seconds < self.threshold_seconds:
                    return count
                last_day = state.streak_last_active_day
                gap = keys.day_gap(last_day, today) if last_day is not None else None
                if last_day is None or gap is None:
                    count = 1
                elif gap == 0:
                    return count
                elif gap == 1:
                    count += 1
                elif gap > 1:
                    LOGGER.info("Streak broken after %s day gap", gap)
                    count = 1
                else:
                    # Stored day lies in the future; wait for the clock to catch up.
                    LOGGER.warning("Streak day %s is ahead of %s; leaving streak unchanged", last_day, today)
                    return count
                self.store.write({STREAK_COUNT: count, STREAK_LAST_ACTIVE_DAY: today})
        except StorageUnavailable as exc:
            LOGGER.warning("Skipping streak update at %.0f: %s", now, exc)
            return None
        LOGGER.info("Streak is now %s day(s) as of %s", count, today)
        return count
