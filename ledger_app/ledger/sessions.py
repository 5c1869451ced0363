"""Per-day session counting based on an inactivity gap."""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from . import keys
from .models import LAST_SESSION_ACTIVITY_AT, SESSION_DAY_KEY, SESSIONS_TODAY, LedgerState
from .storage import KeyValueStore, StorageUnavailable

LOGGER = logging.getLogger(__name__)

SESSION_FIELDS = (SESSIONS_TODAY, LAST_SESSION_ACTIVITY_AT, SESSION_DAY_KEY)
DEFAULT_SESSION_GAP = 30 * 60.0


class SessionCounter:
    def __init__(
        self,
        store: KeyValueStore,
        gap_seconds: float = DEFAULT_SESSION_GAP,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.gap_seconds = gap_seconds
        self._clock = clock

    def reconcile(self, now: Optional[float] = None, qualifying: bool = True) -> Optional[int]:
        """Reset on a new day, count a new session after a long enough gap.

        Returns today's session count, or None when storage was unavailable.
        """
        now = self._clock() if now is None else now
        today = keys.day_key(now)
        try:
            with self.store.transaction():
                state = LedgerState.from_record(self.store.read(SESSION_FIELDS))
                sessions = state.sessions_today
                last_activity = state.last_session_activity_at
                if state.session_day_key != today:
                    if state.session_day_key is not None:
                        LOGGER.info("New day %s; resetting session count", today)
                    sessions = 0
                    last_activity = None
                if qualifying:
                    if last_activity is None or now - last_activity >= self.gap_seconds:
                        sessions += 1
                        LOGGER.info("Session %s started for %s", sessions, today)
                    last_activity = now
                self.store.write(
                    {
                        SESSIONS_TODAY: sessions,
                        LAST_SESSION_ACTIVITY_AT: last_activity,
                        SESSION_DAY_KEY: today,
                    }
                )
        except StorageUnavailable as exc:
            LOGGER.warning("Skipping session tick at %.0f: %s", now, exc)
            return None
        return sessions
