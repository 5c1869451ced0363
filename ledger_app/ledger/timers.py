"""Periodic reconciliation driver with a guaranteed final flush."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

from . import keys
from .activity import ActivityMonitor
from .buckets import ACCRUAL_FIELDS, BucketLedger
from .goals import GoalCountdown
from .keys import format_seconds
from .models import (
    GOAL_DUE_AT,
    SESSION_DAY_KEY,
    SESSIONS_TODAY,
    STREAK_COUNT,
    STREAK_LAST_ACTIVE_DAY,
    LedgerState,
    Snapshot,
)
from .sessions import SessionCounter
from .streaks import StreakTracker

LOGGER = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 5.0
SNAPSHOT_FIELDS = ACCRUAL_FIELDS + (SESSIONS_TODAY, SESSION_DAY_KEY, STREAK_COUNT, STREAK_LAST_ACTIVE_DAY, GOAL_DUE_AT)


class TickScheduler:
    """Drive ledger, sessions, streak and goal refresh on one cooperative timer.

    One instance per page session. ``start`` primes the ledger baseline and
    spawns the timer thread; ``stop`` runs a final reconciliation and then
    cancels the timer unconditionally.
    """

    def __init__(
        self,
        monitor: ActivityMonitor,
        ledger: BucketLedger,
        sessions: SessionCounter,
        streaks: StreakTracker,
        goals: GoalCountdown,
        period: float = DEFAULT_TICK_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.monitor = monitor
        self.ledger = ledger
        self.sessions = sessions
        self.streaks = streaks
        self.goals = goals
        self.period = period
        self._clock = clock
        self._callbacks: List[Callable[[Snapshot], None]] = []
        self._tick_lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def on_tick(self, callback: Callable[[Snapshot], None]) -> None:
        self._callbacks.append(callback)

    def start(self) -> None:
        if self._stop_event is not None:
            return
        self.ledger.prime(self._clock())
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run_loop, name="ledger-tick", daemon=True)
        self._thread.start()
        LOGGER.debug("Started tick scheduler every %ss", self.period)

    def stop(self) -> None:
        stop_event = self._stop_event
        if stop_event is None:
            return
        try:
            self.tick_now()
        finally:
            stop_event.set()
            if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
                self._thread.join(timeout=1)
            self._thread = None
            self._stop_event = None
            LOGGER.debug("Stopped tick scheduler")

    def _run_loop(self) -> None:
        stop_event = self._stop_event
        assert stop_event is not None
        while not stop_event.wait(self.period):
            try:
                self.tick_now()
            except Exception:  # pragma: no cover - defensive
                LOGGER.exception("Ledger tick failed")

    def tick_now(self, now: Optional[float] = None) -> Snapshot:
        """Reconcile everything against one ``now`` and notify listeners."""
        with self._tick_lock:
            now = self._clock() if now is None else now
            qualifying = self.monitor.is_qualifying(now)
            state = self.ledger.reconcile(now, qualifying=qualifying)
            self.sessions.reconcile(now, qualifying=qualifying)
            if state is not None:
                self.streaks.reconcile(state.today.seconds, now)
            snapshot = self.snapshot(now)
        for callback in list(self._callbacks):
            try:
                callback(snapshot)
            except Exception:  # pragma: no cover - defensive
                LOGGER.exception("Tick callback failed")
        return snapshot

    def snapshot(self, now: Optional[float] = None) -> Snapshot:
        """Read-only view of the stored counters as of ``now``.

        Stale buckets and sessions read as zero under today's key, and a
        streak whose last active day is older than yesterday reads as zero.
        """
        now = self._clock() if now is None else now
        record = self.ledger.store.get(SNAPSHOT_FIELDS)
        state = LedgerState.from_record(record)
        today_key = keys.day_key(now)
        today = state.today.seconds if state.today.key == today_key else 0
        week = state.week.seconds if state.week.key == keys.week_key(now) else 0
        month = state.month.seconds if state.month.key == keys.month_key(now) else 0
        sessions = state.sessions_today if state.session_day_key == today_key else 0
        streak = state.streak_count
        if state.streak_last_active_day is not None:
            # A missed day breaks the streak even before the next threshold crossing.
            gap = keys.day_gap(state.streak_last_active_day, today_key)
            if gap is not None and gap > 1:
                streak = 0
        return Snapshot(
            today_seconds=today,
            week_seconds=week,
            month_seconds=month,
            sessions_today=sessions,
            streak_count=streak,
            day_key=today_key,
            last_tick_at=state.last_tick_at,
            goal=self.goals.project(now, record=record),
            today_display=format_seconds(today),
        )

