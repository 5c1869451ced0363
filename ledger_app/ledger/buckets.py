"""Accrual of active seconds into day, week and month buckets."""
from __future__ import annotations

import logging
import math
import time
from typing import Callable, Optional

from . import keys
from .models import (
    DAY_KEY,
    LAST_TICK_AT,
    MONTH_KEY,
    MONTH_SECONDS,
    TODAY_SECONDS,
    WEEK_KEY,
    WEEK_SECONDS,
    LedgerState,
)
from .storage import KeyValueStore, StorageUnavailable

LOGGER = logging.getLogger(__name__)

ACCRUAL_FIELDS = (TODAY_SECONDS, WEEK_SECONDS, MONTH_SECONDS, DAY_KEY, WEEK_KEY, MONTH_KEY, LAST_TICK_AT)


class BucketLedger:
    """Advance the three buckets by the qualifying time since this instance's last tick.

    Every reconcile rolls stale buckets over before adding anything, and
    counter growth goes through the store's atomic increment inside one
    transaction, so concurrent page instances sharing a store never clobber
    each other's seconds. The delta anchor is per instance: a page only
    claims the span it observed itself.
    """

    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time) -> None:
        self.store = store
        self._clock = clock
        self._last_tick_at: Optional[float] = None

    def prime(self, now: Optional[float] = None) -> bool:
        """Set the baseline so time before this instance started is never accrued."""
        now = self._clock() if now is None else now
        self._last_tick_at = now
        return self.store.set({LAST_TICK_AT: now})

    def _elapsed(self, now: float) -> float:
        if self._last_tick_at is None:
            return 0.0
        return now - self._last_tick_at

    def reconcile(self, now: Optional[float] = None, qualifying: bool = True) -> Optional[LedgerState]:
        """Roll over, accrue and persist. Returns the updated state, or None if skipped."""
        now = self._clock() if now is None else now
        elapsed = self._elapsed(now)
        delta = max(0, math.floor(elapsed))
        current_keys = (keys.day_key(now), keys.week_key(now), keys.month_key(now))
        try:
            with self.store.transaction():
                state = LedgerState.from_record(self.store.read(ACCRUAL_FIELDS))
                record = {LAST_TICK_AT: now}
                for bucket, current_key in zip(state.buckets, current_keys):
                    previous_key = bucket.key
                    if bucket.roll_to(current_key):
                        record[bucket.counter_field] = 0
                        record[bucket.key_field] = current_key
                        if previous_key is not None:
                            LOGGER.info("Rolled %s over from %s to %s", bucket.counter_field, previous_key, current_key)
                self.store.write(record)
                if qualifying and delta > 0:
                    for bucket in state.buckets:
                        bucket.seconds = self.store.increment(bucket.counter_field, delta)
        except StorageUnavailable as exc:
            LOGGER.warning("Skipping accrual tick at %.0f: %s", now, exc)
            return None

        # Keep the sub-second remainder so periodic ticks do not drift low.
        if self._last_tick_at is None or elapsed < 0:
            self._last_tick_at = now
        else:
            self._last_tick_at = now - (elapsed - delta)
        state.last_tick_at = now
        if qualifying and delta > 0:
            LOGGER.debug("Accrued %ss (today=%s)", delta, state.today.seconds)
        return state
