"""In-memory tracking of user interaction and page engagement."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_IDLE_CUTOFF = 60.0


class ActivityMonitor:
    """Hold the last interaction time and the host's visibility/focus flags.

    Nothing here is persisted; a reload starts from a fresh monitor. The host
    pushes input events through :meth:`record_interaction` and visibility or
    focus changes through :meth:`set_visible` / :meth:`set_focused`.
    """

    def __init__(
        self,
        idle_cutoff: float = DEFAULT_IDLE_CUTOFF,
        clock: Callable[[], float] = time.time,
        visible: bool = True,
        focused: bool = True,
    ) -> None:
        self.idle_cutoff = idle_cutoff
        self._clock = clock
        self._lock = threading.Lock()
        self.last_interaction_at: float = clock()
        self.visible = visible
        self.focused = focused

    def record_interaction(self, now: Optional[float] = None) -> None:
        with self._lock:
            self.last_interaction_at = self._clock() if now is None else now

    def set_visible(self, visible: bool) -> None:
        with self._lock:
            self.visible = bool(visible)
        LOGGER.debug("Page visibility changed: %s", visible)

    def set_focused(self, focused: bool) -> None:
        with self._lock:
            self.focused = bool(focused)
        LOGGER.debug("Page focus changed: %s", focused)

    def is_recently_active(self, now: Optional[float] = None, idle_cutoff: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        cutoff = self.idle_cutoff if idle_cutoff is None else idle_cutoff
        return now - self.last_interaction_at <= cutoff

    def is_page_engaged(self) -> bool:
        return self.visible and self.focused

    def is_qualifying(self, now: Optional[float] = None) -> bool:
        """Time counts only while the page is engaged and recently interacted with."""
        return self.is_page_engaged() and self.is_recently_active(now)
