#!/usr/bin/env python3
"""
Caller-side throttling of batch progress callbacks.
"""

import time
from typing import Any, Callable, Optional


class ProgressThrottle:
    """Forwards a progress call when enough time or items passed, and always for the last item"""

    def __init__(self, callback: Callable[[int, int, Any], None],
                 interval_ms: int = 500, every: int = 3,
                 clock: Optional[Callable[[], float]] = None):
        self.callback = callback
        self.interval = interval_ms / 1000.0
        self.every = max(1, every)
        self.clock = clock or time.monotonic
        self._last_time: Optional[float] = None
        self._last_count = 0

    def __call__(self, completed: int, total: int, current: Any):
        now = self.clock()
        due = (
            completed >= total
            or completed - self._last_count >= self.every
            or self._last_time is None
            or now - self._last_time >= self.interval
        )
        if not due:
            return
        self._last_time = now
        self._last_count = completed
        self.callback(completed, total, current)
