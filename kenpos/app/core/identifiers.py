"""Document identifiers.

Sale ids are ``{invoice prefix}{epoch millis}`` and shift ids are
``shift_{epoch millis}``. The millisecond value comes from a monotonic
generator: two calls in the same millisecond, or after the wall clock
stepped backwards, still get strictly increasing values.
"""

from __future__ import annotations

import threading
import time


class MonotonicMillis:
    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            now = int(self._clock() * 1000)
            if now <= self._last:
                now = self._last + 1
            self._last = now
            return now


_millis = MonotonicMillis()


def new_sale_id(prefix: str) -> str:
    return f"{prefix}{_millis.next()}"


def new_shift_id() -> str:
    return f"shift_{_millis.next()}"
