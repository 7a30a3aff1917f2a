# compositing/debounce.py
from __future__ import annotations

import time
from threading import Lock
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class Debouncer(Generic[T]):
    """
    Trailing-edge debounce for viewport resizes.

    ``submit`` records the latest value; ``poll`` returns it once no newer
    value has arrived for ``interval`` seconds, then forgets it. The clock is
    injectable so callers (and tests) can drive it explicitly.
    """

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = float(interval)
        self._clock = clock
        self._lock = Lock()
        self._pending: Optional[T] = None
        self._has_pending = False
        self._last_submit = 0.0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._has_pending

    def submit(self, value: T, now: Optional[float] = None) -> None:
        with self._lock:
            self._pending = value
            self._has_pending = True
            self._last_submit = self._clock() if now is None else float(now)

    def poll(self, now: Optional[float] = None) -> Optional[T]:
        with self._lock:
            if not self._has_pending:
                return None
            now = self._clock() if now is None else float(now)
            if now - self._last_submit < self.interval:
                return None
            value = self._pending
            self._pending = None
            self._has_pending = False
            return value

    def flush(self) -> Optional[T]:
        """Return the pending value immediately, ignoring the interval."""
        with self._lock:
            value = self._pending if self._has_pending else None
            self._pending = None
            self._has_pending = False
            return value
