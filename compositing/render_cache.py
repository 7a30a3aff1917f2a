# compositing/render_cache.py
"""
Memoisation of finished composites.

Keys are plain tuples built from the frozen parameter dataclasses, so any
change to a component (design bitmap, warp, placement, appearance, product,
surface) is automatically a different key. Bypassed while a gesture is
active.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from contextlib import contextmanager
from threading import Lock
from typing import Any, Callable, Hashable, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)


def make_key(
    design_id: str,
    warp: Hashable,
    state: Hashable,
    appearance: Hashable,
    product_id: str = "",
    surface: Tuple[int, int] = (0, 0),
    extra: Hashable = None,
) -> Tuple[Hashable, ...]:
    return (design_id, warp, state, appearance, product_id, tuple(surface), extra)


class RenderCache:
    def __init__(self, max_size: int = 32):
        self.max_size = max(0, int(max_size))
        self._items: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._lock = Lock()
        self._bypass = 0
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    @property
    def enabled(self) -> bool:
        return self.max_size > 0 and self._bypass == 0

    @contextmanager
    def bypassed(self) -> Iterator["RenderCache"]:
        """Skip lookups and stores for the duration (continuous gestures)."""
        with self._lock:
            self._bypass += 1
        try:
            yield self
        finally:
            with self._lock:
                self._bypass -= 1

    def get(self, key: Hashable) -> Optional[Any]:
        if not self.enabled:
            return None
        with self._lock:
            if key in self._items:
                self._items.move_to_end(key)
                self.hits += 1
                return self._items[key]
            self.misses += 1
            return None

    def put(self, key: Hashable, value: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._items[key] = value
            self._items.move_to_end(key)
            while len(self._items) > self.max_size:
                self._items.popitem(last=False)

    def get_or_render(self, key: Hashable, render: Callable[[], Any]) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = render()
        self.put(key, value)
        return value

    def invalidate(self, predicate: Optional[Callable[[Hashable], bool]] = None) -> int:
        """Drop everything, or only keys matching ``predicate``. Returns the count dropped."""
        with self._lock:
            if predicate is None:
                n = len(self._items)
                self._items.clear()
            else:
                doomed = [k for k in self._items if predicate(k)]
                for k in doomed:
                    del self._items[k]
                n = len(doomed)
        if n:
            logger.debug(f"Render cache invalidated {n} entries")
        return n
