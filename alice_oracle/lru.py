"""Small TTL cache whose async lookups collapse concurrent misses into one task."""

from __future__ import annotations

import asyncio
import heapq
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Hashable

_MISSING = object()


class TTLCache:
    """Entries live for ``ttl`` seconds (``time.monotonic``); at most ``maxsize`` are kept.

    :meth:`get_or_set_async` is single-flight: while a value for a key is
    being computed, other callers for that key await the same task.  A
    failed computation reaches every waiter and leaves the cache untouched.
    """

    def __init__(self, maxsize: int = 128, ttl: float = 60.0) -> None:
        self.maxsize = max(1, int(maxsize))
        self.ttl = float(ttl)
        self._data: "OrderedDict[Hashable, tuple[Any, float]]" = OrderedDict()
        self._deadlines: list[tuple[float, int, Hashable]] = []
        self._seq = 0
        self._inflight: dict[tuple[Hashable, asyncio.AbstractEventLoop], asyncio.Task] = {}

    def _expire(self, now: float) -> None:
        heap = self._deadlines
        while heap and heap[0][0] <= now:
            _, _, key = heapq.heappop(heap)
            entry = self._data.get(key)
            # a later set() may have pushed the deadline out
            if entry is not None and entry[1] <= now:
                del self._data[key]

    def get(self, key: Hashable, default: Any = None) -> Any:
        self._expire(time.monotonic())
        entry = self._data.get(key, _MISSING)
        if entry is _MISSING:
            return default
        return entry[0]

    def set(self, key: Hashable, value: Any) -> None:
        now = time.monotonic()
        self._expire(now)
        deadline = now + self.ttl
        self._data[key] = (value, deadline)
        self._data.move_to_end(key)
        self._seq += 1
        heapq.heappush(self._deadlines, (deadline, self._seq, key))
        while len(self._data) > self.maxsize:
            self._data.popitem(last=False)

    def pop(self, key: Hashable, default: Any = None) -> Any:
        entry = self._data.pop(key, _MISSING)
        return default if entry is _MISSING else entry[0]

    def clear(self) -> None:
        self._data.clear()
        self._deadlines.clear()

    def __len__(self) -> int:
        self._expire(time.monotonic())
        return len(self._data)

    async def get_or_set_async(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for ``key`` or compute it with ``factory()``."""

        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        loop = asyncio.get_running_loop()
        slot = (key, loop)
        task = self._inflight.get(slot)
        if task is None:
            task = loop.create_task(self._fill(key, factory))
            self._inflight[slot] = task
            task.add_done_callback(lambda _t: self._inflight.pop(slot, None))
        # a cancelled caller must not cancel the shared computation
        return await asyncio.shield(task)

    async def _fill(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        value = await factory()
        self.set(key, value)
        return value


__all__ = ["TTLCache"]
