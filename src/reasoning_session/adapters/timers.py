from __future__ import annotations

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

TimerCallback = Callable[[], None]
TimerToken = int


class TimerService(Protocol):
    """Host timer primitive the scheduler arms; one callback per token, at most once."""

    def schedule(self, callback: TimerCallback, duration_ms: int) -> TimerToken:
        """Run ``callback`` after ``duration_ms`` and return a cancel token."""
        ...

    def cancel(self, token: TimerToken) -> bool:
        """Cancel a pending timer. Returns False when it already fired or was unknown."""
        ...


@dataclass(order=True)
class _ScheduledTimer:
    due_ms: int
    token: TimerToken
    callback: TimerCallback = field(compare=False)


class ManualTimerService:
    """
    Virtual clock for tests, replays and demos.

    Nothing fires until the caller advances time. Timers due at the same
    instant fire in scheduling order; timers scheduled by a firing callback
    fire in the same ``advance`` call if they fall inside the window.
    """

    def __init__(self) -> None:
        self.now_ms = 0
        self._heap: list[_ScheduledTimer] = []
        self._live: set[TimerToken] = set()
        self._tokens = itertools.count(1)

    def schedule(self, callback: TimerCallback, duration_ms: int) -> TimerToken:
        token = next(self._tokens)
        heapq.heappush(self._heap, _ScheduledTimer(self.now_ms + max(0, int(duration_ms)), token, callback))
        self._live.add(token)
        return token

    def cancel(self, token: TimerToken) -> bool:
        if token not in self._live:
            return False
        self._live.discard(token)
        return True

    @property
    def pending_count(self) -> int:
        return len(self._live)

    def next_due_ms(self) -> Optional[int]:
        self._drop_cancelled()
        return self._heap[0].due_ms if self._heap else None

    def advance(self, ms: int) -> int:
        """Move the clock forward by ``ms`` and fire everything that came due; returns the fire count."""
        target = self.now_ms + max(0, int(ms))
        fired = 0
        while True:
            due = self.next_due_ms()
            if due is None or due > target:
                break
            fired += int(self._pop_and_fire())
        self.now_ms = target
        return fired

    def fire_next(self) -> bool:
        """Jump the clock to the next due timer and fire it."""
        if self.next_due_ms() is None:
            return False
        return self._pop_and_fire()

    def run_until_idle(self, *, max_fires: int = 10_000) -> int:
        fired = 0
        while fired < max_fires and self.fire_next():
            fired += 1
        return fired

    def _drop_cancelled(self) -> None:
        while self._heap and self._heap[0].token not in self._live:
            heapq.heappop(self._heap)

    def _pop_and_fire(self) -> bool:
        self._drop_cancelled()
        if not self._heap:
            return False
        timer = heapq.heappop(self._heap)
        self._live.discard(timer.token)
        self.now_ms = max(self.now_ms, timer.due_ms)
        timer.callback()
        return True


class AsyncioTimerService:
    """Timer primitive backed by ``loop.call_later``; must be used from the loop's thread."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._handles: dict[TimerToken, asyncio.TimerHandle] = {}
        self._tokens = itertools.count(1)

    def schedule(self, callback: TimerCallback, duration_ms: int) -> TimerToken:
        loop = self._loop or asyncio.get_running_loop()
        token = next(self._tokens)
        self._handles[token] = loop.call_later(max(0, duration_ms) / 1000.0, self._fire, token, callback)
        return token

    def cancel(self, token: TimerToken) -> bool:
        handle = self._handles.pop(token, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    @property
    def pending_count(self) -> int:
        return len(self._handles)

    def _fire(self, token: TimerToken, callback: TimerCallback) -> None:
        if self._handles.pop(token, None) is None:
            return
        callback()
