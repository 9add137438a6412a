"""Clocks and the cooperative timer queue that drive the dashboard."""

import heapq
import itertools
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class SystemClock:
    """Wall clock in milliseconds."""

    def now_ms(self) -> float:
        return time.monotonic() * 1000

    def local_hour(self) -> int:
        return datetime.now().hour


class ManualClock:
    """Clock that only moves when told to. Used for tests and replays."""

    def __init__(self, start_ms: float = 0, hour: int = 12):
        self._now = float(start_ms)
        self.hour = hour

    def now_ms(self) -> float:
        return self._now

    def local_hour(self) -> int:
        return self.hour

    def advance(self, ms: float) -> None:
        self._now += ms

    def set(self, now_ms: float) -> None:
        if now_ms < self._now:
            raise ValueError(f"Clock cannot move backwards ({now_ms} < {self._now})")
        self._now = float(now_ms)


class Timer:
    """Handle for a scheduled callback."""

    def __init__(self, deadline: float, callback: Callable[[], None], name: str = ""):
        self.deadline = deadline
        self.callback = callback
        self.name = name
        self.cancelled = False
        self.fired = False

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        self.cancelled = True


class TimerQueue:
    """
    Single-threaded timer scheduler.

    Timers never fire on their own: the owner calls run_due() whenever it
    wakes up, and uses next_deadline() to decide how long it may sleep.
    """

    def __init__(self, clock):
        self.clock = clock
        self._heap: List[Tuple[float, int, Timer]] = []
        self._counter = itertools.count()

    def call_later(self, delay_ms: float, callback: Callable[[], None], name: str = "") -> Timer:
        timer = Timer(self.clock.now_ms() + max(0.0, delay_ms), callback, name)
        heapq.heappush(self._heap, (timer.deadline, next(self._counter), timer))
        return timer

    def next_deadline(self) -> Optional[float]:
        """Deadline of the earliest active timer, or None."""
        while self._heap and not self._heap[0][2].active:
            heapq.heappop(self._heap)
        return self._heap[0][0] if self._heap else None

    def run_due(self) -> int:
        """Fire every timer whose deadline has passed. Returns how many fired."""
        fired = 0
        while True:
            deadline = self.next_deadline()
            if deadline is None or deadline > self.clock.now_ms():
                return fired
            _, _, timer = heapq.heappop(self._heap)
            timer.fired = True
            fired += 1
            try:
                timer.callback()
            except Exception as e:
                logger.error(f"Timer {timer.name or timer.callback!r} failed: {e}", exc_info=True)

    def advance(self, ms: float) -> int:
        """Move a ManualClock forward, firing timers at their own deadlines."""
        target = self.clock.now_ms() + ms
        fired = 0
        while True:
            deadline = self.next_deadline()
            if deadline is None or deadline > target:
                break
            self.clock.set(max(deadline, self.clock.now_ms()))
            fired += self.run_due()
        self.clock.set(target)
        return fired + self.run_due()

    def __len__(self) -> int:
        return sum(1 for _, _, timer in self._heap if timer.active)
