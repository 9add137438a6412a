"""Single-flight deferred redraw scheduler for arrivals snapshots."""

import logging
from enum import Enum
from typing import Callable, Optional

from .clock import Timer, TimerQueue
from .config import DISTANCE_DEADZONE, ETA_CHANGE_THRESHOLD, THROTTLE_MS
from .models import ArrivalSnapshot
from .significance import LastRenderedState, is_significant

logger = logging.getLogger(__name__)


class CoalescerState(Enum):
    IDLE = "idle"
    RENDERING = "rendering"
    DEFERRED = "deferred"


class UpdateCoalescer:
    """
    Throttles arrivals redraws without ever dropping the latest data.

    Significant snapshots, or any snapshot arriving after throttle_ms of
    quiet, render immediately. Everything else replaces the single pending
    payload, which a single timer renders once the interval has elapsed.
    """

    def __init__(
        self,
        render: Callable[[ArrivalSnapshot], None],
        timers: TimerQueue,
        last_rendered: Optional[LastRenderedState] = None,
        throttle_ms: float = THROTTLE_MS,
        eta_threshold: float = ETA_CHANGE_THRESHOLD,
        distance_deadzone: float = DISTANCE_DEADZONE,
    ):
        self._render = render
        self.timers = timers
        self.last_rendered = last_rendered if last_rendered is not None else LastRenderedState()
        self.throttle_ms = throttle_ms
        self.eta_threshold = eta_threshold
        self.distance_deadzone = distance_deadzone

        self.state = CoalescerState.IDLE
        self.pending: Optional[ArrivalSnapshot] = None
        self.last_render_ms: Optional[float] = None
        self.render_count = 0
        self._timer: Optional[Timer] = None

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None and self._timer.active

    def submit(self, snapshot: ArrivalSnapshot) -> bool:
        """
        Offer a new snapshot.

        Returns:
            True if it was rendered immediately, False if it was deferred.
        """
        now = self.timers.clock.now_ms()
        elapsed = None if self.last_render_ms is None else now - self.last_render_ms
        significant = is_significant(
            snapshot.records,
            self.last_rendered,
            eta_threshold=self.eta_threshold,
            distance_deadzone=self.distance_deadzone,
        )

        if significant or elapsed is None or elapsed >= self.throttle_ms:
            self._render_now(snapshot)
            return True

        self.pending = snapshot
        if not self.timer_armed:
            delay = self.throttle_ms - elapsed
            self._timer = self.timers.call_later(delay, self._on_timer, name="arrivals-coalesce")
            logger.debug(f"Deferred arrivals render by {delay:.0f} ms")
        self.state = CoalescerState.DEFERRED
        return False

    def force(self, snapshot: ArrivalSnapshot) -> None:
        """Render a snapshot immediately regardless of significance."""
        self._render_now(snapshot)

    def forget(self, key: str) -> None:
        self.last_rendered.forget(key)

    def _render_now(self, snapshot: ArrivalSnapshot) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.pending = None
        self._commit(snapshot)

    def _on_timer(self) -> None:
        self._timer = None
        snapshot, self.pending = self.pending, None
        if snapshot is None:
            self.state = CoalescerState.IDLE
            return
        self._commit(snapshot)

    def _commit(self, snapshot: ArrivalSnapshot) -> None:
        self.state = CoalescerState.RENDERING
        try:
            self._render(snapshot)
        finally:
            self.last_rendered.record(snapshot.records)
            self.last_render_ms = self.timers.clock.now_ms()
            self.render_count += 1
            self.state = CoalescerState.IDLE
