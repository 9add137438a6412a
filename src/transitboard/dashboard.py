"""Main Dashboard class: routes simulation events to the board and dispatcher panel."""

import logging
import queue
from typing import Callable, Dict, Iterable, Optional

from .board import ArrivalsBoard
from .clock import SystemClock, Timer, TimerQueue
from .coalescer import UpdateCoalescer
from .commands import CommandClient
from .config import DashboardSettings
from .dispatcher import DispatcherPanel
from .eta import EtaHistory
from .models import ArrivalRecord, ArrivalSnapshot, InvalidArrivalError, parse_delays, resolve_id
from .notices import NoticeBoard
from .overrides import HeldStateTracker
from .significance import LastRenderedState
from .staleness import ConnectionMonitor

logger = logging.getLogger(__name__)

STOP = object()  # Put on the inbox to end run()


class Dashboard:
    """
    Interprets the simulation's event stream for the display.

    This class provides methods to:
    - Handle inbound simulation events (handle())
    - Drive operator actions through the dispatcher panel
    - Run a single-threaded loop over an event queue and the timers
    """

    def __init__(
        self,
        settings: Optional[DashboardSettings] = None,
        clock=None,
        commands: Optional[CommandClient] = None,
    ):
        """
        Initialize the dashboard.

        Args:
            settings: Thresholds and host settings. Defaults are used if None.
            clock: Clock providing now_ms() and local_hour(). Defaults to SystemClock.
            commands: Client for outbound commands. Defaults to a CommandClient
                      posting to the configured host resource.
        """
        self.settings = settings or DashboardSettings()
        self.clock = clock or SystemClock()
        self.timers = TimerQueue(self.clock)
        self.commands = commands or CommandClient(
            resource_name=self.settings.resource_name,
            timeout=self.settings.command_timeout,
        )

        self.overrides = HeldStateTracker()
        self.history = EtaHistory(stuck_after_ms=self.settings.stuck_after_ms)
        self.monitor = ConnectionMonitor(connection_lost_ms=self.settings.connection_lost_ms)
        self.last_rendered = LastRenderedState()

        self.board = ArrivalsBoard(self.clock, self.overrides, self.history, self.monitor)
        self.coalescer = UpdateCoalescer(
            render=self.board.render,
            timers=self.timers,
            last_rendered=self.last_rendered,
            throttle_ms=self.settings.throttle_ms,
            eta_threshold=self.settings.eta_change_threshold,
            distance_deadzone=self.settings.distance_deadzone,
        )
        self.dispatcher = DispatcherPanel(self.commands)
        self.notices = NoticeBoard(self.timers)

        self._status_timer: Optional[Timer] = None
        self._handlers: Dict[str, Callable[[dict], None]] = {
            "updateArrivals": self._on_update_arrivals,
            "showSchedule": self._on_show_schedule,
            "hideSchedule": lambda message: self.board.hide(),
            "updateDelays": self._on_update_delays,
            "trainRemoved": lambda message: self.remove_train(message.get("trainId")),
            "clearStaleTrains": self._on_clear_stale_trains,
            "updateTrainSegment": self._on_update_train_segment,
            "showSignalHold": self._on_show_signal_hold,
            "hideSignalHold": lambda message: self.board.hide_signal_hold(),
            "trainHeldStatus": self._on_train_held_status,
            "showDispatcher": self._on_show_dispatcher,
            "hideDispatcher": lambda message: self.dispatcher.hide(),
            "updateDispatcher": self._on_update_dispatcher,
            "segmentOverrideChanged": self._on_segment_override_changed,
            "showTicket": lambda message: self.notices.show_ticket(message.get("ticket")),
            "hideTicket": lambda message: self.notices.hide_ticket(),
            "setAnnouncement": lambda message: self.notices.set_announcement(message.get("message")),
            "showEmergencyAlert": lambda message: self.notices.show_emergency_alert(
                message.get("message"), message.get("stationName")
            ),
            "hideEmergencyAlert": lambda message: self.notices.hide_emergency_alert(),
            "showServiceAlert": self._on_show_service_alert,
            "hideServiceAlert": lambda message: self.notices.hide_service_alert(),
            "showAnnouncement": self._on_show_announcement,
            "hideAnnouncement": lambda message: self.notices.hide_passenger_announcement(),
        }

    def handle(self, message: dict) -> bool:
        """
        Handle one inbound event.

        Args:
            message: Event dict with an "action" key.

        Returns:
            True if a handler ran to completion, False if the event was
            unknown or its handler failed.
        """
        if not isinstance(message, dict):
            logger.warning(f"Ignoring non-dict message: {message!r}")
            return False

        action = message.get("action")
        handler = self._handlers.get(action)
        if handler is None:
            logger.debug(f"Ignoring unknown action {action!r}")
            return False

        try:
            handler(message)
            return True
        except Exception as e:
            logger.error(f"Failed to handle {action}: {e}", exc_info=True)
            return False

    def ingest_arrivals(self, arrivals: Optional[Iterable[dict]], service_period: Optional[str] = None) -> ArrivalSnapshot:
        """Validate raw arrivals, dropping bad records, and note that data came in."""
        records = []
        rejected = 0
        for data in arrivals or []:
            try:
                records.append(ArrivalRecord.from_message(data))
            except InvalidArrivalError as e:
                rejected += 1
                logger.warning(f"Dropping arrival {data!r}: {e}")

        now = self.clock.now_ms()
        self.monitor.mark_received(now)
        self.history.observe(records, now)
        return ArrivalSnapshot(records=records, service_period=service_period, rejected=rejected)

    def remove_train(self, train_id) -> None:
        """Forget everything known about a train the simulation removed."""
        train_id = resolve_id(train_id)
        if not train_id:
            return
        self.board.remove_train(train_id)
        self.coalescer.forget(train_id)
        self.history.forget(train_id)
        self.overrides.prune(train_id)
        self.dispatcher.train_removed(train_id)

    def escape(self) -> None:
        """Close the dispatcher panel if open, otherwise close the board."""
        if self.dispatcher.visible:
            self.dispatcher.hide()
            self.commands.close_dispatcher()
            return
        self.board.hide()
        self.commands.close()

    def tick(self) -> None:
        """Periodic status refresh; surfaces a lost connection on an empty board."""
        self.board.refresh_empty_state()

    def start_status_ticks(self) -> None:
        if self._status_timer is not None and self._status_timer.active:
            return

        def _tick():
            self._status_timer = None
            self.tick()
            self.start_status_ticks()

        self._status_timer = self.timers.call_later(self.settings.status_tick_ms, _tick, name="status-tick")

    def run(self, inbox: "queue.Queue") -> None:
        """
        Process events from a queue until STOP is received.

        Waits only until the next timer is due, so coalesced renders and
        status ticks fire on time between events.
        """
        self.start_status_ticks()
        logger.info("Dashboard running")
        while True:
            self.timers.run_due()
            deadline = self.timers.next_deadline()
            timeout = None if deadline is None else max(0.0, (deadline - self.clock.now_ms()) / 1000)
            try:
                message = inbox.get(timeout=timeout)
            except queue.Empty:
                continue
            if message is STOP:
                break
            self.handle(message)
        if self._status_timer is not None:
            self._status_timer.cancel()
        logger.info("Dashboard stopped")

    # ------------------------------------------------------------------
    # Event handlers

    def _on_update_arrivals(self, message: dict) -> None:
        snapshot = self.ingest_arrivals(message.get("arrivals"), message.get("servicePeriod"))
        self.coalescer.submit(snapshot)

    def _on_show_schedule(self, message: dict) -> None:
        self.board.show(message.get("station") or "")
        snapshot = self.ingest_arrivals(message.get("arrivals"), message.get("servicePeriod"))
        self.coalescer.force(snapshot)

    def _on_update_delays(self, message: dict) -> None:
        self.board.update_delays(parse_delays(message.get("delays")))

    def _on_clear_stale_trains(self, message: dict) -> None:
        valid_ids = message.get("validIds")
        if not isinstance(valid_ids, list):
            return
        current = {resolve_id(train_id) for train_id in valid_ids}
        known = set(self.board.valid_train_ids)
        known.update(state.train_id for state in self.overrides)
        for train_id in sorted(known - current):
            logger.info(f"Clearing stale train {train_id}")
            self.remove_train(train_id)

    def _on_update_train_segment(self, message: dict) -> None:
        train_id = resolve_id(message.get("trainId"))
        if not train_id:
            return
        self.board.set_signal(train_id, message.get("segmentName"), message.get("signalState"))

    def _on_show_signal_hold(self, message: dict) -> None:
        self.board.show_signal_hold(
            message.get("segmentName"),
            message.get("reason"),
            bool(message.get("isDispatcherHold")),
        )

    def _on_train_held_status(self, message: dict) -> None:
        train_id = resolve_id(message.get("trainId"))
        if not train_id:
            return
        change = self.overrides.apply(
            train_id,
            bool(message.get("isHeld")),
            bool(message.get("isCaution")),
            self.clock.now_ms(),
            reason=message.get("reason"),
            segment_name=message.get("segmentName"),
        )
        self.board.patch_override(change)

    def _on_show_dispatcher(self, message: dict) -> None:
        self.board.hide()
        self.dispatcher.show()

    def _on_update_dispatcher(self, message: dict) -> None:
        self.dispatcher.update(message.get("segments"), message.get("trains"))

    def _on_segment_override_changed(self, message: dict) -> None:
        self.dispatcher.segment_override_changed(
            resolve_id(message.get("segmentId")),
            bool(message.get("locked")),
            reason=message.get("reason"),
            locked_by=message.get("lockedBy"),
        )

    def _on_show_service_alert(self, message: dict) -> None:
        affected = message.get("affectedLines")
        self.notices.show_service_alert(
            message.get("alertType"),
            message.get("message"),
            affected if isinstance(affected, list) else None,
        )

    def _on_show_announcement(self, message: dict) -> None:
        duration = message.get("duration")
        if isinstance(duration, bool) or not isinstance(duration, (int, float)):
            duration = None
        self.notices.show_passenger_announcement(
            type=message.get("type"),
            title=message.get("title"),
            station=message.get("station"),
            subtitle=message.get("subtitle"),
            icon=message.get("icon"),
            duration_ms=duration,
        )
