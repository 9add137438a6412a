"""Render model for the rider-facing arrivals board."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from .eta import EtaHistory, ProjectedArrival, format_eta, project_arrival
from .models import (
    ArrivalRecord,
    ArrivalSnapshot,
    DelayInfo,
    EmptyState,
    SignalIndicator,
)
from .overrides import HeldStateTracker, OverrideChange
from .staleness import ConnectionMonitor

logger = logging.getLogger(__name__)


@dataclass
class ArrivalRow:
    """One drawn line of the arrivals board."""
    record: ArrivalRecord
    eta_text: str
    status_text: str
    eta_class: str = ""
    projected_eta: float = 0
    held: bool = False
    caution: bool = False
    stuck: bool = False
    delayed: bool = False
    signal: Optional[SignalIndicator] = None
    hold_carry_s: int = 0  # Seconds held across releases, kept until the next full render

    @property
    def train_id(self) -> Optional[str]:
        return self.record.train_id

    @property
    def destination(self) -> str:
        return self.record.destination

    @property
    def type_label(self) -> str:
        return "(Freight)" if self.record.is_freight else ""

    @property
    def status_class(self) -> str:
        if self.delayed:
            return "delayed"
        return "-".join(self.status_text.lower().split())


@dataclass
class SignalHoldBanner:
    title: str
    icon: str
    segment_name: str
    reason: str
    dispatcher_hold: bool = False


class ArrivalsBoard:
    """
    Holds what the arrivals board currently shows.

    Full renders come from the update coalescer; hold, delay and signal
    events patch individual rows in place without waiting for it.
    """

    def __init__(self, clock, overrides: HeldStateTracker, history: EtaHistory, monitor: ConnectionMonitor):
        self.clock = clock
        self.overrides = overrides
        self.history = history
        self.monitor = monitor

        self.visible = False
        self.station_name = ""
        self.service_period = "offpeak"
        self.rows: List[ArrivalRow] = []
        self.empty_state: Optional[EmptyState] = None
        self.valid_train_ids: Set[str] = set()
        self.delays: Dict[str, DelayInfo] = {}
        self.signal_indicators: Dict[str, SignalIndicator] = {}
        self.signal_hold: Optional[SignalHoldBanner] = None

    def show(self, station: str) -> None:
        self.station_name = (station or "").upper()
        self.visible = True

    def hide(self) -> None:
        self.visible = False

    def render(self, snapshot: ArrivalSnapshot) -> None:
        """Replace every row with the contents of a snapshot."""
        if snapshot.service_period:
            self.service_period = snapshot.service_period

        now = self.clock.now_ms()
        rows = []
        for record in snapshot.records:
            if record.train_id:
                self.valid_train_ids.add(record.train_id)
            row = ArrivalRow(record=record, eta_text="", status_text="")
            self._project(row, now)
            rows.append(row)

        self.rows = rows
        if not rows:
            self._show_empty_state()
            return

        self.empty_state = None
        self._apply_delays()
        logger.debug(f"Rendered {len(rows)} arrivals")

    def find_row(self, train_id: str) -> Optional[ArrivalRow]:
        for row in self.rows:
            if row.train_id == train_id:
                return row
        return None

    def patch_override(self, change: OverrideChange) -> bool:
        """Re-project the row of a train whose hold/caution state changed."""
        row = self.find_row(change.train_id)
        if row is None:
            return False
        if change.released_after_s:
            row.hold_carry_s += change.released_after_s
        self._project(row, self.clock.now_ms())
        self._apply_delays()
        return True

    def set_signal(self, train_id: str, segment_name: str, signal_state: str) -> bool:
        indicator = SignalIndicator(segment_name=segment_name or "", signal_state=signal_state or "")
        self.signal_indicators[train_id] = indicator
        row = self.find_row(train_id)
        if row is None:
            return False
        row.signal = indicator
        return True

    def update_delays(self, delays: Dict[str, DelayInfo]) -> None:
        self.delays = delays
        now = self.clock.now_ms()
        for row in self.rows:
            self._project(row, now)
        self._apply_delays()

    def remove_train(self, train_id: str) -> bool:
        """Drop a train that the simulation no longer knows about."""
        self.valid_train_ids.discard(train_id)
        self.signal_indicators.pop(train_id, None)
        self.delays.pop(train_id, None)

        before = len(self.rows)
        self.rows = [row for row in self.rows if row.train_id != train_id]
        removed = len(self.rows) != before
        if removed and not self.rows:
            self._show_empty_state()
        return removed

    def show_signal_hold(self, segment_name: Optional[str], reason: Optional[str], dispatcher_hold: bool = False) -> None:
        self.signal_hold = SignalHoldBanner(
            title="Dispatcher Hold" if dispatcher_hold else "Signal Hold",
            icon="dispatcher" if dispatcher_hold else "signal",
            segment_name=segment_name or "Current Section",
            reason=reason or "Waiting for clear signal",
            dispatcher_hold=bool(dispatcher_hold),
        )

    def hide_signal_hold(self) -> None:
        self.signal_hold = None

    def refresh_empty_state(self) -> None:
        """Re-evaluate the empty-state message, e.g. to surface a lost connection."""
        if not self.rows:
            self._show_empty_state()

    def _show_empty_state(self) -> None:
        state = self.monitor.empty_state(
            self.clock.now_ms(),
            service_period=self.service_period,
            hour=self.clock.local_hour(),
        )
        if self.empty_state is None or self.empty_state.kind != state.kind:
            logger.info(f"Arrivals board empty: {state.title}")
        self.empty_state = state

    def _project(self, row: ArrivalRow, now: float) -> None:
        projection: ProjectedArrival = project_arrival(row.record, self.overrides, self.history, now)
        row.eta_text = projection.eta_text
        row.status_text = projection.status_text
        row.eta_class = projection.eta_class
        row.projected_eta = projection.projected_eta
        row.held = projection.held
        row.caution = projection.caution
        row.stuck = projection.stuck
        row.delayed = False
        if row.train_id:
            row.signal = self.signal_indicators.get(row.train_id)

        if row.hold_carry_s:
            carried = row.record.eta + row.hold_carry_s
            if row.held:
                carried += self.overrides.held_seconds(row.train_id, now)
            row.projected_eta = max(row.projected_eta, carried)
            if not (row.held or row.stuck or row.caution or row.record.at_platform):
                row.eta_text = format_eta(row.projected_eta)

    def _apply_delays(self) -> None:
        for row in self.rows:
            if row.held or row.stuck:
                continue
            for delay in self.delays.values():
                if delay.destination == row.destination and delay.delay_minutes > 0:
                    row.status_text = f"+{delay.delay_minutes} min"
                    row.delayed = True
                    break
