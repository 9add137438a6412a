"""ETA projection: what time and status each arrival row shows."""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from .config import CAUTION_FACTOR, STUCK_AFTER_MS, STUCK_ETA_TOLERANCE, STUCK_MIN_ETA
from .models import ArrivalRecord
from .overrides import HeldStateTracker

logger = logging.getLogger(__name__)

HELD = "HELD"
DELAYED = "DELAYED"
NOW = "NOW"
SIGNAL_HOLD = "Signal Hold"
CAUTION = "Caution"


def format_eta(seconds: float) -> str:
    """Format seconds as NOW / 1 min / N min."""
    if seconds < 60:
        return NOW
    if seconds < 120:
        return "1 min"
    return f"{int(seconds // 60)} min"


class EtaHistory:
    """
    Remembers when each train's ETA last moved.

    A train whose ETA stays within STUCK_ETA_TOLERANCE seconds of the value
    it had when it last moved is considered frozen from that moment on.
    """

    def __init__(self, tolerance: float = STUCK_ETA_TOLERANCE, stuck_after_ms: float = STUCK_AFTER_MS):
        self.tolerance = tolerance
        self.stuck_after_ms = stuck_after_ms
        self._anchors: Dict[str, Tuple[float, float]] = {}  # key -> (eta, since_ms)

    def observe(self, records: Iterable[ArrivalRecord], now_ms: float) -> None:
        """Record an accepted snapshot; keys missing from it are dropped."""
        anchors = {}
        for record in records:
            anchor = self._anchors.get(record.key)
            if anchor is None or abs(record.eta - anchor[0]) >= self.tolerance:
                anchor = (record.eta, now_ms)
            anchors[record.key] = anchor
        self._anchors = anchors

    def frozen_for_ms(self, key: str, now_ms: float) -> float:
        anchor = self._anchors.get(key)
        if anchor is None:
            return 0.0
        return now_ms - anchor[1]

    def is_stuck(self, record: ArrivalRecord, now_ms: float) -> bool:
        """Guess that a train is stopped at a signal we were not told about."""
        if record.at_platform or record.eta <= STUCK_MIN_ETA:
            return False
        return self.frozen_for_ms(record.key, now_ms) > self.stuck_after_ms

    def forget(self, key: str) -> None:
        self._anchors.pop(key, None)


@dataclass
class ProjectedArrival:
    """Display values for one arrival row."""
    eta_text: str
    status_text: str
    eta_class: str
    projected_eta: float
    held: bool = False
    caution: bool = False
    stuck: bool = False


def projected_seconds(record: ArrivalRecord, overrides: HeldStateTracker, now_ms: float) -> float:
    """Raw ETA adjusted for any hold or caution on the train."""
    state = overrides.get(record.train_id)
    if state is None:
        return record.eta
    if state.is_held:
        return record.eta + overrides.held_seconds(state.train_id, now_ms)
    if state.is_caution:
        return math.floor(record.eta * CAUTION_FACTOR)
    return record.eta


def project_arrival(
    record: ArrivalRecord,
    overrides: HeldStateTracker,
    history: Optional[EtaHistory],
    now_ms: float,
) -> ProjectedArrival:
    """
    Work out the ETA text, status label and styling for a record.

    Holds win over everything, then trains at the platform are pinned to NOW
    so noisy raw ETAs cannot count backwards, then caution inflates the ETA.
    """
    state = overrides.get(record.train_id)
    is_held = bool(state and state.is_held)
    is_caution = bool(state and state.is_caution)
    stuck = not is_held and history is not None and history.is_stuck(record, now_ms)
    projected = projected_seconds(record, overrides, now_ms)

    if is_held or stuck:
        return ProjectedArrival(
            eta_text=HELD if is_held else DELAYED,
            status_text=SIGNAL_HOLD,
            eta_class="eta-held",
            projected_eta=projected,
            held=is_held,
            caution=is_caution,
            stuck=stuck,
        )

    if record.at_platform:
        return ProjectedArrival(
            eta_text=NOW,
            status_text=record.status or "On Time",
            eta_class="arriving",
            projected_eta=projected,
            caution=is_caution,
        )

    if is_caution:
        return ProjectedArrival(
            eta_text=format_eta(projected),
            status_text=CAUTION,
            eta_class="eta-caution" if record.eta < 120 else "",
            projected_eta=projected,
            caution=True,
        )

    return ProjectedArrival(
        eta_text=format_eta(record.eta),
        status_text=record.status or "On Time",
        eta_class="arriving" if record.eta < 60 else "",
        projected_eta=projected,
    )
