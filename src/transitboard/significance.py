"""Decides whether a new arrivals snapshot is worth a redraw."""

import logging
from typing import Dict, Iterable, Optional, Sequence

from .config import DISTANCE_DEADZONE, ETA_CHANGE_THRESHOLD
from .models import ArrivalRecord, RenderedEntry

logger = logging.getLogger(__name__)


class LastRenderedState:
    """ETA and position per identity key for the last snapshot actually drawn."""

    def __init__(self):
        self.entries: Dict[str, RenderedEntry] = {}

    def record(self, records: Iterable[ArrivalRecord]) -> None:
        """Replace the stored state with the snapshot that was just rendered."""
        self.entries = {
            record.key: RenderedEntry(eta=record.eta, position=record.position)
            for record in records
        }

    def forget(self, key: str) -> None:
        self.entries.pop(key, None)

    def get(self, key: str) -> Optional[RenderedEntry]:
        return self.entries.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)


def is_significant(
    records: Optional[Sequence[ArrivalRecord]],
    last_rendered: LastRenderedState,
    eta_threshold: float = ETA_CHANGE_THRESHOLD,
    distance_deadzone: float = DISTANCE_DEADZONE,
) -> bool:
    """
    Check whether any record differs enough from what is on screen.

    A record is significant when its train was not on screen before, its ETA
    moved by eta_threshold seconds or more, it moved distance_deadzone units
    or more, or it reports a position for the first time. An empty snapshot
    is always significant so the empty state gets drawn.
    """
    if not records:
        return True

    for record in records:
        last = last_rendered.get(record.key)
        if last is None:
            logger.debug(f"First sighting of {record.key}")
            return True

        if abs(record.eta - last.eta) >= eta_threshold:
            return True

        if record.position is not None:
            if last.position is None:
                return True
            if record.position.distance_to(last.position) >= distance_deadzone:
                return True

    return False
