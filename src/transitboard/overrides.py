"""Per-train held/caution state driven by signal events."""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from .models import TrainOverrideState

logger = logging.getLogger(__name__)


@dataclass
class OverrideChange:
    """Result of applying a trainHeldStatus event."""
    train_id: str
    state: Optional[TrainOverrideState]  # None once both flags have cleared
    released_after_s: Optional[int] = None  # Seconds held, set when a hold ends


class HeldStateTracker:
    """Tracks which trains are held or running under caution."""

    def __init__(self):
        self._states: Dict[str, TrainOverrideState] = {}

    def apply(
        self,
        train_id: str,
        is_held: bool,
        is_caution: bool,
        now_ms: float,
        reason: Optional[str] = None,
        segment_name: Optional[str] = None,
    ) -> OverrideChange:
        """
        Set or clear the override for a train.

        The first held event fixes held_since; repeated held events keep it.
        Clearing both flags deletes the entry.
        """
        previous = self._states.get(train_id)
        released_after_s = None
        if previous is not None and previous.is_held and not is_held:
            released_after_s = self.held_seconds(train_id, now_ms)

        if not (is_held or is_caution):
            if previous is not None:
                del self._states[train_id]
                logger.info(f"Train {train_id} released from signal override")
            return OverrideChange(train_id, None, released_after_s)

        if is_held:
            held_since = previous.held_since if previous and previous.is_held else now_ms
        else:
            held_since = None

        state = TrainOverrideState(
            train_id=train_id,
            is_held=bool(is_held),
            is_caution=bool(is_caution),
            reason=reason or "Signal hold",
            segment_name=segment_name,
            held_since=held_since,
        )
        self._states[train_id] = state
        if previous is None or previous.is_held != state.is_held:
            logger.info(f"Train {train_id} {'held' if is_held else 'under caution'}: {state.reason}")
        return OverrideChange(train_id, state, released_after_s)

    def get(self, train_id: Optional[str]) -> Optional[TrainOverrideState]:
        if train_id is None:
            return None
        return self._states.get(train_id)

    def held_seconds(self, train_id: str, now_ms: float) -> int:
        """Whole seconds since the train was first held (0 if not held)."""
        state = self._states.get(train_id)
        if state is None or not state.is_held or state.held_since is None:
            return 0
        return int(max(0.0, now_ms - state.held_since) // 1000)

    def prune(self, train_id: str) -> bool:
        """Drop override state for a train that has left the system."""
        return self._states.pop(train_id, None) is not None

    def __contains__(self, train_id: str) -> bool:
        return train_id in self._states

    def __iter__(self) -> Iterator[TrainOverrideState]:
        return iter(list(self._states.values()))

    def __len__(self) -> int:
        return len(self._states)
