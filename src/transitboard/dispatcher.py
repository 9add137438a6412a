"""Dispatcher panel: segment map, train list, selection and operator commands."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .commands import EMERGENCY_STOP, SEGMENT_OVERRIDE, CommandClient
from .config import DEFAULT_LOCK_REASON
from .models import (
    CommandPhase,
    DispatcherTrain,
    PendingCommand,
    SegmentState,
    SelectionState,
    resolve_id,
)

logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    """Format a duration as 42s, 3m 5s or 2h+."""
    if seconds < 60:
        return f"{int(seconds)}s"
    if seconds < 3600:
        return f"{int(seconds // 60)}m {int(seconds % 60)}s"
    return f"{int(seconds // 3600)}h+"


@dataclass
class SegmentView:
    """How one segment block is drawn."""
    segment_id: str
    name: str
    block_class: str  # "locked", "held", "freight", "passenger" or "empty"
    caution: bool = False
    selected: bool = False
    pending_action: Optional[str] = None  # "lock"/"unlock" awaiting confirmation
    tooltip: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class TrainItem:
    """How one entry of the train list is drawn."""
    train_id: str
    type_label: str  # "FRT" or "PAX"
    location: str
    status_text: str
    status_class: str
    held: bool = False
    freight: bool = False
    active: bool = False
    button_label: str = "STOP"
    button_active: bool = False
    button_disabled: bool = False


def build_segment_view(segment: SegmentState, selected: bool = False, pending: Optional[PendingCommand] = None) -> SegmentView:
    if segment.is_locked:
        block_class = "locked"
    elif not segment.occupied:
        block_class = "empty"
    elif segment.is_held:
        block_class = "held"
    elif segment.train_type == "freight":
        block_class = "freight"
    else:
        block_class = "passenger"

    if segment.is_locked:
        tooltip = [
            ("Status", "LOCKED"),
            ("Reason", segment.lock_reason or DEFAULT_LOCK_REASON),
            ("Locked By", segment.locked_by or "Dispatcher"),
        ]
    elif segment.occupied and segment.train_id:
        if segment.is_held:
            status = "HELD"
        elif segment.signal_state == "yellow":
            status = "CAUTION"
        else:
            status = "RUNNING"
        tooltip = [
            ("Train", segment.train_id),
            ("Type", "Freight" if segment.train_type == "freight" else "Passenger"),
            ("Status", status),
            ("In Segment", format_duration(segment.time_in_segment) if segment.time_in_segment else "--"),
            ("ETA Clear", format_duration(segment.estimated_clear_time) if segment.estimated_clear_time else "--"),
        ]
    else:
        tooltip = [("Status", "CLEAR")]

    return SegmentView(
        segment_id=segment.segment_id,
        name=segment.display_name,
        block_class=block_class,
        caution=segment.occupied and not segment.is_locked and segment.signal_state == "yellow",
        selected=selected,
        pending_action=pending.action if pending else None,
        tooltip=tooltip,
    )


class DispatcherPanel:
    """
    Operator view of the line.

    Segment and train data are replaced wholesale on every dispatcher update;
    the selected train and any commands awaiting confirmation are carried
    across updates and re-applied to the rebuilt views.
    """

    def __init__(self, commands: CommandClient):
        self.commands = commands
        self.visible = False

        self.segments: Dict[str, SegmentState] = {}
        self.trains: List[DispatcherTrain] = []
        self.selection = SelectionState()

        self.segment_views: Dict[str, SegmentView] = {}
        self.train_items: List[TrainItem] = []

        self.emergency_prompt: Optional[PendingCommand] = None
        self.lock_prompt: Optional[PendingCommand] = None
        self.pending_emergency: Dict[str, PendingCommand] = {}  # train_id -> sent command
        self.pending_overrides: Dict[str, PendingCommand] = {}  # segment_id -> sent command

    # ------------------------------------------------------------------
    # Visibility

    def show(self) -> None:
        self.visible = True
        self.commands.request_dispatcher_data()

    def hide(self) -> None:
        self.visible = False

    # ------------------------------------------------------------------
    # Snapshots

    def update(self, segments: Optional[dict], trains: Optional[list] = None) -> bool:
        """
        Apply a dispatcher snapshot.

        Args:
            segments: segment_id -> segment fields. Nothing happens if empty.
            trains: Train list entries. The previous list is kept if None.

        Returns:
            True if the snapshot was applied.
        """
        if not segments:
            return False

        parsed: Dict[str, SegmentState] = {}
        for segment_id, data in segments.items():
            try:
                parsed[str(segment_id)] = SegmentState.from_message(str(segment_id), data)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed segment {segment_id}: {e}")
        self.segments = parsed

        if trains is not None:
            train_list = []
            for data in trains:
                try:
                    train_list.append(DispatcherTrain.from_message(data))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed train entry {data!r}: {e}")
            self.trains = train_list

        self._reconcile_emergency()
        if self.selection.selected_train_id:
            self.selection.selected_segment_id = self.segment_of(self.selection.selected_train_id)
        self._rebuild_views()
        return True

    def segment_of(self, train_id: str) -> Optional[str]:
        """Segment currently occupied by a train, if any."""
        for segment_id, segment in self.segments.items():
            if segment.train_id == train_id:
                return segment_id
        return None

    def find_train(self, train_id: str) -> Optional[DispatcherTrain]:
        for train in self.trains:
            if train.id == train_id:
                return train
        return None

    # ------------------------------------------------------------------
    # Selection

    def select_train(self, train_id: str, segment_id: Optional[str] = None) -> None:
        train_id = resolve_id(train_id)
        segment_id = resolve_id(segment_id)
        self.selection.clear()
        self.selection.selected_train_id = train_id
        self.selection.selected_segment_id = segment_id or self.segment_of(train_id)
        self._rebuild_views()

    def clear_selection(self) -> None:
        self.selection.clear()
        self._rebuild_views()

    def click_segment(self, segment_id: str) -> None:
        segment_id = resolve_id(segment_id)
        segment = self.segments.get(segment_id)
        if segment is not None and segment.occupied and segment.train_id:
            self.select_train(segment.train_id, segment_id)
        else:
            self.clear_selection()

    def train_removed(self, train_id: str) -> None:
        """Forget a train the simulation has removed."""
        train_id = resolve_id(train_id)
        self.pending_emergency.pop(train_id, None)
        if self.selection.selected_train_id == train_id:
            logger.info(f"Selected train {train_id} removed, clearing selection")
            self.clear_selection()
        if self.emergency_prompt is not None and self.emergency_prompt.target == train_id:
            self.emergency_prompt = None

    # ------------------------------------------------------------------
    # Emergency stop

    def request_emergency_stop(self, train_id: str) -> Optional[PendingCommand]:
        """
        Start the emergency stop flow for a train.

        Held trains are released straight away. Otherwise a confirmation
        prompt is opened and returned; nothing is sent until it is confirmed.
        """
        train_id = resolve_id(train_id)
        if train_id in self.pending_emergency:
            logger.debug(f"Emergency command for {train_id} already in progress")
            return None

        train = self.find_train(train_id)
        if train is not None and train.is_held:
            self.release_emergency_brake(train_id)
            return None

        self.emergency_prompt = PendingCommand(command=EMERGENCY_STOP, target=train_id, action="stop")
        return self.emergency_prompt

    def prompt_details(self) -> Optional[Tuple[str, str]]:
        """Train type and location shown in the emergency stop prompt."""
        if self.emergency_prompt is None:
            return None
        train = self.find_train(self.emergency_prompt.target)
        if train is None:
            return ("Unknown", "Unknown")
        return ("Freight" if train.type == "freight" else "Passenger", train.where)

    def cancel_emergency_stop(self) -> None:
        self.emergency_prompt = None

    def confirm_emergency_stop(self) -> bool:
        if self.emergency_prompt is None:
            return False
        train_id = self.emergency_prompt.target
        self.emergency_prompt = None
        logger.warning(f"Emergency stop requested for train {train_id}")
        return self._send_emergency(train_id, "stop")

    def release_emergency_brake(self, train_id: str) -> bool:
        train_id = resolve_id(train_id)
        logger.info(f"Emergency release requested for train {train_id}")
        return self._send_emergency(train_id, "release")

    def _send_emergency(self, train_id: str, action: str) -> bool:
        if not self.commands.emergency_stop(train_id, action):
            self.pending_emergency.pop(train_id, None)
            self._rebuild_views()
            return False
        self.pending_emergency[train_id] = PendingCommand(
            command=EMERGENCY_STOP, target=train_id, action=action, phase=CommandPhase.SENT
        )
        self._rebuild_views()
        return True

    def _reconcile_emergency(self) -> None:
        for train_id, pending in list(self.pending_emergency.items()):
            train = self.find_train(train_id)
            if train is None:
                continue
            if train.is_held == (pending.action == "stop"):
                logger.info(f"Emergency {pending.action} confirmed for train {train_id}")
                del self.pending_emergency[train_id]

    # ------------------------------------------------------------------
    # Segment lock override

    def request_segment_lock(self, segment_id: str) -> Optional[PendingCommand]:
        segment_id = resolve_id(segment_id)
        if segment_id not in self.segments:
            logger.warning(f"Cannot lock unknown segment {segment_id}")
            return None
        self.lock_prompt = PendingCommand(command=SEGMENT_OVERRIDE, target=segment_id, action="lock")
        return self.lock_prompt

    def cancel_segment_lock(self) -> None:
        self.lock_prompt = None

    def confirm_segment_lock(self, reason: Optional[str] = None) -> bool:
        if self.lock_prompt is None:
            return False
        segment_id = self.lock_prompt.target
        self.lock_prompt = None
        reason = (reason or "").strip() or DEFAULT_LOCK_REASON
        return self._send_override(segment_id, "lock", reason)

    def unlock_segment(self, segment_id: str) -> bool:
        segment_id = resolve_id(segment_id)
        return self._send_override(segment_id, "unlock")

    def _send_override(self, segment_id: str, action: str, reason: Optional[str] = None) -> bool:
        if not self.commands.segment_override(segment_id, action, reason):
            self.pending_overrides.pop(segment_id, None)
            self._rebuild_views()
            return False
        self.pending_overrides[segment_id] = PendingCommand(
            command=SEGMENT_OVERRIDE, target=segment_id, action=action, phase=CommandPhase.SENT, reason=reason
        )
        self._rebuild_views()
        return True

    def segment_override_changed(
        self,
        segment_id: Optional[str],
        locked: bool,
        reason: Optional[str] = None,
        locked_by: Optional[str] = None,
    ) -> bool:
        """Apply the simulation's confirmation of a lock or unlock."""
        segment_id = resolve_id(segment_id)
        if not segment_id:
            return False
        self.pending_overrides.pop(segment_id, None)

        segment = self.segments.get(segment_id)
        if segment is None:
            return False

        segment.is_locked = bool(locked)
        segment.lock_reason = reason if locked else None
        segment.locked_by = locked_by if locked else None
        logger.info(f"Segment {segment_id} {'locked' if locked else 'unlocked'}")

        self.segment_views[segment_id] = build_segment_view(
            segment, selected=segment_id == self.selection.selected_segment_id
        )
        return True

    # ------------------------------------------------------------------
    # Views

    def _rebuild_views(self) -> None:
        self.segment_views = {
            segment_id: build_segment_view(
                segment,
                selected=segment_id == self.selection.selected_segment_id,
                pending=self.pending_overrides.get(segment_id),
            )
            for segment_id, segment in self.segments.items()
        }
        self.train_items = [self._build_train_item(train) for train in self.trains]

    def _build_train_item(self, train: DispatcherTrain) -> TrainItem:
        if train.is_held:
            status_text, status_class = "HELD", "held"
        else:
            status_text = train.status or "Running"
            status_class = "boarding" if train.status == "boarding" else "running"

        item = TrainItem(
            train_id=train.id,
            type_label="FRT" if train.type == "freight" else "PAX",
            location=train.where,
            status_text=status_text,
            status_class=status_class,
            held=train.is_held,
            freight=train.type == "freight",
            active=train.id == self.selection.selected_train_id,
            button_label="RELEASE" if train.is_held else "STOP",
            button_active=train.is_held,
        )

        pending = self.pending_emergency.get(train.id)
        if pending is not None:
            item.button_label = "STOPPING..." if pending.action == "stop" else "RELEASING..."
            item.button_active = pending.action == "stop"
            item.button_disabled = True
        return item
