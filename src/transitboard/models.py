"""Data models for the transit dashboard."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .config import MAX_ETA_SECONDS

AT_PLATFORM_STATUSES = frozenset({"boarding", "approaching", "departing"})


class InvalidArrivalError(ValueError):
    """Raised when an arrival message cannot be turned into an ArrivalRecord."""


def resolve_id(value) -> Optional[str]:
    """Train and segment ids arrive as strings or numbers; 7 and "7" are the same id."""
    if value is None or isinstance(value, bool):
        return None
    return str(value) or None


@dataclass(frozen=True)
class Position:
    """A 3-D point reported by the simulation."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @classmethod
    def from_message(cls, data: Optional[dict]) -> Optional["Position"]:
        if not data:
            return None
        return cls(
            x=float(data.get("x") or 0),
            y=float(data.get("y") or 0),
            z=float(data.get("z") or 0),
        )

    def distance_to(self, other: "Position") -> float:
        return math.sqrt(
            (self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2
        )


@dataclass(frozen=True)
class ArrivalRecord:
    """A single train arrival as reported in an arrivals snapshot."""
    destination: str
    eta: float  # Seconds until arrival
    key: str  # Identity key: train_id, or destination when the train has no id
    train_id: Optional[str] = None
    status: str = ""
    type: str = "passenger"  # "passenger" or "freight"
    position: Optional[Position] = None

    @property
    def at_platform(self) -> bool:
        return self.status.lower() in AT_PLATFORM_STATUSES

    @property
    def is_freight(self) -> bool:
        return self.type == "freight"

    @classmethod
    def from_message(cls, data: dict) -> "ArrivalRecord":
        """
        Validate a raw arrival dict and build a record from it.

        Args:
            data: Arrival as pushed by the simulation (camelCase keys).

        Returns:
            ArrivalRecord with its identity key resolved.

        Raises:
            InvalidArrivalError: If the ETA is missing/out of range or the
                destination is empty.
        """
        if not isinstance(data, dict):
            raise InvalidArrivalError(f"Arrival is not a mapping: {data!r}")

        eta = data.get("eta")
        if isinstance(eta, bool) or not isinstance(eta, (int, float)):
            raise InvalidArrivalError(f"Invalid ETA {eta!r}")
        if math.isnan(eta) or eta < 0 or eta > MAX_ETA_SECONDS:
            raise InvalidArrivalError(f"ETA out of range: {eta!r}")

        destination = data.get("destination")
        if not destination or not isinstance(destination, str):
            raise InvalidArrivalError("Missing destination")

        try:
            position = Position.from_message(data.get("position"))
        except (AttributeError, TypeError, ValueError) as e:
            raise InvalidArrivalError(f"Invalid position {data.get('position')!r}: {e}")

        train_id = resolve_id(data.get("trainId"))
        return cls(
            destination=destination,
            eta=eta,
            key=train_id or destination,
            train_id=train_id,
            status=str(data.get("status") or ""),
            type="freight" if data.get("type") == "freight" else "passenger",
            position=position,
        )


@dataclass
class ArrivalSnapshot:
    """An ordered set of valid arrivals, replaced wholesale on each update."""
    records: List[ArrivalRecord] = field(default_factory=list)
    service_period: Optional[str] = None
    rejected: int = 0  # Number of records dropped during validation

    def __len__(self) -> int:
        return len(self.records)


@dataclass
class RenderedEntry:
    """What was last drawn for one identity key."""
    eta: float
    position: Optional[Position] = None


@dataclass
class TrainOverrideState:
    """Held/caution overlay for a train, driven by signal events."""
    train_id: str
    is_held: bool = False
    is_caution: bool = False
    reason: str = "Signal hold"
    segment_name: Optional[str] = None
    held_since: Optional[float] = None  # ms timestamp of the first held event


def _seconds(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    return float(value)


@dataclass
class SegmentState:
    """Occupancy and lock state of one track segment."""
    segment_id: str
    name: Optional[str] = None
    occupied: bool = False
    train_id: Optional[str] = None
    train_type: Optional[str] = None
    signal_state: Optional[str] = None  # "red", "yellow", "green"
    is_held: bool = False
    is_locked: bool = False
    lock_reason: Optional[str] = None
    locked_by: Optional[str] = None
    time_in_segment: Optional[float] = None  # seconds
    estimated_clear_time: Optional[float] = None  # seconds

    @property
    def display_name(self) -> str:
        return self.name or self.segment_id

    @classmethod
    def from_message(cls, segment_id: str, data: dict) -> "SegmentState":
        return cls(
            segment_id=segment_id,
            name=data.get("name"),
            occupied=bool(data.get("occupied")),
            train_id=resolve_id(data.get("trainId")),
            train_type=data.get("trainType"),
            signal_state=data.get("signalState"),
            is_held=bool(data.get("isHeld")),
            is_locked=bool(data.get("isLocked")),
            lock_reason=data.get("lockReason"),
            locked_by=data.get("lockedBy"),
            time_in_segment=_seconds(data.get("timeInSegment")),
            estimated_clear_time=_seconds(data.get("estimatedClearTime")),
        )


@dataclass
class DispatcherTrain:
    """A train entry in the dispatcher panel's train list."""
    id: str
    type: str = "passenger"
    is_held: bool = False
    status: Optional[str] = None
    segment: Optional[str] = None
    location: Optional[str] = None

    @property
    def where(self) -> str:
        return self.segment or self.location or "Unknown"

    @classmethod
    def from_message(cls, data: dict) -> "DispatcherTrain":
        train_id = resolve_id(data["id"])
        if train_id is None:
            raise ValueError(f"Missing train id in {data!r}")
        return cls(
            id=train_id,
            type="freight" if data.get("type") == "freight" else "passenger",
            is_held=bool(data.get("isHeld")),
            status=data.get("status"),
            segment=data.get("segment"),
            location=data.get("location"),
        )


@dataclass
class SelectionState:
    """Operator selection in the dispatcher panel."""
    selected_train_id: Optional[str] = None
    selected_segment_id: Optional[str] = None

    def clear(self) -> None:
        self.selected_train_id = None
        self.selected_segment_id = None


class CommandPhase(Enum):
    PROMPTED = "prompted"  # Waiting for the operator to confirm
    SENT = "sent"  # Emitted, waiting for the simulation to confirm


@dataclass
class PendingCommand:
    """Operator intent awaiting confirmation."""
    command: str  # "emergencyStop" or "segmentOverride"
    target: str  # Train id or segment id
    action: str  # "stop", "release", "lock", "unlock"
    phase: CommandPhase = CommandPhase.PROMPTED
    reason: Optional[str] = None


@dataclass
class EmptyState:
    """Message shown in place of the arrivals list."""
    kind: str
    title: str
    subtitle: str
    icon: str


@dataclass
class DelayInfo:
    destination: str
    delay_minutes: int = 0
    reason: Optional[str] = None


@dataclass
class SignalIndicator:
    segment_name: str
    signal_state: str

    @property
    def tooltip(self) -> str:
        return f"{self.segment_name} - Signal: {self.signal_state.upper()}"


def parse_delays(delays: Optional[dict]) -> Dict[str, DelayInfo]:
    """Turn an updateDelays payload into DelayInfo objects keyed by train id."""
    result: Dict[str, DelayInfo] = {}
    for train_id, info in (delays or {}).items():
        if not isinstance(info, dict) or not info.get("destination"):
            continue
        result[str(train_id)] = DelayInfo(
            destination=info["destination"],
            delay_minutes=int(info.get("delayMinutes") or 0),
            reason=info.get("reason"),
        )
    return result
