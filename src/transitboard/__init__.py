"""transitboard - Real-time transit arrivals and dispatcher dashboard engine."""

__version__ = "0.1.0"

from .models import ArrivalRecord, ArrivalSnapshot, SegmentState, TrainOverrideState, InvalidArrivalError
from .config import DashboardSettings
from .clock import ManualClock, SystemClock, TimerQueue
from .commands import CommandClient, RecordingCommandClient
from .dashboard import Dashboard, STOP

__all__ = [
    "Dashboard",
    "DashboardSettings",
    "CommandClient",
    "RecordingCommandClient",
    "ManualClock",
    "SystemClock",
    "TimerQueue",
    "ArrivalRecord",
    "ArrivalSnapshot",
    "SegmentState",
    "TrainOverrideState",
    "InvalidArrivalError",
    "STOP",
]
