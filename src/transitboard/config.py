"""Thresholds and settings for the transit dashboard."""

from dataclasses import dataclass

# Arrivals coalescing
THROTTLE_MS = 15000  # Minimum time between arrival redraws
ETA_CHANGE_THRESHOLD = 30  # Seconds of ETA change that force a redraw
DISTANCE_DEADZONE = 5.0  # Position units a train must move to force a redraw

# Record validation
MAX_ETA_SECONDS = 86400

# ETA projection
CAUTION_FACTOR = 1.7  # Trains under caution run at roughly 30% speed
STUCK_ETA_TOLERANCE = 5  # ETA changes below this count as "not moving"
STUCK_AFTER_MS = 30000
STUCK_MIN_ETA = 60

# Connection monitoring
CONNECTION_LOST_MS = 30000
STATUS_TICK_MS = 1000
NIGHT_START_HOUR = 22
NIGHT_END_HOUR = 6

# Outbound commands
DEFAULT_RESOURCE_NAME = "dps-transit"
COMMAND_TIMEOUT = 5  # seconds
DEFAULT_LOCK_REASON = "Maintenance"

# Overlays
TICKET_DISPLAY_MS = 5000
ANNOUNCEMENT_DISPLAY_MS = 5000


@dataclass
class DashboardSettings:
    """Tunable settings for a Dashboard instance."""
    throttle_ms: int = THROTTLE_MS
    eta_change_threshold: float = ETA_CHANGE_THRESHOLD
    distance_deadzone: float = DISTANCE_DEADZONE
    connection_lost_ms: int = CONNECTION_LOST_MS
    stuck_after_ms: int = STUCK_AFTER_MS
    status_tick_ms: int = STATUS_TICK_MS
    resource_name: str = DEFAULT_RESOURCE_NAME
    command_timeout: float = COMMAND_TIMEOUT
