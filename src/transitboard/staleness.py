"""Infers connection and service state from how long the feed has been quiet."""

import logging
from typing import Optional

from .config import CONNECTION_LOST_MS, NIGHT_END_HOUR, NIGHT_START_HOUR
from .models import EmptyState

logger = logging.getLogger(__name__)

SEARCHING = EmptyState("searching", "Searching for Trains...", "Connecting to transit server", "search")
CONNECTION_LOST = EmptyState("connection_lost", "Connection Lost", "Attempting to reconnect...", "warning")
NIGHT_SERVICE = EmptyState("night", "Limited Night Service", "Trains every 30 minutes", "moon")
SERVICE_STARTING = EmptyState("starting", "Service Starting", "First train departing soon", "clock")
SERVICE_SUSPENDED = EmptyState("emergency", "Service Suspended", "Please follow station announcements", "warning")
SEARCHING_PERIOD = EmptyState("searching", "Searching for Trains...", "Please wait", "search")
NO_TRAINS = EmptyState("no_trains", "No trains scheduled", "Check back shortly", "train")


class ConnectionMonitor:
    """Tracks whether and when arrivals data last came in."""

    def __init__(self, connection_lost_ms: float = CONNECTION_LOST_MS):
        self.connection_lost_ms = connection_lost_ms
        self.has_received = False
        self.last_accepted_ms: Optional[float] = None

    def mark_received(self, now_ms: float) -> None:
        if not self.has_received:
            logger.info("Receiving arrivals data")
        self.has_received = True
        self.last_accepted_ms = now_ms

    def silence_ms(self, now_ms: float) -> Optional[float]:
        if self.last_accepted_ms is None:
            return None
        return now_ms - self.last_accepted_ms

    def is_connection_lost(self, now_ms: float) -> bool:
        silence = self.silence_ms(now_ms)
        return silence is not None and silence > self.connection_lost_ms

    def empty_state(
        self,
        now_ms: float,
        service_period: Optional[str] = None,
        hour: Optional[int] = None,
    ) -> EmptyState:
        """
        Pick the message to show when there are no arrivals to display.

        Args:
            now_ms: Current clock reading.
            service_period: Last service period reported by the simulation.
            hour: Local hour of day, used to detect night service.

        Returns:
            EmptyState describing what the board should say.
        """
        if not self.has_received:
            return SEARCHING
        if self.is_connection_lost(now_ms):
            return CONNECTION_LOST
        if service_period == "night" or (
            hour is not None and (hour >= NIGHT_START_HOUR or hour < NIGHT_END_HOUR)
        ):
            return NIGHT_SERVICE
        if service_period == "starting":
            return SERVICE_STARTING
        if service_period == "emergency":
            return SERVICE_SUSPENDED
        if service_period == "searching":
            return SEARCHING_PERIOD
        return NO_TRAINS
