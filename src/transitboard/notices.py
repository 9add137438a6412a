"""Overlays shown on top of the arrivals board: tickets, alerts and announcements."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .clock import Timer, TimerQueue
from .config import ANNOUNCEMENT_DISPLAY_MS, TICKET_DISPLAY_MS

logger = logging.getLogger(__name__)

# alert type -> (style class, icon)
SERVICE_ALERT_STYLES = {
    "delay": ("warning", "clock"),
    "disruption": ("error", "exclamation-triangle"),
    "emergency": ("emergency", "times-circle"),
    "info": ("info", "info-circle"),
}

ANNOUNCEMENT_ICONS = {
    "approach": "approach",
    "arrival": "arrival",
    "departure": "departure",
    "held": "held",
    "caution": "caution",
}
DEFAULT_ANNOUNCEMENT_ICON = "approach"


def format_clock_time(timestamp: float) -> str:
    """Format a Unix timestamp (seconds) as local HH:MM."""
    return datetime.fromtimestamp(timestamp).strftime("%H:%M")


@dataclass
class Ticket:
    """A purchased ticket as shown to the rider."""
    ticket_id: str
    origin: str
    destination: str
    fare: str  # "$2.50"
    expires: str  # "HH:MM"
    type_label: str  # "DAY PASS" or "SINGLE JOURNEY"

    @classmethod
    def from_message(cls, data: dict) -> "Ticket":
        """
        Build a ticket from a showTicket payload.

        Raises:
            ValueError: If the payload is not a mapping or expiresAt is not a timestamp.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Ticket is not a mapping: {data!r}")
        expires_at = data.get("expiresAt")
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            raise ValueError(f"Invalid ticket expiry {expires_at!r}")
        return cls(
            ticket_id=str(data.get("id") or ""),
            origin=str(data.get("from") or ""),
            destination=str(data.get("to") or ""),
            fare=f"${data.get('fare', '')}",
            expires=format_clock_time(expires_at),
            type_label="DAY PASS" if data.get("type") == "daypass" else "SINGLE JOURNEY",
        )


@dataclass
class EmergencyAlert:
    message: str
    station: str


@dataclass
class ServiceAlert:
    alert_type: str
    title: str
    message: str
    style_class: str
    icon: str
    affected_lines: List[str] = field(default_factory=list)

    @property
    def affected_text(self) -> Optional[str]:
        if not self.affected_lines:
            return None
        return "Affected: " + ", ".join(self.affected_lines)


@dataclass
class PassengerAnnouncement:
    type: Optional[str]
    title: str
    station: str
    subtitle: str
    icon: str

    @property
    def type_class(self) -> Optional[str]:
        return f"type-{self.type}" if self.type else None


class NoticeBoard:
    """
    Holds the overlays drawn above the arrivals list.

    Tickets hide themselves after a few seconds, and passenger announcements
    after their duration unless they announce a held train.
    """

    def __init__(self, timers: TimerQueue, ticket_display_ms: int = TICKET_DISPLAY_MS):
        self.timers = timers
        self.ticket_display_ms = ticket_display_ms

        self.ticket: Optional[Ticket] = None
        self.announcement_text = ""
        self.emergency_alert: Optional[EmergencyAlert] = None
        self.service_alert: Optional[ServiceAlert] = None
        self.passenger_announcement: Optional[PassengerAnnouncement] = None

        self._ticket_timer: Optional[Timer] = None
        self._announcement_timer: Optional[Timer] = None

    def show_ticket(self, data: dict) -> Ticket:
        self.ticket = Ticket.from_message(data)
        if self._ticket_timer is not None:
            self._ticket_timer.cancel()
        self._ticket_timer = self.timers.call_later(self.ticket_display_ms, self.hide_ticket, name="ticket-hide")
        return self.ticket

    def hide_ticket(self) -> None:
        self.ticket = None
        if self._ticket_timer is not None:
            self._ticket_timer.cancel()
            self._ticket_timer = None

    def set_announcement(self, message: Optional[str]) -> None:
        self.announcement_text = message or ""

    def show_emergency_alert(self, message: Optional[str], station: Optional[str]) -> None:
        self.emergency_alert = EmergencyAlert(
            message=message or "Service disruption",
            station=station or "Station",
        )
        logger.warning(f"Emergency alert at {self.emergency_alert.station}: {self.emergency_alert.message}")

    def hide_emergency_alert(self) -> None:
        self.emergency_alert = None

    def show_service_alert(self, alert_type: Optional[str], message: Optional[str], affected_lines=None) -> ServiceAlert:
        alert_type = alert_type or "info"
        style_class, icon = SERVICE_ALERT_STYLES.get(alert_type, SERVICE_ALERT_STYLES["info"])
        self.service_alert = ServiceAlert(
            alert_type=alert_type,
            title=alert_type.upper(),
            message=message or "",
            style_class=style_class,
            icon=icon,
            affected_lines=[str(line) for line in affected_lines or []],
        )
        return self.service_alert

    def hide_service_alert(self) -> None:
        self.service_alert = None

    def show_passenger_announcement(
        self,
        type: Optional[str] = None,
        title: Optional[str] = None,
        station: Optional[str] = None,
        subtitle: Optional[str] = None,
        icon: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ) -> PassengerAnnouncement:
        """
        Show an announcement overlay, replacing any current one.

        Args:
            type: approach, arrival, departure, held or caution. Held
                  announcements stay up until hidden.
            duration_ms: How long to show it. Defaults to 5 seconds; 0 or
                         less keeps it up until hidden.
        """
        if self._announcement_timer is not None:
            self._announcement_timer.cancel()
            self._announcement_timer = None

        self.passenger_announcement = PassengerAnnouncement(
            type=type or None,
            title=title or "Announcement",
            station=station or "",
            subtitle=subtitle or "",
            icon=icon or ANNOUNCEMENT_ICONS.get(type, DEFAULT_ANNOUNCEMENT_ICON),
        )

        if duration_ms is None:
            duration_ms = ANNOUNCEMENT_DISPLAY_MS
        if type != "held" and duration_ms > 0:
            self._announcement_timer = self.timers.call_later(
                duration_ms, self.hide_passenger_announcement, name="announcement-hide"
            )
        return self.passenger_announcement

    def hide_passenger_announcement(self) -> None:
        self.passenger_announcement = None
        if self._announcement_timer is not None:
            self._announcement_timer.cancel()
            self._announcement_timer = None
