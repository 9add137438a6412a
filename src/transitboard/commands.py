"""Outbound commands from the dashboard to the simulation host."""

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from .config import COMMAND_TIMEOUT, DEFAULT_RESOURCE_NAME

logger = logging.getLogger(__name__)

REQUEST_DISPATCHER_DATA = "requestDispatcherData"
EMERGENCY_STOP = "emergencyStop"
SEGMENT_OVERRIDE = "segmentOverride"
CLOSE_DISPATCHER = "closeDispatcher"
CLOSE = "close"


class CommandClient:
    """Posts fire-and-forget JSON commands to the host's callback endpoints."""

    def __init__(
        self,
        resource_name: str = DEFAULT_RESOURCE_NAME,
        session: Optional[requests.Session] = None,
        timeout: float = COMMAND_TIMEOUT,
    ):
        """
        Initialize the client.

        Args:
            resource_name: Host resource that receives callbacks; commands go to
                https://<resource_name>/<command>.
            session: Optional requests session to reuse (a new one is created otherwise).
            timeout: Request timeout in seconds.
        """
        self.base_url = f"https://{resource_name}"
        self.session = session or requests.Session()
        self.timeout = timeout

    def send(self, command: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        """
        Send a command.

        Returns:
            True if the host accepted the request, False if it could not be delivered.
        """
        url = f"{self.base_url}/{command}"
        logger.debug(f"Sending {command}: {payload}")
        try:
            response = self.session.post(url, json=payload or {}, timeout=self.timeout)
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.warning(f"Failed to send {command} to {url}: {e}")
            return False

    def request_dispatcher_data(self) -> bool:
        return self.send(REQUEST_DISPATCHER_DATA)

    def emergency_stop(self, train_id: str, action: str = "stop") -> bool:
        return self.send(EMERGENCY_STOP, {"trainId": train_id, "action": action})

    def segment_override(self, segment_id: str, action: str, reason: Optional[str] = None) -> bool:
        payload: Dict[str, Any] = {"segmentId": segment_id, "action": action}
        if reason is not None:
            payload["reason"] = reason
        return self.send(SEGMENT_OVERRIDE, payload)

    def close_dispatcher(self) -> bool:
        return self.send(CLOSE_DISPATCHER)

    def close(self) -> bool:
        return self.send(CLOSE)


class RecordingCommandClient(CommandClient):
    """Command client that keeps commands in memory instead of posting them."""

    def __init__(self, fail: bool = False):
        self.base_url = f"https://{DEFAULT_RESOURCE_NAME}"
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.fail = fail

    def send(self, command: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        if self.fail:
            logger.warning(f"Dropping {command}: recorder set to fail")
            return False
        self.sent.append((command, payload or {}))
        return True
