"""Appliance connection state model."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from server_monitor.core.models.sensor_reading import SensorReading


class ConnectionPhase(Enum):
    """Appliance connection states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    HANDSHAKE_SENT = "handshake_sent"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    SUBSCRIBED = "subscribed"

    @property
    def is_authenticated(self) -> bool:
        return self in (ConnectionPhase.AUTHENTICATED, ConnectionPhase.SUBSCRIBED)


@dataclass(frozen=True)
class ConnectionState:
    """Read-only copy of the appliance client's state."""
    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    hostname: Optional[str] = None
    auth_failed: bool = False
    connect_attempts: int = 0
    last_error: Optional[str] = None
    last_push_at: Optional[float] = None
    last_poll_at: Optional[float] = None
    sensors: Tuple[SensorReading, ...] = ()
    chassis: Dict[str, Any] = field(default_factory=dict)

    @property
    def authenticated(self) -> bool:
        return self.phase.is_authenticated
