from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter

from server_monitor.core.models.connection_state import ConnectionPhase
from server_monitor.core.services.service_manager import service_manager
from server_monitor.schemas import ApplianceStatus

router = APIRouter(prefix="/appliance", tags=["appliance"])


def _iso(timestamp: Optional[float]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@router.get("", response_model=ApplianceStatus)
async def get_appliance_status() -> ApplianceStatus:
    """Connection state of the storage appliance link."""
    client = service_manager.appliance_client
    if client is None:
        return ApplianceStatus(
            configured=False,
            phase=ConnectionPhase.DISCONNECTED.value,
            authenticated=False,
        )

    state = client.state()
    return ApplianceStatus(
        configured=True,
        phase=state.phase.value,
        authenticated=state.authenticated,
        auth_failed=state.auth_failed,
        hostname=state.hostname,
        last_push_at=_iso(state.last_push_at),
        last_poll_at=_iso(state.last_poll_at),
        sensor_count=len(state.sensors),
        connect_attempts=state.connect_attempts,
        last_error=state.last_error,
    )
