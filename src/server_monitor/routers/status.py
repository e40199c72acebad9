import asyncio
import logging
from typing import List

from fastapi import APIRouter, HTTPException

from server_monitor.core.services.collector import CollectionError
from server_monitor.core.services.service_manager import service_manager
from server_monitor.schemas import ServerStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["status"])


@router.get("/status", response_model=List[ServerStatus], responses={
    500: {
        "description": "No telemetry source could be read.",
        "content": {
            "application/json": {
                "example": {"detail": "Failed to fetch server status"}
            }
        }
    }
})
async def get_status() -> List[ServerStatus]:
    """
    Current merged status of the monitored server.

    Returns a list (the dashboard renders a fleet) holding one entry built
    from the latest cached snapshot. The first call after startup collects
    synchronously if no snapshot exists yet.
    """
    try:
        collector = service_manager.get_collector()
        snapshot = await asyncio.to_thread(collector.get_current_snapshot)
    except (CollectionError, RuntimeError) as e:
        logger.error(f"Error in /api/status: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch server status")

    data = snapshot.to_dict()
    meta = data["meta"]
    return [ServerStatus(
        hostname=meta["hostname"],
        status=data["status"],
        server_type=meta["server_type"],
        os_distribution=meta["os_distribution"],
        hardware=data["hardware"],
        alerts=data["alerts"],
        environment=data["environment"],
        simulated_fields=data["simulated_fields"],
    )]
