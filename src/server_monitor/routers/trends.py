from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import APIRouter, HTTPException, Query

from server_monitor.core.processing.trend_store import TrendSeries
from server_monitor.core.services.service_manager import service_manager
from server_monitor.schemas import TrendPoint, TrendResponse

router = APIRouter(tags=["trends"])


def _to_response(series: TrendSeries) -> TrendResponse:
    return TrendResponse(
        metric=series.metric,
        unit=series.unit,
        data=[
            TrendPoint(timestamp=datetime.fromtimestamp(t, tz=timezone.utc).isoformat(), value=v)
            for t, v in series.data
        ],
        current=series.current,
        average=series.average,
        min=series.minimum,
        max=series.maximum,
    )


@router.get("/trends", response_model=Dict[str, TrendResponse], responses={
    400: {
        "description": "Invalid window parameter.",
        "content": {
            "application/json": {
                "example": {"detail": "Invalid window: -5. Window must be a positive number of seconds"}
            }
        }
    }
})
async def get_trends(window: Optional[float] = Query(default=None)) -> Dict[str, TrendResponse]:
    """
    Retained history for CPU, memory, primary disk and primary NIC throughput.

    `window` (seconds) restricts each series to the most recent points; the
    summary statistics are computed over the returned points.
    """
    if window is not None and window <= 0:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid window: {window:g}. Window must be a positive number of seconds"
        )
    try:
        collector = service_manager.get_collector()
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))

    trends = collector.get_trends(window=window)
    return {key: _to_response(series) for key, series in trends.items()}
