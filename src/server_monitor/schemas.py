from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class AppHealthOK(BaseModel):
    status: str
    app: str
    appliance_configured: bool
    trend_points: int


class ServerStatus(BaseModel):
    hostname: str
    status: str
    server_type: str
    os_distribution: str
    hardware: Dict[str, Any]
    alerts: List[Dict[str, Any]]
    environment: Dict[str, Any]
    simulated_fields: List[str]


class TrendPoint(BaseModel):
    timestamp: str
    value: float


class TrendResponse(BaseModel):
    metric: str
    unit: str
    data: List[TrendPoint]
    current: float
    average: float
    min: float
    max: float


class ApplianceStatus(BaseModel):
    configured: bool
    phase: str
    authenticated: bool
    auth_failed: bool = False
    hostname: Optional[str] = None
    last_push_at: Optional[str] = None
    last_poll_at: Optional[str] = None
    sensor_count: int = 0
    connect_attempts: int = 0
    last_error: Optional[str] = None
