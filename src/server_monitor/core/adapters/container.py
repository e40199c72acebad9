"""
Container runtime adapter.

Reads the container list from the Docker Engine API over its unix socket and
maps it onto the service inventory region. An unreachable daemon makes the
adapter report itself unavailable; the merge keeps the placeholder inventory.
"""
import http.client
import json
import logging
import re
import socket
from typing import Any, Dict, List, Mapping, Optional

from server_monitor.core.adapters.base import AdapterReading
from server_monitor.core.models.telemetry import (
    DatabaseService,
    MetricFragment,
    ServiceEntry,
    ServiceInventory,
    WebService,
)

logger = logging.getLogger(__name__)

SOURCE = "container"
DEFAULT_SOCKET = "/var/run/docker.sock"
CONTAINERS_PATH = "/containers/json?all=1"
REQUEST_TIMEOUT_S = 3.0

WEB_IMAGE_MARKERS = ("nginx", "apache", "node")
WEB_PORTS = (80, 443)
DATABASE_TYPES = ("postgresql", "mysql", "mongodb", "redis", "mariadb")

_UPTIME_PATTERN = re.compile(r"^Up\s+(\d+)\s+(second|minute|hour|day)s?\b", re.IGNORECASE)
_UPTIME_UNITS = {"second": 1, "minute": 60, "hour": 3600, "day": 86400}


class _UnixHTTPConnection(http.client.HTTPConnection):
    """HTTP connection over a UNIX domain socket."""

    def __init__(self, path: str, timeout: float = REQUEST_TIMEOUT_S) -> None:
        super().__init__("localhost", timeout=timeout)
        self._unix_path = path

    def connect(self) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        if self.timeout is not None:
            sock.settimeout(self.timeout)
        sock.connect(self._unix_path)
        self.sock = sock


def parse_uptime(status: str) -> int:
    """Seconds from a Docker status string such as "Up 3 hours"; 0 otherwise."""
    match = _UPTIME_PATTERN.match(status.strip())
    if not match:
        return 0
    return int(match.group(1)) * _UPTIME_UNITS[match.group(2).lower()]


def _container_name(container: Mapping[str, Any]) -> str:
    names = container.get("Names") or []
    if names:
        return str(names[0]).lstrip("/")
    return str(container.get("Id", ""))[:12]


def _service_status(state: str) -> str:
    if state == "running":
        return "active"
    if state == "exited":
        return "failed"
    return "inactive"


def _public_ports(container: Mapping[str, Any]) -> List[int]:
    return [int(p["PublicPort"]) for p in container.get("Ports") or [] if p.get("PublicPort")]


def map_containers(containers: List[Mapping[str, Any]]) -> ServiceInventory:
    services = []
    web_services = []
    database_services = []

    for container in containers:
        name = _container_name(container)
        state = str(container.get("State", ""))
        image = str(container.get("Image", "")).lower()
        ports = _public_ports(container)

        services.append(ServiceEntry(
            name=name,
            status=_service_status(state),
            uptime_seconds=parse_uptime(str(container.get("Status", ""))),
        ))

        if any(marker in image for marker in WEB_IMAGE_MARKERS) or any(p in WEB_PORTS for p in ports):
            web_services.append(WebService(
                name=name,
                url=f"http://localhost:{ports[0] if ports else 80}",
                status_code=200 if state == "running" else 503,
            ))

        db_type = next((t for t in DATABASE_TYPES if t in image), None)
        if db_type is not None:
            database_services.append(DatabaseService(name=name, type=db_type))

    return ServiceInventory(
        total_services=len(services),
        active_services=sum(1 for s in services if s.status == "active"),
        failed_services=sum(1 for s in services if s.status == "failed"),
        services=tuple(services),
        web_services=tuple(web_services),
        database_services=tuple(database_services),
    )


class ContainerAdapter:
    name = SOURCE

    def __init__(self, socket_path: str = DEFAULT_SOCKET, timeout: float = REQUEST_TIMEOUT_S):
        self.socket_path = socket_path
        self.timeout = timeout
        self._was_available: Optional[bool] = None

    def _fetch_containers(self) -> List[Dict[str, Any]]:
        connection = _UnixHTTPConnection(self.socket_path, timeout=self.timeout)
        try:
            connection.request("GET", CONTAINERS_PATH, headers={"Host": "localhost"})
            response = connection.getresponse()
            payload = response.read()
        finally:
            connection.close()

        if response.status >= 400:
            raise RuntimeError(f"HTTP {response.status} {response.reason}")
        data = json.loads(payload.decode("utf-8")) if payload else []
        if not isinstance(data, list):
            raise RuntimeError(f"Unexpected container list payload: {type(data).__name__}")
        return data

    def _note_availability(self, available: bool, reason: str = "") -> None:
        if available == self._was_available:
            return
        self._was_available = available
        if available:
            logger.info(f"Container runtime reachable at {self.socket_path}")
        else:
            logger.warning(f"Container runtime unavailable at {self.socket_path}: {reason}")

    def read(self) -> AdapterReading:
        try:
            containers = self._fetch_containers()
        except (OSError, http.client.HTTPException, RuntimeError, ValueError) as e:
            self._note_availability(False, str(e))
            return AdapterReading.unavailable(SOURCE)

        self._note_availability(True)
        return AdapterReading.of(MetricFragment(source=SOURCE, services=map_containers(containers)))
