"""
Hardware-health data model.

Every region is a frozen dataclass so a fragment handed to the merge engine
cannot change underneath it. Sequences are tuples for the same reason.
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class MetricField(str, Enum):
    """Field paths that can be individually flagged as simulated."""
    CPU_UTILIZATION = "cpu.utilization"
    CPU_TEMPERATURE = "cpu.temperature"
    MEMORY = "memory"
    STORAGE = "storage"
    NETWORK = "network"
    POWER = "power"
    ENVIRONMENT = "environment"
    SECURITY = "security"
    SERVICES = "services"


ALL_FIELDS: FrozenSet[MetricField] = frozenset(MetricField)


@dataclass(frozen=True)
class CpuFrequency:
    base: float = 0.0
    current: float = 0.0
    turbo_active: bool = False


@dataclass(frozen=True)
class CpuTemperature:
    package: float = 0.0
    cores: Tuple[float, ...] = ()


@dataclass(frozen=True)
class CpuTimes:
    user: float = 0.0
    system: float = 0.0
    idle: float = 0.0
    nice: float = 0.0
    iowait: float = 0.0
    irq: float = 0.0
    softirq: float = 0.0


@dataclass(frozen=True)
class CpuMetrics:
    utilization_percent: float = 0.0
    per_core_utilization: Tuple[float, ...] = ()
    load_average: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    core_count: int = 0
    physical_core_count: int = 0
    frequency_mhz: CpuFrequency = field(default_factory=CpuFrequency)
    temperature_celsius: CpuTemperature = field(default_factory=CpuTemperature)
    thermal_throttling_events: int = 0
    power_consumption_watts: float = 0.0
    times_percent: CpuTimes = field(default_factory=CpuTimes)


@dataclass(frozen=True)
class MemoryErrors:
    corrected: int = 0
    uncorrected: int = 0


@dataclass(frozen=True)
class MemoryMetrics:
    total_gb: float = 0.0
    used_gb: float = 0.0
    available_gb: float = 0.0
    swap_used_gb: float = 0.0
    swap_total_gb: float = 0.0
    usage_percent: float = 0.0
    page_faults_rate: float = 0.0
    memory_errors: MemoryErrors = field(default_factory=MemoryErrors)


@dataclass(frozen=True)
class StorageDevice:
    device: str
    model: str = ""
    mountpoint: str = ""
    size_gb: float = 0.0
    used_gb: float = 0.0
    available_gb: float = 0.0
    usage_percent: float = 0.0
    drive_type: str = "hdd"
    interface_type: str = "unknown"
    smart_status: str = "healthy"
    temperature_celsius: float = 0.0
    serial_number: str = ""
    firmware_version: str = ""


@dataclass(frozen=True)
class IoStats:
    read_iops: float = 0.0
    write_iops: float = 0.0
    read_throughput_mbps: float = 0.0
    write_throughput_mbps: float = 0.0
    await_time_ms: float = 0.0
    queue_depth: float = 0.0


@dataclass(frozen=True)
class StorageMetrics:
    devices: Tuple[StorageDevice, ...] = ()
    io_stats: IoStats = field(default_factory=IoStats)


@dataclass(frozen=True)
class InterfaceAddress:
    family: str
    address: str
    netmask: str = ""
    broadcast: str = ""


@dataclass(frozen=True)
class NetworkInterface:
    name: str
    status: str = "down"
    speed_mbps: float = 0.0
    duplex: str = "unknown"
    mtu: int = 0
    rx_bytes_per_sec: float = 0.0
    tx_bytes_per_sec: float = 0.0
    rx_packets_per_sec: float = 0.0
    tx_packets_per_sec: float = 0.0
    rx_errors: int = 0
    tx_errors: int = 0
    rx_dropped: int = 0
    tx_dropped: int = 0
    addresses: Tuple[InterfaceAddress, ...] = ()


@dataclass(frozen=True)
class ActiveConnections:
    tcp_established: int = 0
    tcp_listen: int = 0
    udp_active: int = 0


@dataclass(frozen=True)
class NetworkMetrics:
    interfaces: Tuple[NetworkInterface, ...] = ()
    active_connections: ActiveConnections = field(default_factory=ActiveConnections)


@dataclass(frozen=True)
class FanData:
    label: str
    current_rpm: float = 0.0
    max_rpm: float = 0.0
    speed_percent: float = 0.0
    target_rpm: float = 0.0
    status: str = "normal"


@dataclass(frozen=True)
class FanGroups:
    cpu_fans: Tuple[FanData, ...] = ()
    case_fans: Tuple[FanData, ...] = ()


@dataclass(frozen=True)
class VoltageLevels:
    v3_3: float = 0.0
    v5: float = 0.0
    v12: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return {
            "3.3v": self.v3_3,
            "5v": self.v5,
            "12v": self.v12,
            "3.3v_fluctuation": 0.0,
            "5v_fluctuation": 0.0,
            "12v_fluctuation": 0.0,
        }


@dataclass(frozen=True)
class PowerMetrics:
    psu_status: Tuple[str, ...] = ()
    psu_count: int = 0
    psu_redundancy: bool = False
    power_consumption_watts: float = 0.0
    power_consumption_peak_watts: float = 0.0
    power_efficiency_percent: float = 0.0
    voltage_levels: VoltageLevels = field(default_factory=VoltageLevels)
    voltage_stability: str = "stable"
    fans: FanGroups = field(default_factory=FanGroups)


@dataclass(frozen=True)
class AmbientTemperature:
    ambient_celsius: float = 22.0
    intake_celsius: float = 0.0
    exhaust_celsius: float = 0.0
    temperature_rise: float = 0.0
    cooling_efficiency: float = 0.0


@dataclass(frozen=True)
class ChassisState:
    intrusion_detected: bool = False
    case_open_events_today: int = 0
    door_status: str = "closed"


@dataclass(frozen=True)
class EnvironmentMetrics:
    temperature: AmbientTemperature = field(default_factory=AmbientTemperature)
    fans: Tuple[FanData, ...] = ()
    chassis: ChassisState = field(default_factory=ChassisState)


@dataclass(frozen=True)
class AuthenticationStats:
    failed_ssh_attempts_24h: int = 0
    failed_login_attempts_24h: int = 0
    active_user_sessions: int = 0
    sudo_commands_24h: int = 0


@dataclass(frozen=True)
class FirewallStats:
    status: str = "active"
    rules_count: int = 0
    blocked_connections_24h: int = 0


@dataclass(frozen=True)
class SecurityMetrics:
    authentication: AuthenticationStats = field(default_factory=AuthenticationStats)
    firewall: FirewallStats = field(default_factory=FirewallStats)
    chassis_intrusion_detected: bool = False
    critical_cves: int = 0
    high_cves: int = 0


@dataclass(frozen=True)
class TemperatureSensor:
    label: str
    current_celsius: float
    high_celsius: float = 85.0
    critical_celsius: float = 100.0


@dataclass(frozen=True)
class ServiceEntry:
    name: str
    status: str
    uptime_seconds: int = 0
    restart_count: int = 0


@dataclass(frozen=True)
class WebService:
    name: str
    url: str
    status_code: int
    response_time_ms: float = 0.0


@dataclass(frozen=True)
class DatabaseService:
    name: str
    type: str
    version: str = "latest"


@dataclass(frozen=True)
class ServiceInventory:
    total_services: int = 0
    active_services: int = 0
    failed_services: int = 0
    services: Tuple[ServiceEntry, ...] = ()
    web_services: Tuple[WebService, ...] = ()
    database_services: Tuple[DatabaseService, ...] = ()


@dataclass(frozen=True)
class HostInfo:
    hostname: str
    os_distribution: str = ""
    kernel_version: str = ""
    uptime_seconds: int = 0
    boot_time: float = 0.0
    process_count: int = 0


@dataclass(frozen=True)
class MetricFragment:
    """
    Partial, source-tagged view of the hardware-health shape.

    `None` regions were not provided by the source. `simulated` lists the
    field paths whose values are synthetic; anything provided and not listed
    is real.
    """
    source: str
    cpu: Optional[CpuMetrics] = None
    memory: Optional[MemoryMetrics] = None
    storage: Optional[StorageMetrics] = None
    network: Optional[NetworkMetrics] = None
    power: Optional[PowerMetrics] = None
    environment: Optional[EnvironmentMetrics] = None
    security: Optional[SecurityMetrics] = None
    services: Optional[ServiceInventory] = None
    host: Optional[HostInfo] = None
    simulated: FrozenSet[MetricField] = frozenset()

    def is_simulated(self, metric_field: MetricField) -> bool:
        return metric_field in self.simulated


@dataclass(frozen=True)
class Alert:
    id: str
    hostname: str
    alert_type: str
    severity: str
    title: str
    description: str
    timestamp: str
    resolved: bool = False


@dataclass(frozen=True)
class ServerMetadata:
    hostname: str
    server_type: str = "generic"
    os_distribution: str = ""
    kernel_version: str = ""
    uptime_seconds: int = 0
    telemetry_version: str = "1.0.0"
    collection_timestamp: str = ""


@dataclass(frozen=True)
class OsHealth:
    boot_time: str = ""
    uptime_seconds: int = 0
    kernel_version: str = ""
    os_distribution: str = ""
    process_count: int = 0


@dataclass(frozen=True)
class HardwareHealth:
    cpu: CpuMetrics
    memory: MemoryMetrics
    storage: StorageMetrics
    network: NetworkMetrics
    power: PowerMetrics
    temperature: Dict[str, Tuple[TemperatureSensor, ...]]
    services: ServiceInventory
    security: SecurityMetrics


@dataclass(frozen=True)
class Snapshot:
    """One fully merged view of a server, replaced as a whole every cycle."""
    meta: ServerMetadata
    hardware: HardwareHealth
    environment: EnvironmentMetrics
    os_health: OsHealth
    status: str = "healthy"
    alerts: Tuple[Alert, ...] = ()
    simulated: FrozenSet[MetricField] = frozenset()

    @property
    def simulated_fields(self) -> list[str]:
        return sorted(f.value for f in self.simulated)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready view with `is_simulated` flags derived from `simulated`."""
        hardware = asdict(self.hardware)
        hardware["power"]["voltage_levels"] = self.hardware.power.voltage_levels.as_dict()
        hardware["power"]["is_simulated"] = MetricField.POWER in self.simulated
        hardware["security"]["is_simulated"] = MetricField.SECURITY in self.simulated
        hardware["cpu"]["temperature_celsius"]["is_simulated"] = (
            MetricField.CPU_TEMPERATURE in self.simulated
        )
        for sensor in hardware["temperature"].get("coretemp", []):
            sensor["is_simulated"] = MetricField.CPU_TEMPERATURE in self.simulated
        environment = asdict(self.environment)
        environment["is_simulated"] = MetricField.ENVIRONMENT in self.simulated
        return {
            "meta": asdict(self.meta),
            "status": self.status,
            "hardware": hardware,
            "environment": environment,
            "os_health": asdict(self.os_health),
            "alerts": [asdict(alert) for alert in self.alerts],
            "simulated_fields": self.simulated_fields,
        }
