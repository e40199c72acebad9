"""
Field-level reconciliation of the local, container and appliance fragments
into one snapshot.

The merge is a pure function of its inputs (three fragments, a timestamp and
the appliance hostname). Running it twice on the same inputs gives equal
snapshots, and nothing here waits on an adapter.

Precedence, per region:
- cpu utilization / per-core load: appliance when it reports any core
- cpu temperature: appliance only when its package reading is above zero
- memory: appliance wholesale when its total is positive
- network: interfaces matched by name, appliance overlays dynamic fields
- power / environment / security: appliance wholesale when not simulated
- services: container inventory wholesale
Regions no source supplies come from the synthetic baseline.
"""
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Set

from server_monitor.core.adapters.synthetic import baseline_fragment
from server_monitor.core.appliance.realtime import LINK_UNKNOWN
from server_monitor.core.models.telemetry import (
    CpuMetrics,
    HardwareHealth,
    HostInfo,
    MetricField,
    MetricFragment,
    NetworkInterface,
    NetworkMetrics,
    OsHealth,
    ServerMetadata,
    Snapshot,
    TemperatureSensor,
)
from server_monitor.core.processing.status import calculate_status

TELEMETRY_VERSION = "1.0.0"
UNKNOWN_HOSTNAME = "unknown"
CPU_PACKAGE_LABEL = "CPU Package"

REGION_FIELDS: Dict[str, FrozenSet[MetricField]] = {
    "cpu": frozenset({MetricField.CPU_UTILIZATION, MetricField.CPU_TEMPERATURE}),
    "memory": frozenset({MetricField.MEMORY}),
    "storage": frozenset({MetricField.STORAGE}),
    "network": frozenset({MetricField.NETWORK}),
    "power": frozenset({MetricField.POWER}),
    "environment": frozenset({MetricField.ENVIRONMENT}),
    "security": frozenset({MetricField.SECURITY}),
    "services": frozenset({MetricField.SERVICES}),
}

# Replaced wholesale by the appliance only when it is real
_SENSOR_REGIONS = {
    "power": MetricField.POWER,
    "environment": MetricField.ENVIRONMENT,
    "security": MetricField.SECURITY,
}


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def overlay_interfaces(
    local: List[NetworkInterface], remote: List[NetworkInterface]
) -> List[NetworkInterface]:
    """
    Local interfaces keep their order and static fields (addresses, mtu,
    duplex); matching remote interfaces contribute throughput, and link state
    and speed when they report them. Remote-only interfaces are appended unchanged.
    """
    remote_by_name = {iface.name: iface for iface in remote}
    merged = []
    for iface in local:
        other = remote_by_name.get(iface.name)
        if other is None:
            merged.append(iface)
            continue
        merged.append(replace(
            iface,
            rx_bytes_per_sec=other.rx_bytes_per_sec,
            tx_bytes_per_sec=other.tx_bytes_per_sec,
            speed_mbps=other.speed_mbps or iface.speed_mbps,
            status=other.status if other.status != LINK_UNKNOWN else iface.status,
        ))
    local_names = {iface.name for iface in local}
    merged.extend(iface for iface in remote if iface.name not in local_names)
    return merged


class MergeEngine:

    def __init__(self, hostname_override: Optional[str] = None, server_type: str = "generic"):
        self.hostname_override = hostname_override or None
        self.server_type = server_type

    def _base_regions(self, local: Optional[MetricFragment]):
        baseline = baseline_fragment()
        regions = {name: getattr(baseline, name) for name in REGION_FIELDS}
        simulated: Set[MetricField] = set(baseline.simulated)
        if local is None:
            return regions, simulated

        for name, fields in REGION_FIELDS.items():
            value = getattr(local, name)
            if value is None:
                continue
            regions[name] = value
            simulated -= fields
            simulated |= local.simulated & fields
        return regions, simulated

    @staticmethod
    def _merge_cpu(cpu: CpuMetrics, remote: CpuMetrics, simulated: Set[MetricField]) -> CpuMetrics:
        if remote.per_core_utilization:
            cpu = replace(
                cpu,
                utilization_percent=remote.utilization_percent,
                per_core_utilization=remote.per_core_utilization,
                core_count=remote.core_count,
            )
            simulated.discard(MetricField.CPU_UTILIZATION)
        # A zero package reading means the appliance has no sensor
        if remote.temperature_celsius.package > 0:
            cpu = replace(cpu, temperature_celsius=remote.temperature_celsius)
            simulated.discard(MetricField.CPU_TEMPERATURE)
        return cpu

    def _apply_appliance(self, regions: dict, simulated: Set[MetricField], remote: MetricFragment) -> None:
        if remote.cpu is not None:
            regions["cpu"] = self._merge_cpu(regions["cpu"], remote.cpu, simulated)

        if remote.memory is not None and remote.memory.total_gb > 0:
            regions["memory"] = remote.memory
            simulated.discard(MetricField.MEMORY)

        if remote.network is not None and remote.network.interfaces:
            network: NetworkMetrics = regions["network"]
            merged = overlay_interfaces(list(network.interfaces), list(remote.network.interfaces))
            regions["network"] = replace(network, interfaces=tuple(merged))
            simulated.discard(MetricField.NETWORK)

        for name, metric_field in _SENSOR_REGIONS.items():
            value = getattr(remote, name)
            if value is not None and not remote.is_simulated(metric_field):
                regions[name] = value
                simulated.discard(metric_field)

    def _resolve_hostname(self, host: Optional[HostInfo], appliance_hostname: Optional[str]) -> str:
        if self.hostname_override:
            return self.hostname_override
        if appliance_hostname:
            return appliance_hostname
        if host is not None and host.hostname:
            return host.hostname
        return UNKNOWN_HOSTNAME

    def merge(
        self,
        local: Optional[MetricFragment],
        container: Optional[MetricFragment],
        appliance: Optional[MetricFragment],
        timestamp: float,
        appliance_hostname: Optional[str] = None,
    ) -> Snapshot:
        regions, simulated = self._base_regions(local)

        if appliance is not None:
            self._apply_appliance(regions, simulated, appliance)

        if container is not None and container.services is not None:
            regions["services"] = container.services
            simulated.discard(MetricField.SERVICES)

        cpu: CpuMetrics = regions["cpu"]
        temperature = {
            "coretemp": (TemperatureSensor(
                label=CPU_PACKAGE_LABEL,
                current_celsius=cpu.temperature_celsius.package,
            ),),
        }

        host = local.host if local is not None else None
        hostname = self._resolve_hostname(host, appliance_hostname)
        os_distribution = host.os_distribution if host else ""
        kernel = host.kernel_version if host else ""
        uptime = host.uptime_seconds if host else 0
        boot_time = host.boot_time if host and host.boot_time else timestamp - uptime

        hardware = HardwareHealth(
            cpu=cpu,
            memory=regions["memory"],
            storage=regions["storage"],
            network=regions["network"],
            power=regions["power"],
            temperature=temperature,
            services=regions["services"],
            security=regions["security"],
        )
        return Snapshot(
            meta=ServerMetadata(
                hostname=hostname,
                server_type=self.server_type,
                os_distribution=os_distribution,
                kernel_version=kernel,
                uptime_seconds=uptime,
                telemetry_version=TELEMETRY_VERSION,
                collection_timestamp=_iso(timestamp),
            ),
            hardware=hardware,
            environment=regions["environment"],
            os_health=OsHealth(
                boot_time=_iso(boot_time),
                uptime_seconds=uptime,
                kernel_version=kernel,
                os_distribution=os_distribution,
                process_count=host.process_count if host else 0,
            ),
            status=calculate_status(cpu.utilization_percent, hardware.memory.usage_percent),
            simulated=frozenset(simulated),
        )
