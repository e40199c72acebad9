"""Mapping of `reporting.realtime` push fields onto telemetry regions."""
from typing import Any, Dict, List, Mapping, Optional

from server_monitor.core.models.telemetry import (
    CpuMetrics,
    CpuTemperature,
    MemoryMetrics,
    NetworkInterface,
    NetworkMetrics,
)

GIB = 1024 ** 3
LINK_STATE_UP = "LINK_STATE_UP"
LINK_UNKNOWN = "unknown"


def _core_index(key: str) -> int:
    digits = "".join(ch for ch in key if ch.isdigit())
    return int(digits) if digits else -1


def _core_loads(cpu_data: Any) -> List[float]:
    # Older payloads send a list of per-core time splits, newer ones a dict
    # keyed "cpu0".."cpuN" plus an aggregate "cpu" entry
    if isinstance(cpu_data, Mapping):
        entries = [
            v for k, v in sorted(cpu_data.items(), key=lambda item: _core_index(str(item[0])))
            if k != "cpu" and isinstance(v, Mapping)
        ]
    elif isinstance(cpu_data, list):
        entries = [v for v in cpu_data if isinstance(v, Mapping)]
    else:
        return []

    loads = []
    for entry in entries:
        if "usage" in entry:
            loads.append(float(entry.get("usage") or 0))
        else:
            loads.append(100.0 - float(entry.get("idle") or 0))
    return loads


def map_cpu(cpu_data: Any, temperature_data: Any) -> Optional[CpuMetrics]:
    loads = _core_loads(cpu_data)
    if not loads:
        return None

    temps: List[float] = []
    if isinstance(temperature_data, Mapping):
        temps = [float(v) for v in temperature_data.values() if isinstance(v, (int, float))]
    package = max(temps) if temps else 0.0

    return CpuMetrics(
        utilization_percent=sum(loads) / len(loads),
        per_core_utilization=tuple(loads),
        core_count=len(loads),
        physical_core_count=len(loads),
        temperature_celsius=CpuTemperature(package=package, cores=tuple(temps)),
    )


def map_memory(virtual_memory: Any) -> Optional[MemoryMetrics]:
    if not isinstance(virtual_memory, Mapping):
        return None
    total = float(virtual_memory.get("total") or 0)
    used = float(virtual_memory.get("used") or 0)
    if total <= 0:
        return None
    return MemoryMetrics(
        total_gb=total / GIB,
        used_gb=used / GIB,
        available_gb=(total - used) / GIB,
        usage_percent=used / total * 100,
    )


def _link_status(link_state: Any) -> str:
    if link_state is None:
        return LINK_UNKNOWN
    return "up" if link_state == LINK_STATE_UP else "down"


def map_network(interfaces: Any) -> Optional[NetworkMetrics]:
    if not isinstance(interfaces, Mapping):
        return None
    mapped = []
    for name, stats in interfaces.items():
        if not isinstance(stats, Mapping):
            continue
        mapped.append(NetworkInterface(
            name=str(name),
            status=_link_status(stats.get("link_state")),
            speed_mbps=float(stats.get("speed") or 0),
            rx_bytes_per_sec=float(stats.get("received_bytes_rate") or 0),
            tx_bytes_per_sec=float(stats.get("sent_bytes_rate") or 0),
        ))
    return NetworkMetrics(interfaces=tuple(mapped))


def map_realtime_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Map one push payload into region keyword arguments for a fragment.

    Raises:
        TypeError / ValueError: payload values have unexpected types.
    """
    return {
        "cpu": map_cpu(fields.get("cpu"), fields.get("temperature_celsius")),
        "memory": map_memory(fields.get("virtual_memory")),
        "network": map_network(fields.get("interfaces")),
    }
