"""
In-memory trend history: one RingBuffer per tracked metric, appended once
per collection cycle. History is lost on restart.
"""
import threading
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from server_monitor.core.models.ring_buffer import RingBuffer
from server_monitor.core.models.telemetry import Snapshot

DEFAULT_CAPACITY = 3600
BYTES_PER_MB = 1024 * 1024

# key -> (display name, unit)
TRACKED_METRICS: Dict[str, Tuple[str, str]] = {
    "cpu": ("CPU Utilization", "%"),
    "memory": ("Memory Usage", "%"),
    "disk": ("Disk Usage", "%"),
    "network": ("Network Traffic", "MB/s"),
}


@dataclass(frozen=True)
class TrendSeries:
    key: str
    metric: str
    unit: str
    data: Tuple[Tuple[float, float], ...]
    current: float
    average: float
    minimum: float
    maximum: float


def snapshot_samples(snapshot: Snapshot) -> Dict[str, float]:
    """Scalar trend samples from a merged snapshot."""
    hardware = snapshot.hardware
    devices = hardware.storage.devices
    interfaces = hardware.network.interfaces
    return {
        "cpu": hardware.cpu.utilization_percent,
        "memory": hardware.memory.usage_percent,
        "disk": devices[0].usage_percent if devices else 0.0,
        "network": interfaces[0].rx_bytes_per_sec / BYTES_PER_MB if interfaces else 0.0,
    }


def _summarize(key: str, points: List[Tuple[float, float]]) -> TrendSeries:
    metric, unit = TRACKED_METRICS[key]
    values = [value for _, value in points]
    return TrendSeries(
        key=key,
        metric=metric,
        unit=unit,
        data=tuple(points),
        current=values[-1] if values else 0.0,
        average=sum(values) / len(values) if values else 0.0,
        minimum=min(values) if values else 0.0,
        maximum=max(values) if values else 0.0,
    )


class TrendStore:
    """
    Written by the collector, read by the HTTP layer. A lock keeps a query
    from seeing one series appended and the next not yet.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = capacity
        self._buffers = {key: RingBuffer(capacity) for key in TRACKED_METRICS}
        self._lock = threading.Lock()

    def append(self, timestamp: float, samples: Mapping[str, float]) -> None:
        with self._lock:
            for key, buffer in self._buffers.items():
                buffer.append(timestamp, float(samples.get(key, 0.0)))

    def record(self, snapshot: Snapshot, timestamp: float) -> None:
        self.append(timestamp, snapshot_samples(snapshot))

    def query(self, window: Optional[float] = None, now: Optional[float] = None) -> Dict[str, TrendSeries]:
        """
        Per-metric series with current/average/min/max.

        With `window` (seconds) only points newer than `now - window` are
        returned and summarized. The buffers are not modified.
        """
        if window is not None and window <= 0:
            raise ValueError(f"window must be positive, got {window}")

        with self._lock:
            if window is None:
                points = {key: buf.get_all() for key, buf in self._buffers.items()}
            else:
                if now is None:
                    now = max((buf.latest()[0] for buf in self._buffers.values() if buf.size()), default=0.0)
                cutoff = now - window
                points = {key: buf.get_since(cutoff) for key, buf in self._buffers.items()}

        return {key: _summarize(key, series) for key, series in points.items()}

    def size(self) -> int:
        with self._lock:
            return min(buf.size() for buf in self._buffers.values())
