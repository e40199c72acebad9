import threading
from typing import Optional

from server_monitor.core.models.telemetry import Snapshot


class SnapshotCache:
    """Holds the latest merged snapshot. Each set replaces the whole snapshot."""

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot: Optional[Snapshot] = None
        self._updated_at: Optional[float] = None

    def get(self) -> Optional[Snapshot]:
        with self._lock:
            return self._snapshot

    def set(self, snapshot: Snapshot, timestamp: float) -> None:
        with self._lock:
            self._snapshot = snapshot
            self._updated_at = timestamp

    @property
    def updated_at(self) -> Optional[float]:
        with self._lock:
            return self._updated_at
