from dataclasses import dataclass
from typing import Optional, Protocol

from server_monitor.core.models.telemetry import MetricFragment


@dataclass(frozen=True)
class AdapterReading:
    """Result of one adapter read: the fragment, or None when the source is unavailable."""
    source: str
    fragment: Optional[MetricFragment]
    available: bool

    @classmethod
    def unavailable(cls, source: str) -> "AdapterReading":
        return cls(source=source, fragment=None, available=False)

    @classmethod
    def of(cls, fragment: MetricFragment) -> "AdapterReading":
        return cls(source=fragment.source, fragment=fragment, available=True)


class SourceAdapter(Protocol):
    """Synchronous point-in-time read. No retry or caching lives here."""

    name: str

    def read(self) -> AdapterReading: ...
