"""Sensor reading model produced from raw appliance IPMI payloads."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

UNAVAILABLE_MARKERS = {"na", "n/a", "not available", "unavailable", "no reading", ""}


class SensorKind(Enum):
    """Semantic kind of an IPMI sensor."""
    TEMPERATURE = "temperature"
    FAN = "fan"
    VOLTAGE = "voltage"
    POWER = "power"
    STATUS = "status"


@dataclass(frozen=True)
class SensorReading:
    """
    Data class representing one sensor reading from a poll cycle.
    `value` is None when the appliance reported the sensor as not available.
    `status` carries the textual reading of discrete sensors (PSU presence etc).
    """
    name: str
    kind: SensorKind
    value: Optional[float]
    unit: str = ""
    declared_type: str = ""
    status: str = ""

    @property
    def available(self) -> bool:
        return self.value is not None or bool(self.status)

    def numeric(self) -> float:
        """Value for aggregation; unavailable readings count as zero."""
        return self.value if self.value is not None else 0.0


def _infer_kind(declared_type: str, unit: str) -> SensorKind:
    declared = declared_type.lower()
    unit = unit.lower()
    if "fan" in declared or unit == "rpm":
        return SensorKind.FAN
    if "temp" in declared or unit in ("c", "degrees c", "°c", "celsius"):
        return SensorKind.TEMPERATURE
    if "volt" in declared or unit in ("v", "volts"):
        return SensorKind.VOLTAGE
    if unit in ("w", "watts"):
        return SensorKind.POWER
    return SensorKind.STATUS


def parse_sensor_reading(raw: Mapping[str, Any]) -> SensorReading:
    """
    Build a SensorReading from one entry of an `ipmi.sensors.query` result.

    Raises:
        ValueError: entry has no usable name.
    """
    name = str(raw.get("name") or "").strip()
    if not name:
        raise ValueError(f"Sensor entry without a name: {raw!r}")
    declared_type = str(raw.get("type") or "")
    unit = str(raw.get("units") or raw.get("unit") or "")
    raw_value = raw.get("value", raw.get("reading"))

    value: Optional[float] = None
    status = ""
    if isinstance(raw_value, bool):
        value = 1.0 if raw_value else 0.0
    elif isinstance(raw_value, (int, float)):
        value = float(raw_value)
    elif raw_value is not None:
        text = str(raw_value).strip()
        if text.lower() not in UNAVAILABLE_MARKERS:
            try:
                value = float(text)
            except ValueError:
                status = text

    return SensorReading(
        name=name,
        kind=_infer_kind(declared_type, unit),
        value=value,
        unit=unit,
        declared_type=declared_type,
        status=status,
    )
