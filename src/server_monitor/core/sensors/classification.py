"""
Name-based classification of appliance IPMI sensors.

Vendors name sensors freely ("Pwr Consumption", "PSU1 Status", "P12V",
"FAN1", "Inlet Temp"), so everything here is substring and token matching.
All functions are pure so the heuristics can be patched and tested without
touching the merge path.
"""
import re
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from server_monitor.core.models.sensor_reading import SensorKind, SensorReading
from server_monitor.core.models.telemetry import (
    AmbientTemperature,
    ChassisState,
    EnvironmentMetrics,
    FanData,
    FanGroups,
    PowerMetrics,
    SecurityMetrics,
    VoltageLevels,
)

DEFAULT_AMBIENT_CELSIUS = 22.0
APPLIANCE_POWER_EFFICIENCY = 90.0

POWER_MARKERS = ("pwr consumption", "system power", "total power")
VOLTAGE_RAILS = ("3.3v", "5v", "12v")
# Battery and dual-rail sensors share rail tokens with the main rails
RAIL_EXCLUSIONS = ("batt", "dual")

PSU_HEALTHY = "healthy"
PSU_WARNING = "warning"
PSU_CRITICAL = "critical"

_CRITICAL_PATTERN = re.compile(r"\b(lost|fail|failed|failure|error|fault)\b")
_HEALTHY_TOKENS = ("presence",)
_OK_PATTERN = re.compile(r"\bok\b")
# Rail token not glued to a preceding digit/dot ("15v", "1.5v") and not
# followed by an alphanumeric suffix ("5vsb" is the standby rail)
_RAIL_PATTERNS = {
    rail: re.compile(r"(?<![0-9.])" + re.escape(rail) + r"(?![a-z0-9])")
    for rail in VOLTAGE_RAILS
}
_FAN_INDEX_PATTERN = re.compile(r"^fan[\s_-]?(\d+|[a-z])\b")

INTAKE_MARKERS = ("inlet", "intake")
EXHAUST_MARKERS = ("exhaust", "outlet")
AMBIENT_MARKERS = ("ambient", "system temp")


def _normalize(name: str) -> str:
    return name.lower().replace("_", " ").strip()


def is_power_reading(reading: SensorReading) -> bool:
    """Whole-system power consumption sensor."""
    name = _normalize(reading.name)
    return any(marker in name for marker in POWER_MARKERS)


def match_voltage_rail(name: str) -> Optional[str]:
    """Return the rail ("3.3v", "5v", "12v") a sensor name measures, if any."""
    lowered = name.lower()
    if any(excluded in lowered for excluded in RAIL_EXCLUSIONS):
        return None
    for rail in VOLTAGE_RAILS:
        if _RAIL_PATTERNS[rail].search(lowered):
            return rail
    return None


def is_psu_status(reading: SensorReading) -> bool:
    name = reading.name.lower()
    return "psu" in name and ("status" in name or "supply" in name)


def is_psu_power_draw(reading: SensorReading) -> bool:
    name = _normalize(reading.name)
    if not (name.startswith("ps") or "psu" in name) or is_psu_status(reading):
        return False
    return reading.kind == SensorKind.POWER or "power" in name or "pin" in name.split()


def classify_psu_status(reading: SensorReading) -> str:
    """Map a PSU status sensor onto healthy/warning/critical."""
    if not reading.available:
        return PSU_CRITICAL
    text = reading.status.lower()
    if _CRITICAL_PATTERN.search(text):
        return PSU_CRITICAL
    if any(token in text for token in _HEALTHY_TOKENS) or _OK_PATTERN.search(text):
        return PSU_HEALTHY
    if not text and reading.value == 1.0:
        return PSU_HEALTHY
    return PSU_WARNING


def is_fan(reading: SensorReading) -> bool:
    if reading.kind == SensorKind.FAN or reading.unit.lower() == "rpm":
        return True
    return bool(_FAN_INDEX_PATTERN.match(reading.name.lower()))


def fan_bucket(reading: SensorReading) -> str:
    return "cpu" if "cpu" in reading.name.lower() else "case"


def is_temperature(reading: SensorReading) -> bool:
    return reading.kind == SensorKind.TEMPERATURE


def temperature_bucket(reading: SensorReading) -> Optional[str]:
    """intake / exhaust / ambient, or None for component temperatures."""
    name = reading.name.lower()
    if any(marker in name for marker in INTAKE_MARKERS):
        return "intake"
    if any(marker in name for marker in EXHAUST_MARKERS):
        return "exhaust"
    if any(marker in name for marker in AMBIENT_MARKERS):
        return "ambient"
    return None


def _is_truthy_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "active")
    return bool(value)


def derive_psu_status(
    readings: Sequence[SensorReading], chassis: Mapping[str, Any]
) -> Tuple[str, ...]:
    """
    Per-PSU health. Falls back to PSU power draw, then to the chassis
    power-fault flag when no status sensors exist.
    """
    statuses = [classify_psu_status(r) for r in readings if is_psu_status(r)]
    if statuses:
        return tuple(statuses)
    draws = [r for r in readings if is_psu_power_draw(r)]
    if draws:
        return tuple(PSU_HEALTHY if r.numeric() > 0 else PSU_CRITICAL for r in draws)
    if _is_truthy_flag(chassis.get("power_fault", False)):
        return (PSU_CRITICAL,)
    return (PSU_HEALTHY,)


def build_fan(reading: SensorReading) -> FanData:
    rpm = reading.numeric()
    return FanData(
        label=reading.name,
        current_rpm=rpm,
        status="normal" if rpm > 0 else "stopped",
    )


def group_fans(readings: Iterable[SensorReading]) -> FanGroups:
    cpu_fans: List[FanData] = []
    case_fans: List[FanData] = []
    for reading in readings:
        if not is_fan(reading):
            continue
        if fan_bucket(reading) == "cpu":
            cpu_fans.append(build_fan(reading))
        else:
            case_fans.append(build_fan(reading))
    return FanGroups(cpu_fans=tuple(cpu_fans), case_fans=tuple(case_fans))


def map_power(
    readings: Sequence[SensorReading],
    chassis: Mapping[str, Any],
    peak_watts: float = 0.0,
) -> PowerMetrics:
    """Build the power region from one poll cycle's sensors and chassis info."""
    watts = 0.0
    rails = {rail: 0.0 for rail in VOLTAGE_RAILS}
    for reading in readings:
        if is_power_reading(reading):
            watts = reading.numeric()
            continue
        if reading.kind in (SensorKind.VOLTAGE, SensorKind.STATUS):
            rail = match_voltage_rail(reading.name)
            if rail is not None:
                rails[rail] = reading.numeric()

    psu_status = derive_psu_status(readings, chassis)
    return PowerMetrics(
        psu_status=psu_status,
        psu_count=len(psu_status),
        psu_redundancy=len(psu_status) > 1 and all(s == PSU_HEALTHY for s in psu_status),
        power_consumption_watts=watts,
        power_consumption_peak_watts=max(peak_watts, watts),
        power_efficiency_percent=APPLIANCE_POWER_EFFICIENCY,
        voltage_levels=VoltageLevels(v3_3=rails["3.3v"], v5=rails["5v"], v12=rails["12v"]),
        voltage_stability="stable",
        fans=group_fans(readings),
    )


def map_environment(
    readings: Sequence[SensorReading], chassis: Mapping[str, Any]
) -> EnvironmentMetrics:
    """Build the environment region: intake/exhaust/ambient, chassis fans and intrusion."""
    buckets = {"intake": 0.0, "exhaust": 0.0, "ambient": 0.0}
    for reading in readings:
        if not is_temperature(reading) or reading.value is None:
            continue
        bucket = temperature_bucket(reading)
        if bucket is not None:
            buckets[bucket] = reading.value

    ambient = buckets["ambient"] or DEFAULT_AMBIENT_CELSIUS
    intake = buckets["intake"]
    exhaust = buckets["exhaust"]
    fans = group_fans(readings)
    intrusion = _is_truthy_flag(chassis.get("chassis_intrusion", False))
    return EnvironmentMetrics(
        temperature=AmbientTemperature(
            ambient_celsius=ambient,
            intake_celsius=intake,
            exhaust_celsius=exhaust,
            temperature_rise=exhaust - intake if intake and exhaust else 0.0,
        ),
        fans=fans.cpu_fans + fans.case_fans,
        chassis=ChassisState(
            intrusion_detected=intrusion,
            door_status="open" if intrusion else "closed",
        ),
    )


def map_security(chassis: Mapping[str, Any]) -> SecurityMetrics:
    """Only chassis intrusion is observable out-of-band."""
    return SecurityMetrics(
        chassis_intrusion_detected=_is_truthy_flag(chassis.get("chassis_intrusion", False)),
    )
