"""
Synthetic stand-ins for metrics no real source could supply.

Every builder takes an optional `random.Random`. Without one the jitter is
zero, which keeps the merge baseline and tests deterministic.
"""
import random
from typing import Optional, Tuple

from server_monitor.core.models.telemetry import (
    ALL_FIELDS,
    AmbientTemperature,
    AuthenticationStats,
    ChassisState,
    CpuMetrics,
    CpuTemperature,
    EnvironmentMetrics,
    FanData,
    FanGroups,
    MemoryMetrics,
    MetricFragment,
    NetworkMetrics,
    PowerMetrics,
    SecurityMetrics,
    ServiceInventory,
    StorageMetrics,
    VoltageLevels,
)

SOURCE = "synthetic"

BASE_POWER_WATTS = 100.0
LOAD_POWER_WATTS = 150.0
PEAK_POWER_WATTS = 400.0
POWER_JITTER_WATTS = 5.0
SIMULATED_EFFICIENCY = 92.0

BASE_CPU_TEMP = 40.0
LOAD_CPU_TEMP = 30.0
CPU_TEMP_JITTER = 2.0

FAN_RPM = 1500.0
FAN_MAX_RPM = 2500.0


def _jitter(rng: Optional[random.Random], spread: float) -> float:
    if rng is None:
        return 0.0
    return rng.uniform(-spread, spread)


def simulated_cpu_temperature(load_percent: float, rng: Optional[random.Random] = None) -> float:
    return BASE_CPU_TEMP + load_percent / 100 * LOAD_CPU_TEMP + _jitter(rng, CPU_TEMP_JITTER)


def simulated_fans(prefix: str, count: int = 2) -> Tuple[FanData, ...]:
    return tuple(
        FanData(
            label=f"{prefix} {i}",
            current_rpm=FAN_RPM,
            max_rpm=FAN_MAX_RPM,
            speed_percent=60.0,
            target_rpm=FAN_RPM,
        )
        for i in range(1, count + 1)
    )


def simulated_power(load_percent: float = 20.0, rng: Optional[random.Random] = None) -> PowerMetrics:
    watts = round(BASE_POWER_WATTS + load_percent / 100 * LOAD_POWER_WATTS + _jitter(rng, POWER_JITTER_WATTS))
    return PowerMetrics(
        psu_status=("healthy", "healthy"),
        psu_count=2,
        psu_redundancy=True,
        power_consumption_watts=float(watts),
        power_consumption_peak_watts=PEAK_POWER_WATTS,
        power_efficiency_percent=SIMULATED_EFFICIENCY,
        voltage_levels=VoltageLevels(v3_3=3.3, v5=5.0, v12=12.0),
        voltage_stability="stable",
        fans=FanGroups(cpu_fans=simulated_fans("CPU Fan"), case_fans=simulated_fans("Case Fan")),
    )


def simulated_environment() -> EnvironmentMetrics:
    return EnvironmentMetrics(
        temperature=AmbientTemperature(
            ambient_celsius=22.0,
            intake_celsius=24.0,
            exhaust_celsius=35.0,
            temperature_rise=11.0,
            cooling_efficiency=95.0,
        ),
        fans=simulated_fans("Chassis Fan"),
        chassis=ChassisState(),
    )


def simulated_security() -> SecurityMetrics:
    return SecurityMetrics(authentication=AuthenticationStats(active_user_sessions=1))


def baseline_fragment(load_percent: float = 0.0) -> MetricFragment:
    """Complete, fully simulated fragment the merge starts from when no local data exists."""
    return MetricFragment(
        source=SOURCE,
        cpu=CpuMetrics(
            utilization_percent=load_percent,
            temperature_celsius=CpuTemperature(package=simulated_cpu_temperature(load_percent)),
        ),
        memory=MemoryMetrics(),
        storage=StorageMetrics(),
        network=NetworkMetrics(),
        power=simulated_power(load_percent),
        environment=simulated_environment(),
        security=simulated_security(),
        services=ServiceInventory(),
        simulated=ALL_FIELDS,
    )
