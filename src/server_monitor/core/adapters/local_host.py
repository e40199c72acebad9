"""
Local host adapter backed by psutil.

Produces the CPU, memory, storage, network and host regions from the
machine the service runs on. Power, environment and security have no local
source, so the adapter fills them with synthetic values and flags them.
"""
import logging
import platform
import random
import re
import socket
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import psutil

from server_monitor.core.adapters.base import AdapterReading
from server_monitor.core.adapters.synthetic import (
    simulated_cpu_temperature,
    simulated_environment,
    simulated_power,
    simulated_security,
)
from server_monitor.core.models.telemetry import (
    ActiveConnections,
    CpuFrequency,
    CpuMetrics,
    CpuTemperature,
    CpuTimes,
    HostInfo,
    InterfaceAddress,
    MemoryMetrics,
    MetricField,
    MetricFragment,
    NetworkInterface,
    NetworkMetrics,
    StorageDevice,
    StorageMetrics,
)

logger = logging.getLogger(__name__)

SOURCE = "local"
GIB = 1024 ** 3
LOOPBACK_INTERFACES = ("lo",)
CPU_SENSOR_GROUPS = ("coretemp", "k10temp", "zenpower", "cpu_thermal", "cpu-thermal")
PACKAGE_LABELS = ("package id 0", "tctl", "tdie")
ZFS_BOOT_POOL = "boot-pool"

_PRETTY_NAME_PATTERN = re.compile(r'^PRETTY_NAME=(?:"([^"]*)"|\'([^\']*)\'|(\S+))', re.MULTILINE)
_DUPLEX_NAMES = {
    psutil.NIC_DUPLEX_FULL: "full",
    psutil.NIC_DUPLEX_HALF: "half",
}


@dataclass
class _NetSample:
    timestamp: float
    counters: Dict[str, "psutil._common.snetio"]


def read_pretty_name(path: Path) -> Optional[str]:
    """PRETTY_NAME from an os-release file, or None when missing or unreadable."""
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        return None
    match = _PRETTY_NAME_PATTERN.search(content)
    if not match:
        return None
    return next((group for group in match.groups() if group), None)


def is_root_zfs_pool(device: str, fstype: str, total_bytes: int) -> bool:
    if fstype.lower() != "zfs":
        return False
    if device.startswith(ZFS_BOOT_POOL) or "/" in device:
        return False
    return total_bytes > 0


class LocalHostAdapter:
    name = SOURCE

    def __init__(
        self,
        host_root: str = "/host",
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.host_root = Path(host_root)
        self.rng = rng if rng is not None else random.Random()
        self.clock = clock
        self._last_net: Optional[_NetSample] = None
        self._warned_no_temperature = False

    def read(self) -> AdapterReading:
        simulated = {MetricField.POWER, MetricField.ENVIRONMENT, MetricField.SECURITY}

        cpu, temperature_simulated = self._collect_cpu()
        if temperature_simulated:
            simulated.add(MetricField.CPU_TEMPERATURE)

        fragment = MetricFragment(
            source=SOURCE,
            cpu=cpu,
            memory=self._collect_memory(),
            storage=self._collect_storage(),
            network=self._collect_network(),
            power=simulated_power(cpu.utilization_percent, self.rng),
            environment=simulated_environment(),
            security=simulated_security(),
            host=self._collect_host(),
            simulated=frozenset(simulated),
        )
        return AdapterReading.of(fragment)

    # --- CPU ---

    def _read_cpu_temperatures(self) -> Tuple[Optional[float], Tuple[float, ...]]:
        if not hasattr(psutil, "sensors_temperatures"):
            return None, ()
        try:
            groups = psutil.sensors_temperatures(fahrenheit=False)
        except (OSError, RuntimeError) as e:
            logger.debug(f"Temperature sensors unreadable: {e}")
            return None, ()

        for group in CPU_SENSOR_GROUPS:
            entries = groups.get(group) or []
            if not entries:
                continue
            package = None
            cores = []
            for entry in entries:
                label = (entry.label or "").lower()
                if label in PACKAGE_LABELS:
                    package = float(entry.current)
                elif label.startswith("core"):
                    cores.append(float(entry.current))
            if package is None:
                package = float(entries[0].current)
            return package, tuple(cores)
        return None, ()

    def _collect_cpu(self) -> Tuple[CpuMetrics, bool]:
        per_core = [float(v) for v in psutil.cpu_percent(interval=None, percpu=True)]
        utilization = sum(per_core) / len(per_core) if per_core else 0.0
        logical = psutil.cpu_count(logical=True) or len(per_core)
        physical = psutil.cpu_count(logical=False) or logical

        frequency = CpuFrequency()
        freq = psutil.cpu_freq()
        if freq is not None:
            frequency = CpuFrequency(base=float(freq.max or freq.current), current=float(freq.current))

        try:
            load_average = tuple(float(v) for v in psutil.getloadavg())
        except (AttributeError, OSError):
            load_average = (0.0, 0.0, 0.0)

        times = psutil.cpu_times_percent(interval=None)
        times_percent = CpuTimes(**{
            name: float(getattr(times, name, 0.0))
            for name in ("user", "system", "idle", "nice", "iowait", "irq", "softirq")
        })

        package, cores = self._read_cpu_temperatures()
        simulated = not package
        if simulated:
            if not self._warned_no_temperature:
                logger.info("No CPU temperature sensor found, using simulated package temperature")
                self._warned_no_temperature = True
            package = simulated_cpu_temperature(utilization, self.rng)

        cpu = CpuMetrics(
            utilization_percent=utilization,
            per_core_utilization=tuple(per_core),
            load_average=load_average,
            core_count=logical,
            physical_core_count=physical,
            frequency_mhz=frequency,
            temperature_celsius=CpuTemperature(package=package, cores=cores),
            times_percent=times_percent,
        )
        return cpu, simulated

    # --- Memory ---

    def _collect_memory(self) -> MemoryMetrics:
        vm = psutil.virtual_memory()
        swap = psutil.swap_memory()
        return MemoryMetrics(
            total_gb=vm.total / GIB,
            used_gb=vm.used / GIB,
            available_gb=vm.available / GIB,
            swap_used_gb=swap.used / GIB,
            swap_total_gb=swap.total / GIB,
            usage_percent=float(vm.percent),
        )

    # --- Storage ---

    def _collect_storage(self) -> StorageMetrics:
        pools: List[StorageDevice] = []
        filesystems: List[StorageDevice] = []
        seen = set()

        for part in psutil.disk_partitions(all=False):
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except OSError:
                logger.debug(f"Skipping unreadable mount {part.mountpoint}")
                continue

            if part.fstype.lower() == "zfs":
                if is_root_zfs_pool(part.device, part.fstype, usage.total):
                    pools.append(StorageDevice(
                        device=part.device,
                        model="ZFS Pool",
                        mountpoint=part.mountpoint,
                        size_gb=usage.total / GIB,
                        used_gb=usage.used / GIB,
                        available_gb=usage.free / GIB,
                        usage_percent=float(usage.percent),
                        drive_type="ssd",
                    ))
                continue

            if part.device in seen or usage.total <= 0:
                continue
            seen.add(part.device)
            device = StorageDevice(
                device=part.device,
                mountpoint=part.mountpoint,
                size_gb=usage.total / GIB,
                used_gb=usage.used / GIB,
                available_gb=usage.free / GIB,
                usage_percent=float(usage.percent),
            )
            # Root filesystem is the primary disk
            if part.mountpoint == "/":
                filesystems.insert(0, device)
            else:
                filesystems.append(device)

        return StorageMetrics(devices=tuple(pools or filesystems))

    # --- Network ---

    def _collect_network(self) -> NetworkMetrics:
        addrs = psutil.net_if_addrs()
        counters = psutil.net_io_counters(pernic=True)
        try:
            stats = psutil.net_if_stats()
        except OSError:
            logger.debug("Interface stats unavailable")
            stats = {}

        now = self.clock()
        previous = self._last_net
        elapsed = now - previous.timestamp if previous else 0.0

        interfaces = []
        for name, addr_list in addrs.items():
            if name in LOOPBACK_INTERFACES:
                continue
            addresses = []
            for addr in addr_list:
                if addr.family == socket.AF_INET:
                    family = "IPv4"
                elif addr.family == socket.AF_INET6:
                    family = "IPv6"
                else:
                    continue
                addresses.append(InterfaceAddress(
                    family=family,
                    address=addr.address.split("%", 1)[0],
                    netmask=addr.netmask or "",
                    broadcast=addr.broadcast or "",
                ))

            stat = stats.get(name)
            io = counters.get(name)
            rates = (0.0, 0.0, 0.0, 0.0)
            if io is not None and previous is not None and elapsed > 0 and name in previous.counters:
                prev = previous.counters[name]
                rates = (
                    max(io.bytes_recv - prev.bytes_recv, 0) / elapsed,
                    max(io.bytes_sent - prev.bytes_sent, 0) / elapsed,
                    max(io.packets_recv - prev.packets_recv, 0) / elapsed,
                    max(io.packets_sent - prev.packets_sent, 0) / elapsed,
                )

            interfaces.append(NetworkInterface(
                name=name,
                status="up" if stat is not None and stat.isup else "down",
                speed_mbps=float(stat.speed) if stat is not None else 0.0,
                duplex=_DUPLEX_NAMES.get(stat.duplex, "unknown") if stat is not None else "unknown",
                mtu=int(stat.mtu) if stat is not None else 0,
                rx_bytes_per_sec=rates[0],
                tx_bytes_per_sec=rates[1],
                rx_packets_per_sec=rates[2],
                tx_packets_per_sec=rates[3],
                rx_errors=io.errin if io is not None else 0,
                tx_errors=io.errout if io is not None else 0,
                rx_dropped=io.dropin if io is not None else 0,
                tx_dropped=io.dropout if io is not None else 0,
                addresses=tuple(addresses),
            ))

        self._last_net = _NetSample(timestamp=now, counters=counters)
        return NetworkMetrics(interfaces=tuple(interfaces), active_connections=self._count_connections())

    @staticmethod
    def _count_connections() -> ActiveConnections:
        try:
            connections = psutil.net_connections(kind="inet")
        except (psutil.AccessDenied, OSError):
            return ActiveConnections()
        established = listen = udp = 0
        for conn in connections:
            if conn.type == socket.SOCK_DGRAM:
                udp += 1
            elif conn.status == psutil.CONN_ESTABLISHED:
                established += 1
            elif conn.status == psutil.CONN_LISTEN:
                listen += 1
        return ActiveConnections(tcp_established=established, tcp_listen=listen, udp_active=udp)

    # --- Host ---

    def os_distribution(self) -> str:
        for path in (self.host_root / "etc" / "os-release", Path("/etc/os-release")):
            pretty = read_pretty_name(path)
            if pretty:
                return pretty
        return platform.platform()

    def _collect_host(self) -> HostInfo:
        boot_time = psutil.boot_time()
        return HostInfo(
            hostname=socket.gethostname(),
            os_distribution=self.os_distribution(),
            kernel_version=platform.release(),
            uptime_seconds=max(int(time.time() - boot_time), 0),
            boot_time=boot_time,
            process_count=len(psutil.pids()),
        )
