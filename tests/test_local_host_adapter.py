"""
Tests for the psutil-backed local host adapter
"""
import random
import socket
from types import SimpleNamespace

import psutil
import pytest

from server_monitor.core.adapters import local_host
from server_monitor.core.adapters.local_host import LocalHostAdapter, is_root_zfs_pool, read_pretty_name
from server_monitor.core.models.telemetry import MetricField

GIB = 1024 ** 3


def part(device, mountpoint, fstype):
    return SimpleNamespace(device=device, mountpoint=mountpoint, fstype=fstype, opts="rw")


def usage(total_gib, percent):
    total = int(total_gib * GIB)
    used = int(total * percent / 100)
    return SimpleNamespace(total=total, used=used, free=total - used, percent=percent)


def netio(rx, tx, prx=0, ptx=0):
    return SimpleNamespace(
        bytes_recv=rx, bytes_sent=tx, packets_recv=prx, packets_sent=ptx,
        errin=0, errout=0, dropin=0, dropout=0,
    )


def addr(family, address, netmask=None, broadcast=None):
    return SimpleNamespace(family=family, address=address, netmask=netmask, broadcast=broadcast, ptp=None)


class FakeHost:
    """Mutable psutil state patched into the adapter's psutil module."""

    def __init__(self):
        self.temperatures = {
            "coretemp": [
                SimpleNamespace(label="Package id 0", current=47.0),
                SimpleNamespace(label="Core 0", current=45.0),
                SimpleNamespace(label="Core 1", current=46.0),
            ],
        }
        self.partitions = [
            part("/dev/sdb1", "/data", "ext4"),
            part("/dev/sda1", "/", "ext4"),
            part("/dev/sda1", "/var/lib/docker", "ext4"),
        ]
        self.usages = {"/": usage(100, 40.0), "/data": usage(500, 10.0), "/var/lib/docker": usage(100, 40.0)}
        self.counters = {"eth0": netio(1000, 500, 10, 5), "lo": netio(99, 99)}


@pytest.fixture
def host(monkeypatch) -> FakeHost:
    state = FakeHost()
    ps = local_host.psutil
    monkeypatch.setattr(ps, "cpu_percent", lambda interval=None, percpu=False: [10.0, 30.0])
    monkeypatch.setattr(ps, "cpu_count", lambda logical=True: 2 if logical else 1)
    monkeypatch.setattr(ps, "cpu_freq", lambda: SimpleNamespace(current=2400.0, min=800.0, max=3600.0))
    monkeypatch.setattr(ps, "getloadavg", lambda: (0.5, 0.4, 0.3))
    monkeypatch.setattr(ps, "cpu_times_percent", lambda interval=None: SimpleNamespace(
        user=15.0, system=5.0, idle=80.0, nice=0.0, iowait=0.0, irq=0.0, softirq=0.0))
    monkeypatch.setattr(ps, "sensors_temperatures", lambda fahrenheit=False: state.temperatures, raising=False)
    monkeypatch.setattr(ps, "virtual_memory", lambda: SimpleNamespace(
        total=16 * GIB, used=4 * GIB, available=12 * GIB, percent=25.0))
    monkeypatch.setattr(ps, "swap_memory", lambda: SimpleNamespace(total=2 * GIB, used=0))
    monkeypatch.setattr(ps, "disk_partitions", lambda all=False: state.partitions)
    monkeypatch.setattr(ps, "disk_usage", lambda path: state.usages[path])
    monkeypatch.setattr(ps, "net_if_addrs", lambda: {
        "lo": [addr(socket.AF_INET, "127.0.0.1", "255.0.0.0")],
        "eth0": [
            addr(socket.AF_INET, "10.0.0.5", "255.255.255.0", "10.0.0.255"),
            addr(socket.AF_INET6, "fe80::1%eth0", "ffff:ffff:ffff:ffff::"),
        ],
    })
    monkeypatch.setattr(ps, "net_io_counters", lambda pernic=False: dict(state.counters))
    monkeypatch.setattr(ps, "net_if_stats", lambda: {
        "eth0": SimpleNamespace(isup=True, duplex=psutil.NIC_DUPLEX_FULL, speed=1000, mtu=1500),
    })
    monkeypatch.setattr(ps, "net_connections", lambda kind="inet": [
        SimpleNamespace(type=socket.SOCK_STREAM, status=psutil.CONN_ESTABLISHED),
        SimpleNamespace(type=socket.SOCK_STREAM, status=psutil.CONN_LISTEN),
        SimpleNamespace(type=socket.SOCK_DGRAM, status=psutil.CONN_NONE),
    ])
    monkeypatch.setattr(ps, "boot_time", lambda: 1_700_000_000.0)
    monkeypatch.setattr(ps, "pids", lambda: [1, 2, 3])
    return state


class FakeMonotonic:
    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now


def make_adapter(tmp_path, clock=None) -> LocalHostAdapter:
    return LocalHostAdapter(host_root=str(tmp_path), rng=random.Random(7), clock=clock or FakeMonotonic())


class TestCpuAndMemory:

    def test_cpu_region(self, host, tmp_path) -> None:
        cpu = make_adapter(tmp_path).read().fragment.cpu

        assert cpu.per_core_utilization == (10.0, 30.0)
        assert cpu.utilization_percent == pytest.approx(20.0)
        assert (cpu.core_count, cpu.physical_core_count) == (2, 1)
        assert cpu.frequency_mhz.base == 3600.0
        assert cpu.load_average == (0.5, 0.4, 0.3)
        assert cpu.temperature_celsius.package == 47.0
        assert cpu.temperature_celsius.cores == (45.0, 46.0)

    def test_real_temperature_not_flagged(self, host, tmp_path) -> None:
        simulated = make_adapter(tmp_path).read().fragment.simulated
        assert simulated == {MetricField.POWER, MetricField.ENVIRONMENT, MetricField.SECURITY}

    def test_missing_temperature_is_simulated(self, host, tmp_path) -> None:
        host.temperatures = {}
        fragment = make_adapter(tmp_path).read().fragment

        assert MetricField.CPU_TEMPERATURE in fragment.simulated
        # 40 + 20% of 30, plus or minus the jitter
        assert 44.0 <= fragment.cpu.temperature_celsius.package <= 48.0

    def test_memory_region(self, host, tmp_path) -> None:
        memory = make_adapter(tmp_path).read().fragment.memory
        assert memory.total_gb == pytest.approx(16.0)
        assert memory.used_gb == pytest.approx(4.0)
        assert memory.usage_percent == 25.0
        assert memory.swap_total_gb == pytest.approx(2.0)


class TestStorage:

    def test_root_first_and_deduplicated(self, host, tmp_path) -> None:
        devices = make_adapter(tmp_path).read().fragment.storage.devices

        assert [(d.device, d.mountpoint) for d in devices] == [("/dev/sda1", "/"), ("/dev/sdb1", "/data")]
        assert devices[0].size_gb == pytest.approx(100.0, rel=1e-3)

    def test_zfs_root_pools_take_priority(self, host, tmp_path) -> None:
        host.partitions = [
            part("/dev/sda1", "/", "ext4"),
            part("tank", "/mnt/tank", "zfs"),
            part("tank/media", "/mnt/tank/media", "zfs"),
            part("boot-pool/ROOT/default", "/boot", "zfs"),
        ]
        host.usages.update({
            "/mnt/tank": usage(2000, 30.0),
            "/mnt/tank/media": usage(2000, 30.0),
            "/boot": usage(20, 5.0),
        })

        devices = make_adapter(tmp_path).read().fragment.storage.devices

        assert [d.device for d in devices] == ["tank"]
        assert devices[0].model == "ZFS Pool"
        assert devices[0].drive_type == "ssd"

    @pytest.mark.parametrize("device, fstype, total, expected", [
        ("tank", "zfs", 10, True),
        ("tank/child", "zfs", 10, False),
        ("boot-pool", "zfs", 10, False),
        ("tank", "zfs", 0, False),
        ("/dev/sda1", "ext4", 10, False),
    ])
    def test_is_root_zfs_pool(self, device, fstype, total, expected) -> None:
        assert is_root_zfs_pool(device, fstype, total) is expected


class TestNetwork:

    def test_loopback_excluded_and_addresses_mapped(self, host, tmp_path) -> None:
        network = make_adapter(tmp_path).read().fragment.network

        assert [i.name for i in network.interfaces] == ["eth0"]
        eth0 = network.interfaces[0]
        assert (eth0.status, eth0.speed_mbps, eth0.duplex, eth0.mtu) == ("up", 1000.0, "full", 1500)
        assert [(a.family, a.address) for a in eth0.addresses] == [("IPv4", "10.0.0.5"), ("IPv6", "fe80::1")]
        assert eth0.addresses[0].broadcast == "10.0.0.255"

    def test_rates_from_consecutive_reads(self, host, tmp_path) -> None:
        """First read has no rate, the second divides the counter delta by elapsed time"""
        clock = FakeMonotonic(100.0)
        adapter = make_adapter(tmp_path, clock=clock)

        first = adapter.read().fragment.network.interfaces[0]
        assert first.rx_bytes_per_sec == 0.0

        clock.now = 102.0
        host.counters["eth0"] = netio(5000, 1500, 30, 15)
        second = adapter.read().fragment.network.interfaces[0]

        assert second.rx_bytes_per_sec == 2000.0
        assert second.tx_bytes_per_sec == 500.0
        assert second.rx_packets_per_sec == 10.0
        assert second.tx_packets_per_sec == 5.0

    def test_counter_reset_never_negative(self, host, tmp_path) -> None:
        clock = FakeMonotonic(100.0)
        adapter = make_adapter(tmp_path, clock=clock)
        adapter.read()

        clock.now = 101.0
        host.counters["eth0"] = netio(10, 10)
        assert adapter.read().fragment.network.interfaces[0].rx_bytes_per_sec == 0.0

    def test_connection_counts(self, host, tmp_path) -> None:
        connections = make_adapter(tmp_path).read().fragment.network.active_connections
        assert (connections.tcp_established, connections.tcp_listen, connections.udp_active) == (1, 1, 1)

    def test_connections_denied(self, host, tmp_path, monkeypatch) -> None:
        def denied(kind="inet"):
            raise psutil.AccessDenied()

        monkeypatch.setattr(local_host.psutil, "net_connections", denied)
        connections = make_adapter(tmp_path).read().fragment.network.active_connections
        assert connections.tcp_established == 0


class TestHostInfo:

    def test_os_release_from_host_root(self, host, tmp_path) -> None:
        (tmp_path / "etc").mkdir()
        (tmp_path / "etc" / "os-release").write_text('NAME="TrueNAS"\nPRETTY_NAME="TrueNAS SCALE 24.10"\n')

        info = make_adapter(tmp_path).read().fragment.host

        assert info.os_distribution == "TrueNAS SCALE 24.10"
        assert info.boot_time == 1_700_000_000.0
        assert info.process_count == 3
        assert info.hostname

    @pytest.mark.parametrize("content, expected", [
        ('PRETTY_NAME="Debian GNU/Linux 12 (bookworm)"\n', "Debian GNU/Linux 12 (bookworm)"),
        ("PRETTY_NAME='Alpine Linux v3.20'\n", "Alpine Linux v3.20"),
        ("ID=arch\nPRETTY_NAME=Arch\n", "Arch"),
        ("ID=arch\n", None),
    ])
    def test_read_pretty_name(self, tmp_path, content, expected) -> None:
        path = tmp_path / "os-release"
        path.write_text(content)
        assert read_pretty_name(path) == expected

    def test_missing_os_release(self, tmp_path) -> None:
        assert read_pretty_name(tmp_path / "nope") is None


class TestSimulatedRegions:

    def test_sensor_regions_are_synthetic(self, host, tmp_path) -> None:
        fragment = make_adapter(tmp_path).read().fragment

        assert fragment.power.psu_count == 2
        assert fragment.environment.temperature.ambient_celsius == 22.0
        assert fragment.security.authentication.active_user_sessions == 1
        assert fragment.source == "local"
