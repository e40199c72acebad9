"""
Tests for the container runtime adapter
"""
import logging

import pytest

from server_monitor.core.adapters.container import ContainerAdapter, map_containers, parse_uptime

CONTAINERS = [
    {
        "Id": "a1b2c3d4e5f6a7b8",
        "Names": ["/web"],
        "Image": "nginx:1.25",
        "State": "running",
        "Status": "Up 3 hours",
        "Ports": [{"PrivatePort": 80, "PublicPort": 8080, "Type": "tcp"}],
    },
    {
        "Id": "0f9e8d7c6b5a4321",
        "Names": ["/db"],
        "Image": "postgresql:16",
        "State": "running",
        "Status": "Up 2 days",
        "Ports": [{"PrivatePort": 5432, "Type": "tcp"}],
    },
    {
        "Id": "1234567890abcdef",
        "Names": [],
        "Image": "busybox",
        "State": "exited",
        "Status": "Exited (1) 5 minutes ago",
    },
    {
        "Id": "fedcba0987654321",
        "Names": ["/worker"],
        "Image": "python:3.12",
        "State": "created",
        "Status": "Created",
    },
]


class TestParseUptime:

    @pytest.mark.parametrize("status, seconds", [
        ("Up 45 seconds", 45),
        ("Up 1 minute", 60),
        ("Up 3 hours", 3 * 3600),
        ("Up 2 days", 2 * 86400),
        ("Up 3 hours (healthy)", 3 * 3600),
        ("Up About an hour", 0),
        ("Exited (0) 2 minutes ago", 0),
        ("", 0),
    ])
    def test_parse_uptime(self, status, seconds) -> None:
        assert parse_uptime(status) == seconds


class TestMapContainers:
    """Container list into service inventory"""

    def test_counts_and_statuses(self) -> None:
        inventory = map_containers(CONTAINERS)

        assert inventory.total_services == 4
        assert inventory.active_services == 2
        assert inventory.failed_services == 1
        assert [s.status for s in inventory.services] == ["active", "active", "failed", "inactive"]
        assert inventory.services[1].uptime_seconds == 2 * 86400

    def test_unnamed_container_uses_short_id(self) -> None:
        assert map_containers(CONTAINERS).services[2].name == "123456789012"

    def test_web_and_database_services(self) -> None:
        inventory = map_containers(CONTAINERS)

        assert len(inventory.web_services) == 1
        web = inventory.web_services[0]
        assert (web.name, web.url, web.status_code) == ("web", "http://localhost:8080", 200)

        assert [(d.name, d.type) for d in inventory.database_services] == [("db", "postgresql")]

    def test_stopped_web_container_reports_503(self) -> None:
        inventory = map_containers([{"Names": ["/proxy"], "Image": "apache", "State": "exited"}])
        assert inventory.web_services[0].status_code == 503
        assert inventory.web_services[0].url == "http://localhost:80"

    def test_empty_list(self) -> None:
        inventory = map_containers([])
        assert inventory.total_services == 0
        assert inventory.services == ()


class TestContainerAdapter:
    """Adapter availability"""

    def test_missing_socket_is_unavailable(self, tmp_path) -> None:
        adapter = ContainerAdapter(socket_path=str(tmp_path / "docker.sock"), timeout=0.5)

        reading = adapter.read()

        assert reading.available is False
        assert reading.fragment is None
        assert reading.source == "container"

    def test_read_maps_containers(self, monkeypatch) -> None:
        adapter = ContainerAdapter()
        monkeypatch.setattr(adapter, "_fetch_containers", lambda: CONTAINERS)

        reading = adapter.read()

        assert reading.available is True
        assert reading.fragment.services.total_services == 4
        assert reading.fragment.simulated == frozenset()

    def test_unavailability_logged_once(self, monkeypatch, caplog) -> None:
        """Repeated failures only log the first transition"""
        adapter = ContainerAdapter()

        def refuse():
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(adapter, "_fetch_containers", refuse)
        with caplog.at_level(logging.WARNING, logger="server_monitor.core.adapters.container"):
            adapter.read()
            adapter.read()
        assert len([r for r in caplog.records if "unavailable" in r.getMessage()]) == 1

        monkeypatch.setattr(adapter, "_fetch_containers", lambda: [])
        assert adapter.read().available is True
