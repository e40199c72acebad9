"""
Tests for appliance wire helpers, credential resolution and realtime mapping
"""
import json

import pytest

from server_monitor.core.appliance.protocol import (
    AUTH_REQUEST_ID,
    ApplianceProtocolError,
    CredentialKind,
    auth_message,
    connect_message,
    decode_message,
    encode_message,
    method_message,
    pong_message,
    resolve_credential,
    subscribe_message,
)
from server_monitor.core.appliance.realtime import map_cpu, map_memory, map_network, map_realtime_fields

GIB = 1024 ** 3
BASIC_ADMIN = "YWRtaW46c2VjcmV0"  # admin:secret


class TestCredentials:
    """Token to login method"""

    def test_api_key_detected(self) -> None:
        credential = resolve_credential("1-abcdefABCDEF0123")
        assert credential.kind == CredentialKind.API_KEY
        assert credential.login_method() == "auth.login_with_api_key"
        assert credential.login_params() == ["1-abcdefABCDEF0123"]

    def test_basic_pair_detected(self) -> None:
        credential = resolve_credential(BASIC_ADMIN)
        assert credential.kind == CredentialKind.PASSWORD
        assert (credential.username, credential.password) == ("admin", "secret")
        assert credential.login_method() == "auth.login"
        assert credential.login_params() == ["admin", "secret"]

    def test_opaque_token_defaults_to_api_key(self) -> None:
        assert resolve_credential("not-base64!").kind == CredentialKind.API_KEY

    def test_explicit_kind_wins(self) -> None:
        assert resolve_credential(BASIC_ADMIN, CredentialKind.API_KEY).api_key == BASIC_ADMIN

    def test_explicit_password_must_decode(self) -> None:
        with pytest.raises(ValueError):
            resolve_credential("1-abc", CredentialKind.PASSWORD)


class TestMessages:
    """Outbound frame builders and inbound decoding"""

    def test_connect(self) -> None:
        assert connect_message() == {"msg": "connect", "version": "1", "support": ["1"]}

    def test_method_and_auth(self) -> None:
        assert method_message("abc", "system.info") == {
            "id": "abc", "msg": "method", "method": "system.info", "params": [],
        }
        auth = auth_message(resolve_credential("2-key"))
        assert auth["id"] == AUTH_REQUEST_ID
        assert auth["params"] == ["2-key"]

    def test_subscribe_ids_are_unique(self) -> None:
        first, second = subscribe_message(), subscribe_message()
        assert first["name"] == "reporting.realtime"
        assert first["msg"] == "sub"
        assert first["id"] != second["id"]

    def test_pong_echoes_id(self) -> None:
        assert pong_message("p1") == {"msg": "pong", "id": "p1"}

    def test_encode_decode(self) -> None:
        frame = encode_message({"msg": "ping", "id": "x"})
        assert json.loads(frame) == {"msg": "ping", "id": "x"}
        assert decode_message(frame)["id"] == "x"

    @pytest.mark.parametrize("frame", ["{broken", "[1, 2]", "42", "null"])
    def test_decode_rejects_non_objects(self, frame) -> None:
        with pytest.raises(ApplianceProtocolError):
            decode_message(frame)


class TestRealtimeMapping:
    """reporting.realtime push fields"""

    def test_cpu_dict_ordered_by_core_index(self) -> None:
        cpu = map_cpu(
            {"cpu10": {"usage": 90.0}, "cpu2": {"usage": 30.0}, "cpu": {"usage": 60.0}, "cpu0": {"usage": 10.0}},
            {"cpu0": 40.0, "cpu2": 52.0},
        )
        assert cpu.per_core_utilization == (10.0, 30.0, 90.0)
        assert cpu.core_count == 3
        assert cpu.utilization_percent == pytest.approx(130.0 / 3)
        assert cpu.temperature_celsius.package == 52.0

    def test_cpu_list_of_idle_splits(self) -> None:
        cpu = map_cpu([{"idle": 75.0}, {"idle": 25.0}], None)
        assert cpu.per_core_utilization == (25.0, 75.0)
        assert cpu.temperature_celsius.package == 0.0

    def test_cpu_missing(self) -> None:
        assert map_cpu(None, None) is None
        assert map_cpu({}, {}) is None

    def test_memory(self) -> None:
        memory = map_memory({"total": 32 * GIB, "used": 8 * GIB})
        assert memory.total_gb == pytest.approx(32.0)
        assert memory.available_gb == pytest.approx(24.0)
        assert memory.usage_percent == pytest.approx(25.0)
        assert map_memory({"total": 0}) is None

    def test_network_link_state(self) -> None:
        network = map_network({
            "eno1": {"link_state": "LINK_STATE_UP", "speed": 10000, "received_bytes_rate": 10.0},
            "eno2": {"link_state": "LINK_STATE_DOWN"},
            "eno3": {"received_bytes_rate": 1.0},
        })
        assert [(i.name, i.status) for i in network.interfaces] == [
            ("eno1", "up"), ("eno2", "down"), ("eno3", "unknown"),
        ]
        assert network.interfaces[0].speed_mbps == 10000.0

    def test_fields_map_to_regions(self) -> None:
        regions = map_realtime_fields({"virtual_memory": {"total": GIB, "used": 0}})
        assert set(regions) == {"cpu", "memory", "network"}
        assert regions["cpu"] is None
        assert regions["memory"].total_gb == pytest.approx(1.0)
