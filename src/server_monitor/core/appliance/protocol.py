"""
Wire helpers for the appliance's JSON-over-websocket RPC dialect.

Every frame is one JSON object with a `msg` discriminator: `connect`,
`method`/`result` (correlated by `id`), `sub`, `added`/`changed` pushes
against a named collection, and `ping`/`pong` liveness probes.
"""
import base64
import binascii
import json
import re
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

PROTOCOL_VERSION = "1"
REALTIME_COLLECTION = "reporting.realtime"

AUTH_REQUEST_ID = "auth_request"
SYSTEM_INFO_REQUEST_ID = "sys_info_request"
CHASSIS_REQUEST_PREFIX = "ipmi_chassis_"
SENSORS_REQUEST_PREFIX = "ipmi_sensors_"

METHOD_LOGIN_API_KEY = "auth.login_with_api_key"
METHOD_LOGIN_PASSWORD = "auth.login"
METHOD_SYSTEM_INFO = "system.info"
METHOD_CHASSIS_INFO = "ipmi.chassis.info"
METHOD_SENSORS_QUERY = "ipmi.sensors.query"

# Appliance API keys are issued as "<numeric id>-<secret>"
API_KEY_PATTERN = re.compile(r"^\d+-\S+$")


class ApplianceProtocolError(ValueError):
    """Frame could not be decoded into a protocol message."""


class CredentialKind(str, Enum):
    AUTO = "auto"
    API_KEY = "api_key"
    PASSWORD = "password"


@dataclass(frozen=True)
class Credential:
    kind: CredentialKind
    api_key: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    def login_method(self) -> str:
        if self.kind == CredentialKind.PASSWORD:
            return METHOD_LOGIN_PASSWORD
        return METHOD_LOGIN_API_KEY

    def login_params(self) -> List[str]:
        if self.kind == CredentialKind.PASSWORD:
            return [self.username or "", self.password or ""]
        return [self.api_key or ""]


def _decode_basic_pair(token: str) -> Optional[tuple]:
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    if ":" not in decoded:
        return None
    username, _, password = decoded.partition(":")
    return username, password


def resolve_credential(token: str, kind: CredentialKind = CredentialKind.AUTO) -> Credential:
    """
    Decide how a configured token is sent to the appliance.

    With `kind=AUTO` the token is an API key unless it decodes as base64
    `user:password` and does not look like an API key.
    """
    if kind == CredentialKind.API_KEY:
        return Credential(kind=CredentialKind.API_KEY, api_key=token)
    if kind == CredentialKind.PASSWORD:
        pair = _decode_basic_pair(token)
        if pair is None:
            raise ValueError("Password credential must be base64 encoded 'user:password'")
        return Credential(kind=CredentialKind.PASSWORD, username=pair[0], password=pair[1])

    if not API_KEY_PATTERN.match(token):
        pair = _decode_basic_pair(token)
        if pair is not None:
            return Credential(kind=CredentialKind.PASSWORD, username=pair[0], password=pair[1])
    return Credential(kind=CredentialKind.API_KEY, api_key=token)


def generate_request_id() -> str:
    return secrets.token_hex(6)


def connect_message() -> Dict[str, Any]:
    return {"msg": "connect", "version": PROTOCOL_VERSION, "support": [PROTOCOL_VERSION]}


def method_message(request_id: str, method: str, params: Optional[List[Any]] = None) -> Dict[str, Any]:
    return {"id": request_id, "msg": "method", "method": method, "params": params or []}


def auth_message(credential: Credential) -> Dict[str, Any]:
    return method_message(AUTH_REQUEST_ID, credential.login_method(), credential.login_params())


def subscribe_message(name: str = REALTIME_COLLECTION) -> Dict[str, Any]:
    return {"id": generate_request_id(), "msg": "sub", "name": name}


def pong_message(request_id: Any) -> Dict[str, Any]:
    return {"msg": "pong", "id": request_id}


def decode_message(data: str) -> Dict[str, Any]:
    """
    Parse one text frame.

    Raises:
        ApplianceProtocolError: not JSON, or not a JSON object.
    """
    try:
        message = json.loads(data)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ApplianceProtocolError(f"Invalid JSON frame: {exc}") from exc
    if not isinstance(message, dict):
        raise ApplianceProtocolError(f"Expected a JSON object, got {type(message).__name__}")
    return message


def encode_message(message: Dict[str, Any]) -> str:
    return json.dumps(message)
