import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional, Tuple

import aiohttp

from server_monitor.core.appliance.channel import ApplianceChannel, ChannelFactory
from server_monitor.core.appliance.protocol import (
    AUTH_REQUEST_ID,
    CHASSIS_REQUEST_PREFIX,
    METHOD_CHASSIS_INFO,
    METHOD_SENSORS_QUERY,
    METHOD_SYSTEM_INFO,
    REALTIME_COLLECTION,
    SENSORS_REQUEST_PREFIX,
    SYSTEM_INFO_REQUEST_ID,
    ApplianceProtocolError,
    Credential,
    auth_message,
    connect_message,
    decode_message,
    encode_message,
    generate_request_id,
    method_message,
    pong_message,
    subscribe_message,
)
from server_monitor.core.appliance.realtime import map_realtime_fields
from server_monitor.core.models.connection_state import ConnectionPhase, ConnectionState
from server_monitor.core.models.sensor_reading import SensorReading, parse_sensor_reading
from server_monitor.core.models.telemetry import MetricFragment
from server_monitor.core.sensors.classification import map_environment, map_power, map_security

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY_S = 5.0
DEFAULT_POLL_INTERVAL_S = 15.0
APPLIANCE_SOURCE = "appliance"


class ApplianceClient:
    """
    Keeps one live connection to the storage appliance and a cached fragment
    built from its realtime pushes and IPMI polls.

    Lifecycle: Disconnected -> Connecting -> HandshakeSent -> Authenticating
    -> Authenticated -> Subscribed. Losing the transport from any phase goes
    back to Disconnected and schedules one reconnect after a fixed delay.

    All state is mutated from the event loop only. The cached fragment is an
    immutable object replaced by a single assignment, so readers on other
    threads always see a complete fragment.
    """

    def __init__(
        self,
        credential: Credential,
        channel_factory: ChannelFactory,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY_S,
        poll_interval: float = DEFAULT_POLL_INTERVAL_S,
    ):
        self._credential = credential
        self._channel_factory = channel_factory
        self.reconnect_delay = reconnect_delay
        self.poll_interval = poll_interval

        self._running = False
        self._phase = ConnectionPhase.DISCONNECTED
        self._channel: Optional[ApplianceChannel] = None
        self._connection_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None

        self._hostname: Optional[str] = None
        self._auth_failed = False
        self._connect_attempts = 0
        self._last_error: Optional[str] = None
        self._last_push_at: Optional[float] = None
        self._last_poll_at: Optional[float] = None
        self._sensors: Tuple[SensorReading, ...] = ()
        self._chassis: Dict[str, Any] = {}
        self._peak_watts = 0.0
        self._fragment = MetricFragment(source=APPLIANCE_SOURCE)

    # --- Accessors ---

    @property
    def phase(self) -> ConnectionPhase:
        return self._phase

    @property
    def running(self) -> bool:
        return self._running

    def state(self) -> ConnectionState:
        """Immutable copy of the connection state."""
        return ConnectionState(
            phase=self._phase,
            hostname=self._hostname,
            auth_failed=self._auth_failed,
            connect_attempts=self._connect_attempts,
            last_error=self._last_error,
            last_push_at=self._last_push_at,
            last_poll_at=self._last_poll_at,
            sensors=self._sensors,
            chassis=dict(self._chassis),
        )

    def latest_fragment(self) -> MetricFragment:
        return self._fragment

    def get_hostname(self) -> Optional[str]:
        return self._hostname

    # --- Lifecycle ---

    def start(self) -> None:
        """Open the first connection. Must be called from the running loop."""
        if self._running:
            return
        self._running = True
        logger.info("ApplianceClient started")
        self._open_connection()

    async def stop(self) -> None:
        self._running = False
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        self._stop_polling()
        task = self._connection_task
        self._connection_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("ApplianceClient stopped")

    def _open_connection(self) -> None:
        self._reconnect_handle = None
        if not self._running:
            return
        loop = asyncio.get_running_loop()
        self._connection_task = loop.create_task(self._run_connection())

    def _schedule_reconnect(self) -> None:
        if not self._running:
            return
        logger.warning(f"Appliance connection lost, reconnecting in {self.reconnect_delay:.0f}s")
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._open_connection)

    def _set_phase(self, phase: ConnectionPhase) -> None:
        if phase != self._phase:
            logger.debug(f"Appliance phase {self._phase.value} -> {phase.value}")
            self._phase = phase

    # --- Connection ---

    async def _run_connection(self) -> None:
        self._connect_attempts += 1
        self._auth_failed = False
        self._set_phase(ConnectionPhase.CONNECTING)
        try:
            self._channel = await self._channel_factory()
            logger.info("Appliance channel connected")
            await self._on_open()
            while not self._auth_failed:
                data = await self._channel.receive()
                if data is None:
                    logger.info("Appliance channel closed by peer")
                    break
                await self._handle_frame(data)
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            self._last_error = str(e) or e.__class__.__name__
            logger.warning(f"Appliance transport error: {self._last_error}")
        except Exception as e:
            self._last_error = str(e) or e.__class__.__name__
            logger.exception(f"Unexpected error on appliance connection: {e}")
        finally:
            channel = self._on_close()
            if channel is not None:
                try:
                    await channel.close()
                except Exception as e:
                    logger.debug(f"Error closing appliance channel: {e}")

    def _on_close(self) -> Optional[ApplianceChannel]:
        """Synchronous teardown: stop polling before anything else can run."""
        self._stop_polling()
        channel = self._channel
        self._channel = None
        self._set_phase(ConnectionPhase.DISCONNECTED)
        self._schedule_reconnect()
        return channel

    async def _on_open(self) -> None:
        # The server accepts the handshake without an explicit ack
        await self._send(connect_message())
        self._set_phase(ConnectionPhase.HANDSHAKE_SENT)
        await self._send(auth_message(self._credential))
        self._set_phase(ConnectionPhase.AUTHENTICATING)

    async def _send(self, message: Dict[str, Any]) -> None:
        if self._channel is None:
            return
        await self._channel.send(encode_message(message))

    # --- Inbound messages ---

    async def _handle_frame(self, data: str) -> None:
        try:
            message = decode_message(data)
        except ApplianceProtocolError as e:
            logger.warning(f"Dropping malformed appliance frame: {e}")
            return

        kind = message.get("msg")
        try:
            if kind == "ping":
                await self._send(pong_message(message.get("id")))
            elif kind == "result":
                await self._handle_result(message)
            elif kind in ("added", "changed"):
                if message.get("collection") == REALTIME_COLLECTION:
                    self._handle_push(message.get("fields"))
            elif kind == "connected":
                logger.debug("Appliance acknowledged protocol handshake")
            elif kind == "failed":
                logger.error(f"Appliance rejected protocol version: {message}")
            elif kind == "nosub":
                logger.warning(f"Appliance refused subscription: {message.get('error')}")
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping appliance '{kind}' message that could not be mapped: {e}")

    async def _handle_result(self, message: Mapping[str, Any]) -> None:
        request_id = str(message.get("id") or "")
        error = message.get("error")
        result = message.get("result")

        if request_id == AUTH_REQUEST_ID:
            if error is None and result is True:
                await self._on_authenticated()
            else:
                self._on_auth_failed(error if error is not None else result)
            return

        if error is not None:
            logger.warning(f"Appliance request {request_id} failed: {error}")
            return

        if request_id == SYSTEM_INFO_REQUEST_ID:
            if isinstance(result, Mapping) and result.get("hostname"):
                self._hostname = str(result["hostname"])
                logger.info(f"Appliance hostname identified: {self._hostname}")
        elif request_id.startswith(CHASSIS_REQUEST_PREFIX):
            if not isinstance(result, Mapping):
                raise TypeError(f"chassis info is {type(result).__name__}, expected object")
            self._chassis = dict(result)
            self._rebuild_sensor_fragment()
        elif request_id.startswith(SENSORS_REQUEST_PREFIX):
            if not isinstance(result, list):
                raise TypeError(f"sensor list is {type(result).__name__}, expected array")
            self._sensors = self._parse_sensors(result)
            self._rebuild_sensor_fragment()

    async def _on_authenticated(self) -> None:
        self._set_phase(ConnectionPhase.AUTHENTICATED)
        logger.info("Appliance authentication successful")
        await self._send(method_message(SYSTEM_INFO_REQUEST_ID, METHOD_SYSTEM_INFO))
        await self._send(subscribe_message())
        self._set_phase(ConnectionPhase.SUBSCRIBED)
        self._start_polling()

    def _on_auth_failed(self, reason: Any) -> None:
        # No retry with another credential form; the normal reconnect cycle applies
        self._auth_failed = True
        self._last_error = f"authentication failed: {reason}"
        logger.error(f"Appliance authentication failed ({self._credential.kind.value}): {reason}")

    def _handle_push(self, fields: Any) -> None:
        if not isinstance(fields, Mapping):
            raise TypeError(f"push fields are {type(fields).__name__}, expected object")
        regions = map_realtime_fields(fields)
        self._fragment = replace(self._fragment, **regions)
        self._last_push_at = time.time()

    @staticmethod
    def _parse_sensors(entries: list) -> Tuple[SensorReading, ...]:
        readings = []
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            try:
                readings.append(parse_sensor_reading(entry))
            except ValueError as e:
                logger.debug(f"Skipping sensor entry: {e}")
        return tuple(readings)

    def _rebuild_sensor_fragment(self) -> None:
        power = map_power(self._sensors, self._chassis, self._peak_watts)
        self._peak_watts = power.power_consumption_peak_watts
        self._fragment = replace(
            self._fragment,
            power=power,
            environment=map_environment(self._sensors, self._chassis),
            security=map_security(self._chassis),
        )

    # --- IPMI poll sub-loop ---

    def _start_polling(self) -> None:
        self._stop_polling()
        loop = asyncio.get_running_loop()
        self._poll_task = loop.create_task(self._poll_loop())

    def _stop_polling(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def _poll_loop(self) -> None:
        try:
            while self._phase.is_authenticated:
                await self._poll_once()
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"IPMI poll loop ended: {e}")

    async def _poll_once(self) -> None:
        if not self._phase.is_authenticated:
            return
        # Chassis and sensor responses are matched independently by prefix
        await self._send(method_message(CHASSIS_REQUEST_PREFIX + generate_request_id(), METHOD_CHASSIS_INFO))
        await self._send(method_message(SENSORS_REQUEST_PREFIX + generate_request_id(), METHOD_SENSORS_QUERY))
        self._last_poll_at = time.time()
