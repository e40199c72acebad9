"""Persistent message channel to the appliance, backed by an aiohttp websocket."""
import logging
import ssl
from typing import Awaitable, Callable, Optional, Protocol

import aiohttp

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_S = 10.0


class ApplianceChannel(Protocol):
    """Bidirectional text channel. `receive()` returns None once closed."""

    async def send(self, data: str) -> None: ...

    async def receive(self) -> Optional[str]: ...

    async def close(self) -> None: ...


ChannelFactory = Callable[[], Awaitable[ApplianceChannel]]


class WebSocketChannel:
    """Owns one aiohttp session + websocket pair for a single connection."""

    def __init__(self, session: aiohttp.ClientSession, ws: aiohttp.ClientWebSocketResponse):
        self._session = session
        self._ws = ws

    async def send(self, data: str) -> None:
        await self._ws.send_str(data)

    async def receive(self) -> Optional[str]:
        while True:
            message = await self._ws.receive()
            if message.type == aiohttp.WSMsgType.TEXT:
                return message.data
            if message.type == aiohttp.WSMsgType.BINARY:
                return message.data.decode("utf-8", errors="replace")
            if message.type == aiohttp.WSMsgType.ERROR:
                logger.warning(f"Appliance websocket error: {self._ws.exception()}")
                return None
            if message.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING,
                                aiohttp.WSMsgType.CLOSED):
                return None
            # PING/PONG frames are answered by aiohttp itself

    async def close(self) -> None:
        try:
            await self._ws.close()
        finally:
            await self._session.close()


def make_websocket_factory(host: str, verify_ssl: bool = False) -> ChannelFactory:
    """
    Returns an async factory opening a fresh websocket to `wss://<host>/websocket`.
    With `verify_ssl=False` the certificate is not checked.
    """
    url = f"wss://{host}/websocket"
    ssl_context: Optional[ssl.SSLContext] = None
    if not verify_ssl:
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE

    async def open_channel() -> ApplianceChannel:
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None, connect=CONNECT_TIMEOUT_S))
        try:
            ws = await session.ws_connect(url, ssl=ssl_context if ssl_context is not None else True)
        except BaseException:
            await session.close()
            raise
        return WebSocketChannel(session, ws)

    return open_channel
