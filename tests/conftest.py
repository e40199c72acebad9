"""Pytest configuration and fixtures for test suite."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import pytest


class FakeChannel:
    """In-memory stand-in for the appliance websocket.

    Frames sent by the client are decoded into `sent`. Frames for the client
    are queued with `push`; `drop` simulates the peer closing the connection.
    """

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self._inbox: "asyncio.Queue[Optional[str]]" = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("channel closed")
        self.sent.append(json.loads(data))

    async def receive(self) -> Optional[str]:
        return await self._inbox.get()

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(None)

    def push(self, message: Dict[str, Any]) -> None:
        self._inbox.put_nowait(json.dumps(message))

    def push_raw(self, text: str) -> None:
        self._inbox.put_nowait(text)

    def drop(self) -> None:
        self._inbox.put_nowait(None)

    def methods(self) -> List[str]:
        return [m["method"] for m in self.sent if m.get("msg") == "method"]

    def requests_with_prefix(self, prefix: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m.get("msg") == "method" and str(m.get("id", "")).startswith(prefix)]


class FakeChannelFactory:
    """Channel factory that records every channel it opens."""

    def __init__(self):
        self.channels: List[FakeChannel] = []
        self.open_times: List[float] = []
        self.fail_next = 0

    async def __call__(self) -> FakeChannel:
        self.open_times.append(asyncio.get_running_loop().time())
        if self.fail_next:
            self.fail_next -= 1
            raise ConnectionRefusedError("connection refused")
        channel = FakeChannel()
        self.channels.append(channel)
        return channel

    @property
    def current(self) -> FakeChannel:
        return self.channels[-1]


@pytest.fixture
def channel_factory() -> FakeChannelFactory:
    return FakeChannelFactory()


@pytest.fixture
def wait_until() -> Callable:
    """Poll a predicate on the running loop until it holds or the timeout expires."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait
