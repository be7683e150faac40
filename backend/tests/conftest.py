"""
Shared fakes for the broker tests.

FakeFactory stands in for the Playwright-backed factory: it hands out
FakeConnection objects, counts every release() call per connection and can
be told to fail acquisition. No browser is ever launched.
"""

import asyncio
from collections import Counter
from typing import Optional

import pytest

from config import Settings
from errors import AcquisitionError, ConnectionLostError


class FakeConnection:

    def __init__(self, label: str):
        self.label = label
        self.handled: list = []
        self.released = False
        self.lost = False

    @property
    def closed(self) -> bool:
        return self.released

    async def handle(self, payload) -> Optional[dict]:
        if self.lost:
            raise ConnectionLostError("Target page, context or browser has been closed")
        self.handled.append(payload)
        if not isinstance(payload, dict) or "id" not in payload:
            return None
        return {"jsonrpc": "2.0", "id": payload["id"], "result": {"echo": payload.get("method")}}


class FakeFactory:

    def __init__(self, fail: bool = False, release_delay: float = 0):
        self.fail = fail
        self.release_delay = release_delay
        self.calls: list[str] = []
        self.connections: list[FakeConnection] = []
        self.release_calls: Counter = Counter()
        self.closed = False

    async def acquire(self, label: str = "") -> FakeConnection:
        await asyncio.sleep(0)
        if self.fail:
            raise AcquisitionError("browser backend unavailable")
        connection = FakeConnection(label)
        self.connections.append(connection)
        return connection

    async def release(self, connection: FakeConnection) -> None:
        if self.release_delay:
            await asyncio.sleep(self.release_delay)
        self.calls.append(f"release:{connection.label}")
        self.release_calls[connection.label] += 1
        connection.released = True

    async def close(self) -> None:
        self.calls.append("close")
        self.closed = True


@pytest.fixture
def factory():
    return FakeFactory()


@pytest.fixture
def failing_factory():
    return FakeFactory(fail=True)


@pytest.fixture
def settings():
    return Settings(keepalive_interval=0.05, reap_interval=60, idle_timeout=300)
