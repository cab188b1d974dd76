import asyncio

import pytest

from sse_manager.client.connection_manager import ConnectionManager
from sse_manager.shared.models import StreamConfig


class FakeHandle:
    """A transport handle driven by the test instead of the network."""

    def __init__(self, config, listener, last_event_id=None):
        self.config = config
        self.listener = listener
        self.last_event_id = last_event_id
        self.closed = False

    def close(self):
        self.closed = True

    def opened(self):
        self.listener.on_opened()

    def message(self, data, event_id=None, event_name="message"):
        self.listener.on_message(data, event_id, event_name)

    def error(self, message="connection refused", fault=None):
        self.listener.on_error(message, fault)

    def server_closed(self):
        self.listener.on_closed()


class FakeTransport:
    def __init__(self):
        self.handles: list[FakeHandle] = []

    def open(self, config, listener, last_event_id=None):
        handle = FakeHandle(config, listener, last_event_id)
        self.handles.append(handle)
        return handle

    @property
    def current(self) -> FakeHandle:
        return self.handles[-1]


async def wait_until(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def manager(transport) -> ConnectionManager:
    return ConnectionManager(transport=transport)


@pytest.fixture
def config() -> StreamConfig:
    return StreamConfig(address="http://localhost:3005/sse", reconnect_base_delay_ms=10)
