"""Shared pytest fixtures for testing."""

import asyncio
from typing import Any, Callable, List

import pytest

from voice_relay.config import MockOptions, ReconnectSettings
from voice_relay.streams import AdapterFailure


class RecordingListener:
    """Adapter listener that records every event."""

    def __init__(self) -> None:
        self.outputs: List[Any] = []
        self.failures: List[AdapterFailure] = []

    def on_output(self, output: Any) -> None:
        self.outputs.append(output)

    def on_failed(self, failure: AdapterFailure) -> None:
        self.failures.append(failure)

    @property
    def audio(self) -> bytes:
        return b"".join(self.outputs)

    @property
    def text(self) -> str:
        return "".join(self.outputs)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the running loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


async def settle(seconds: float = 0.05) -> None:
    """Let pending callbacks and tasks run."""
    await asyncio.sleep(seconds)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def listener() -> RecordingListener:
    """Recording adapter listener."""
    return RecordingListener()


@pytest.fixture
def eventually():
    """Awaitable condition poller."""
    return wait_until


@pytest.fixture
def idle():
    """Awaitable that lets the event loop drain."""
    return settle


@pytest.fixture
def reconnect() -> ReconnectSettings:
    """Fast reconnect policy for tests."""
    return ReconnectSettings(retry_delay_ms=10, max_retry=3)


@pytest.fixture
def mock_options(reconnect) -> MockOptions:
    """Mock provider options with fast reconnects."""
    return MockOptions(reconnect=reconnect)


@pytest.fixture
def manual_options(reconnect) -> MockOptions:
    """Mock provider options that never answer on their own."""
    return MockOptions(reconnect=reconnect, auto_respond=False)
