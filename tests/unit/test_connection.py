"""Unit tests for the provider connection state machine."""

from typing import List

import pytest

from voice_relay.adapters.connection import ConnectionState, ProviderConnection
from voice_relay.config import MockOptions, ReconnectSettings
from voice_relay.core.logging import get_logger
from voice_relay.providers.mock import MockTTSFraming
from voice_relay.transport.base import CLEAN_CLOSE_CODE


class StubOwner:
    """Connection owner recording callbacks."""

    def __init__(self, replay: List[str] = None):
        self.connects: List[bool] = []
        self.messages: List[str] = []
        self.terminal = 0
        self.replay = replay or []

    def replay_frames(self, reconnected: bool) -> List[str]:
        self.connects.append(reconnected)
        return list(self.replay) if reconnected else []

    def on_message(self, data) -> None:
        self.messages.append(data)

    def on_terminal(self) -> None:
        self.terminal += 1


class GreetingFraming(MockTTSFraming):
    """Mock framing with an opening frame and a fast keep-alive."""

    keepalive_interval = 0.01

    def opening_frames(self):
        return ["hello"]

    def keepalive_frame(self):
        return "ping"


def make_connection(framing, owner=None):
    owner = owner or StubOwner()
    connection = ProviderConnection(framing, owner, get_logger(__name__))
    connection.start()
    return connection, owner


def manual_framing(max_retry: int = 3, **kwargs) -> MockTTSFraming:
    return MockTTSFraming(MockOptions(
        reconnect=ReconnectSettings(retry_delay_ms=10, max_retry=max_retry),
        auto_respond=False,
        **kwargs,
    ))


class TestConnect:
    """Tests for the initial connection."""

    @pytest.mark.asyncio
    async def test_opens(self):
        """Test a connection opens and reports a first connect."""
        connection, owner = make_connection(manual_framing())

        assert await connection.wait_open()
        assert connection.state == ConnectionState.OPEN
        assert owner.connects == [False]
        connection.destroy()

    @pytest.mark.asyncio
    async def test_send_when_open(self):
        """Test frames reach the transport once open."""
        framing = manual_framing()
        connection, _ = make_connection(framing)

        await connection.wait_open()
        assert await connection.send("frame")
        assert framing.current.sent == ["frame"]
        connection.destroy()

    @pytest.mark.asyncio
    async def test_send_while_connecting_is_dropped(self):
        """Test sending without waiting for open drops the frame."""
        connection, _ = make_connection(manual_framing())

        assert connection.state == ConnectionState.CONNECTING
        assert not await connection.send("early")
        connection.destroy()

    @pytest.mark.asyncio
    async def test_incoming_messages_reach_owner(self, eventually):
        """Test messages are forwarded to the owner."""
        framing = manual_framing()
        connection, owner = make_connection(framing)
        await connection.wait_open()

        framing.current.deliver("message")

        await eventually(lambda: owner.messages == ["message"])
        connection.destroy()


class TestReconnect:
    """Tests for reconnect and backoff."""

    @pytest.mark.asyncio
    async def test_reconnects_after_abnormal_close(self, eventually):
        """Test an abnormal close triggers a reconnect and a replay callback."""
        framing = manual_framing()
        connection, owner = make_connection(framing)
        await connection.wait_open()

        framing.current.drop()

        await eventually(lambda: owner.connects == [False, True])
        assert await connection.wait_open()
        assert connection.retry_count == 0
        assert len(framing.transports) == 2
        connection.destroy()

    @pytest.mark.asyncio
    async def test_opening_frames_precede_replay(self, eventually):
        """Test the opening frames go out before replayed input."""
        framing = GreetingFraming(MockOptions(
            reconnect=ReconnectSettings(retry_delay_ms=10),
            auto_respond=False,
        ))
        connection, owner = make_connection(framing, StubOwner(replay=["replay"]))
        await connection.wait_open()

        framing.current.drop()
        await eventually(lambda: len(framing.transports) == 2)
        assert await connection.wait_open()

        assert framing.transports[1].sent[:2] == ["hello", "replay"]
        connection.destroy()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retry(self, idle):
        """Test max_retry + 1 consecutive failures make the connection terminal."""
        framing = manual_framing(max_retry=2, refuse_connections=True)
        connection, owner = make_connection(framing)

        assert not await connection.wait_open()
        await idle(0.1)

        assert connection.state == ConnectionState.TERMINAL
        assert owner.terminal == 1
        assert connection.attempts == 3
        assert len(framing.transports) == 3
        assert owner.connects == []

    @pytest.mark.asyncio
    async def test_success_resets_retry_count(self, eventually):
        """Test a successful connect resets the failure counter."""
        framing = manual_framing(max_retry=1, refuse_connections=True)
        connection, owner = make_connection(framing)

        await eventually(lambda: connection.retry_count == 1)
        framing.refuse_connections = False

        assert await connection.wait_open()
        assert connection.retry_count == 0

        framing.current.drop()
        await eventually(lambda: owner.connects == [False, True])
        assert owner.terminal == 0
        connection.destroy()

    @pytest.mark.asyncio
    async def test_clean_close_reconnects_lazily(self, idle):
        """Test a clean close waits for the next sender before reconnecting."""
        framing = manual_framing()
        connection, owner = make_connection(framing)
        await connection.wait_open()

        framing.current.drop(code=CLEAN_CLOSE_CODE)
        await idle()

        assert connection.state == ConnectionState.CLOSED_CLEAN
        assert len(framing.transports) == 1

        assert await connection.wait_open()
        assert len(framing.transports) == 2
        assert connection.retry_count == 0
        connection.destroy()


class TestKeepAlive:
    """Tests for keep-alive frames."""

    @pytest.mark.asyncio
    async def test_keepalive_sent_periodically(self, eventually):
        """Test keep-alive frames go out while the connection is idle."""
        framing = GreetingFraming(MockOptions(auto_respond=False))
        connection, _ = make_connection(framing)
        await connection.wait_open()

        await eventually(lambda: framing.current.sent.count("ping") >= 2)
        connection.destroy()


class TestDestroy:
    """Tests for connection teardown."""

    @pytest.mark.asyncio
    async def test_destroy_closes_transport_cleanly(self, idle):
        """Test destroy closes with code 1000 and stops reconnecting."""
        framing = manual_framing()
        connection, _ = make_connection(framing)
        await connection.wait_open()

        connection.destroy()
        connection.destroy()
        await idle()

        assert framing.current.close_code == CLEAN_CLOSE_CODE
        assert not await connection.wait_open()
        assert len(framing.transports) == 1
