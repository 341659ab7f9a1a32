"""
Provider Connection
===================

Connect/backoff/replay state machine shared by every streaming adapter.

States::

    CONNECTING -> OPEN -> CLOSED_CLEAN
                       -> CLOSED_FAILED -> CONNECTING   (retry after a fixed delay)
                                        -> TERMINAL     (retry budget exhausted)

A failed connect attempt and a non-clean close both count as one failure.
The counter resets on every successful connect. Once it exceeds
``max_retry`` the connection is terminal and tells its owner exactly once.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Coroutine, List, Optional, Protocol, Set

from structlog.typing import FilteringBoundLogger

from voice_relay.adapters.framing import ProviderFraming
from voice_relay.transport.base import Frame, Transport, is_clean_close


class ConnectionState(str, Enum):
    """Lifecycle of an adapter's provider connection."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_CLEAN = "closed_clean"
    CLOSED_FAILED = "closed_failed"
    TERMINAL = "terminal"


class ConnectionOwner(Protocol):
    """Callbacks from a connection to the adapter owning it."""

    def replay_frames(self, reconnected: bool) -> List[Frame]:
        ...

    def on_message(self, data: Frame) -> None:
        ...

    def on_terminal(self) -> None:
        ...


class _TransportEvents:
    """Routes events of one transport, ignoring them once it is superseded."""

    def __init__(self, connection: "ProviderConnection", transport: Transport):
        self._connection = connection
        self._transport = transport

    def on_message(self, data: Frame) -> None:
        if self._connection.transport is self._transport:
            self._connection.owner.on_message(data)

    def on_error(self, error: Exception) -> None:
        if self._connection.transport is self._transport:
            self._connection.logger.warning("transport_error", error=str(error))

    def on_close(self, code: int, reason: str) -> None:
        if self._connection.transport is self._transport:
            self._connection.handle_close(code, reason)


class ProviderConnection:
    """
    Owns the transport of one adapter and keeps it connected.

    Senders call ``wait_open`` before ``send``; it suspends through connects
    and backoffs and returns False once the connection is terminal or
    destroyed.
    """

    def __init__(
        self,
        framing: ProviderFraming,
        owner: ConnectionOwner,
        logger: FilteringBoundLogger,
    ):
        self.framing = framing
        self.owner = owner
        self.logger = logger
        self.settings = framing.reconnect

        self.transport: Optional[Transport] = None
        self._state = ConnectionState.CLOSED_CLEAN
        self._changed = asyncio.Event()
        self._retry_count = 0
        self._attempts = 0
        self._has_connected = False
        self._destroyed = False

        self._connect_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == ConnectionState.OPEN and not self._destroyed

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def attempts(self) -> int:
        """Connect attempts made so far, successful or not."""
        return self._attempts

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Begin connecting. Requires a running event loop."""
        self._begin_connect(delay=0.0)

    async def wait_open(self) -> bool:
        """Suspend until the connection is open; False if it never will be."""
        while True:
            if self._destroyed or self._state == ConnectionState.TERMINAL:
                return False
            if self._state == ConnectionState.OPEN:
                return True
            if self._state == ConnectionState.CLOSED_CLEAN:
                self.logger.info("reconnecting_after_clean_close")
                self._begin_connect(delay=0.0)
            await self._changed.wait()

    async def send(self, frame: Frame) -> bool:
        transport = self.transport
        if not self.is_open or transport is None:
            self.logger.warning("frame_dropped", state=self._state.value)
            return False
        await transport.send(frame)
        return True

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self._stop_keepalive()
        if self._connect_task is not None:
            self._connect_task.cancel()
            self._connect_task = None
        transport, self.transport = self.transport, None
        if transport is not None:
            self._spawn(transport.close())
        self._set_state(ConnectionState.CLOSED_CLEAN)

    # -------------------------------------------------------------------------
    # Connect / Reconnect
    # -------------------------------------------------------------------------

    def _begin_connect(self, delay: float) -> None:
        self._set_state(ConnectionState.CONNECTING)
        self._connect_task = self._spawn(self._connect(delay))

    async def _connect(self, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        if self._destroyed:
            return

        self._attempts += 1
        transport = self.framing.create_transport()
        self.transport = transport
        try:
            await transport.open(_TransportEvents(self, transport))
        except Exception as e:
            if self.transport is transport:
                self.transport = None
            self.logger.warning(
                "connect_failed",
                attempt=self._attempts,
                retry_count=self._retry_count,
                error=str(e),
            )
            self._on_failure()
            return

        if self._destroyed or self.transport is not transport:
            await transport.close()
            return

        self._retry_count = 0
        reconnected = self._has_connected
        self._has_connected = True

        frames = self.framing.opening_frames() + self.owner.replay_frames(reconnected)
        for frame in frames:
            await transport.send(frame)
            if self.transport is not transport:
                # Dropped while replaying; handle_close already took over.
                return

        self._set_state(ConnectionState.OPEN)
        self._start_keepalive(transport)
        self.logger.info("connection_opened", reconnected=reconnected)

    def handle_close(self, code: int, reason: str) -> None:
        self.transport = None
        self._stop_keepalive()
        if is_clean_close(code):
            self.logger.info("connection_closed", code=code, reason=reason)
            self._set_state(ConnectionState.CLOSED_CLEAN)
            return
        self.logger.warning("connection_lost", code=code, reason=reason)
        self._set_state(ConnectionState.CLOSED_FAILED)
        self._on_failure()

    def _on_failure(self) -> None:
        if self._destroyed:
            return
        self._retry_count += 1
        if self._retry_count > self.settings.max_retry:
            self.logger.error("max_retries_reached", max_retry=self.settings.max_retry)
            self._set_state(ConnectionState.TERMINAL)
            self.owner.on_terminal()
            return
        self.logger.info(
            "reconnect_scheduled",
            retry_count=self._retry_count,
            delay_ms=self.settings.retry_delay_ms,
        )
        self._begin_connect(delay=self.settings.retry_delay)

    # -------------------------------------------------------------------------
    # Keep-alive
    # -------------------------------------------------------------------------

    def _start_keepalive(self, transport: Transport) -> None:
        interval = self.framing.keepalive_interval
        if interval:
            self._keepalive_task = self._spawn(self._keepalive(transport, interval))

    def _stop_keepalive(self) -> None:
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None

    async def _keepalive(self, transport: Transport, interval: float) -> None:
        while self.transport is transport:
            await asyncio.sleep(interval)
            frame = self.framing.keepalive_frame()
            if frame is not None and self.transport is transport:
                self.logger.debug("keepalive_sent")
                await transport.send(frame)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
