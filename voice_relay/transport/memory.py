"""
In-process transport.

``MemoryTransport`` behaves like a network connection without touching the
network: frames sent to it are handed to a responder callable, and the
responder (or a test) pushes replies back with ``deliver``. Replies and
closes are delivered on a later loop iteration, as a socket would deliver
them.
"""

import asyncio
import inspect
from typing import Awaitable, Callable, List, Optional, Union

from voice_relay.core.errors import ProviderConnectionError
from voice_relay.transport.base import (
    ABNORMAL_CLOSE_CODE,
    CLEAN_CLOSE_CODE,
    Frame,
    Transport,
    TransportListener,
)

Responder = Callable[[Frame, "MemoryTransport"], Union[None, Awaitable[None]]]


class MemoryTransport(Transport):
    """Loopback transport driven by a responder."""

    def __init__(self, responder: Optional[Responder] = None, refuse: bool = False):
        self._responder = responder
        self._refuse = refuse
        self._listener: Optional[TransportListener] = None
        self._open = False
        self.sent: List[Frame] = []
        self.close_code: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self, listener: TransportListener) -> None:
        if self._refuse:
            raise ProviderConnectionError("Connection refused")
        self._listener = listener
        self._open = True

    async def send(self, frame: Frame) -> None:
        if not self._open:
            return
        self.sent.append(frame)
        if self._responder is not None:
            result = self._responder(frame, self)
            if inspect.isawaitable(result):
                await result

    async def close(self, code: int = CLEAN_CLOSE_CODE) -> None:
        if self.close_code is not None:
            return
        self._open = False
        self._listener = None
        self.close_code = code

    def deliver(self, data: Frame) -> None:
        """Queue an incoming message for the listener."""
        listener = self._listener
        if listener is not None:
            asyncio.get_running_loop().call_soon(self._dispatch, data)

    def drop(self, code: int = ABNORMAL_CLOSE_CODE, reason: str = "") -> None:
        """Simulate the remote end closing the connection."""
        listener, self._listener = self._listener, None
        if listener is None:
            return
        self._open = False
        self.close_code = code
        asyncio.get_running_loop().call_soon(listener.on_close, code, reason)

    def _dispatch(self, data: Frame) -> None:
        if self._listener is not None:
            self._listener.on_message(data)
