"""
WebSocket Transport
===================

Transport session on top of the ``websockets`` asyncio client. A background
reader task forwards every incoming message to the listener and reports the
close code once the connection ends.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

import structlog
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from voice_relay.core.errors import ProviderConnectionError
from voice_relay.transport.base import (
    ABNORMAL_CLOSE_CODE,
    CLEAN_CLOSE_CODE,
    Frame,
    Transport,
    TransportListener,
)

logger = structlog.get_logger(__name__)


class WebSocketTransport(Transport):
    """
    One WebSocket connection to a provider endpoint.

    Usage:
        transport = WebSocketTransport(url, headers={"xi-api-key": key})
        await transport.open(listener)
        await transport.send(json.dumps(payload))
        await transport.close()
    """

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        open_timeout: float = 10.0,
        ping_interval: Optional[float] = 20.0,
        ping_timeout: Optional[float] = 10.0,
        provider: str = "",
    ):
        self._url = url
        self._headers = headers or {}
        self._open_timeout = open_timeout
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._provider = provider

        self._ws: Optional[ClientConnection] = None
        self._listener: Optional[TransportListener] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closed

    async def open(self, listener: TransportListener) -> None:
        try:
            self._ws = await connect(
                self._url,
                additional_headers=self._headers,
                open_timeout=self._open_timeout,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise ProviderConnectionError(
                f"Failed to connect: {e}",
                provider=self._provider,
            ) from e

        self._listener = listener
        self._reader_task = asyncio.create_task(self._read_loop(self._ws))
        logger.debug("websocket_opened", provider=self._provider)

    async def send(self, frame: Frame) -> None:
        if not self.is_open:
            logger.warning("websocket_send_dropped", provider=self._provider)
            return
        try:
            await self._ws.send(frame)
        except ConnectionClosed:
            # The reader reports the close; recovery starts from there.
            logger.warning("websocket_send_after_close", provider=self._provider)

    async def close(self, code: int = CLEAN_CLOSE_CODE) -> None:
        if self._closed:
            return
        self._closed = True
        self._listener = None
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close(code)
        if self._reader_task is not None:
            self._reader_task.cancel()
            self._reader_task = None
        logger.debug("websocket_closed", provider=self._provider, code=code)

    async def _read_loop(self, ws: ClientConnection) -> None:
        try:
            async for message in ws:
                listener = self._listener
                if listener is None:
                    return
                listener.on_message(message)
        except ConnectionClosed:
            pass
        except Exception as e:
            logger.exception("websocket_reader_error", provider=self._provider)
            if self._listener is not None:
                self._listener.on_error(e)
            await ws.close(1011)

        listener = self._listener
        if self._closed or listener is None:
            return
        self._closed = True
        self._listener = None
        self._ws = None
        code = ws.close_code if ws.close_code is not None else ABNORMAL_CLOSE_CODE
        listener.on_close(code, ws.close_reason or "")
