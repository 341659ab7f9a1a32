"""
Transport Session interface.

A transport owns exactly one physical connection to one provider. It knows
nothing about retries: connecting, sending, receiving and closing are its
whole job. Recovery belongs to the adapter that owns it.
"""

from abc import ABC, abstractmethod
from typing import Protocol, Union

Frame = Union[str, bytes]

# Close code an endpoint sends for an intentional shutdown.
CLEAN_CLOSE_CODE = 1000
# Reported when a connection drops without a close frame.
ABNORMAL_CLOSE_CODE = 1006


class TransportListener(Protocol):
    """Receives the only three events a transport exposes."""

    def on_message(self, data: Frame) -> None:
        ...

    def on_error(self, error: Exception) -> None:
        ...

    def on_close(self, code: int, reason: str) -> None:
        ...


class Transport(ABC):
    """Abstract provider connection."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether frames can be sent right now."""

    @abstractmethod
    async def open(self, listener: TransportListener) -> None:
        """
        Establish the connection and start delivering events to ``listener``.

        Raises:
            ProviderConnectionError: The connection could not be established
        """

    @abstractmethod
    async def send(self, frame: Frame) -> None:
        """Transmit one frame. Frames sent after the connection dropped are discarded."""

    @abstractmethod
    async def close(self, code: int = CLEAN_CLOSE_CODE) -> None:
        """Close the connection. Idempotent; never reports ``on_close`` to the listener."""


def is_clean_close(code: int) -> bool:
    return code == CLEAN_CLOSE_CODE
