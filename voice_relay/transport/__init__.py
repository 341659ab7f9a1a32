"""
Transport sessions: one physical connection to one provider.
"""

from voice_relay.transport.base import (
    ABNORMAL_CLOSE_CODE,
    CLEAN_CLOSE_CODE,
    Frame,
    Transport,
    TransportListener,
    is_clean_close,
)
from voice_relay.transport.memory import MemoryTransport
from voice_relay.transport.websocket import WebSocketTransport

__all__ = [
    "ABNORMAL_CLOSE_CODE",
    "CLEAN_CLOSE_CODE",
    "Frame",
    "Transport",
    "TransportListener",
    "is_clean_close",
    "MemoryTransport",
    "WebSocketTransport",
]
