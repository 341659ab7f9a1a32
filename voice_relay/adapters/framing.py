"""
Provider framing strategies.

A framing strategy is everything provider-specific about a streaming adapter:
which transport to open, how input becomes wire frames, and how wire frames
become ``ProviderEvent`` objects. The reconnect/replay machinery is shared
and never looks inside a frame.
"""

import base64
import binascii
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from voice_relay.adapters.chunking import ChunkingPolicy, EagerChunking
from voice_relay.adapters.completion import CompletionPolicy, ProviderCompletion
from voice_relay.config import ReconnectSettings
from voice_relay.core.errors import MalformedMessageError
from voice_relay.transport.base import Frame, Transport

InputT = TypeVar("InputT")


@dataclass
class ProviderEvent:
    """
    Decoded provider message.

    Attributes:
        epoch: Correlation id echoed by the provider, None when it has none
        audio: Synthesized audio (TTS)
        transcript: Transcribed text (STT)
        echoed_text: Text the provider reports having voiced (TTS confirmation)
        processed_until: Seconds of connection audio processed (STT confirmation)
        is_final: Provider marks the utterance as finished
        error: Provider-reported error message
    """
    epoch: Optional[int] = None
    audio: Optional[bytes] = None
    transcript: Optional[str] = None
    echoed_text: Optional[str] = None
    processed_until: Optional[float] = None
    is_final: bool = False
    error: Optional[str] = None


class ProviderFraming(ABC, Generic[InputT]):
    """Wire protocol of one provider."""

    name = "provider"
    keepalive_interval: Optional[float] = None

    def __init__(self, reconnect: Optional[ReconnectSettings] = None):
        self.reconnect = reconnect or ReconnectSettings()

    @abstractmethod
    def create_transport(self) -> Transport:
        """Build a new, unopened transport for one connection attempt."""

    def opening_frames(self) -> List[Frame]:
        """Frames sent right after every successful connect."""
        return []

    def keepalive_frame(self) -> Optional[Frame]:
        return None

    @abstractmethod
    def encode_input(self, payload: InputT, epoch: int) -> Frame:
        """Frame one segment of utterance input."""

    def encode_replay(self, pending: Sequence[InputT], epoch: int) -> List[Frame]:
        """Frames retransmitting unconfirmed input after a reconnect."""
        return [self.encode_input(payload, epoch) for payload in pending]

    def encode_end(self, epoch: int) -> Optional[Frame]:
        """End-of-input marker, or None when the provider needs none."""
        return None

    def encode_cancel(self, epoch: int) -> Optional[Frame]:
        """Abort frame for ``epoch``, or None when the provider has none."""
        return None

    @abstractmethod
    def decode(self, data: Frame) -> Optional[ProviderEvent]:
        """
        Decode one incoming frame; None for frames with nothing to act on.

        Raises:
            MalformedMessageError: The frame cannot be parsed
        """


class TTSFraming(ProviderFraming[str]):
    """Framing of a text-in, audio-out provider."""

    completion: CompletionPolicy = ProviderCompletion()

    def new_chunking(self) -> ChunkingPolicy:
        return EagerChunking()

    def encode_replay(self, pending: Sequence[str], epoch: int) -> List[Frame]:
        text = "".join(pending)
        return [self.encode_input(text, epoch)] if text else []


class STTFraming(ProviderFraming[bytes]):
    """Framing of an audio-in, text-out provider."""

    bytes_per_second: int = 32000

    def encode_replay(self, pending: Sequence[bytes], epoch: int) -> List[Frame]:
        audio = b"".join(pending)
        return [self.encode_input(audio, epoch)] if audio else []


# =============================================================================
# Decoding helpers
# =============================================================================


def decode_json(data: Frame) -> Dict[str, Any]:
    """Parse a JSON object frame, raising ``MalformedMessageError`` otherwise."""
    try:
        message = json.loads(data)
    except (TypeError, ValueError) as e:
        raise MalformedMessageError(f"Invalid JSON frame: {e}", raw=data)
    if not isinstance(message, dict):
        raise MalformedMessageError("Expected a JSON object", raw=data)
    return message


def decode_audio(value: Any) -> bytes:
    """Decode a base64 audio payload."""
    try:
        return base64.b64decode(value, validate=True)
    except (TypeError, binascii.Error) as e:
        raise MalformedMessageError(f"Invalid base64 audio: {e}", raw=value)


def parse_epoch(value: Any) -> Optional[int]:
    """Epoch from a provider correlation id; -1 for ids this adapter never issued."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return -1
