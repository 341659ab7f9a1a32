"""
Mock Providers
==============

In-process TTS and STT providers on ``MemoryTransport``. They speak a small
JSON protocol, need no credentials, and keep every transport they open so
tests and demos can inspect sent frames or drop a connection.

MockTTS "synthesizes" the UTF-8 bytes of the text it receives and echoes the
text back as confirmation. MockSTT "transcribes" audio by decoding it as
UTF-8 and reports how much connection audio it has processed.
"""

import base64
import json
from typing import List, Optional

from structlog.typing import FilteringBoundLogger

from voice_relay.adapters.framing import (
    ProviderEvent,
    STTFraming,
    TTSFraming,
    decode_audio,
    decode_json,
    parse_epoch,
)
from voice_relay.adapters.streaming import StreamingSTT, StreamingTTS
from voice_relay.config import MockOptions
from voice_relay.core.errors import MalformedMessageError
from voice_relay.transport.base import Frame
from voice_relay.transport.memory import MemoryTransport

# =============================================================================
# Mock TTS
# =============================================================================


class MockTTSFraming(TTSFraming):
    """JSON text frames in, base64 audio of the same text out."""

    name = "mock_tts"

    def __init__(self, options: Optional[MockOptions] = None):
        options = options or MockOptions()
        super().__init__(options.reconnect)
        self.auto_respond = options.auto_respond
        self.refuse_connections = options.refuse_connections
        self.transports: List[MemoryTransport] = []

    @property
    def current(self) -> Optional[MemoryTransport]:
        """Most recently opened transport."""
        return self.transports[-1] if self.transports else None

    def create_transport(self) -> MemoryTransport:
        transport = MemoryTransport(self._respond, refuse=self.refuse_connections)
        self.transports.append(transport)
        return transport

    def _respond(self, frame: Frame, transport: MemoryTransport) -> None:
        if not self.auto_respond:
            return
        message = json.loads(frame)
        if message["type"] == "text":
            transport.deliver(self.audio_frame(message["text"], message["epoch"]))
        elif message["type"] == "end":
            transport.deliver(json.dumps({"epoch": message["epoch"], "final": True}))

    @staticmethod
    def audio_frame(text: str, epoch: Optional[int] = None) -> str:
        """Provider reply voicing ``text``."""
        return json.dumps({
            "epoch": epoch,
            "audio": base64.b64encode(text.encode("utf-8")).decode("ascii"),
            "text": text,
        })

    def encode_input(self, payload: str, epoch: int) -> Frame:
        return json.dumps({"type": "text", "epoch": epoch, "text": payload})

    def encode_end(self, epoch: int) -> Optional[Frame]:
        return json.dumps({"type": "end", "epoch": epoch})

    def encode_cancel(self, epoch: int) -> Optional[Frame]:
        return json.dumps({"type": "cancel", "epoch": epoch})

    def decode(self, data: Frame) -> Optional[ProviderEvent]:
        message = decode_json(data)
        event = ProviderEvent(
            epoch=parse_epoch(message.get("epoch")),
            is_final=bool(message.get("final")),
        )
        if "audio" in message:
            text = message.get("text")
            if text is not None and not isinstance(text, str):
                raise MalformedMessageError("Echoed text must be a string", raw=data)
            event.audio = decode_audio(message["audio"])
            event.echoed_text = text
        return event


class MockTTS(StreamingTTS):
    """Text-to-speech adapter on the in-process mock provider."""

    framing: MockTTSFraming

    def __init__(
        self,
        options: Optional[MockOptions] = None,
        logger: Optional[FilteringBoundLogger] = None,
    ):
        super().__init__(MockTTSFraming(options), logger)


# =============================================================================
# Mock STT
# =============================================================================


class _STTResponder:
    """Per-connection state of the mock recognizer."""

    def __init__(self, framing: "MockSTTFraming"):
        self.framing = framing
        self.processed = 0

    def __call__(self, frame: Frame, transport: MemoryTransport) -> None:
        if not self.framing.auto_respond:
            return
        rate = self.framing.bytes_per_second
        if isinstance(frame, bytes):
            start = self.processed
            self.processed += len(frame)
            transport.deliver(json.dumps({
                "transcript": frame.decode("utf-8", errors="replace"),
                "start": start / rate,
                "duration": len(frame) / rate,
            }))
        elif json.loads(frame).get("type") == "end":
            transport.deliver(json.dumps({
                "final": True,
                "start": self.processed / rate,
                "duration": 0,
            }))


class MockSTTFraming(STTFraming):
    """Binary audio in, JSON transcripts out."""

    name = "mock_stt"

    def __init__(self, options: Optional[MockOptions] = None):
        options = options or MockOptions()
        super().__init__(options.reconnect)
        self.bytes_per_second = options.bytes_per_second
        self.auto_respond = options.auto_respond
        self.refuse_connections = options.refuse_connections
        self.transports: List[MemoryTransport] = []

    @property
    def current(self) -> Optional[MemoryTransport]:
        return self.transports[-1] if self.transports else None

    def create_transport(self) -> MemoryTransport:
        transport = MemoryTransport(_STTResponder(self), refuse=self.refuse_connections)
        self.transports.append(transport)
        return transport

    def encode_input(self, payload: bytes, epoch: int) -> Frame:
        return payload

    def encode_end(self, epoch: int) -> Optional[Frame]:
        return json.dumps({"type": "end"})

    def decode(self, data: Frame) -> Optional[ProviderEvent]:
        message = decode_json(data)
        processed_until = None
        transcript = message.get("transcript")
        try:
            if "start" in message:
                processed_until = float(message["start"]) + float(message.get("duration", 0))
        except (TypeError, ValueError) as e:
            raise MalformedMessageError(f"Invalid timing: {e}", raw=data)
        if transcript is not None and not isinstance(transcript, str):
            raise MalformedMessageError("Transcript must be a string", raw=data)
        return ProviderEvent(
            transcript=transcript or None,
            processed_until=processed_until,
            is_final=bool(message.get("final")),
        )


class MockSTT(StreamingSTT):
    """Speech-to-text adapter on the in-process mock provider."""

    framing: MockSTTFraming

    def __init__(
        self,
        options: Optional[MockOptions] = None,
        logger: Optional[FilteringBoundLogger] = None,
    ):
        super().__init__(MockSTTFraming(options), logger)
