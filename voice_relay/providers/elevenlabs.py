"""
ElevenLabs stream-input TTS.

The stream-input socket has no correlation id and generates best from whole
words, so this adapter withholds partial words and attributes audio to an
utterance by the character alignment the provider echoes back. ElevenLabs
does not reliably flag the last chunk; the utterance is closed once the
alignment covers all of its text.
"""

import json
from typing import Any, List, Optional
from urllib.parse import urlencode

from structlog.typing import FilteringBoundLogger

from voice_relay.adapters.chunking import ChunkingPolicy, WordBoundaryChunking
from voice_relay.adapters.completion import AlignmentCompletion
from voice_relay.adapters.framing import ProviderEvent, TTSFraming, decode_audio, decode_json
from voice_relay.adapters.streaming import StreamingTTS
from voice_relay.config import ElevenLabsOptions
from voice_relay.core.errors import MalformedMessageError
from voice_relay.transport.base import Frame, Transport
from voice_relay.transport.websocket import WebSocketTransport

FLUSH_FRAME = json.dumps({"text": " ", "flush": True})
KEEPALIVE_FRAME = json.dumps({"text": " "})


class ElevenLabsFraming(TTSFraming):
    """Wire protocol of the ElevenLabs ``stream-input`` WebSocket."""

    name = "elevenlabs"
    completion = AlignmentCompletion()

    def __init__(self, options: ElevenLabsOptions):
        super().__init__(options.reconnect)
        self.options = options
        # Keep the socket alive just before the server-side inactivity timeout
        self.keepalive_interval = float(options.inactivity_timeout - 1)

    def new_chunking(self) -> ChunkingPolicy:
        return WordBoundaryChunking()

    def create_transport(self) -> Transport:
        params = {
            "model_id": self.options.model_id,
            "output_format": self.options.output_format,
            "inactivity_timeout": str(self.options.inactivity_timeout),
            "voice_settings": json.dumps(self.options.voice_settings),
        }
        if self.options.language:
            params["language_code"] = self.options.language

        url = f"{self.options.url}/{self.options.voice_id}/stream-input?{urlencode(params)}"
        return WebSocketTransport(
            url,
            headers={"xi-api-key": self.options.api_key},
            provider=self.name,
        )

    def opening_frames(self) -> List[Frame]:
        return [json.dumps({"text": " ", "voice_settings": self.options.voice_settings})]

    def keepalive_frame(self) -> Optional[Frame]:
        return KEEPALIVE_FRAME

    def encode_input(self, payload: str, epoch: int) -> Frame:
        # Text frames must end with a space
        if not payload.endswith(" "):
            payload += " "
        return json.dumps({"text": payload, "try_trigger_generation": True})

    def encode_end(self, epoch: int) -> Optional[Frame]:
        return FLUSH_FRAME

    def encode_cancel(self, epoch: int) -> Optional[Frame]:
        return FLUSH_FRAME

    def decode(self, data: Frame) -> Optional[ProviderEvent]:
        message = decode_json(data)
        event = ProviderEvent(is_final=bool(message.get("isFinal")))

        if message.get("audio"):
            event.audio = decode_audio(message["audio"])
            event.echoed_text = self._aligned_text(message.get("alignment"), data)
        if "error" in message:
            event.error = str(message["error"])

        if event.audio is None and not event.is_final and event.error is None:
            return None
        return event

    @staticmethod
    def _aligned_text(alignment: Any, data: Frame) -> Optional[str]:
        """Characters voiced by an audio chunk, None without alignment."""
        if not alignment:
            return None
        if not isinstance(alignment, dict):
            raise MalformedMessageError("Alignment is not an object", raw=data)
        chars = alignment.get("chars")
        if not chars:
            return None
        if not isinstance(chars, list) or not all(isinstance(c, str) for c in chars):
            raise MalformedMessageError("Alignment chars must be a list of strings", raw=data)
        return "".join(chars)


class ElevenLabsTTS(StreamingTTS):
    """ElevenLabs text-to-speech adapter."""

    def __init__(
        self,
        options: ElevenLabsOptions,
        logger: Optional[FilteringBoundLogger] = None,
    ):
        super().__init__(ElevenLabsFraming(options), logger)
