"""
Cartesia streaming TTS.

One WebSocket carries any number of generation contexts. Every frame names
its ``context_id``, which is the adapter epoch, so audio of a cancelled or
superseded utterance is recognised and dropped.
"""

import json
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from structlog.typing import FilteringBoundLogger

from voice_relay.adapters.framing import (
    ProviderEvent,
    TTSFraming,
    decode_audio,
    decode_json,
    parse_epoch,
)
from voice_relay.adapters.streaming import StreamingTTS
from voice_relay.config import CartesiaOptions
from voice_relay.core.errors import MalformedMessageError
from voice_relay.transport.base import Frame, Transport
from voice_relay.transport.websocket import WebSocketTransport


class CartesiaFraming(TTSFraming):
    """Wire protocol of the Cartesia TTS WebSocket."""

    name = "cartesia"

    def __init__(self, options: CartesiaOptions):
        super().__init__(options.reconnect)
        self.options = options

    def create_transport(self) -> Transport:
        query = urlencode({
            "api_key": self.options.api_key,
            "cartesia_version": self.options.api_version,
        })
        return WebSocketTransport(f"{self.options.url}?{query}", provider=self.name)

    def _generation_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "model_id": self.options.model_id,
            "voice": {"mode": "id", "id": self.options.voice_id},
            "output_format": {
                "container": "raw",
                "encoding": self.options.encoding,
                "sample_rate": self.options.sample_rate,
            },
        }
        if self.options.language:
            config["language"] = self.options.language
        if self.options.speed:
            config["speed"] = self.options.speed
        return config

    def _transcript(self, text: str, epoch: int, more: bool) -> str:
        return json.dumps({
            **self._generation_config(),
            "transcript": text,
            "context_id": str(epoch),
            "continue": more,
        })

    def encode_input(self, payload: str, epoch: int) -> Frame:
        return self._transcript(payload, epoch, more=True)

    def encode_end(self, epoch: int) -> Optional[Frame]:
        return self._transcript("", epoch, more=False)

    def encode_cancel(self, epoch: int) -> Optional[Frame]:
        return json.dumps({"context_id": str(epoch), "cancel": True})

    def decode(self, data: Frame) -> Optional[ProviderEvent]:
        message = decode_json(data)
        epoch = parse_epoch(message.get("context_id"))
        kind = message.get("type")

        if kind == "chunk":
            if "data" not in message:
                raise MalformedMessageError("Audio chunk without data", raw=data)
            return ProviderEvent(epoch=epoch, audio=decode_audio(message["data"]))
        if kind == "done":
            return ProviderEvent(epoch=epoch, is_final=True)
        if kind == "error":
            return ProviderEvent(
                epoch=-1 if epoch is None else epoch,
                error=str(message.get("error") or message.get("title") or "unknown error"),
            )
        return None


class CartesiaTTS(StreamingTTS):
    """
    Cartesia text-to-speech adapter.

    Usage:
        tts = CartesiaTTS(CartesiaOptions(api_key=key, voice_id=voice))
        tts.subscribe(OutputStream())
        tts.speak(InputStream.of(["Hello world."]))
    """

    def __init__(
        self,
        options: CartesiaOptions,
        logger: Optional[FilteringBoundLogger] = None,
    ):
        super().__init__(CartesiaFraming(options), logger)
