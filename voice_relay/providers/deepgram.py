"""
Deepgram live transcription.

Audio goes out as binary frames. Deepgram reports ``start`` and ``duration``
of every result in seconds of connection audio, which is what acknowledges
audio in the ledger. Only final results are emitted as transcripts.
"""

import json
from typing import Optional
from urllib.parse import urlencode

from structlog.typing import FilteringBoundLogger

from voice_relay.adapters.framing import ProviderEvent, STTFraming, decode_json
from voice_relay.adapters.streaming import StreamingSTT
from voice_relay.config import DeepgramOptions
from voice_relay.core.errors import MalformedMessageError
from voice_relay.transport.base import Frame, Transport
from voice_relay.transport.websocket import WebSocketTransport


class DeepgramFraming(STTFraming):
    """Wire protocol of the Deepgram ``/v1/listen`` WebSocket."""

    name = "deepgram"

    def __init__(self, options: DeepgramOptions):
        super().__init__(options.reconnect)
        self.options = options
        self.bytes_per_second = options.bytes_per_second
        self.keepalive_interval = options.keepalive_interval

    def _build_params(self) -> str:
        return urlencode({
            "model": self.options.model,
            "language": self.options.language,
            "encoding": self.options.encoding,
            "sample_rate": self.options.sample_rate,
            "channels": self.options.channels,
            "punctuate": str(self.options.punctuate).lower(),
            "interim_results": "false",
        })

    def create_transport(self) -> Transport:
        return WebSocketTransport(
            f"{self.options.url}?{self._build_params()}",
            headers={"Authorization": f"Token {self.options.api_key}"},
            provider=self.name,
        )

    def keepalive_frame(self) -> Optional[Frame]:
        return json.dumps({"type": "KeepAlive"})

    def encode_input(self, payload: bytes, epoch: int) -> Frame:
        return payload

    def encode_end(self, epoch: int) -> Optional[Frame]:
        return json.dumps({"type": "Finalize"})

    def decode(self, data: Frame) -> Optional[ProviderEvent]:
        message = decode_json(data)
        kind = message.get("type")

        if kind == "Error":
            return ProviderEvent(
                epoch=-1,
                error=str(message.get("description") or message.get("message") or "unknown error"),
            )
        if kind != "Results" or not message.get("is_final"):
            return None

        try:
            alternatives = message.get("channel", {}).get("alternatives", [])
            transcript = alternatives[0].get("transcript", "") if alternatives else ""
            processed_until = float(message["start"]) + float(message["duration"])
        except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
            raise MalformedMessageError(f"Invalid Results message: {e}", raw=data)
        if not isinstance(transcript, str):
            raise MalformedMessageError("Transcript must be a string", raw=data)

        return ProviderEvent(
            transcript=transcript or None,
            processed_until=processed_until,
            is_final=bool(message.get("from_finalize")),
        )


class DeepgramSTT(StreamingSTT):
    """Deepgram speech-to-text adapter."""

    def __init__(
        self,
        options: DeepgramOptions,
        logger: Optional[FilteringBoundLogger] = None,
    ):
        super().__init__(DeepgramFraming(options), logger)
