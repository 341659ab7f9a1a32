"""Unit tests for bundled provider framings."""

import base64
import json
from urllib.parse import parse_qs, urlparse

import pytest
import pytest_asyncio
from websockets.asyncio.server import serve

from voice_relay.adapters.chunking import WordBoundaryChunking
from voice_relay.adapters.completion import AlignmentCompletion, ProviderCompletion
from voice_relay.adapters.connection import ConnectionState
from voice_relay.config import (
    CartesiaOptions,
    DeepgramOptions,
    ElevenLabsOptions,
    ReconnectSettings,
)
from voice_relay.core.errors import MalformedMessageError
from voice_relay.providers.cartesia import CartesiaFraming
from voice_relay.providers.deepgram import DeepgramFraming
from voice_relay.providers.elevenlabs import ElevenLabsFraming, ElevenLabsTTS


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# =============================================================================
# Cartesia
# =============================================================================


class TestCartesiaFraming:
    """Tests for the Cartesia wire protocol."""

    @pytest.fixture
    def framing(self):
        return CartesiaFraming(CartesiaOptions(
            api_key="ck_test",
            voice_id="voice-1",
            language="en",
            speed="fast",
        ))

    def test_transport_url(self, framing):
        """Test credentials and API version go in the query string."""
        transport = framing.create_transport()
        url = urlparse(transport._url)
        query = parse_qs(url.query)

        assert url.netloc == "api.cartesia.ai"
        assert query["api_key"] == ["ck_test"]
        assert query["cartesia_version"] == ["2025-04-16"]

    def test_encode_input(self, framing):
        """Test transcript frames carry config, context and continuation."""
        frame = json.loads(framing.encode_input("Hello ", 3))

        assert frame["transcript"] == "Hello "
        assert frame["context_id"] == "3"
        assert frame["continue"] is True
        assert frame["model_id"] == "sonic-turbo"
        assert frame["voice"] == {"mode": "id", "id": "voice-1"}
        assert frame["output_format"] == {
            "container": "raw",
            "encoding": "pcm_s16le",
            "sample_rate": 16000,
        }
        assert frame["language"] == "en"
        assert frame["speed"] == "fast"

    def test_encode_end_and_cancel(self, framing):
        """Test the end marker and the abort frame."""
        end = json.loads(framing.encode_end(3))
        cancel = json.loads(framing.encode_cancel(3))

        assert end["transcript"] == ""
        assert end["continue"] is False
        assert cancel == {"context_id": "3", "cancel": True}

    def test_decode_chunk(self, framing):
        """Test audio chunks decode with their epoch."""
        event = framing.decode(json.dumps({"type": "chunk", "context_id": "3", "data": b64(b"pcm")}))

        assert event.epoch == 3
        assert event.audio == b"pcm"
        assert not event.is_final

    def test_decode_done(self, framing):
        """Test the done message is the final flag."""
        event = framing.decode(json.dumps({"type": "done", "context_id": "3"}))

        assert event.is_final
        assert event.epoch == 3

    def test_decode_error_never_matches_an_epoch(self, framing):
        """Test errors without a context are logged but never attributed."""
        event = framing.decode(json.dumps({"type": "error", "error": "bad voice"}))

        assert event.error == "bad voice"
        assert event.epoch == -1

    def test_decode_foreign_context(self, framing):
        """Test context ids this adapter never issued map to no epoch."""
        event = framing.decode(json.dumps({"type": "done", "context_id": "other"}))

        assert event.epoch == -1

    def test_decode_ignores_other_types(self, framing):
        """Test unrelated messages produce no event."""
        assert framing.decode(json.dumps({"type": "timestamps", "context_id": "3"})) is None

    @pytest.mark.parametrize("data", [
        "not json",
        json.dumps([1, 2]),
        json.dumps({"type": "chunk", "context_id": "1"}),
        json.dumps({"type": "chunk", "context_id": "1", "data": "***"}),
    ])
    def test_decode_malformed(self, framing, data):
        """Test malformed frames raise MalformedMessageError."""
        with pytest.raises(MalformedMessageError):
            framing.decode(data)

    def test_policies(self, framing):
        """Test Cartesia sends eagerly and trusts its own final flag."""
        assert isinstance(framing.completion, ProviderCompletion)
        assert framing.new_chunking().push("wor") == ["wor"]
        assert framing.keepalive_interval is None


# =============================================================================
# ElevenLabs
# =============================================================================


class TestElevenLabsFraming:
    """Tests for the ElevenLabs wire protocol."""

    @pytest.fixture
    def framing(self):
        return ElevenLabsFraming(ElevenLabsOptions(
            api_key="xi_test",
            voice_id="voice-2",
            language="fr",
            voice_settings={"stability": 0.5},
        ))

    def test_transport(self, framing):
        """Test the stream-input URL, query and API key header."""
        transport = framing.create_transport()
        url = urlparse(transport._url)
        query = parse_qs(url.query)

        assert url.path == "/v1/text-to-speech/voice-2/stream-input"
        assert query["model_id"] == ["eleven_flash_v2_5"]
        assert query["output_format"] == ["pcm_16000"]
        assert query["inactivity_timeout"] == ["180"]
        assert query["language_code"] == ["fr"]
        assert json.loads(query["voice_settings"][0]) == {"stability": 0.5}
        assert transport._headers == {"xi-api-key": "xi_test"}

    def test_opening_and_keepalive(self, framing):
        """Test the voice settings frame and the keep-alive schedule."""
        assert [json.loads(f) for f in framing.opening_frames()] == [
            {"text": " ", "voice_settings": {"stability": 0.5}},
        ]
        assert json.loads(framing.keepalive_frame()) == {"text": " "}
        assert framing.keepalive_interval == 179

    def test_encode_input_ends_with_space(self, framing):
        """Test text frames always end with a space."""
        assert json.loads(framing.encode_input("world.", 1)) == {
            "text": "world. ",
            "try_trigger_generation": True,
        }
        assert json.loads(framing.encode_input("Hello ", 1))["text"] == "Hello "

    def test_end_and_cancel_flush(self, framing):
        """Test both end of input and abort flush the buffer."""
        flush = {"text": " ", "flush": True}

        assert json.loads(framing.encode_end(1)) == flush
        assert json.loads(framing.encode_cancel(1)) == flush

    def test_decode_audio_with_alignment(self, framing):
        """Test audio carries the echoed characters."""
        event = framing.decode(json.dumps({
            "audio": b64(b"pcm"),
            "alignment": {"chars": ["H", "i", " "]},
        }))

        assert event.audio == b"pcm"
        assert event.echoed_text == "Hi "
        assert event.epoch is None

    def test_decode_final(self, framing):
        """Test the final flag without audio."""
        event = framing.decode(json.dumps({"isFinal": True}))

        assert event.is_final
        assert event.audio is None

    def test_decode_empty_message(self, framing):
        """Test messages with nothing to act on produce no event."""
        assert framing.decode(json.dumps({"audio": None, "isFinal": None})) is None

    @pytest.mark.parametrize("alignment", [
        ["x"],
        "chars",
        {"chars": "Hi"},
        {"chars": ["H", 1]},
    ])
    def test_decode_malformed_alignment(self, framing, alignment):
        """Test alignment of the wrong shape is malformed."""
        data = json.dumps({"audio": b64(b"pcm"), "alignment": alignment})

        with pytest.raises(MalformedMessageError):
            framing.decode(data)

    def test_policies(self, framing):
        """Test ElevenLabs withholds partial words and completes by alignment."""
        assert isinstance(framing.completion, AlignmentCompletion)
        assert isinstance(framing.new_chunking(), WordBoundaryChunking)


# =============================================================================
# Deepgram
# =============================================================================


class TestDeepgramFraming:
    """Tests for the Deepgram wire protocol."""

    @pytest.fixture
    def framing(self):
        return DeepgramFraming(DeepgramOptions(api_key="dg_test"))

    def results(self, **fields) -> str:
        message = {
            "type": "Results",
            "start": 1.0,
            "duration": 0.5,
            "is_final": True,
            "channel": {"alternatives": [{"transcript": "hello there"}]},
        }
        message.update(fields)
        return json.dumps(message)

    def test_transport(self, framing):
        """Test the listen URL and token header."""
        transport = framing.create_transport()
        query = parse_qs(urlparse(transport._url).query)

        assert query["model"] == ["nova-2"]
        assert query["encoding"] == ["linear16"]
        assert query["sample_rate"] == ["16000"]
        assert query["punctuate"] == ["true"]
        assert transport._headers == {"Authorization": "Token dg_test"}

    def test_audio_rate_and_frames(self, framing):
        """Test binary audio, finalize and keep-alive frames."""
        assert framing.bytes_per_second == 32000
        assert framing.encode_input(b"pcm", 1) == b"pcm"
        assert framing.encode_replay([b"a", b"b"], 1) == [b"ab"]
        assert json.loads(framing.encode_end(1)) == {"type": "Finalize"}
        assert json.loads(framing.keepalive_frame()) == {"type": "KeepAlive"}
        assert framing.keepalive_interval == 8.0

    def test_decode_final_result(self, framing):
        """Test final results carry transcript and processed time."""
        event = framing.decode(self.results())

        assert event.transcript == "hello there"
        assert event.processed_until == 1.5
        assert not event.is_final

    def test_decode_finalize_response(self, framing):
        """Test the response to Finalize closes the utterance."""
        event = framing.decode(self.results(from_finalize=True))

        assert event.is_final

    def test_decode_skips_interim_and_metadata(self, framing):
        """Test interim results and other messages produce no event."""
        assert framing.decode(self.results(is_final=False)) is None
        assert framing.decode(json.dumps({"type": "Metadata"})) is None

    def test_decode_empty_transcript(self, framing):
        """Test silence still acknowledges audio."""
        event = framing.decode(self.results(channel={"alternatives": [{"transcript": ""}]}))

        assert event.transcript is None
        assert event.processed_until == 1.5

    def test_decode_malformed_result(self, framing):
        """Test a result without timing is malformed."""
        with pytest.raises(MalformedMessageError):
            framing.decode(json.dumps({"type": "Results", "is_final": True}))

    @pytest.mark.parametrize("channel", [
        {"alternatives": [{"transcript": 42}]},
        {"alternatives": ["hello"]},
        "hello",
    ])
    def test_decode_malformed_channel(self, framing, channel):
        """Test a result with a badly shaped channel is malformed."""
        with pytest.raises(MalformedMessageError):
            framing.decode(self.results(channel=channel))


# =============================================================================
# Malformed frames over a live socket
# =============================================================================


BAD_ALIGNMENT_FRAME = json.dumps({"audio": "AAAA", "alignment": ["x"]})


async def send_bad_frame(ws):
    """Send one malformed frame per connection, then listen."""
    await ws.send(BAD_ALIGNMENT_FRAME)
    async for _ in ws:
        pass


@pytest_asyncio.fixture
async def bad_frame_url():
    async with serve(send_bad_frame, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}/v1/text-to-speech"


class TestMalformedFrameOverWebSocket:
    """Tests for malformed provider frames on a real connection."""

    @pytest.mark.asyncio
    async def test_connection_survives_malformed_frame(self, bad_frame_url, idle):
        """Test a malformed frame neither drops the socket nor spends retries."""
        tts = ElevenLabsTTS(ElevenLabsOptions(
            api_key="xi_test",
            voice_id="voice",
            url=bad_frame_url,
            reconnect=ReconnectSettings(retry_delay_ms=10, max_retry=3),
        ))
        try:
            assert await tts.connection.wait_open()
            await idle(0.3)

            assert tts.connection.attempts == 1
            assert tts.connection.retry_count == 0
            assert tts.state == ConnectionState.OPEN
        finally:
            tts.destroy()
