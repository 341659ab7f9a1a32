"""
Streaming Adapters
==================

Provider-agnostic adapter built on a ``ProviderFraming`` and a
``ProviderConnection``. It owns the utterance lifecycle:

- feeding input from the caller's stream as it arrives
- suspending while the connection is down and replaying unconfirmed input
  after a reconnect
- filtering provider events by epoch and emitting output
- reporting a terminal failure with everything the provider never confirmed
"""

from __future__ import annotations

import asyncio
import codecs
from dataclasses import dataclass
from typing import Any, Coroutine, List, Optional, Set, Union

from structlog.typing import FilteringBoundLogger

from voice_relay.adapters.base import InputT, OutputT, SpeechAdapter, STTAdapter, TTSAdapter
from voice_relay.adapters.chunking import ChunkingPolicy
from voice_relay.adapters.connection import ConnectionState, ProviderConnection
from voice_relay.adapters.framing import ProviderEvent, ProviderFraming, STTFraming, TTSFraming
from voice_relay.adapters.ledger import AudioLedger, TextLedger, normalize_text
from voice_relay.core.errors import InputStreamError, MalformedMessageError
from voice_relay.streams import AdapterFailure, InputStream
from voice_relay.transport.base import Frame


@dataclass
class Utterance:
    """One logical request and its bookkeeping."""
    epoch: int
    stream: InputStream
    ledger: Union[TextLedger, AudioLedger]
    chunking: Optional[ChunkingPolicy] = None
    decoder: Optional[codecs.IncrementalDecoder] = None
    feed_task: Optional[asyncio.Task] = None
    end_sent: bool = False
    input_failed: bool = False


class StreamingAdapter(SpeechAdapter[InputT, OutputT]):
    """
    Adapter driving one provider connection.

    Subclasses supply the ledger type and how input, replays and provider
    events are handled; the framing supplies the wire protocol.
    """

    def __init__(
        self,
        framing: ProviderFraming[InputT],
        logger: Optional[FilteringBoundLogger] = None,
    ):
        self.framing = framing
        super().__init__(logger)
        self._epoch = 0
        self._utterance: Optional[Utterance] = None
        self._tasks: Set[asyncio.Task] = set()
        self.connection = ProviderConnection(framing, self, self.logger)
        self.connection.start()

    @property
    def provider_name(self) -> str:
        return self.framing.name

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def is_processing(self) -> bool:
        return self._utterance is not None

    @property
    def ledger(self) -> Optional[Union[TextLedger, AudioLedger]]:
        return self._utterance.ledger if self._utterance else None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def submit(self, stream: InputStream[InputT]) -> None:
        if self._destroyed or self.connection.state == ConnectionState.TERMINAL:
            self.logger.warning("submit_ignored", destroyed=self._destroyed)
            return

        self._close_utterance()
        self._epoch += 1
        utterance = Utterance(
            epoch=self._epoch,
            stream=stream,
            ledger=self._new_ledger(),
        )
        self._begin(utterance)
        self._utterance = utterance
        utterance.feed_task = self._spawn(self._feed(utterance))
        self.logger.debug("utterance_started", epoch=utterance.epoch)

    def cancel(self) -> None:
        utterance = self._close_utterance()
        if utterance is None:
            return
        self.logger.info("utterance_cancelled", epoch=utterance.epoch)
        frame = self.framing.encode_cancel(utterance.epoch)
        if frame is not None and self.connection.is_open:
            self._spawn(self.connection.send(frame))
        self._epoch += 1

    def destroy(self) -> None:
        if self._destroyed:
            return
        super().destroy()
        self.connection.destroy()

    # -------------------------------------------------------------------------
    # Feeding
    # -------------------------------------------------------------------------

    async def _feed(self, utterance: Utterance) -> None:
        try:
            async for chunk in utterance.stream:
                for payload in self._accept(utterance, chunk):
                    if not await self._transmit(utterance, payload):
                        return
            utterance.ledger.input_ended = True
            for payload in self._flush(utterance):
                if not await self._transmit(utterance, payload):
                    return
        except InputStreamError as e:
            utterance.input_failed = True
            self.logger.warning("input_stream_error", epoch=utterance.epoch, error=e.message)
            return
        except Exception:
            utterance.input_failed = True
            self.logger.exception("input_rejected", epoch=utterance.epoch)
            if utterance is self._utterance:
                # Running inside the feed task; nothing left to cancel.
                utterance.feed_task = None
                self.cancel()
            return

        await self._send_end(utterance)
        if utterance is self._utterance and self._is_complete(utterance):
            self._complete(utterance)

    async def _transmit(self, utterance: Utterance, payload: InputT) -> bool:
        if not await self.connection.wait_open():
            return False
        if utterance is not self._utterance:
            return False
        self._mark_transmitted(utterance, payload)
        frame = self.framing.encode_input(payload, utterance.epoch)
        await asyncio.shield(self.connection.send(frame))
        return True

    async def _send_end(self, utterance: Utterance) -> None:
        frame = self.framing.encode_end(utterance.epoch)
        if frame is None:
            utterance.end_sent = True
            return
        if not await self.connection.wait_open():
            return
        if utterance is not self._utterance:
            return
        utterance.end_sent = True
        await asyncio.shield(self.connection.send(frame))

    # -------------------------------------------------------------------------
    # Connection callbacks
    # -------------------------------------------------------------------------

    def replay_frames(self, reconnected: bool) -> List[Frame]:
        utterance = self._utterance
        self._on_connected(utterance)
        if utterance is None:
            return []
        pending = self._unconfirmed(utterance)
        frames = self.framing.encode_replay(pending, utterance.epoch)
        if utterance.end_sent:
            end = self.framing.encode_end(utterance.epoch)
            if end is not None:
                frames.append(end)
        if frames:
            self.logger.info(
                "replaying_unconfirmed_input",
                epoch=utterance.epoch,
                frames=len(frames),
                reconnected=reconnected,
            )
        return frames

    def on_message(self, data: Frame) -> None:
        try:
            event = self.framing.decode(data)
        except MalformedMessageError as e:
            self.logger.warning("malformed_provider_message", error=e.message)
            return
        except Exception as e:
            self.logger.warning("malformed_provider_message", error=repr(e))
            return
        if event is None:
            return
        if event.error:
            self.logger.warning("provider_error", error=event.error, epoch=event.epoch)

        utterance = self._utterance
        if utterance is None:
            return
        if event.epoch is not None and event.epoch != utterance.epoch:
            self.logger.debug("stale_message_ignored", epoch=event.epoch, current=utterance.epoch)
            return
        # Errors stay with the frame; the transport reader must not see them
        try:
            self._handle_event(utterance, event)
        except Exception:
            self.logger.exception("provider_event_failed", epoch=utterance.epoch)

    def on_terminal(self) -> None:
        utterance = self._close_utterance()
        pending: List[InputT] = []
        stream: Optional[InputStream[InputT]] = None
        if utterance is not None:
            pending = utterance.ledger.pending()
            if not (utterance.ledger.input_ended or utterance.input_failed):
                stream = utterance.stream
        failure = AdapterFailure(pending=pending, stream=stream, provider=self.provider_name)
        self.logger.error(
            "adapter_failed",
            pending_chunks=len(pending),
            has_stream=stream is not None,
        )
        self._emit_failed(failure)

    # -------------------------------------------------------------------------
    # Utterance lifecycle
    # -------------------------------------------------------------------------

    def _close_utterance(self) -> Optional[Utterance]:
        utterance, self._utterance = self._utterance, None
        if utterance is not None and utterance.feed_task is not None:
            utterance.feed_task.cancel()
        return utterance

    def _complete(self, utterance: Utterance) -> None:
        self.logger.debug("utterance_completed", epoch=utterance.epoch)
        self._close_utterance()
        utterance.ledger.clear()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    def _new_ledger(self) -> Union[TextLedger, AudioLedger]:
        raise NotImplementedError

    def _begin(self, utterance: Utterance) -> None:
        pass

    def _accept(self, utterance: Utterance, chunk: Any) -> List[InputT]:
        raise NotImplementedError

    def _flush(self, utterance: Utterance) -> List[InputT]:
        return []

    def _mark_transmitted(self, utterance: Utterance, payload: InputT) -> None:
        utterance.ledger.mark_transmitted(payload)

    def _unconfirmed(self, utterance: Utterance) -> List[InputT]:
        raise NotImplementedError

    def _on_connected(self, utterance: Optional[Utterance]) -> None:
        pass

    def _is_complete(self, utterance: Utterance) -> bool:
        return False

    def _handle_event(self, utterance: Utterance, event: ProviderEvent) -> None:
        raise NotImplementedError


class StreamingTTS(StreamingAdapter[str, bytes], TTSAdapter):
    """Text-to-speech adapter over a ``TTSFraming``."""

    framing: TTSFraming

    def _new_ledger(self) -> TextLedger:
        return TextLedger()

    def _begin(self, utterance: Utterance) -> None:
        utterance.chunking = self.framing.new_chunking()
        # Byte chunks may split a multi-byte character
        utterance.decoder = codecs.getincrementaldecoder("utf-8")()

    def _accept(self, utterance: Utterance, chunk: Union[str, bytes]) -> List[str]:
        if isinstance(chunk, bytes):
            chunk = utterance.decoder.decode(chunk)
        return self._push_text(utterance, chunk)

    def _push_text(self, utterance: Utterance, chunk: str) -> List[str]:
        text = normalize_text(chunk)
        utterance.ledger.accept(text)
        return utterance.chunking.push(text)

    def _flush(self, utterance: Utterance) -> List[str]:
        tail = utterance.decoder.decode(b"", final=True)
        return self._push_text(utterance, tail) + utterance.chunking.flush()

    def _unconfirmed(self, utterance: Utterance) -> List[str]:
        remainder = utterance.ledger.unconfirmed()
        return [remainder] if remainder.strip() else []

    def _is_complete(self, utterance: Utterance) -> bool:
        return self.framing.completion.is_complete(utterance.ledger)

    def _handle_event(self, utterance: Utterance, event: ProviderEvent) -> None:
        ledger: TextLedger = utterance.ledger
        if event.echoed_text is not None:
            if not self.framing.completion.accepts(ledger, event.echoed_text):
                self.logger.debug("unaligned_audio_ignored", epoch=utterance.epoch)
                return
            ledger.confirm(event.echoed_text)

        if event.audio:
            self._emit_output(event.audio)

        finished = event.is_final and ledger.input_ended
        if finished or self.framing.completion.is_complete(ledger):
            self._complete(utterance)


class StreamingSTT(StreamingAdapter[bytes, str], STTAdapter):
    """Speech-to-text adapter over an ``STTFraming``."""

    framing: STTFraming

    def __init__(
        self,
        framing: STTFraming,
        logger: Optional[FilteringBoundLogger] = None,
    ):
        self._connection_bytes = 0
        super().__init__(framing, logger)

    def _new_ledger(self) -> AudioLedger:
        ledger = AudioLedger(bytes_per_second=self.framing.bytes_per_second)
        ledger.rebase(self._connection_bytes)
        return ledger

    def _accept(self, utterance: Utterance, chunk: bytes) -> List[bytes]:
        if not chunk:
            return []
        utterance.ledger.accept(chunk)
        return [chunk]

    def _mark_transmitted(self, utterance: Utterance, payload: bytes) -> None:
        utterance.ledger.mark_transmitted(payload)
        self._connection_bytes += len(payload)

    def _unconfirmed(self, utterance: Utterance) -> List[bytes]:
        pending = utterance.ledger.unconfirmed()
        self._connection_bytes += sum(len(chunk) for chunk in pending)
        return pending

    def _on_connected(self, utterance: Optional[Utterance]) -> None:
        self._connection_bytes = 0
        if utterance is not None:
            utterance.ledger.rebase(0)

    def _handle_event(self, utterance: Utterance, event: ProviderEvent) -> None:
        ledger: AudioLedger = utterance.ledger
        if event.processed_until is not None:
            ledger.acknowledge(event.processed_until)

        if event.transcript:
            self._emit_output(event.transcript)

        if event.is_final and ledger.input_ended:
            self._complete(utterance)
