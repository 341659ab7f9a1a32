"""
Adapter capability interface.

Every provider adapter, and the fallback orchestrator itself, implements
``SpeechAdapter``: accept an input stream, emit outputs, report terminal
failure. TTS adapters take text and emit audio bytes; STT adapters take audio
bytes and emit transcript text.
"""

from abc import ABC, abstractmethod
from typing import Generic, Optional, Protocol, TypeVar

from structlog.typing import FilteringBoundLogger

from voice_relay.core.logging import get_logger
from voice_relay.streams import AdapterFailure, InputStream

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")
A = TypeVar("A", bound="SpeechAdapter", covariant=True)


class AdapterListener(Protocol[InputT, OutputT]):
    """The two events an adapter emits."""

    def on_output(self, output: OutputT) -> None:
        ...

    def on_failed(self, failure: AdapterFailure[InputT]) -> None:
        ...


class AdapterFactory(Protocol[A]):
    """Builds a fresh adapter around an injected logger."""

    def __call__(self, logger: FilteringBoundLogger) -> A:
        ...


class SpeechAdapter(ABC, Generic[InputT, OutputT]):
    """
    Abstract streaming speech adapter.

    Outputs go to a single subscribed listener. A destroyed adapter drops its
    listener, so nothing it still receives reaches the caller.
    """

    def __init__(self, logger: Optional[FilteringBoundLogger] = None):
        self.logger = (logger or get_logger(type(self).__module__)).bind(
            provider=self.provider_name
        )
        self._listener: Optional[AdapterListener[InputT, OutputT]] = None
        self._destroyed = False

    @property
    def provider_name(self) -> str:
        return type(self).__name__

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def subscribe(self, listener: Optional[AdapterListener[InputT, OutputT]]) -> None:
        """Attach the listener receiving output and failure events."""
        self._listener = listener

    @abstractmethod
    def submit(self, stream: InputStream[InputT]) -> None:
        """Start a new utterance fed by ``stream``, superseding any current one."""

    @abstractmethod
    def cancel(self) -> None:
        """Abort the current utterance. No-op while idle."""

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self.logger.info("adapter_destroyed")
        self.cancel()
        self._listener = None

    def _emit_output(self, output: OutputT) -> None:
        if self._listener is not None:
            self._listener.on_output(output)

    def _emit_failed(self, failure: AdapterFailure[InputT]) -> None:
        if self._listener is not None:
            self._listener.on_failed(failure)


class TTSAdapter(SpeechAdapter[str, bytes]):
    """Text in, audio out."""

    def speak(self, text_stream: InputStream[str]) -> None:
        self.submit(text_stream)


class STTAdapter(SpeechAdapter[bytes, str]):
    """Audio in, transcript out."""

    def transcribe(self, audio_stream: InputStream[bytes]) -> None:
        self.submit(audio_stream)
