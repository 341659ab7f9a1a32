"""
Fallback Orchestrator
=====================

Wraps an ordered list of adapter factories behind the adapter interface.
One adapter is active at a time. When it reports a terminal failure the
orchestrator destroys it, builds the next one (wrapping around to the first)
and resubmits whatever input the failed adapter never got confirmed.

Because the orchestrator is itself an adapter, fallbacks can be nested.

Usage:
    tts = FallbackTTS([
        lambda logger: CartesiaTTS(cartesia_options, logger),
        lambda logger: ElevenLabsTTS(elevenlabs_options, logger),
    ])
    tts.subscribe(output)
    tts.speak(text_stream)
"""

from typing import Generic, List, Optional, Sequence

from structlog.typing import FilteringBoundLogger

from voice_relay.adapters.base import (
    AdapterFactory,
    InputT,
    OutputT,
    SpeechAdapter,
    STTAdapter,
    TTSAdapter,
)
from voice_relay.core.errors import ConfigurationError
from voice_relay.streams import AdapterFailure, InputStream


class _ChildListener(Generic[InputT, OutputT]):
    """Relays events of one child adapter, tagged with that child's identity."""

    def __init__(self, owner: "FallbackAdapter[InputT, OutputT]", adapter: SpeechAdapter):
        self._owner = owner
        self._adapter = adapter

    def on_output(self, output: OutputT) -> None:
        self._owner._on_child_output(self._adapter, output)

    def on_failed(self, failure: AdapterFailure[InputT]) -> None:
        self._owner._on_child_failed(self._adapter, failure)


class FallbackAdapter(SpeechAdapter[InputT, OutputT]):
    """
    Provider failover across adapter factories.

    Args:
        factories: Adapter factories, tried in order; each receives the
            logger its adapter must use
        max_cycles: Give up after this many full rounds of consecutive
            failures without output in between. None retries forever.
        logger: Logger of the orchestrator itself
    """

    def __init__(
        self,
        factories: Sequence[AdapterFactory[SpeechAdapter[InputT, OutputT]]],
        max_cycles: Optional[int] = None,
        logger: Optional[FilteringBoundLogger] = None,
    ):
        if not factories:
            raise ConfigurationError(f"{type(self).__name__}: no factories provided")
        if max_cycles is not None and max_cycles < 1:
            raise ConfigurationError("max_cycles must be at least 1", details={"max_cycles": max_cycles})

        super().__init__(logger)
        self._factories: List[AdapterFactory] = list(factories)
        self._max_cycles = max_cycles
        self._index = -1
        self._adapter: Optional[SpeechAdapter[InputT, OutputT]] = None
        self._failures = 0
        self._start_next()

    @property
    def adapter(self) -> Optional[SpeechAdapter[InputT, OutputT]]:
        """The active adapter; None once destroyed or given up."""
        return self._adapter

    @property
    def index(self) -> int:
        return self._index

    def submit(self, stream: InputStream[InputT]) -> None:
        if self._adapter is None:
            self.logger.warning("submit_ignored", destroyed=self._destroyed)
            return
        self._adapter.submit(stream)

    def cancel(self) -> None:
        if self._adapter is not None:
            self._adapter.cancel()

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self.logger.info("adapter_destroyed")
        adapter, self._adapter = self._adapter, None
        if adapter is not None:
            adapter.destroy()
        self._index = -1
        self._listener = None

    # -------------------------------------------------------------------------
    # Switching
    # -------------------------------------------------------------------------

    def _start_next(self) -> None:
        self._index = (self._index + 1) % len(self._factories)

        previous, self._adapter = self._adapter, None
        if previous is not None:
            previous.destroy()

        adapter = self._factories[self._index](
            self.logger.bind(fallback=self.provider_name, fallback_index=self._index)
        )
        adapter.subscribe(_ChildListener(self, adapter))
        self._adapter = adapter
        self.logger.info("adapter_activated", index=self._index, adapter=adapter.provider_name)

    def _on_child_output(self, adapter: SpeechAdapter, output: OutputT) -> None:
        if adapter is not self._adapter:
            return
        self._failures = 0
        self._emit_output(output)

    def _on_child_failed(self, adapter: SpeechAdapter, failure: AdapterFailure[InputT]) -> None:
        if adapter is not self._adapter:
            return
        self._failures += 1
        self.logger.warning(
            "adapter_failed_trying_next",
            failed=failure.provider,
            consecutive_failures=self._failures,
        )

        if self._max_cycles is not None and self._failures >= self._max_cycles * len(self._factories):
            self.logger.error("all_adapters_failed", cycles=self._max_cycles)
            self._adapter = None
            adapter.destroy()
            self._emit_failed(
                AdapterFailure(pending=failure.pending, stream=failure.stream, provider=self.provider_name)
            )
            return

        self._start_next()

        if failure.has_input:
            if failure.stream is not None:
                stream = failure.stream
                stream.unread(failure.pending)
            else:
                stream = InputStream.of(failure.pending)
            self.logger.info("replaying_pending_input", chunks=len(failure.pending))
            self._adapter.submit(stream)


class FallbackTTS(FallbackAdapter[str, bytes], TTSAdapter):
    """Text-to-speech failover."""


class FallbackSTT(FallbackAdapter[bytes, str], STTAdapter):
    """Speech-to-text failover."""
