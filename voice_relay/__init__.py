"""
Voice Relay
===========

Resilience layer for streaming text-to-speech and speech-to-text providers.

Quick Start:
    from voice_relay import FallbackTTS, InputStream, OutputStream, setup_logging
    from voice_relay.providers import CartesiaTTS, ElevenLabsTTS

    setup_logging()
    tts = FallbackTTS([
        lambda logger: CartesiaTTS(cartesia_options, logger),
        lambda logger: ElevenLabsTTS(elevenlabs_options, logger),
    ])
    output = OutputStream()
    tts.subscribe(output)
    tts.speak(InputStream.of(["Hello ", "world."]))

Features:
    - Reconnect with fixed backoff and replay of unconfirmed input
    - Failover across providers without losing unconfirmed input
    - Epoch filtering of stale provider messages
    - Word-boundary chunking and alignment-based completion
"""

__version__ = "1.0.0"

from .config import (
    CartesiaOptions,
    DeepgramOptions,
    ElevenLabsOptions,
    LoggingSettings,
    MockOptions,
    ReconnectSettings,
)
from .core.errors import (
    AdapterFailedError,
    ConfigurationError,
    InputStreamError,
    MalformedMessageError,
    ProviderConnectionError,
    StreamClosedError,
    VoiceRelayError,
)
from .core.logging import get_logger, setup_logging
from .adapters.base import AdapterFactory, AdapterListener, SpeechAdapter, STTAdapter, TTSAdapter
from .fallback import FallbackAdapter, FallbackSTT, FallbackTTS
from .streams import AdapterFailure, AudioStream, InputStream, OutputStream, TextStream

__all__ = [
    # Configuration
    "ReconnectSettings",
    "LoggingSettings",
    "CartesiaOptions",
    "ElevenLabsOptions",
    "DeepgramOptions",
    "MockOptions",
    # Errors
    "VoiceRelayError",
    "ConfigurationError",
    "ProviderConnectionError",
    "MalformedMessageError",
    "InputStreamError",
    "StreamClosedError",
    "AdapterFailedError",
    # Logging
    "setup_logging",
    "get_logger",
    # Adapters
    "AdapterFactory",
    "AdapterListener",
    "SpeechAdapter",
    "TTSAdapter",
    "STTAdapter",
    "FallbackAdapter",
    "FallbackTTS",
    "FallbackSTT",
    # Streams
    "InputStream",
    "TextStream",
    "AudioStream",
    "OutputStream",
    "AdapterFailure",
]
