"""
Provider adapters.

The shared machinery every provider builds on: the adapter interface, the
reconnect state machine, sent ledgers, and the chunking and completion
policies a provider framing picks from.
"""

from .base import (
    AdapterFactory,
    AdapterListener,
    SpeechAdapter,
    STTAdapter,
    TTSAdapter,
)
from .chunking import ChunkingPolicy, EagerChunking, WordBoundaryChunking
from .completion import AlignmentCompletion, CompletionPolicy, ProviderCompletion
from .connection import ConnectionState, ProviderConnection
from .framing import ProviderEvent, ProviderFraming, STTFraming, TTSFraming
from .ledger import AudioLedger, TextLedger
from .streaming import StreamingAdapter, StreamingSTT, StreamingTTS, Utterance

__all__ = [
    # Interface
    "AdapterFactory",
    "AdapterListener",
    "SpeechAdapter",
    "TTSAdapter",
    "STTAdapter",
    # Policies
    "ChunkingPolicy",
    "EagerChunking",
    "WordBoundaryChunking",
    "CompletionPolicy",
    "ProviderCompletion",
    "AlignmentCompletion",
    # Ledgers
    "TextLedger",
    "AudioLedger",
    # Machinery
    "ConnectionState",
    "ProviderConnection",
    "ProviderEvent",
    "ProviderFraming",
    "TTSFraming",
    "STTFraming",
    "StreamingAdapter",
    "StreamingTTS",
    "StreamingSTT",
    "Utterance",
]
