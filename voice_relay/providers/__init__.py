"""
Bundled providers.
"""

from .cartesia import CartesiaFraming, CartesiaTTS
from .deepgram import DeepgramFraming, DeepgramSTT
from .elevenlabs import ElevenLabsFraming, ElevenLabsTTS
from .mock import MockSTT, MockSTTFraming, MockTTS, MockTTSFraming

__all__ = [
    "CartesiaFraming",
    "CartesiaTTS",
    "ElevenLabsFraming",
    "ElevenLabsTTS",
    "DeepgramFraming",
    "DeepgramSTT",
    "MockTTSFraming",
    "MockTTS",
    "MockSTTFraming",
    "MockSTT",
]
