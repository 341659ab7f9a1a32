"""
Configuration for the voice relay.

Reconnect tuning and logging are settings objects that can also be read from
the environment. Provider credentials and model parameters are plain option
models handed to each adapter at construction time.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    CONSOLE = "console"


class ReconnectSettings(BaseSettings):
    """Reconnect/backoff policy of a single provider adapter."""

    model_config = SettingsConfigDict(env_prefix="VOICE_RELAY_RECONNECT_")

    retry_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Fixed delay before each reconnect attempt",
    )
    max_retry: int = Field(
        default=3,
        ge=0,
        description="Failed attempts tolerated before the adapter gives up",
    )

    @property
    def retry_delay(self) -> float:
        """Reconnect delay in seconds."""
        return self.retry_delay_ms / 1000


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="VOICE_RELAY_LOG_")

    level: str = Field(default="info", description="Minimum log level")
    format: LogFormat = Field(default=LogFormat.CONSOLE, description="Renderer")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"debug", "info", "warning", "error", "critical"}
        if v.lower() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.lower()


# =============================================================================
# Provider Options
# =============================================================================


class ProviderOptions(BaseModel):
    """Options shared by every network provider."""

    api_key: str = Field(..., min_length=1, description="Provider API key")
    reconnect: ReconnectSettings = Field(default_factory=ReconnectSettings)


class CartesiaOptions(ProviderOptions):
    """Cartesia streaming TTS options."""

    model_id: str = "sonic-turbo"
    voice_id: str
    language: Optional[str] = None
    speed: Optional[str] = Field(default=None, pattern="^(fast|normal|slow)$")
    sample_rate: int = 16000
    encoding: str = "pcm_s16le"
    api_version: str = "2025-04-16"
    url: str = "wss://api.cartesia.ai/tts/websocket"


class ElevenLabsOptions(ProviderOptions):
    """ElevenLabs stream-input TTS options."""

    voice_id: str
    model_id: str = "eleven_flash_v2_5"
    output_format: str = "pcm_16000"
    language: Optional[str] = None
    voice_settings: Dict[str, Any] = Field(default_factory=dict)
    inactivity_timeout: int = Field(default=180, ge=5, le=180)
    url: str = "wss://api.elevenlabs.io/v1/text-to-speech"


class DeepgramOptions(ProviderOptions):
    """Deepgram live transcription options."""

    model: str = "nova-2"
    language: str = "en-US"
    encoding: str = "linear16"
    sample_rate: int = 16000
    channels: int = 1
    punctuate: bool = True
    keepalive_interval: float = Field(default=8.0, gt=0)
    url: str = "wss://api.deepgram.com/v1/listen"

    @property
    def bytes_per_second(self) -> int:
        """Byte rate of the linear16 input stream."""
        return self.sample_rate * 2 * self.channels


class MockOptions(BaseModel):
    """In-process mock provider options."""

    reconnect: ReconnectSettings = Field(default_factory=ReconnectSettings)
    auto_respond: bool = Field(default=True, description="Answer every frame immediately")
    refuse_connections: bool = Field(default=False, description="Fail every connect attempt")
    bytes_per_second: int = Field(default=32000, gt=0)


__all__ = [
    "LogFormat",
    "ReconnectSettings",
    "LoggingSettings",
    "ProviderOptions",
    "CartesiaOptions",
    "ElevenLabsOptions",
    "DeepgramOptions",
    "MockOptions",
]
