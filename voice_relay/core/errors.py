"""
Voice Relay Exceptions

Error taxonomy for the resilience layer. Transient connection failures are
recovered inside an adapter, terminal adapter failures are recovered by the
fallback orchestrator, and everything else is reported here.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from voice_relay.streams import AdapterFailure


class VoiceRelayError(Exception):
    """Base exception for voice relay operations."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        provider: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "VOICE_RELAY_ERROR"
        self.provider = provider
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "provider": self.provider,
            "details": self.details,
        }


class ConfigurationError(VoiceRelayError):
    """Invalid configuration, raised at construction time."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="CONFIGURATION_ERROR", **kwargs)


class ProviderConnectionError(VoiceRelayError):
    """Failed to connect to provider."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="PROVIDER_CONNECTION_ERROR", **kwargs)


class MalformedMessageError(VoiceRelayError):
    """A provider frame could not be decoded."""

    def __init__(self, message: str, raw: Any = None, **kwargs):
        super().__init__(message, code="MALFORMED_MESSAGE", **kwargs)
        self.raw = raw


class InputStreamError(VoiceRelayError):
    """The upstream producer of an input stream reported an error."""

    def __init__(self, message: str, cause: Optional[BaseException] = None, **kwargs):
        super().__init__(message, code="INPUT_STREAM_ERROR", **kwargs)
        self.cause = cause


class StreamClosedError(VoiceRelayError):
    """Write attempted on an input stream that has already ended."""

    def __init__(self, message: str = "Input stream already ended", **kwargs):
        super().__init__(message, code="STREAM_CLOSED", **kwargs)


class AdapterFailedError(VoiceRelayError):
    """An adapter gave up; carries the input it could not confirm."""

    def __init__(self, failure: "AdapterFailure", **kwargs):
        super().__init__(
            "Adapter failed",
            code="ADAPTER_FAILED",
            details={"pending_chunks": len(failure.pending)},
            **kwargs,
        )
        self.failure = failure


__all__ = [
    "VoiceRelayError",
    "ConfigurationError",
    "ProviderConnectionError",
    "MalformedMessageError",
    "InputStreamError",
    "StreamClosedError",
    "AdapterFailedError",
]
