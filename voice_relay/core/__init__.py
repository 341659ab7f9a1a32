"""
Core utilities: error taxonomy and structured logging.
"""

from .errors import (
    AdapterFailedError,
    ConfigurationError,
    InputStreamError,
    MalformedMessageError,
    ProviderConnectionError,
    StreamClosedError,
    VoiceRelayError,
)
from .logging import get_logger, setup_logging

__all__ = [
    "VoiceRelayError",
    "ConfigurationError",
    "ProviderConnectionError",
    "MalformedMessageError",
    "InputStreamError",
    "StreamClosedError",
    "AdapterFailedError",
    "get_logger",
    "setup_logging",
]
