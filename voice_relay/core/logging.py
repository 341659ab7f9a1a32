"""
Logging Configuration

Structured logging setup shared by every adapter. Adapters never look up
their logger lazily; they receive a bound logger at construction time so the
fallback orchestrator can hand each child a logger naming its provider.
"""

import logging
import sys
import time
from typing import Any, Dict, Optional

import structlog
from structlog.typing import FilteringBoundLogger

from voice_relay.config import LogFormat, LoggingSettings


_STARTED_AT = time.monotonic()


def _add_uptime(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Stamp each entry with seconds since the process imported the package."""
    event_dict["uptime"] = f"{time.monotonic() - _STARTED_AT:.3f}"
    return event_dict


# =============================================================================
# Logger Setup
# =============================================================================


def setup_logging(settings: Optional[LoggingSettings] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        settings: Logging settings; read from the environment when omitted
    """
    settings = settings or LoggingSettings()
    level = getattr(logging, settings.level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    # websockets logs every frame at DEBUG
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    if settings.format == LogFormat.JSON:
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            _add_uptime,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.get_logger(__name__).info(
        "logging_configured",
        level=settings.level,
        format=settings.format.value,
    )


def get_logger(name: str, **context: Any) -> FilteringBoundLogger:
    """
    Get a structlog logger with the given name and initial context.

    Args:
        name: Logger name (typically __name__)
        **context: Key/value pairs bound to every entry

    Returns:
        Bound logger instance
    """
    return structlog.get_logger(name).bind(**context)


__all__ = [
    "LogFormat",
    "setup_logging",
    "get_logger",
]
