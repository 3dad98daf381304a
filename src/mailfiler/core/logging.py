"""Structured logging configuration for mailfiler.

Uses structlog for JSON-formatted or console logs to stderr, keeping stdout
free for command output such as rule exports. Supports a
request ID via contextvars so every log line emitted while handling one host
command can be correlated.

Usage:
    from mailfiler.core.logging import get_logger, set_request_id

    logger = get_logger(__name__)

    # In the host command handler:
    set_request_id(str(uuid.uuid4()))

    # Log with automatic request ID inclusion:
    logger.info("rule_created", index=3, folder="Archive/Invoices")
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog

# Context variable for the current host command
_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


def set_request_id(request_id: str | None) -> None:
    """Set the request ID for the current context.

    Args:
        request_id: UUID string for this host command, or None to clear
    """
    _request_id.set(request_id)


def get_request_id() -> str | None:
    """Get the current request ID, if set."""
    return _request_id.get()


def add_request_id(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor to add the request ID to log entries."""
    request_id = get_request_id()
    if request_id is not None:
        event_dict["request_id"] = request_id
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_output: If True, output JSON; if False, output human-readable format
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )
    # basicConfig is a no-op once handlers exist, so later calls set the level directly
    logging.getLogger().setLevel(level)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_request_id,
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        A structlog BoundLogger instance

    Example:
        logger = get_logger(__name__)
        logger.info("rules_loaded", count=12)
    """
    return structlog.get_logger(name)
