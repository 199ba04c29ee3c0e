"""Structured logging configuration for mboxkit.

Uses structlog on top of the standard library logging module. Supports an
operation ID via contextvars so every log line emitted while parsing,
splitting or merging one archive can be traced back to that operation.

Usage:
    from mboxkit.core.logging import get_logger, set_operation_id

    logger = get_logger(__name__)

    # In the archive engine:
    set_operation_id(str(uuid.uuid4()))

    # Log with automatic operation ID inclusion:
    logger.info("archive_parsed", path="inbox.mbox", messages=1200)
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog

# Context variable for the current engine operation
_operation_id: ContextVar[str | None] = ContextVar("operation_id", default=None)


def set_operation_id(operation_id: str | None) -> None:
    """Set the operation ID for the current context.

    Args:
        operation_id: UUID string for this operation, or None to clear
    """
    _operation_id.set(operation_id)


def get_operation_id() -> str | None:
    """Get the current operation ID, if set."""
    return _operation_id.get()


def add_operation_id(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor to add the operation ID to log entries."""
    operation_id = _operation_id.get()
    if operation_id is not None:
        event_dict["operation_id"] = operation_id
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_output: If True, output JSON; if False, output human-readable format
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_operation_id,
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
        logger.info("split_complete", groups=12, strategy="by_count")
    """
    return structlog.get_logger(name)
