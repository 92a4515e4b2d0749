"""Structured logging configuration using structlog.

Provides JSON-formatted logs with consistent context including:
- command: Editor command that triggered the work (when available)
- invocation_id: Correlation ID for one user invocation (ask, retry, model refresh)
- timestamp: ISO8601 formatted timestamp

Prompt text, response text, and API keys are never logged. Callers pass
structured fields through safe_kv() and debug payloads through
sanitize_for_debug() (see gpthelper.llm.redact).

Usage:
    from gpthelper.logging import get_logger, configure_logging

    # Configure once when the extension host activates
    configure_logging(json_format=False, debug=True)

    # Get a logger for a module
    logger = get_logger(__name__)
    logger.info("something_happened", extra_field="value")
"""

import logging
import sys
from contextvars import ContextVar

import structlog

from gpthelper.config import get_settings

# Context variables for invocation-scoped logging
command_var: ContextVar[str | None] = ContextVar("command", default=None)
invocation_id_var: ContextVar[str | None] = ContextVar("invocation_id", default=None)


def add_invocation_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Add invocation context to all log entries.

    Injects all non-None ContextVar values into the log event dict.
    """
    command = command_var.get()
    invocation_id = invocation_id_var.get()

    if command:
        event_dict["command"] = command
    if invocation_id:
        event_dict["invocation_id"] = invocation_id

    return event_dict


def configure_logging(json_format: bool = True, debug: bool | None = None) -> None:
    """Configure structlog for the extension host.

    Args:
        json_format: If True, output JSON logs. If False, output console-friendly logs.
        debug: If True, emit DEBUG events (sanitized request metadata).
            Defaults to Settings.debug (GPTHELPER_DEBUG).
    """
    if debug is None:
        debug = get_settings().debug

    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_invocation_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)

    # Silence noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger for the given name.

    Args:
        name: Logger name (typically __name__).

    Returns:
        A bound structlog logger.
    """
    return structlog.get_logger(name)


def set_invocation_context(invocation_id: str | None, command: str | None = None) -> None:
    """Set invocation context for the current async context.

    Args:
        invocation_id: Correlation ID for this user invocation.
        command: Editor command name (optional).
    """
    invocation_id_var.set(invocation_id)
    if command is not None:
        command_var.set(command)


def clear_invocation_context() -> None:
    """Clear invocation-scoped context once the command finishes."""
    invocation_id_var.set(None)
    command_var.set(None)
