"""
CryptoTerminal - Structured Logging Configuration

Uses structlog for structured, JSON-formatted logging with context.
Both API keys travel as ``key=`` query parameters, so every event passes
through ``redact_secrets`` before it is rendered.
"""

import logging
import re
import sys
from typing import Any

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from cryptoterminal.config import settings

SECRET_FIELDS = frozenset({"api_key", "key", "lunarcrush_api_key", "gemini_api_key"})

# key=... inside URLs and error messages
SECRET_QUERY_PATTERN = re.compile(r"([?&]key=)[^&\s\"'<>]+")


def mask_secret(value: str) -> str:
    """Keep a short prefix for debugging, e.g. ``AIza...``."""
    return f"{value[:4]}..." if len(value) > 8 else "***"


def redact_secrets(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask API keys in key-named fields and in ``key=`` query strings."""
    for field, value in event_dict.items():
        if field in SECRET_FIELDS and isinstance(value, str) and value:
            event_dict[field] = mask_secret(value)
        elif isinstance(value, str) and "key=" in value:
            event_dict[field] = SECRET_QUERY_PATTERN.sub(r"\1***", value)
    return event_dict


def setup_logging() -> None:
    """Configure structured logging for the application."""

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]

    if settings.debug:
        # Development: colorful console output
        processors: list[Processor] = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]
    else:
        # Production: JSON output
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Standard library logging for third-party libs
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    # httpx logs every request URL, which carries API keys as query params
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a bound logger with optional initial context.

    Args:
        name: Logger name (usually __name__)
        **initial_context: Initial context key-value pairs

    Returns:
        Bound logger instance
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def get_mcp_logger() -> structlog.BoundLogger:
    """Get logger for MCP session components."""
    return get_logger("cryptoterminal.mcp", component="mcp")


def get_llm_logger() -> structlog.BoundLogger:
    """Get logger for the model gateway."""
    return get_logger("cryptoterminal.llm", component="llm")


def get_orchestrator_logger() -> structlog.BoundLogger:
    """Get logger for the orchestration driver."""
    return get_logger("cryptoterminal.orchestrator", component="orchestrator")


def get_api_logger() -> structlog.BoundLogger:
    """Get logger for API components."""
    return get_logger("cryptoterminal.api", component="api")
