"""
Structured Logging with Structlog.

Events are snake_case names with keyword context, rendered as JSON lines (or
coloured console output for local runs). Credentials never reach the output:
redact_secrets masks them whatever logger they were passed to.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from supportdesk.config import settings

# Context keys whose values are credentials
SECRET_KEYS = frozenset(
    {
        "password",
        "confirm_password",
        "hash",
        "hashed_rt",
        "token",
        "access_token",
        "refresh_token",
        "authorization",
        "cookie",
    }
)
REDACTED = "[redacted]"


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp every entry with the service name and version."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    return event_dict


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential-valued keys."""
    for key in SECRET_KEYS.intersection(event_dict):
        if event_dict[key] is not None:
            event_dict[key] = REDACTED
    return event_dict


def build_processors(log_format: str, log_level: str) -> list[Processor]:
    """Processor chain for the given format and level."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    # Console output keeps rich tracebacks while debugging
    if log_level.upper() == "DEBUG" and log_format != "json":
        processors.append(structlog.processors.ExceptionRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def setup_logging() -> None:
    """
    Route structlog through stdlib logging on stdout.

    A JSON entry looks like:
    {
        "event": "token_rotated",
        "level": "info",
        "timestamp": "2026-01-08T12:00:00.123456Z",
        "logger": "supportdesk.services.tokens",
        "service": "supportdesk-api",
        "version": "0.1.0",
        "request_id": "9f2c...",
        "user_id": "..."
    }
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    structlog.configure(
        processors=build_processors(settings.log_format, settings.log_level),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structured logger for a module."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Bind context variables for the duration of a block.

    Usage:
        with log_context(request_id=request_id):
            logger.info("request_started")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
