"""Structured logging configuration using structlog.

Provides JSON-formatted logs with correlation IDs, timestamps, and context.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger


def _app_context(app_name: str, environment: str) -> Processor:
    def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("app", app_name)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_app_context


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    service_name: Optional[str] = None,
    environment: str = "production",
) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output logs in JSON format
        service_name: Name of the service for log tagging
        environment: Deployment environment added to every entry
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        _app_context(service_name or "electronic-store-api", environment),
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
        force=True,
    )


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to all subsequent log entries in this context.

    Args:
        **kwargs: Context key-value pairs to bind
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all context variables."""
    structlog.contextvars.clear_contextvars()
