"""Structured logging configuration for the Uniclass Match Gateway.

This module provides structured JSON logging with per-request context
(request ID, endpoint, batch size) bound through context variables so that
every event emitted while a batch is processed can be correlated.
"""

import logging
import sys
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import FilteringBoundLogger

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_request_context: ContextVar[dict[str, Any]] = ContextVar("request_context", default={})


class StructuredLogger:
    """Structured logging manager.

    Configures structlog on top of the standard library so that library
    loggers (uvicorn, httpx) and application loggers share one output stream.

    Example:
        >>> logger = StructuredLogger()
        >>> logger.setup_logging(json_format=True)
        >>> log = logger.get_logger("my_module")
        >>> log.info("batch_received", size=12)
    """

    def __init__(self):
        self._configured = False

    def setup_logging(
        self,
        json_format: bool = True,
        log_level: str = "INFO",
        extra_processors: list | None = None,
    ) -> None:
        """Setup structured logging configuration.

        Args:
            json_format: Whether to output JSON format (vs. console)
            log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            extra_processors: Additional structlog processors
        """
        if self._configured:
            return

        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=getattr(logging, log_level.upper()),
            force=True,
        )

        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            self._add_correlation_id,
            self._add_request_context,
        ]

        if extra_processors:
            processors.extend(extra_processors)

        processors.extend([
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ])

        if json_format:
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer())

        structlog.configure(
            processors=processors,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        self._configured = True

    def _add_correlation_id(
        self,
        logger: FilteringBoundLogger,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        """Add correlation ID to log events."""
        corr_id = _correlation_id.get()
        if corr_id:
            event_dict["correlation_id"] = corr_id
        return event_dict

    def _add_request_context(
        self,
        logger: FilteringBoundLogger,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        """Add request context to log events."""
        context = _request_context.get()
        if context:
            for key, value in context.items():
                event_dict.setdefault(key, value)
        return event_dict

    def get_logger(self, name: str) -> FilteringBoundLogger:
        """Get a logger instance.

        Args:
            name: Logger name (usually module name)

        Returns:
            Configured structlog logger
        """
        if not self._configured:
            self.setup_logging()
        return structlog.get_logger(name)


_structured_logger: StructuredLogger | None = None


def get_logger(name: str) -> FilteringBoundLogger:
    """Get a structured logger."""
    global _structured_logger
    if _structured_logger is None:
        _structured_logger = StructuredLogger()
    return _structured_logger.get_logger(name)


def setup_logging(
    json_format: bool = True,
    log_level: str = "INFO",
    **kwargs: Any,
) -> StructuredLogger:
    """Setup structured logging globally.

    Args:
        json_format: Whether to output JSON
        log_level: Minimum log level
        **kwargs: Additional configuration

    Returns:
        Configured StructuredLogger
    """
    global _structured_logger
    _structured_logger = StructuredLogger()
    _structured_logger.setup_logging(
        json_format=json_format,
        log_level=log_level,
        **kwargs,
    )
    return _structured_logger


def update_request_context(**kwargs: Any) -> None:
    """Update request context with new values.

    The stored dict is copied so that concurrent requests sharing the
    default value never see each other's keys.
    """
    current = dict(_request_context.get())
    current.update(kwargs)
    _request_context.set(current)


def clear_request_context() -> None:
    """Clear the request context."""
    _request_context.set({})


@contextmanager
def correlation_id_scope(correlation_id: str) -> Generator[None, None, None]:
    """Context manager for correlation ID scope.

    Example:
        >>> with correlation_id_scope("abc-123"):
        ...     logger.info("processing")
    """
    token = _correlation_id.set(correlation_id)
    try:
        yield
    finally:
        _correlation_id.reset(token)

