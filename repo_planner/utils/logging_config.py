"""
Logging configuration using structlog for structured, JSON-based logging.

This module provides centralized logging setup for the bot, used by both the
CLI and the webhook server.
"""

from typing import Any

import structlog


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging with JSON output.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level.upper()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_run_context(**context: Any) -> None:
    """Bind identifiers of the current pipeline run to every log line.

    Example:
        >>> bind_run_context(owner="acme", repo="api", issue=12)
        >>> log.info("ingestion_started")  # carries owner/repo/issue
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**context)
