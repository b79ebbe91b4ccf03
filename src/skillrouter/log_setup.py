"""Logging setup for skillrouter.

structlog for structured output, with stdlib logging configured alongside
so module loggers created via ``logging.getLogger(__name__)`` share the level.
"""

from __future__ import annotations

import logging

import structlog

from skillrouter.config import Settings, get_settings


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structured logging."""
    settings = settings or get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer()
            if settings.env == "development"
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Also configure standard logging for module loggers and third-party libs
    logging.basicConfig(
        level=logging.getLevelName(settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
