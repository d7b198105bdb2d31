"""structlog configuration.

Learn: Every module grabs `structlog.get_logger()` and logs dotted event
names with keyword context (`logger.info("auth.login_succeeded",
account_id=...)`). This module wires the processor chain once at startup:
contextvars (request_id from RequestIdMiddleware), level, timestamp,
then JSON in production or pretty console output in development.
"""

import logging
import sys

import structlog

from wayfarer.config import Settings, settings as default_settings


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog + stdlib logging for the process."""
    settings = settings or default_settings
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.log_json:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # uvicorn / sqlalchemy still log through stdlib
    logging.basicConfig(level=level, stream=sys.stdout, format="%(message)s")
