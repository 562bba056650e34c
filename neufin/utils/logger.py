"""
NEUFIN — Structured Logging
structlog key/value events. JSON lines in production, console output when
DEBUG is set.
"""
import logging
import sys
from typing import Optional

import structlog

from neufin.config.settings import get_settings

# Third-party loggers that are chatty at INFO
_NOISY_LOGGERS = ("aiohttp.access", "httpx", "openai", "sqlalchemy.engine")


def setup_logging(level: Optional[str] = None) -> None:
    """Configure structlog and the stdlib root logger. `level` overrides LOG_LEVEL."""
    settings = get_settings()
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    renderer = structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Named logger; the name is bound as `component` on every event."""
    return structlog.get_logger(name or "neufin", component=name or "neufin")
