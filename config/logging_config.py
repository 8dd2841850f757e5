"""
Structured logging setup.

Call configure_logging() once from the host process before evaluating
batches. Modules obtain loggers with structlog.get_logger(__name__).
"""

import logging
import sys
import structlog

from config.settings import settings


def configure_logging(log_level: str = None) -> None:
    """
    Configure structlog on top of stdlib logging.

    Args:
        log_level: Override for settings.log_level
    """
    level = (log_level or settings.log_level).upper()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer() if settings.is_production
                else structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
