"""Structlog configuration for the town backend.

Modules obtain loggers through ``get_logger(__name__)`` and log with keyword
context, for example ``logger.info("Member added", town=name, player=player)``.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog
from structlog.stdlib import BoundLogger, LoggerFactory


def configure_logging(level: str = "INFO", json_output: bool = False, stream: TextIO | None = None) -> None:
    """Configure stdlib logging and structlog for the process."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=stream or sys.stdout, level=log_level, force=True)

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> BoundLogger:
    return structlog.get_logger(name)
