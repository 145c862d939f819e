# src/relstore/infrastructure/logging.py
import logging
import os
import sys

import structlog

LOG_LEVEL = os.getenv("RELSTORE_LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("RELSTORE_LOG_JSON", "true").lower() == "true"


def configure_structlog(level: str = LOG_LEVEL, json_output: bool = LOG_JSON) -> None:
    """Process-wide structlog setup; called by entry points, never by the library."""
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )
