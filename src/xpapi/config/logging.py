"""structlog configuration for xpapi.

Two output modes:
- Human (default): colored console output to stderr
- JSON (--log-json): structured JSON lines to stderr

Verbosity maps the classic fatal/warn/info/debug levels onto stdlib
logging: 0 = fatal only, 1 = warnings, 2 = info, 3 = debug.
"""

from __future__ import annotations

import logging
import sys

import structlog

VERBOSITY_LEVELS = {
    0: logging.CRITICAL,
    1: logging.WARNING,
    2: logging.INFO,
    3: logging.DEBUG,
}


def level_for(verbosity: int) -> int:
    """Clamp *verbosity* into 0-3 and return the matching logging level."""
    return VERBOSITY_LEVELS[max(0, min(3, verbosity))]


def configure_logging(
    *,
    verbosity: int = 1,
    log_json: bool = False,
) -> None:
    """Configure structlog processors and output routing.

    Args:
        verbosity: 0-3, gates what the ``xpapi`` loggers emit.
        log_json: Use JSON renderer instead of console renderer.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)

    logging.getLogger("xpapi").setLevel(level_for(verbosity))
    logging.getLogger("uvicorn.access").setLevel(
        logging.INFO if verbosity >= 2 else logging.WARNING
    )
