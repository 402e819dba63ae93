"""structlog setup shared by the dispatcher and the CLI tools.

The dispatcher logs to stdout, which pm2 collects. CLI tools that print
results (secrets, JSON) on stdout pass ``stream=sys.stderr`` instead.
"""

import logging
import sys
from typing import TextIO

import structlog


def setup_logging(
    json_output: bool = False,
    log_level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Point structlog (and stdlib logging) at ``stream``.

    Args:
        json_output: One JSON object per line instead of console key/values.
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        stream: Where log lines go; stdout when omitted.
    """
    stream = stream or sys.stdout
    level = getattr(logging, log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        isatty = getattr(stream, "isatty", None)
        processors.append(structlog.dev.ConsoleRenderer(colors=bool(isatty and isatty())))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        # Not cached: a later setup_logging() call must redirect every logger
        cache_logger_on_first_use=False,
    )

    # urllib3 in the trigger client
    root = logging.getLogger()
    root.handlers = [logging.StreamHandler(stream)]
    root.setLevel(level)


def get_logger(name: str) -> structlog.BoundLogger:
    """Lazy logger carrying ``logger_name``; configuration is resolved per call."""
    return structlog.get_logger(logger_name=name)
