"""Structured logging configuration.

Learn: the API logs through structlog everywhere (``structlog.get_logger()``
with dotted event names and keyword context). ``configure_logging`` sends
stdlib logging (uvicorn, hypercorn, redis) through the same processor chain
so every line renders the same way, console in development, JSON in
production.
"""

import logging
import sys
import typing

import structlog

LEVELS = ("debug", "info", "warning", "error", "critical")


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
) -> None:
    """Configure structlog and route stdlib logging through it."""
    if isinstance(level, str):
        level = level.upper()

    shared_processors: list[typing.Callable] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    # uvicorn.access duplicates the request logging stage
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def log_at(logger, level: str, message: str, **kw) -> None:
    """Call ``logger.<level>(message)``, falling back to info for unknown levels."""
    level = (level or "info").lower()
    if level not in LEVELS:
        level = "info"
    getattr(logger, level)(message, **kw)
