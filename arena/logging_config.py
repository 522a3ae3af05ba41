"""Structured logging configuration using structlog.

Engine modules log event names with key/value context, e.g.

    logger.warning("snapshot_read_failed", game_id=7, round=2, kind="end")

A poll cycle or HTTP request runs inside ``log_context`` so every ledger
read it triggers carries the same ``game_id``/``cycle`` or ``request_id``.
JSON output in production, colored console output otherwise.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from structlog.types import Processor

from arena.config import Settings

# stdlib loggers that would otherwise log every ledger request
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def configure_logging(settings: Settings) -> None:
    """Configure structlog from settings and bridge stdlib logging through it.

    ``tenacity`` retry warnings and ``uvicorn`` output render through the
    same processor chain as engine events.
    """
    use_json = settings.app_env == "production"

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if use_json:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        shared_processors.append(structlog.dev.set_exc_info)
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("round_projected", game_id=3, round=2, eliminated=1)
    """
    return structlog.get_logger(name)


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Bind ``kwargs`` to every log call inside the block, then restore."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
