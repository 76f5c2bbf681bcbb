"""Structured logging for the client core.

All modules log through structlog with snake_case event names. A running
flow binds its name (and request key, where one exists) into
structlog.contextvars, so ledger events emitted while it awaits are
attributable without threading the name through every call.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

# Libraries whose DEBUG output drowns the client's own events
_QUIET_LOGGERS = ("web3", "urllib3", "aiohttp")


def _renderer() -> structlog.types.Processor:
    """Pick the renderer from LOG_FORMAT, falling back to TTY detection."""
    log_format = os.environ.get("LOG_FORMAT", "").lower()
    if not log_format:
        log_format = "console" if sys.stderr.isatty() else "json"
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(log_level: str = "INFO") -> None:
    """Route structlog and stdlib logging through one formatter.

    Args:
        log_level: Root level name, e.g. "DEBUG". Unknown names mean INFO.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def flow_context(flow: str, **extra: str) -> Iterator[None]:
    """Bind ``flow`` (and any extra keys) to every log event in this task."""
    with structlog.contextvars.bound_contextvars(flow=flow, **extra):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
