"""structlog setup shared by the library and the CLI.

Library code never configures logging itself; it asks for a logger with
``get_logger`` and binds per-address context onto it. The CLI calls
``configure_logging`` once at startup.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

ENV_DEBUG = "CHAINMAP_DEBUG"


def _debug_enabled() -> bool:
    val = os.environ.get(ENV_DEBUG, "").lower()
    return val in ("true", "1", "yes", "on")


def configure_logging(debug: bool | None = None) -> None:
    """Configure structlog to render to stderr.

    Args:
        debug: Force debug level. Defaults to the CHAINMAP_DEBUG env var.
    """
    if debug is None:
        debug = _debug_enabled()
    level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.typing.BindableLogger:
    """Return a logger namespaced under ``chainmap``."""
    return structlog.get_logger(f"chainmap.{name}")
