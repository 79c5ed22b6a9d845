# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Log rendering for SchoolLink.

The data layer and the feed log through ``logging.getLogger(__name__)``
with %-style arguments. setup_logging installs a structlog
ProcessorFormatter on the root handler so those records come out as
JSON outside development, and as console lines in development, carrying
whatever session context was bound with bind_context.

Example:
    >>> from src.utils.logging import setup_logging, bind_context
    >>> from src.core.config import get_settings
    >>> setup_logging(get_settings())
    >>> bind_context(user_id="stu-1")
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from src.core.config.settings import Settings

# Client libraries that are chatty at DEBUG level
_NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "google.api_core",
    "google.auth",
    "google.cloud.firestore",
    "grpc",
    "asyncio",
    "urllib3",
)


def _render_chain(settings: "Settings") -> list[Processor]:
    if settings.is_development or settings.debug:
        return [structlog.dev.ConsoleRenderer(colors=True)]
    # Tracebacks become a string field so each record stays one JSON line
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def setup_logging(settings: "Settings") -> None:
    """Replace the root handler with a structlog-rendering one.

    Args:
        settings: Supplies log_level and, through environment and
            debug, the choice between console and JSON output.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_render_chain(settings),
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("src").setLevel(log_level)


def bind_context(**kwargs: object) -> None:
    """Attach fields to every following log record of this context.

    Example:
        >>> bind_context(user_id="stu-1")
        >>> logger.info("Fetching homework")  # record carries user_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop all bound fields; called on sign-out."""
    structlog.contextvars.clear_contextvars()
