"""structlog setup.

Events are dotted (``dashboard.refresh_completed``) and carry the current
``request_id`` and ``refresh_id`` when one is set. Auto refresh runs outside
any request, so refresh cycles get their own id.
"""

import logging
import uuid
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog

from app.core.config import get_settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
refresh_id_ctx: ContextVar[str | None] = ContextVar("refresh_id", default=None)

_CORRELATION_VARS = (("request_id", request_id_ctx), ("refresh_id", refresh_id_ctx))


def add_correlation_ids(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Copy whichever correlation ids are set into the event."""
    for key, var in _CORRELATION_VARS:
        value = var.get()
        if value:
            event_dict[key] = value
    return event_dict


@contextmanager
def refresh_scope() -> Iterator[str]:
    """Tag every event logged inside the block with a fresh refresh id."""
    refresh_id = uuid.uuid4().hex[:12]
    token = refresh_id_ctx.set(refresh_id)
    try:
        yield refresh_id
    finally:
        refresh_id_ctx.reset(token)


def _renderer(log_format: str, colors: bool) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=colors)


def configure_logging(level: str | None = None) -> None:
    """Configure structlog from settings.

    Args:
        level: Overrides ``LOG_LEVEL``; scripts pass their own.
    """
    settings = get_settings()
    level_name = (level or settings.log_level).upper()

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_correlation_ids,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(settings.log_format, colors=settings.is_development),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger
