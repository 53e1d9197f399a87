"""Core infrastructure: config, logging, middleware, exceptions."""

from app.core.config import Settings, get_settings
from app.core.logging import get_logger, refresh_id_ctx, request_id_ctx

__all__ = [
    "Settings",
    "get_logger",
    "get_settings",
    "refresh_id_ctx",
    "request_id_ctx",
]
