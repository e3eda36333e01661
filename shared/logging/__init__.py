"""Structured logging module using structlog."""

from .structured_logger import (
    attach_file_handler,
    bind_context,
    clear_context,
    configure_logging,
)

__all__ = [
    "attach_file_handler",
    "bind_context",
    "clear_context",
    "configure_logging",
]
