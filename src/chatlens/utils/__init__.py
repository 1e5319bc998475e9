"""Utility helpers for chatlens."""

from chatlens.utils.logging import LogContext, get_logger, setup_logging

__all__ = ["LogContext", "get_logger", "setup_logging"]
