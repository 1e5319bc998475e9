"""Logging configuration for chatlens.

Provides centralized logging setup with Rich console formatting, optional
file logging, and credential redaction on every handler.

Example:
    >>> from chatlens.utils.logging import setup_logging, get_logger, LogContext
    >>> setup_logging(level="DEBUG")
    >>> logger = get_logger(__name__)
    >>> with LogContext("Analyzing conversation"):
    ...     # do work
    ... # Logs: "Analyzing conversation completed in 2.3s"
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

from chatlens.ai.client import RedactingFilter

# =============================================================================
# Constants
# =============================================================================

PACKAGE_NAME = "chatlens"

# Noisy third-party loggers to filter
NOISY_LOGGERS = [
    "google",
    "google.auth",
    "google.api_core",
    "google.generativeai",
    "google_genai",
    "openai",
    "anthropic",
    "urllib3",
    "requests",
    "httpx",
    "httpcore",
]

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_console = Console(stderr=True)


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def setup_logging(
    level: str | int = "INFO",
    log_file: Path | None = None,
    quiet_third_party: bool = True,
) -> logging.Logger:
    """Configure the ``chatlens`` logger hierarchy.

    Installs a Rich console handler and, when ``log_file`` is given, a plain
    file handler. Both handlers redact credentials. Calling this again
    replaces the previous handlers.

    Args:
        level: Log level name or number.
        log_file: Optional path to a log file (parent dirs are created).
        quiet_third_party: Raise SDK and HTTP loggers to WARNING.

    Returns:
        The configured package logger.
    """
    numeric_level = _resolve_level(level)

    package_logger = logging.getLogger(PACKAGE_NAME)
    package_logger.setLevel(numeric_level)
    package_logger.handlers = []

    # Model output can contain square brackets, so Rich markup stays off
    console_handler = RichHandler(
        console=_console,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        markup=False,
    )
    console_handler.setLevel(numeric_level)
    console_handler.addFilter(RedactingFilter())
    package_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
        file_handler.addFilter(RedactingFilter())
        package_logger.addHandler(file_handler)

    if quiet_third_party:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    package_logger.propagate = False
    package_logger.debug(f"Logging configured: level={logging.getLevelName(numeric_level)}, file={log_file}")
    return package_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``chatlens`` namespace."""
    if not name.startswith(PACKAGE_NAME):
        name = f"{PACKAGE_NAME}.{name}"
    return logging.getLogger(name)


class LogContext:
    """Context manager that logs an operation's start, end and duration.

    Attributes:
        message: Description of the operation.
        level: Log level for start/completion messages.
        logger: Logger instance to use.
        elapsed: Elapsed seconds (set on exit).

    Example:
        >>> with LogContext("Calling openai/gpt-4o-mini") as ctx:
        ...     pass
        >>> ctx.elapsed
    """

    def __init__(
        self,
        message: str,
        level: int = logging.INFO,
        logger: logging.Logger | None = None,
    ) -> None:
        self.message = message
        self.level = level
        self.logger = logger or logging.getLogger(PACKAGE_NAME)
        self.elapsed: float = 0.0
        self._start_time: float = 0.0

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000

    def __enter__(self) -> "LogContext":
        self._start_time = time.perf_counter()
        self.logger.log(self.level, f"{self.message}...")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.elapsed = time.perf_counter() - self._start_time

        if exc_type is not None:
            # Exception type only, messages may quote model output
            self.logger.error(f"{self.message} failed after {self.elapsed:.2f}s: {exc_type.__name__}")
        else:
            self.logger.log(self.level, f"{self.message} completed in {self.elapsed:.2f}s")
