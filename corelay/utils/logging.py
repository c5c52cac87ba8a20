"""Logging utilities for corelay."""

import logging
import sys
from typing import Any

ROOT_LOGGER = "corelay"


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """Configure logging for corelay.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format_string: Custom format string.
        handler: Custom handler. Defaults to StreamHandler on stderr.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if format_string is None:
        format_string = "[%(asctime)s] %(levelname)s [%(name)s] [%(threadName)s] %(message)s"

    if handler is None:
        handler = logging.StreamHandler(sys.stderr)

    handler.setFormatter(logging.Formatter(format_string))

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.addHandler(handler)

    # Prevent propagation to root logger
    logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a corelay module.

    Args:
        name: Module name (e.g., "engine").

    Returns:
        Configured logger.
    """
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class StructuredLogger:
    """Logger that appends key=value context to each message."""

    def __init__(self, name: str, **context: Any):
        """Initialize structured logger.

        Args:
            name: Logger name.
            **context: Key-value pairs added to every message.
        """
        self._logger = get_logger(name)
        self._context: dict[str, Any] = dict(context)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        """Return a logger with extra context, leaving this one unchanged."""
        bound = StructuredLogger.__new__(StructuredLogger)
        bound._logger = self._logger
        bound._context = {**self._context, **kwargs}
        return bound

    def _format_message(self, message: str, **kwargs: Any) -> str:
        """Format message with context."""
        data = {**self._context, **kwargs}
        if data:
            pairs = [f"{k}={v}" for k, v in data.items()]
            return f"{message} | {' '.join(pairs)}"
        return message

    def _log(self, level: int, message: str, **kwargs: Any) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, self._format_message(message, **kwargs))

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)
