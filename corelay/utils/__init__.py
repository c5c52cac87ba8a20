"""Utility helpers for corelay."""

from .logging import StructuredLogger, configure_logging, get_logger

__all__ = ["StructuredLogger", "configure_logging", "get_logger"]
