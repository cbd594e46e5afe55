"""Utility modules for test sessions.

Provides:
- Structured logging configuration
"""

from .logging import configure_logging, get_logger, LogContext, log_operation

__all__ = [
    "configure_logging",
    "get_logger",
    "LogContext",
    "log_operation",
]
