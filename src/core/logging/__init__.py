"""
Structured logging module.

Provides JSON logging with correlation IDs and context propagation.

Import directly from sub-modules or from this package:
    from core.logging import setup_logging, get_logger, log_with_context
"""

from core.logging.context import clear_log_context, get_log_context, set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.setup import generate_correlation_id, get_logger, setup_logging
from core.logging.utilities import (
    LoggedClass,
    log_exception,
    log_with_context,
    logged_operation,
)

__all__ = [
    # Context
    "clear_log_context",
    "get_log_context",
    "set_log_context",
    # Formatters
    "ConsoleFormatter",
    "JSONFormatter",
    # Setup
    "generate_correlation_id",
    "get_logger",
    "setup_logging",
    # Utilities
    "LoggedClass",
    "log_exception",
    "log_with_context",
    "logged_operation",
]
