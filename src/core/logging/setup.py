"""Logging setup and configuration."""

import logging
import os
import secrets
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

# Default settings
DEFAULT_LOG_DIR = Path("logs")
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "httpx",
    "httpcore",
    "hpack",
    "urllib3",
    "aiohttp",
]


def get_log_file_path(
    log_dir: Path,
    pipeline: Optional[str] = None,
    instance_id: Optional[str] = None,
) -> Path:
    """
    Build log file path with date subfolder structure.

    Structure: {log_dir}/{YYYY-MM-DD}/{pipeline}_{YYYYMMDD}[_instance].log

    Args:
        log_dir: Base log directory
        pipeline: Pipeline name (image-cleanup, attribute-detection)
        instance_id: Unique instance identifier (e.g., process ID)

    Returns:
        Full path to log file
    """
    date_folder = datetime.now().strftime("%Y-%m-%d")
    date_str = datetime.now().strftime("%Y%m%d")

    base_name = f"{pipeline or 'pipeline'}_{date_str}"
    if instance_id:
        filename = f"{base_name}_{instance_id}.log"
    else:
        filename = f"{base_name}.log"

    return log_dir / date_folder / filename


def setup_logging(
    name: str = "wardrobe_pipeline",
    pipeline: Optional[str] = None,
    log_dir: Optional[Path] = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    worker_id: Optional[str] = None,
    log_to_file: bool = True,
    use_instance_id: bool = True,
) -> logging.Logger:
    """
    Configure logging with console and rotating file handlers.

    Log files are organized by date:
        logs/2025-01-15/image-cleanup_20250115_p12345.log

    Args:
        name: Logger name returned to the caller
        pipeline: Pipeline name used for the file name and log context
        log_dir: Directory for log files (default: ./logs)
        json_format: Use JSON format for file logs (default: True)
        console_level: Console handler level (default: INFO)
        file_level: File handler level (default: DEBUG)
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep
        suppress_noisy: Quiet down HTTP client loggers
        worker_id: Worker identifier for context
        log_to_file: Add the rotating file handler (default: True)
        use_instance_id: Append process ID to log filename

    Returns:
        Configured logger instance
    """
    log_dir = log_dir or DEFAULT_LOG_DIR

    set_log_context(pipeline=pipeline, worker_id=worker_id)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ConsoleFormatter())
    root_logger.addHandler(console_handler)

    log_file = None
    if log_to_file:
        if json_format:
            file_formatter: logging.Formatter = JSONFormatter()
        else:
            file_formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
            )

        instance_id = f"p{os.getpid()}" if use_instance_id else None
        log_file = get_log_file_path(log_dir, pipeline=pipeline, instance_id=instance_id)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(f"Logging initialized: pipeline={pipeline}, file={log_file}")

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Use this instead of logging.getLogger() to ensure consistent naming.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def generate_correlation_id() -> str:
    """
    Generate unique invocation identifier.

    Format: r-YYYYMMDD-HHMMSS-XXXXXX where XXXXXX is random hex.

    Returns:
        Unique correlation ID string
    """
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    suffix = secrets.token_hex(3)
    return f"r-{ts}-{suffix}"
