"""Log formatters for JSON and console output."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from core.logging.context import get_log_context


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Only whitelisted extra fields are emitted so payloads never leak.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Identifiers
        "job_id",
        "item_id",
        "user_id",
        "source_key",
        "table",
        # Job state
        "status",
        "previous_status",
        "attempt_count",
        "max_attempts",
        "next_retry_at",
        "started_at",
        "completed_at",
        "will_retry",
        # Timing
        "duration_ms",
        "threshold_ms",
        # Errors
        "http_status",
        "error_category",
        "error_code",
        "error_message",
        "provider",
        "model",
        # Batch tracking
        "operation",
        "batch_size",
        "max_concurrency",
        "chunk_index",
        "chunk_size",
        "records_processed",
        "records_succeeded",
        "records_failed",
        "records_recovered",
        "records_skipped",
    ]

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]
            + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # Inject context variables
        ctx = get_log_context()
        for key in ("correlation_id", "pipeline", "worker_id"):
            if ctx[key]:
                log_entry[key] = ctx[key]

        # Add source location for DEBUG/ERROR
        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter.

    Includes context when available.
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()

        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            record.levelname,
        ]

        if ctx["pipeline"]:
            parts.append(f"[{ctx['pipeline']}]")

        prefix = " - ".join(parts)

        correlation_id = ctx["correlation_id"]
        if correlation_id:
            prefix = f"{prefix} - [{correlation_id}]"

        job_id = getattr(record, "job_id", None)
        if job_id:
            return f"{prefix} - job={str(job_id)[:8]} {record.getMessage()}"

        return f"{prefix} - {record.getMessage()}"
