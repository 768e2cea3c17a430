"""Tests for logging setup, formatters and helpers."""

import json
import logging
import re

import pytest

from core.errors import ServerError, Provider
from core.logging import (
    ConsoleFormatter,
    JSONFormatter,
    LoggedClass,
    clear_log_context,
    generate_correlation_id,
    get_log_context,
    log_exception,
    logged_operation,
    set_log_context,
    setup_logging,
)
from core.logging.setup import get_log_file_path


def make_record(msg="hello", level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="test", level=level, pathname=__file__, lineno=10,
        msg=msg, args=(), exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSetupLogging:
    """Tests for setup_logging function."""

    @pytest.fixture(autouse=True)
    def cleanup(self):
        """Clean up after each test."""
        clear_log_context()
        yield
        clear_log_context()
        logging.getLogger().handlers.clear()

    def test_creates_console_and_file_handlers(self, tmp_path):
        setup_logging(pipeline="image-cleanup", log_dir=tmp_path)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 2
        assert isinstance(handlers[0].formatter, ConsoleFormatter)
        assert isinstance(handlers[1].formatter, JSONFormatter)

    def test_console_only(self, tmp_path):
        setup_logging(pipeline="image-cleanup", log_dir=tmp_path, log_to_file=False)

        assert len(logging.getLogger().handlers) == 1
        assert list(tmp_path.rglob("*.log")) == []

    def test_log_file_in_date_folder(self, tmp_path):
        setup_logging(pipeline="attribute-detection", log_dir=tmp_path, use_instance_id=False)

        log_files = list(tmp_path.rglob("*.log"))
        assert len(log_files) == 1
        assert re.match(r"attribute-detection_\d{8}\.log", log_files[0].name)
        assert re.match(r"\d{4}-\d{2}-\d{2}", log_files[0].parent.name)

    def test_sets_pipeline_context(self, tmp_path):
        setup_logging(pipeline="image-cleanup", log_dir=tmp_path, worker_id="w-1",
                      log_to_file=False)

        ctx = get_log_context()
        assert ctx["pipeline"] == "image-cleanup"
        assert ctx["worker_id"] == "w-1"

    def test_suppresses_noisy_loggers(self, tmp_path):
        setup_logging(log_dir=tmp_path, log_to_file=False)
        assert logging.getLogger("aiohttp").level == logging.WARNING

    def test_json_lines_written(self, tmp_path):
        setup_logging(pipeline="image-cleanup", log_dir=tmp_path, use_instance_id=False)
        set_log_context(correlation_id="r-test")

        logging.getLogger("wardrobe_pipeline.test").info(
            "Job completed", extra={"job_id": 7, "duration_ms": 12}
        )
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = next(tmp_path.rglob("*.log")).read_text().strip().splitlines()
        entry = json.loads(lines[-1])
        assert entry["msg"] == "Job completed"
        assert entry["job_id"] == 7
        assert entry["duration_ms"] == 12
        assert entry["correlation_id"] == "r-test"
        assert entry["pipeline"] == "image-cleanup"


class TestFormatters:
    """Tests for JSONFormatter and ConsoleFormatter."""

    @pytest.fixture(autouse=True)
    def cleanup(self):
        clear_log_context()
        yield
        clear_log_context()

    def test_json_only_whitelisted_extras(self):
        record = make_record(item_id="item-1", api_key="secret")

        entry = json.loads(JSONFormatter().format(record))

        assert entry["item_id"] == "item-1"
        assert "api_key" not in entry

    def test_json_source_location_for_errors(self):
        entry = json.loads(JSONFormatter().format(make_record(level=logging.ERROR)))
        assert entry["file"].endswith(":10")

    def test_console_includes_context_and_job(self):
        set_log_context(correlation_id="r-abc", pipeline="image-cleanup")

        line = ConsoleFormatter().format(make_record("Claimed", job_id="1234567890"))

        assert "[image-cleanup]" in line
        assert "[r-abc]" in line
        assert line.endswith("job=12345678 Claimed")


class TestHelpers:
    """Tests for log_exception, logged_operation and LoggedClass."""

    def test_generate_correlation_id_format(self):
        assert re.match(r"^r-\d{8}-\d{6}-[0-9a-f]{6}$", generate_correlation_id())

    def test_log_exception_extracts_classification(self, caplog):
        logger = logging.getLogger("test.helpers")
        error = ServerError("x" * 600, provider=Provider.STORAGE, http_status=503)

        with caplog.at_level(logging.WARNING, logger="test.helpers"):
            log_exception(logger, error, "Store failed", level=logging.WARNING,
                          include_traceback=False)

        record = caplog.records[-1]
        assert record.error_category == "transient"
        assert record.error_code == "server_error"
        assert record.provider == "storage"
        assert record.http_status == 503
        assert len(record.error_message) == 503

    @pytest.mark.asyncio
    async def test_logged_operation_reraises(self, caplog):
        class Worker(LoggedClass):
            provider_name = "replicate"

            @logged_operation(level=logging.INFO)
            async def ok(self):
                return 5

            @logged_operation(level=logging.INFO)
            async def fail(self):
                raise ServerError("down")

        worker = Worker()
        with caplog.at_level(logging.DEBUG):
            assert await worker.ok() == 5
            with pytest.raises(ServerError):
                await worker.fail()

        messages = [r.getMessage() for r in caplog.records]
        assert "Worker.ok completed" in messages
        assert "Worker.fail failed" in messages

    def test_logged_operation_requires_coroutine(self):
        with pytest.raises(TypeError):
            @logged_operation()
            def not_async(self):
                return None

    def test_logged_class_adds_instance_context(self, caplog):
        class Client(LoggedClass):
            provider_name = "openai"
            model = "gpt-4o"

        with caplog.at_level(logging.INFO):
            Client()._log(logging.INFO, "Request sent", item_id="item-1")

        record = caplog.records[-1]
        assert record.provider == "openai"
        assert record.model == "gpt-4o"
        assert record.item_id == "item-1"

    def test_log_file_path_with_instance(self, tmp_path):
        path = get_log_file_path(tmp_path, pipeline="image-cleanup", instance_id="p1")
        assert path.name.startswith("image-cleanup_")
        assert path.name.endswith("_p1.log")
