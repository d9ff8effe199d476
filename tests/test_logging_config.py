"""
Tests for gpu_monitoring.logging_config module
"""

import json
import logging

import pytest


@pytest.fixture
def clean_request_id():
    from gpu_monitoring.logging_config import set_request_id

    set_request_id(None)
    yield
    set_request_id(None)


def make_record(message="hello", **extra):
    record = logging.LogRecord(
        name="gpu_monitoring.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_basic_fields(self, clean_request_id):
        from gpu_monitoring.logging_config import JSONFormatter

        output = json.loads(JSONFormatter().format(make_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "gpu_monitoring.test"
        assert output["message"] == "hello"
        assert output["timestamp"].endswith("Z")
        assert "request_id" not in output
        assert "extra" not in output

    def test_extra_fields(self, clean_request_id):
        from gpu_monitoring.logging_config import JSONFormatter

        output = json.loads(JSONFormatter().format(make_record(gpus=4, node="gpu-node-1")))

        assert output["extra"] == {"gpus": 4, "node": "gpu-node-1"}

    def test_request_id_included(self, clean_request_id):
        from gpu_monitoring.logging_config import JSONFormatter, set_request_id

        set_request_id("abcd1234")
        output = json.loads(JSONFormatter().format(make_record()))

        assert output["request_id"] == "abcd1234"

    def test_exception_included(self, clean_request_id):
        from gpu_monitoring.logging_config import JSONFormatter

        try:
            raise RuntimeError("boom")
        except RuntimeError:
            import sys
            record = make_record()
            record.exc_info = sys.exc_info()

        output = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in output["exception"]


class TestRequestId:
    """Tests for request ID helpers."""

    def test_generate_request_id(self):
        from gpu_monitoring.logging_config import generate_request_id

        first = generate_request_id()
        second = generate_request_id()

        assert len(first) == 8
        assert first != second

    def test_set_and_get(self, clean_request_id):
        from gpu_monitoring.logging_config import get_request_id, set_request_id

        assert get_request_id() is None
        set_request_id("feedbeef")
        assert get_request_id() == "feedbeef"


class TestLogRequest:
    """Tests for log_request level selection."""

    @pytest.mark.parametrize("status_code,level,message", [
        (200, logging.INFO, "Request completed"),
        (404, logging.WARNING, "Request client error"),
        (503, logging.ERROR, "Request failed"),
    ])
    def test_level_by_status(self, caplog, status_code, level, message):
        from gpu_monitoring.logging_config import log_request

        logger = logging.getLogger("gpu_monitoring.test.requests")
        with caplog.at_level(logging.DEBUG, logger="gpu_monitoring.test.requests"):
            log_request(logger, "GET", "/api/health", status_code, 12.3456, client_ip="10.0.0.5")

        record = caplog.records[-1]
        assert record.levelno == level
        assert record.getMessage() == message
        assert record.status_code == status_code
        assert record.duration_ms == 12.35
        assert record.client_ip == "10.0.0.5"


class TestSetupLogging:
    """Tests for setup_logging and the uvicorn config."""

    def test_json_handler_installed(self):
        from gpu_monitoring.logging_config import JSONFormatter, setup_logging

        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(level="debug", json_format=True)

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)

    def test_uvicorn_config(self):
        from gpu_monitoring.logging_config import get_uvicorn_log_config

        json_config = get_uvicorn_log_config(json_format=True)
        plain_config = get_uvicorn_log_config(json_format=False)

        assert json_config["handlers"]["default"]["formatter"] == "json"
        assert json_config["formatters"]["json"]["()"] == "gpu_monitoring.logging_config.JSONFormatter"
        assert json_config["loggers"]["uvicorn.access"]["level"] == "CRITICAL"
        assert "formatter" not in plain_config["handlers"]["default"]
