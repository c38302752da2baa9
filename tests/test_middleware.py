"""Tests for request-id propagation and request logging."""

import logging

import pytest
from fastapi.testclient import TestClient

from rag_core.main import app
from rag_core.utils.logging import JSONFormatter, StandardFormatter, get_request_id, request_id_var


class RequestIdCapture(logging.Handler):
    """Records the request id visible while each log record is emitted."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append((record.name, record.getMessage(), get_request_id()))


@pytest.fixture
def captured():
    handler = RequestIdCapture()
    logger = logging.getLogger("rag_core")
    logger.addHandler(handler)
    yield handler
    logger.removeHandler(handler)


@pytest.fixture
def client():
    return TestClient(app)


def test_request_id_header_is_echoed(client):
    response = client.get("/", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Process-Time"].endswith("ms")


def test_request_id_generated_when_missing(client):
    first = client.get("/").headers["X-Request-ID"]
    second = client.get("/").headers["X-Request-ID"]

    assert first
    assert first != second


def test_request_log_carries_request_id(client, captured):
    client.get("/", headers={"X-Request-ID": "req-456"})

    request_logs = [r for r in captured.records if r[0] == "rag_core.middleware"]
    assert request_logs
    name, message, request_id = request_logs[-1]
    assert message.startswith("GET / - 200")
    assert request_id == "req-456"


class TestFormatters:
    @staticmethod
    def make_record(**extra):
        record = logging.LogRecord("rag_core.test", logging.INFO, __file__, 1, "hello", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_standard_formatter_includes_request_id(self):
        token = request_id_var.set("req-789")
        try:
            line = StandardFormatter().format(self.make_record())
        finally:
            request_id_var.reset(token)

        assert "[req-789]" in line

    def test_standard_formatter_without_request_id(self):
        assert "[N/A]" in StandardFormatter().format(self.make_record())

    def test_json_formatter_includes_request_id_and_extra(self):
        token = request_id_var.set("req-789")
        try:
            line = JSONFormatter().format(self.make_record(duration_ms=1.5))
        finally:
            request_id_var.reset(token)

        assert '"request_id": "req-789"' in line
        assert '"duration_ms": 1.5' in line
