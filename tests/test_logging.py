"""
Tests for the JSON log formatter and request metrics labels.
"""

import json
import logging
import re

from prometheus_client import REGISTRY

from swiftlogix.logging_utils import SiteJsonFormatter, request_id_ctx

TIMESTAMP = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z")
EVENTS_ROUTE = "/api/tracking/{session_token}/events"


def format_record(message: str = "hello") -> dict:
    formatter = SiteJsonFormatter("%(ts)s %(level)s %(name)s %(message)s")
    record = logging.LogRecord("swiftlogix.test", logging.INFO, __file__, 1, message, None, None)
    return json.loads(formatter.format(record))


def request_count(path: str, status: str = "404") -> float:
    value = REGISTRY.get_sample_value(
        "http_requests_total", {"method": "GET", "path": path, "status": status}
    )
    return value or 0.0


class TestJsonFormatter:
    def test_timestamp_is_set(self):
        data = format_record()

        assert TIMESTAMP.fullmatch(data["ts"])
        assert data["level"] == "INFO"
        assert data["message"] == "hello"

    def test_request_id_from_context(self):
        token = request_id_ctx.set("req-42")
        try:
            data = format_record()
        finally:
            request_id_ctx.reset(token)

        assert data["request_id"] == "req-42"

    def test_no_request_id_outside_requests(self):
        assert "request_id" not in format_record()


class TestRequestMetrics:
    def test_path_label_is_route_template(self, client):
        before = request_count(EVENTS_ROUTE)

        client.get("/api/tracking/token-a/events")
        client.get("/api/tracking/token-b/events")

        assert request_count(EVENTS_ROUTE) == before + 2
        assert request_count("/api/tracking/token-a/events") == 0.0
        assert request_count("/api/tracking/token-b/events") == 0.0

    def test_unknown_path_is_unmatched(self, client):
        before = request_count("unmatched")

        client.get("/no-such-page/12345")

        assert request_count("unmatched") == before + 1
        assert request_count("/no-such-page/12345") == 0.0
