import json
import logging

import pytest

from templink.logging_config import JSONFormatter, RequestIdFilter, request_id_var
from templink.observability import metric_path
from templink.services.notifications import MessageKind, render_text


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/metrics", "/metrics"),
        ("/api/health", "/api/health"),
        ("/api/auth/login", "/api/auth/login"),
        ("/api/links", "/api/links"),
        ("/api/links/abc123/analytics", "/api/links/{id}/analytics"),
        ("/api/links/abc123", "/api/links/{id}"),
        ("/abc123", "/{id}"),
        ("/", "/"),
    ],
)
def test_metric_path_collapses_ids(path, expected):
    assert metric_path(path) == expected


def make_record(**extra):
    record = logging.LogRecord("templink.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields():
    line = JSONFormatter().format(make_record(link_id="abc"))
    data = json.loads(line)

    assert data["message"] == "hello world"
    assert data["level"] == "INFO"
    assert data["logger"] == "templink.test"
    assert data["link_id"] == "abc"
    assert "args" not in data


def test_request_id_filter_tags_records():
    token = request_id_var.set("req-1")
    try:
        record = make_record()
        assert RequestIdFilter().filter(record) is True
    finally:
        request_id_var.reset(token)

    assert json.loads(JSONFormatter().format(record))["request_id"] == "req-1"


def test_request_id_filter_without_request():
    record = make_record()
    RequestIdFilter().filter(record)
    assert not hasattr(record, "request_id")


def test_render_text_contains_link():
    body = render_text(MessageKind.PASSWORD_RESET, {"name": "Ann", "url": "http://test/reset-password?token=t"})
    assert "Hi Ann" in body
    assert "http://test/reset-password?token=t" in body

    assert "Hi there" in render_text(MessageKind.EMAIL_VERIFICATION, {"url": "http://test/verify?token=t"})
