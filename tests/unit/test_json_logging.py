"""Unit tests for the JSON log formatter"""

import json
import logging

from groupbuy_gateway.infrastructure.observability.logging import CustomJsonFormatter, request_id_var


def format_record(**extra) -> dict:
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    record = logging.LogRecord("groupbuy_gateway.test", logging.INFO, __file__, 1, "Member joined", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


def test_formatter_adds_service_metadata():
    data = format_record(group_id="g-1")

    assert data["message"] == "Member joined"
    assert data["level"] == "INFO"
    assert data["service"] == "groupbuy-gateway"
    assert data["group_id"] == "g-1"
    assert "request_id" not in data


def test_formatter_adds_current_request_id():
    token = request_id_var.set("req-42")
    try:
        data = format_record()
    finally:
        request_id_var.reset(token)

    assert data["request_id"] == "req-42"
