"""测试 JSON 日志格式。"""

import json
import logging

from chat_core.infrastructure.logging.logger import JsonFormatter, trace_id_var


def make_record(msg, extra=None):
    record = logging.LogRecord("chat_core", logging.INFO, __file__, 1, msg, None, None)
    if extra is not None:
        record.extra = extra
    return record


def test_bound_trace_id_is_written():
    token = trace_id_var.set("tr-abc")
    try:
        line = JsonFormatter().format(make_record("Provider call completed", {"model": "sonar"}))
    finally:
        trace_id_var.reset(token)

    payload = json.loads(line)
    assert payload["trace_id"] == "tr-abc"
    assert payload["model"] == "sonar"
    assert payload["level"] == "INFO"


def test_no_trace_id_outside_request():
    payload = json.loads(JsonFormatter().format(make_record("startup")))
    assert "trace_id" not in payload


def test_redacted_message_is_truncated():
    payload = json.loads(JsonFormatter(redact_content=True).format(make_record("x" * 100)))
    assert payload["msg"] == "x" * 64
