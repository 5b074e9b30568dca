import json
import logging

from chat_core.infrastructure.logging.logger import REDACT_LIMIT, JsonFormatter


def _record(msg, extra=None):
    record = logging.LogRecord("chat_core.test", logging.INFO, __file__, 1, msg, None, None)
    if extra is not None:
        record.extra = extra
    return record


def test_formatter_merges_extra_fields():
    line = JsonFormatter().format(_record("Stored assistant message", {"trace_id": "tr-1", "length": 5}))
    data = json.loads(line)
    assert data["msg"] == "Stored assistant message"
    assert data["trace_id"] == "tr-1"
    assert data["length"] == 5
    assert data["level"] == "INFO"
    assert data["ts"].endswith("Z")


def test_formatter_redacts_content_fields():
    long_text = "x" * 500
    record = _record(long_text, {"title": long_text, "frame": long_text, "trace_id": long_text})
    data = json.loads(JsonFormatter(redact=True).format(record))
    assert len(data["msg"]) == REDACT_LIMIT + 1
    assert len(data["title"]) == REDACT_LIMIT + 1
    assert len(data["frame"]) == REDACT_LIMIT + 1
    # 非内容字段保持原样
    assert data["trace_id"] == long_text


def test_formatter_keeps_content_without_redaction():
    long_text = "y" * 500
    data = json.loads(JsonFormatter(redact=False).format(_record("m", {"title": long_text})))
    assert data["title"] == long_text
