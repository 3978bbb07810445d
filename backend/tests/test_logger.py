import json
import logging

from dappgen.utils.logger import DevFormatter, JSONFormatter


def _record(**extra):
    record = logging.LogRecord("dappgen.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context():
    data = json.loads(JSONFormatter().format(_record(session_id="s1", user_id=None)))

    assert data["msg"] == "hello world"
    assert data["level"] == "INFO"
    assert data["session_id"] == "s1"
    assert "user_id" not in data


def test_dev_formatter_suffix():
    line = DevFormatter().format(_record(request_id="r1"))
    assert line.endswith("hello world [request_id=r1]")
