import json
import logging

from novaguard.logging_utils import JsonFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("novaguard.defense", logging.WARNING, __file__, 1, "IP blocked", None, None)
    record.created = 1_700_000_000.0
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_known_fields_only():
    line = JsonFormatter().format(_record(event="ip_blocked", ip="9.9.9.9", reason=None, secret="x"))
    payload = json.loads(line)

    assert payload["ts"] == "2023-11-14T22:13:20+00:00"
    assert payload["level"] == "WARNING"
    assert payload["msg"] == "IP blocked"
    assert payload["event"] == "ip_blocked"
    assert payload["ip"] == "9.9.9.9"
    assert "reason" not in payload
    assert "secret" not in payload


def test_formatter_field_set_is_configurable():
    payload = json.loads(JsonFormatter(fields=("ip",)).format(_record(event="ip_blocked", ip="1.1.1.1")))
    assert payload["ip"] == "1.1.1.1"
    assert "event" not in payload
