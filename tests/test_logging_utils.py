import json
from datetime import datetime, timezone

from service import logging_utils


def _read(prefix):
    with open(logging_utils.log_path(prefix), encoding="utf-8") as fh:
        return [json.loads(line) for line in fh]


def test_activity_records_are_redacted_and_stamped():
    record = {
        "component": "job_search.providers",
        "op": "search",
        "ADZUNA_APP_KEY": "k",
        "request": {"headers": {"X-RapidAPI-Key": "r", "Authorization": "Bearer abc"}, "params": {"what": "nurse"}},
        "notes": ["Bearer xyz", "plain"],
        "at": datetime(2025, 1, 1, tzinfo=timezone.utc),
    }
    logging_utils.write_activity_log(record)

    (line,) = _read("activity-test")
    assert line["ADZUNA_APP_KEY"] == "***REDACTED***"
    assert line["request"]["headers"] == {"X-RapidAPI-Key": "***REDACTED***", "Authorization": "***REDACTED***"}
    assert line["request"]["params"] == {"what": "nurse"}
    assert line["notes"] == ["Bearer ***REDACTED***", "plain"]
    assert line["at"] == "2025-01-01 00:00:00+00:00"
    assert set(line["_meta"]) == {"ts", "host", "pid", "thread"}
    # caller's dict is untouched
    assert record["ADZUNA_APP_KEY"] == "k"
    assert "_meta" not in record


def test_error_stream_is_separate():
    logging_utils.write_error_log({"op": "boom"})
    logging_utils.write_error_log({"op": "boom again"})
    assert [r["op"] for r in _read("error-test")] == ["boom", "boom again"]


def test_redact_with_custom_keys():
    assert logging_utils.redact({"pin": 1234, "name": "x"}, keys=["pin"]) == {"pin": "***REDACTED***", "name": "x"}
