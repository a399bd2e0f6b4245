"""
Tests for the JSON log format and job id tagging.
"""
import json
import logging

from app.log import JobIdFilter, JSONFormatter, get_logger, job_id_context, set_job_id


def _record(msg="hello", **extra) -> logging.LogRecord:
    record = logging.makeLogRecord({"name": "app.test", "levelname": "INFO", "msg": msg})
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_record_is_tagged_with_current_job_id():
    token = job_id_context.set("job-123")
    try:
        record = _record()
        JobIdFilter().filter(record)
    finally:
        job_id_context.reset(token)

    entry = json.loads(JSONFormatter().format(record))
    assert entry["job_id"] == "job-123"
    assert entry["msg"] == "hello"
    assert entry["level"] == "INFO"


def test_extra_fields_are_flattened_and_stringified():
    record = _record(size=42, path=None, layout=object())
    JobIdFilter().filter(record)

    entry = json.loads(JSONFormatter().format(record))
    assert entry["size"] == 42
    assert entry["path"] is None
    assert isinstance(entry["layout"], str)
    assert "args" not in entry and "pathname" not in entry


def test_module_loggers_share_one_handler():
    a = get_logger("composition.engine")
    b = get_logger("storage.retention")

    assert a.name == "app.composition.engine"
    assert not a.handlers and not b.handlers
    assert len(logging.getLogger("app").handlers) == 1


def test_set_job_id_outside_a_task():
    set_job_id(None)
    assert job_id_context.get() is None
