# tests/unit/test_logging_config.py
"""Tests for JSON log formatting and verbosity mapping."""

import json
import logging

import pytest

from genstudio.logging_config import JsonFormatter, verbosity_level


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("genstudio.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_base_fields(self):
        line = json.loads(JsonFormatter().format(_record()))
        assert line["level"] == "INFO"
        assert line["logger"] == "genstudio.test"
        assert line["msg"] == "hello"
        assert "job_id" not in line

    def test_job_context_lifted(self):
        record = _record(job_kind="story", job_id="abc123", job_state="generating")
        line = json.loads(JsonFormatter().format(record))
        assert (line["job_kind"], line["job_id"], line["job_state"]) == ("story", "abc123", "generating")

    def test_missing_job_id_omitted(self):
        line = json.loads(JsonFormatter().format(_record(job_kind="selfie", job_id=None)))
        assert line["job_kind"] == "selfie"
        assert "job_id" not in line


@pytest.mark.parametrize("verbosity, level", [(0, logging.WARNING), (1, logging.INFO), (3, logging.DEBUG)])
def test_verbosity_level(verbosity, level):
    assert verbosity_level(verbosity) == level
