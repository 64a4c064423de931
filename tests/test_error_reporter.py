"""Tests for the error and event logs."""

import asyncio
import json
import re
from datetime import datetime

from project_planner.errors import FatalStageError
from project_planner.models.enums import EventLevel
from project_planner.pipeline.reporter import ErrorReporter


def _lines(path):
    return [json.loads(line) for line in path.read_text("utf-8").splitlines()]


def test_log_error_writes_day_file(tmp_path):
    reporter = ErrorReporter(tmp_path)
    error = FatalStageError("bad timeline", stage="project_init")

    error_id = asyncio.run(reporter.log_error(error, "project_init", {"project_id": "p1"}))

    assert re.fullmatch(r"err_\d+_[0-9a-f]{8}", error_id)
    path = tmp_path / f"error_{datetime.now():%Y%m%d}.log"
    [record] = _lines(path)
    assert record["error_id"] == error_id
    assert record["context"] == "project_init"
    assert record["error_type"] == "FatalStageError"
    assert record["error_code"] == "FATAL_STAGE_ERROR"
    assert record["metadata"] == {"project_id": "p1"}


def test_error_ids_are_unique(tmp_path):
    reporter = ErrorReporter(tmp_path)

    async def log_many():
        return [await reporter.log_error(ValueError("x"), "ctx") for _ in range(20)]

    assert len(set(asyncio.run(log_many()))) == 20


def test_events_below_minimum_level_are_dropped(tmp_path):
    reporter = ErrorReporter(tmp_path, min_level="warn")

    kept = asyncio.run(reporter.record_event(EventLevel.ERROR, "disk full"))
    dropped = asyncio.run(reporter.record_event("info", "stage done"))

    assert kept is True
    assert dropped is False
    assert (tmp_path / f"app_error_{datetime.now():%Y%m%d}.log").exists()
    assert not (tmp_path / f"app_info_{datetime.now():%Y%m%d}.log").exists()


def test_unknown_event_level_is_ignored(tmp_path):
    reporter = ErrorReporter(tmp_path)
    assert asyncio.run(reporter.record_event("verbose", "hello")) is False


def test_unwritable_log_dir_never_raises(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    reporter = ErrorReporter(blocker / "logs")

    error_id = asyncio.run(reporter.log_error(RuntimeError("boom"), "stage"))
    recorded = asyncio.run(reporter.record_event("error", "still fine"))

    assert error_id.startswith("err_")
    assert recorded is True


def test_unserialisable_metadata_is_recorded(tmp_path):
    reporter = ErrorReporter(tmp_path)

    asyncio.run(reporter.log_error(RuntimeError("boom"), "stage", {"handle": object()}))

    [record] = _lines(tmp_path / f"error_{datetime.now():%Y%m%d}.log")
    assert "object" in record["metadata"]["handle"]
