from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from apiwatch.core.stats import DerivedMetrics
from apiwatch.live.connection import ConnectionState
from apiwatch.observability.event_log import (
    LOG_FILENAME,
    EventLogger,
    NullEventLogger,
    build_record,
    json_safe,
    read_records,
    tail_lines,
)


def test_event_logger_writes_jsonl_records(tmp_path: Path) -> None:
    logger = EventLogger.for_data_dir(str(tmp_path / "nested"))
    logger.write(level="warning", event="live.decode_error", message="skipped", error={"pos": 3}, items=(1, 2))

    assert logger.path == tmp_path / "nested" / LOG_FILENAME
    lines = tail_lines(logger.path)
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["level"] == "WARN"
    assert record["event"] == "live.decode_error"
    assert record["error"] == {"pos": 3}
    assert record["items"] == [1, 2]


def test_build_record_keeps_core_keys_and_stamps_utc() -> None:
    now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    record = build_record("bogus", "session.cleared", "done", {"event": "shadow", "count": 2}, now=now)

    assert record["ts"] == "2024-01-01T12:00:00.000+00:00"
    assert record["level"] == "INFO"
    assert record["event"] == "session.cleared"
    assert record["field_event"] == "shadow"
    assert record["count"] == 2


def test_json_safe_handles_domain_values() -> None:
    assert json_safe(ConnectionState.CONNECTED) == "connected"
    assert json_safe(DerivedMetrics(success_rate_percent=50, average_duration_ms=12)) == {
        "success_rate_percent": 50,
        "average_duration_ms": 12,
    }
    assert json_safe(float("nan")) == "nan"
    assert json_safe({1: {2}}) == {"1": [2]}


def test_non_finite_fields_still_produce_valid_json(tmp_path: Path) -> None:
    logger = EventLogger(tmp_path / "events.jsonl")
    logger.write(level="INFO", event="session.history", duration=float("inf"))

    assert read_records(logger.path)[0]["duration"] == "inf"


def test_read_records_filters_by_prefix_and_skips_garbage(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    logger = EventLogger(path)
    logger.write(level="INFO", event="live.state", message="connection connecting")
    with path.open("a", encoding="utf-8") as handle:
        handle.write("not json\n")
    logger.write(level="INFO", event="session.cleared")
    logger.write(level="INFO", event="live.state", message="connection connected")

    live = read_records(path, event_prefix="live.")
    assert [record["message"] for record in live] == ["connection connecting", "connection connected"]
    assert len(read_records(path, limit=1)) == 1


def test_null_logger_writes_nothing() -> None:
    record = NullEventLogger().write(level="INFO", event="live.state")
    assert NullEventLogger.path is None
    assert record["event"] == "live.state"


def test_tail_lines_missing_file(tmp_path: Path) -> None:
    assert tail_lines(tmp_path / "missing.jsonl") == []
