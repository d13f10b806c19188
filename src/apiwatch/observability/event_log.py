"""Append-only JSONL log of dashboard lifecycle events.

Each line is one object with ``ts``, ``level``, ``event`` and ``message``
followed by whatever keyword fields the caller passed. Writers may live on
the event loop and on the executor thread that runs clear requests, so
appends are serialized.
"""

from __future__ import annotations

import dataclasses
import enum
import json
import math
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from apiwatch.config.settings import resolve_path

LOG_FILENAME = "apiwatch.events.jsonl"
LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
RESERVED_KEYS = ("ts", "level", "event", "message")
DEFAULT_TAIL = 120


def normalize_level(level: Any) -> str:
    text = str(level or "").strip().upper()
    if text == "WARNING":
        return "WARN"
    return text if text in LEVELS else "INFO"


def json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, enum.Enum):
        return json_safe(value.value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return json_safe(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        return {str(key): json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset, deque)):
        return [json_safe(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    return repr(value) if isinstance(value, bytes) else str(value)


def build_record(
    level: Any,
    event: str,
    message: str = "",
    fields: Optional[Mapping[str, Any]] = None,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    stamp = now or datetime.now(timezone.utc)
    record: Dict[str, Any] = {
        "ts": stamp.isoformat(timespec="milliseconds"),
        "level": normalize_level(level),
        "event": str(event),
        "message": str(message),
    }
    for key, value in (fields or {}).items():
        name = str(key)
        if name in RESERVED_KEYS:
            name = f"field_{name}"
        record[name] = json_safe(value)
    return record


class EventLogger:
    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @classmethod
    def for_data_dir(cls, data_dir: str) -> "EventLogger":
        return cls(resolve_path(data_dir) / LOG_FILENAME)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, *, level: str, event: str, message: str = "", **fields: Any) -> Dict[str, Any]:
        record = build_record(level, event, message, fields)
        line = json.dumps(record, ensure_ascii=False, allow_nan=False) + "\n"
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line)
        return record


class NullEventLogger:
    """Accepts the same calls as ``EventLogger`` and keeps nothing."""

    path = None

    def write(self, *, level: str, event: str, message: str = "", **fields: Any) -> Dict[str, Any]:
        return build_record(level, event, message, fields)


def tail_lines(path: Path, limit: Optional[int] = DEFAULT_TAIL) -> List[str]:
    """Last ``limit`` lines of ``path`` (all of them for ``None``); a missing file reads as empty."""
    maxlen = None if limit is None else max(1, int(limit))
    try:
        with Path(path).open(encoding="utf-8", errors="replace") as handle:
            return [line.rstrip("\n") for line in deque(handle, maxlen=maxlen)]
    except OSError:
        return []


def read_records(path: Path, *, event_prefix: str = "", limit: Optional[int] = None) -> List[Dict[str, Any]]:
    records: List[Dict[str, Any]] = []
    for line in tail_lines(path, limit=None):
        try:
            record = json.loads(line)
        except ValueError:
            continue
        if isinstance(record, dict) and str(record.get("event", "")).startswith(event_prefix):
            records.append(record)
    if limit is not None:
        records = records[-max(1, int(limit)):]
    return records
