from __future__ import annotations

import datetime as dt
import math
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

_ISO_FRACTION = re.compile(r"\.(\d+)")
_ISO_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def _finite(value: Any) -> Optional[float]:
    try:
        as_float = float(value)
    except (OverflowError, ValueError):
        return None
    return as_float if math.isfinite(as_float) else None


def parse_status_code(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def parse_duration(value: Any) -> Optional[float]:
    """Numeric duration, or ``None`` for anything missing, malformed or non-finite."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if _finite(value) is not None else None
    if isinstance(value, str):
        return _finite(value.strip())
    return None


def normalize_iso(text: str) -> str:
    # fromisoformat before 3.11 wants exactly 3 or 6 fraction digits and a colon in the offset.
    normalized = text.strip()
    if normalized[-1:] in ("Z", "z"):
        normalized = normalized[:-1] + "+00:00"
    normalized = _ISO_COMPACT_OFFSET.sub(r"\1:\2", normalized)
    return _ISO_FRACTION.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), normalized, count=1)


def parse_timestamp(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _finite(value)
    if isinstance(value, str):
        try:
            parsed = dt.datetime.fromisoformat(normalize_iso(value))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=dt.timezone.utc)
        return parsed.timestamp()
    return None


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class RequestEvent:
    """One captured API call as delivered by the collector.

    Absent wire fields stay ``None``; ``duration_ms=0`` is a real sample and
    is never folded into ``None``.
    """

    id: int
    timestamp: Any = None
    method: str = ""
    path: str = ""
    status_code: Optional[int] = None
    duration_ms: Optional[float] = None
    service: Optional[str] = None
    query_params: Any = None
    request_data: Any = None
    response_data: Any = None
    headers: Any = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], event_id: int) -> "RequestEvent":
        return cls(
            id=int(event_id),
            timestamp=raw.get("timestamp"),
            method=str(raw.get("method") or ""),
            path=str(raw.get("path") or ""),
            status_code=parse_status_code(raw.get("status_code")),
            duration_ms=parse_duration(raw.get("duration_ms")),
            service=_optional_text(raw.get("service")),
            query_params=raw.get("query_params"),
            request_data=raw.get("request_data"),
            response_data=raw.get("response_data"),
            headers=raw.get("headers"),
        )

    def timestamp_value(self) -> float:
        parsed = parse_timestamp(self.timestamp)
        return parsed if parsed is not None else 0.0

    def status_bucket(self) -> Optional[int]:
        if self.status_code is None:
            return None
        return self.status_code // 100
