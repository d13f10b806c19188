from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Union

from apiwatch.errors import MessageDecodeError

HISTORY = "history"
EVENT = "event"


@dataclass(frozen=True)
class DecodedMessage:
    kind: str
    events: List[Dict[str, Any]]
    skipped: int = 0


def decode_message(raw: Union[str, bytes]) -> DecodedMessage:
    """Decode one inbound frame.

    ``{"type": "history", "data": [...]}`` is the per-connection backlog;
    any other object is a single live event with no wrapper.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MessageDecodeError(f"invalid json: {exc}") from exc
    if not isinstance(payload, dict):
        raise MessageDecodeError(f"expected a json object, got {type(payload).__name__}")

    if payload.get("type") != HISTORY:
        return DecodedMessage(kind=EVENT, events=[payload])

    items = payload.get("data")
    if not isinstance(items, list):
        raise MessageDecodeError("history message without a data list")
    events = [item for item in items if isinstance(item, dict)]
    return DecodedMessage(kind=HISTORY, events=events, skipped=len(items) - len(events))
