from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.error import HTTPError
from urllib.request import Request, urlopen

JSON_TYPE = "application/json"


@dataclass(frozen=True)
class JsonResponse:
    """Status line plus decoded body of one collector reply.

    HTTP error statuses come back as a response too; only transport failures
    (refused, timed out, unreachable) raise.
    """

    status: int
    reason: str = ""
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def join_url(base_url: str, path: str) -> str:
    if not path:
        return base_url.rstrip("/")
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def decode_json_body(raw: bytes) -> Dict[str, Any]:
    """Parse a reply body; empty or non-JSON bodies decode to ``{}``, bare values to ``{"data": value}``."""
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return {}
    try:
        decoded = json.loads(text)
    except ValueError:
        return {}
    return decoded if isinstance(decoded, dict) else {"data": decoded}


def request_json(
    url: str,
    *,
    method: str = "GET",
    payload: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
    timeout: float = 5.0,
) -> JsonResponse:
    merged = {"Accept": JSON_TYPE, **dict(headers or {})}
    data = None
    if payload is not None:
        data = json.dumps(dict(payload)).encode("utf-8")
        merged["Content-Type"] = JSON_TYPE
    request = Request(url, data=data, headers=merged, method=method.upper())
    try:
        with urlopen(request, timeout=timeout) as reply:
            return JsonResponse(status=reply.status, reason=str(reply.reason or ""), body=decode_json_body(reply.read()))
    except HTTPError as exc:
        raw = exc.read() if exc.fp is not None else b""
        return JsonResponse(status=exc.code, reason=str(exc.reason or ""), body=decode_json_body(raw))
