from __future__ import annotations

from typing import Any, Dict, Mapping, Optional
from urllib.error import URLError

from apiwatch.client.http_client import JsonResponse, join_url, request_json
from apiwatch.errors import CommandError
from apiwatch.observability.event_log import NullEventLogger

LOGIN_PATH = "/auth"
CLEAR_PATH = "/api/clear"
LOGIN_SUCCESS = "success"


class CollectorGateway:
    """Request/response calls to the collector outside the live stream."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 5.0,
        headers: Optional[Dict[str, str]] = None,
        logger: Any = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._logger = logger or NullEventLogger()

    @property
    def base_url(self) -> str:
        return self._base_url

    def _post(self, path: str, payload: Optional[Mapping[str, Any]] = None) -> JsonResponse:
        return request_json(
            join_url(self._base_url, path),
            method="POST",
            payload=payload,
            headers=self._headers,
            timeout=self._timeout,
        )

    def login(self, username: Optional[str], password: Optional[str]) -> bool:
        user = str(username or "").strip()
        secret = str(password or "").strip()
        if not user or not secret:
            raise ValueError("Please fill in all fields")
        try:
            response = self._post(LOGIN_PATH, {"username": user, "password": secret})
        except (URLError, OSError) as exc:
            self._logger.write(level="WARN", event="auth.login", message="login request failed", error=str(exc))
            raise CommandError("Connection error. Please try again.") from exc
        # The collector answers bad credentials with a body, whatever the status.
        ok = response.body.get("message") == LOGIN_SUCCESS
        self._logger.write(
            level="INFO" if ok else "WARN",
            event="auth.login",
            message="login accepted" if ok else "invalid credentials",
            username=user,
            status=response.status,
        )
        return ok

    def clear(self) -> None:
        try:
            response = self._post(CLEAR_PATH)
        except (URLError, OSError) as exc:
            raise CommandError(f"Clear failed: {exc}") from exc
        if not response.ok:
            raise CommandError(f"Clear failed: HTTP {response.status} {response.reason}".rstrip())
        self._logger.write(level="INFO", event="collector.cleared", message="collector log cleared")
