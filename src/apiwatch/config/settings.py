from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlsplit, urlunsplit

DEFAULT_DATA_DIR = "~/.apiwatch"
DEFAULT_ENV_FILE = ".env"
DEFAULT_URL = "http://127.0.0.1:8000"
DEFAULT_WS_PATH = "/ws"
DEFAULT_STATS_WINDOW = 20
DEFAULT_THEME = "dark"
DEFAULT_TIMEOUT = 5.0

THEMES = ("dark", "light")

ENV_DATA_DIR = "APIWATCH_DATA_DIR"
ENV_ENV_FILE = "APIWATCH_ENV_FILE"
ENV_URL = "APIWATCH_URL"
ENV_WS_PATH = "APIWATCH_WS_PATH"
ENV_USERNAME = "APIWATCH_USERNAME"
ENV_PASSWORD = "APIWATCH_PASSWORD"
ENV_STATS_WINDOW = "APIWATCH_STATS_WINDOW"
ENV_THEME = "APIWATCH_THEME"
ENV_AUTHENTICATED = "APIWATCH_AUTHENTICATED"
ENV_TIMEOUT = "APIWATCH_TIMEOUT"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def resolve_path(path: str) -> Path:
    return Path(os.path.expanduser(path))


def env_file_path(data_dir: str) -> Path:
    explicit = os.environ.get(ENV_ENV_FILE)
    if explicit:
        return resolve_path(explicit)
    return resolve_path(data_dir) / DEFAULT_ENV_FILE


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in _TRUE_VALUES


def parse_positive_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    if parsed <= 0:
        return default
    return parsed


def parse_positive_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    if parsed <= 0:
        return default
    return parsed


def parse_theme(value: Optional[str], default: str = DEFAULT_THEME) -> str:
    normalized = str(value or "").strip().lower()
    if normalized in THEMES:
        return normalized
    return default


def ensure_private_file(path: Path) -> None:
    try:
        path.chmod(0o600)
    except OSError:
        return


def ensure_env_file(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.touch(mode=0o600, exist_ok=True)
    ensure_private_file(path)


def load_env_file(path: Path) -> Dict[str, str]:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (FileNotFoundError, OSError):
        return {}
    data: Dict[str, str] = {}
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        if key:
            data[key] = value
    return data


def _write_env_file(path: Path, values: Dict[str, str]) -> None:
    lines = [f"{key}={values[key]}" for key in sorted(values.keys())]
    path.write_text("\n".join(lines).rstrip("\n") + "\n", encoding="utf-8")
    ensure_private_file(path)


def upsert_env_values(path: Path, updates: Dict[str, str]) -> bool:
    ensure_env_file(path)
    values = load_env_file(path)
    changed = False
    for key, value in updates.items():
        if values.get(key) != value:
            values[key] = value
            changed = True
    if changed:
        _write_env_file(path, values)
    return changed


def websocket_url(base_url: str, ws_path: str) -> str:
    parts = urlsplit(base_url)
    scheme = "wss" if parts.scheme == "https" else "ws"
    path = "/" + ws_path.lstrip("/")
    return urlunsplit((scheme, parts.netloc, path, "", ""))


@dataclass(frozen=True)
class Settings:
    data_dir: str
    url: str
    ws_path: str
    username: Optional[str]
    password: Optional[str]
    stats_window: int
    theme: str
    authenticated: bool
    timeout: float

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")

    @property
    def ws_url(self) -> str:
        return websocket_url(self.base_url, self.ws_path)

    @property
    def env_path(self) -> Path:
        return env_file_path(self.data_dir)

    def with_theme(self, theme: str) -> "Settings":
        return replace(self, theme=parse_theme(theme, default=self.theme))

    def with_authenticated(self, authenticated: bool) -> "Settings":
        return replace(self, authenticated=bool(authenticated))


def build_settings(
    *,
    data_dir: Optional[str] = None,
    url: Optional[str] = None,
    ws_path: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    stats_window: Optional[int] = None,
    theme: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Settings:
    initial_data_dir = data_dir or os.environ.get(ENV_DATA_DIR) or DEFAULT_DATA_DIR
    env_path = env_file_path(str(resolve_path(initial_data_dir)))
    merged = dict(load_env_file(env_path))
    merged.update(os.environ)

    resolved_data_dir = str(resolve_path(data_dir or merged.get(ENV_DATA_DIR) or initial_data_dir))
    resolved_url = (url or merged.get(ENV_URL) or DEFAULT_URL).strip() or DEFAULT_URL
    resolved_ws_path = (ws_path or merged.get(ENV_WS_PATH) or DEFAULT_WS_PATH).strip() or DEFAULT_WS_PATH
    resolved_username = str(username if username is not None else merged.get(ENV_USERNAME) or "").strip() or None
    resolved_password = str(password if password is not None else merged.get(ENV_PASSWORD) or "").strip() or None

    if stats_window is None:
        resolved_window = parse_positive_int(merged.get(ENV_STATS_WINDOW), default=DEFAULT_STATS_WINDOW)
    else:
        resolved_window = max(1, int(stats_window))

    if timeout is None:
        resolved_timeout = parse_positive_float(merged.get(ENV_TIMEOUT), default=DEFAULT_TIMEOUT)
    else:
        resolved_timeout = max(0.1, float(timeout))

    return Settings(
        data_dir=resolved_data_dir,
        url=resolved_url,
        ws_path=resolved_ws_path,
        username=resolved_username,
        password=resolved_password,
        stats_window=resolved_window,
        theme=parse_theme(theme if theme is not None else merged.get(ENV_THEME)),
        authenticated=parse_bool(merged.get(ENV_AUTHENTICATED), default=False),
        timeout=resolved_timeout,
    )


def persist_theme(settings: Settings, theme: str) -> Settings:
    updated = settings.with_theme(theme)
    upsert_env_values(settings.env_path, {ENV_THEME: updated.theme})
    return updated


def persist_authenticated(settings: Settings, authenticated: bool) -> Settings:
    upsert_env_values(settings.env_path, {ENV_AUTHENTICATED: "1" if authenticated else "0"})
    return settings.with_authenticated(authenticated)
