from __future__ import annotations

import asyncio
import contextlib
import datetime as dt
import json
import sys
import threading
from typing import Any, Dict, List, Optional, Tuple

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from apiwatch.core.models import RequestEvent, parse_timestamp
from apiwatch.core.stats import latency_series, success_series, volume_series
from apiwatch.core.view import SORT_KEYS, STATUS_FILTERS
from apiwatch.errors import CommandError
from apiwatch.live.connection import ConnectionState
from apiwatch.session import DashboardSession

DEFAULT_MAX_ROWS = 50
SPARK_CHARS = "▁▂▃▄▅▆▇█"

PALETTES: Dict[str, Dict[str, str]] = {
    "dark": {
        "accent": "cyan",
        "muted": "dim",
        "success": "green",
        "redirect": "yellow",
        "error": "red",
        "border": "white",
    },
    "light": {
        "accent": "blue",
        "muted": "grey50",
        "success": "dark_green",
        "redirect": "dark_orange3",
        "error": "red3",
        "border": "black",
    },
}

METHOD_STYLES = {
    "GET": "bold green",
    "POST": "bold blue",
    "PUT": "bold yellow",
    "PATCH": "bold magenta",
    "DELETE": "bold red",
}

COMMAND_HELP = "commands: status <all|2xx|..> | method <all|GET|..> | sort <key> | toggle <id> | clear | quit"


def _palette(theme: str) -> Dict[str, str]:
    return PALETTES.get(theme, PALETTES["dark"])


def format_time(value: Any) -> str:
    ts = parse_timestamp(value)
    if ts is None:
        return "??:??:??"
    try:
        return dt.datetime.fromtimestamp(ts).strftime("%H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return "??:??:??"


def format_duration(value: Optional[float]) -> str:
    if value is None:
        return "---"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value}ms"


def format_count(total: int) -> str:
    return f"{total} request{'' if total == 1 else 's'}"


def status_class(status_code: Optional[int]) -> str:
    if status_code is None:
        return "error"
    if status_code < 300:
        return "success"
    if status_code < 400:
        return "redirect"
    return "error"


def sparkline(values: List[float]) -> str:
    """Map 0..1 values onto block glyphs."""
    if not values:
        return ""
    top = len(SPARK_CHARS) - 1
    chars = []
    for value in values:
        level = int(round(max(0.0, min(1.0, float(value))) * top))
        chars.append(SPARK_CHARS[level])
    return "".join(chars)


def _volume_text(values: List[int], style: str) -> Text:
    if not values:
        return Text("")
    peak = max(values)
    return Text(sparkline([value / peak for value in values]), style=style)


def _success_text(flags: List[bool], palette: Dict[str, str]) -> Text:
    text = Text()
    for flag in flags:
        if flag:
            text.append(SPARK_CHARS[-1], style=palette["success"])
        else:
            text.append(SPARK_CHARS[1], style=palette["error"])
    return text


def pretty_payload(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def detail_sections(event: RequestEvent) -> List[Tuple[str, str]]:
    sections: List[Tuple[str, str]] = []
    if event.query_params:
        sections.append(("Query Parameters", pretty_payload(event.query_params)))
    if event.request_data:
        sections.append(("Request Body", pretty_payload(event.request_data)))
    if event.response_data:
        sections.append(("Response", pretty_payload(event.response_data)))
    if event.headers:
        sections.append(("Headers", pretty_payload(event.headers)))
    return sections


def _stats_panel(session: DashboardSession, palette: Dict[str, str]) -> Table:
    snapshot = session.stats_snapshot()
    metrics = session.metrics()
    grid = Table.grid(expand=True, padding=(0, 2))
    for _ in range(3):
        grid.add_column(ratio=1)
    grid.add_row(
        Text("TOTAL REQUESTS", style=palette["muted"]),
        Text("SUCCESS RATE", style=palette["muted"]),
        Text("AVG RESPONSE TIME", style=palette["muted"]),
    )
    grid.add_row(
        Text(str(snapshot.total), style="bold"),
        Text(f"{metrics.success_rate_percent}%", style="bold"),
        Text(f"{metrics.average_duration_ms}ms", style="bold"),
    )
    grid.add_row(
        _volume_text(volume_series(snapshot), palette["accent"]),
        _success_text(success_series(snapshot), palette),
        Text(sparkline(latency_series(snapshot)), style=palette["accent"]),
    )
    return grid


def _requests_table(rows: List[RequestEvent], session: DashboardSession, palette: Dict[str, str]) -> Table:
    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("ID", style=palette["muted"], no_wrap=True)
    table.add_column("SERVICE", style=palette["accent"], no_wrap=True)
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("STATUS", no_wrap=True)
    table.add_column("DURATION", no_wrap=True)
    table.add_column("TIME", style=palette["muted"], no_wrap=True)
    for event in rows:
        marker = "▾" if session.is_expanded(event.id) else "▸"
        status = str(event.status_code) if event.status_code is not None else "---"
        table.add_row(
            f"{marker} {event.id}",
            event.service or "",
            Text(event.method or "-", style=METHOD_STYLES.get(event.method, "bold")),
            event.path or "-",
            Text(status, style=palette[status_class(event.status_code)]),
            format_duration(event.duration_ms),
            f"{format_time(event.timestamp)} UTC",
        )
    return table


def _details_panel(event: RequestEvent, palette: Dict[str, str]) -> Panel:
    sections = detail_sections(event)
    body = Text()
    if not sections:
        body.append("no details captured", style=palette["muted"])
    for index, (label, content) in enumerate(sections):
        if index:
            body.append("\n\n")
        body.append(label.upper(), style=f"bold {palette['accent']}")
        body.append("\n")
        body.append(content)
    title = f"#{event.id} {event.method} {event.path}"
    return Panel(body, title=title, title_align="left", border_style=palette["muted"], expand=True)


def build_dashboard(
    session: DashboardSession,
    *,
    theme: str = "dark",
    max_rows: int = DEFAULT_MAX_ROWS,
    notice: Optional[str] = None,
) -> Panel:
    palette = _palette(theme)
    spec = session.spec
    rows = list(session.rows())
    shown = rows[: max(1, max_rows)]
    total = len(session.store)
    state = session.connection_state

    title = (
        f"APIWATCH | {format_count(total)} | showing={len(shown)}"
        f" | status={spec.status_filter} method={spec.method_filter} sort={spec.sort}"
        f" | {state.value}"
    )

    parts: List[Any] = [_stats_panel(session, palette), Text("")]
    if shown:
        parts.append(_requests_table(shown, session, palette))
        for event in shown:
            if session.is_expanded(event.id):
                parts.append(_details_panel(event, palette))
    elif total:
        parts.append(Text("no requests match the current filters", style=palette["muted"]))
    else:
        parts.append(Text("waiting for requests...", style=palette["muted"]))

    if session.last_error:
        parts.append(Text(f"error: {session.last_error}", style=palette["error"]))
    if notice:
        parts.append(Text(notice, style=palette["accent"]))
    if state != ConnectionState.CONNECTED and total:
        parts.append(Text("live connection closed; showing captured requests", style=palette["muted"]))
    methods = session.methods()
    if methods:
        parts.append(Text(f"methods seen: {', '.join(methods)}", style=palette["muted"]))
    parts.append(Text(COMMAND_HELP, style=palette["muted"]))
    return Panel(Group(*parts), title=title, border_style=palette["border"], expand=True)


def parse_command(line: str) -> Tuple[str, Optional[str]]:
    parts = line.strip().split(None, 1)
    if not parts:
        raise ValueError("empty command")
    name = parts[0].lower()
    arg = parts[1].strip() if len(parts) > 1 else None
    aliases = {"s": "status", "m": "method", "o": "sort", "t": "toggle", "x": "toggle", "q": "quit", "exit": "quit"}
    name = aliases.get(name, name)
    if name in {"status", "method", "sort", "toggle"} and not arg:
        raise ValueError(f"{name} needs an argument")
    if name == "status" and arg and arg.lower() not in STATUS_FILTERS:
        raise ValueError(f"status must be one of {', '.join(STATUS_FILTERS)}")
    if name == "sort" and arg and arg.lower() not in SORT_KEYS:
        raise ValueError(f"sort must be one of {', '.join(SORT_KEYS)}")
    if name == "toggle" and arg and not arg.lstrip("#").isdigit():
        raise ValueError("toggle needs a numeric request id")
    if name not in {"status", "method", "sort", "toggle", "clear", "quit"}:
        raise ValueError(f"unknown command: {name}")
    return name, arg


async def apply_command(session: DashboardSession, name: str, arg: Optional[str]) -> Optional[str]:
    if name == "status":
        spec = session.on_filter_changed(status=arg)
        return f"status filter: {spec.status_filter}"
    if name == "method":
        spec = session.on_filter_changed(method=arg)
        return f"method filter: {spec.method_filter}"
    if name == "sort":
        spec = session.on_sort_changed(str(arg))
        return f"sort: {spec.sort}"
    if name == "toggle":
        event_id = int(str(arg).lstrip("#"))
        expanded = session.on_toggle_expand(event_id)
        return f"#{event_id} {'expanded' if expanded else 'collapsed'}"
    if name == "clear":
        await session.clear_log_async()
        return "log cleared"
    return None


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, queue: "asyncio.Queue[Optional[str]]") -> threading.Thread:
    def read_lines() -> None:
        for line in sys.stdin:
            loop.call_soon_threadsafe(queue.put_nowait, line)
        loop.call_soon_threadsafe(queue.put_nowait, None)

    thread = threading.Thread(target=read_lines, name="apiwatch-stdin", daemon=True)
    thread.start()
    return thread


async def drive_connection(
    session: DashboardSession,
    stop: asyncio.Event,
    *,
    reconnect_delay: float = 0.0,
    commands: Optional["asyncio.Future[None]"] = None,
    http: Any = None,
) -> None:
    """Keep the live link open until ``stop`` is set, reopening after ``reconnect_delay`` when positive."""
    while not stop.is_set():
        link = asyncio.ensure_future(session.connect(http))
        halt = asyncio.ensure_future(stop.wait())
        done, _pending = await asyncio.wait({link, halt}, return_when=asyncio.FIRST_COMPLETED)
        if halt in done:
            # The handshake may never finish; do not wait on it.
            link.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await link
            await session.close()
            return
        halt.cancel()
        link.result()
        if reconnect_delay <= 0:
            if commands is not None and not commands.done():
                # Keep showing captured data until the user quits.
                halt = asyncio.ensure_future(stop.wait())
                await asyncio.wait({halt, commands}, return_when=asyncio.FIRST_COMPLETED)
                halt.cancel()
            return
        try:
            await asyncio.wait_for(stop.wait(), timeout=reconnect_delay)
        except asyncio.TimeoutError:
            continue


async def run_dashboard_tui(
    session: DashboardSession,
    *,
    theme: str = "dark",
    max_rows: int = DEFAULT_MAX_ROWS,
    reconnect_delay: float = 0.0,
    read_commands: bool = True,
    console: Optional[Console] = None,
) -> None:
    """Drive the live dashboard until ``quit`` or, without a command reader, until disconnect."""
    loop = asyncio.get_running_loop()
    notice: Dict[str, Optional[str]] = {"text": None}
    stop = asyncio.Event()

    with Live(console=console or Console(), auto_refresh=False, screen=False) as live:

        def render(current: DashboardSession) -> None:
            live.update(build_dashboard(current, theme=theme, max_rows=max_rows, notice=notice["text"]), refresh=True)

        session.attach_renderer(render)

        async def command_loop() -> None:
            queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
            _start_stdin_reader(loop, queue)
            while True:
                line = await queue.get()
                if line is None:
                    return
                if not line.strip():
                    continue
                try:
                    name, arg = parse_command(line)
                    if name == "quit":
                        stop.set()
                        return
                    notice["text"] = await apply_command(session, name, arg)
                except (ValueError, CommandError) as exc:
                    notice["text"] = f"! {exc}"
                render(session)

        commands = asyncio.ensure_future(command_loop()) if read_commands else None
        try:
            await drive_connection(session, stop, reconnect_delay=reconnect_delay, commands=commands)
        finally:
            if commands is not None and not commands.done():
                commands.cancel()
            session.attach_renderer(None)
