from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Optional

from rich.console import Console
from rich.table import Table

from apiwatch import __version__
from apiwatch.client.gateway import CollectorGateway
from apiwatch.config.settings import (
    THEMES,
    Settings,
    build_settings,
    persist_authenticated,
    persist_theme,
)
from apiwatch.core.view import SORT_KEYS, STATUS_FILTERS, ViewSpec
from apiwatch.observability.event_log import EventLogger, read_records, tail_lines
from apiwatch.observability.tui import DEFAULT_MAX_ROWS, run_dashboard_tui
from apiwatch.session import DashboardSession


def _add_runtime_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--data-dir", default=None)
    parser.add_argument("--url", default=None, help="collector base url (http or https)")
    parser.add_argument("--ws-path", default=None)
    parser.add_argument("--username", default=None)
    parser.add_argument("--password", default=None)
    parser.add_argument("--stats-window", type=int, default=None)
    parser.add_argument("--timeout", type=float, default=None)


def _settings_from_args(args: argparse.Namespace) -> Settings:
    return build_settings(
        data_dir=getattr(args, "data_dir", None),
        url=getattr(args, "url", None),
        ws_path=getattr(args, "ws_path", None),
        username=getattr(args, "username", None),
        password=getattr(args, "password", None),
        stats_window=getattr(args, "stats_window", None),
        timeout=getattr(args, "timeout", None),
    )


def _gateway(settings: Settings, logger: EventLogger) -> CollectorGateway:
    return CollectorGateway(settings.base_url, timeout=settings.timeout, logger=logger)


def _login(settings: Settings, gateway: CollectorGateway) -> bool:
    if not gateway.login(settings.username, settings.password):
        print("Invalid credentials", file=sys.stderr)
        return False
    persist_authenticated(settings, True)
    return True


def handle_login(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    gateway = _gateway(settings, EventLogger.for_data_dir(settings.data_dir))
    if not _login(settings, gateway):
        return 1
    print(f"Logged in to {settings.base_url}")
    return 0


def handle_logout(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    persist_authenticated(settings, False)
    print("Logged out")
    return 0


def handle_watch(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    logger = EventLogger.for_data_dir(settings.data_dir)
    gateway = _gateway(settings, logger)
    spec = ViewSpec.parse(status_filter=args.status, method_filter=args.method, sort=args.sort)
    if not settings.authenticated and not _login(settings, gateway):
        return 1

    session = DashboardSession(
        ws_url=settings.ws_url,
        stats_window=settings.stats_window,
        spec=spec,
        clear_command=gateway.clear,
        logger=logger,
    )
    try:
        asyncio.run(
            run_dashboard_tui(
                session,
                theme=settings.theme,
                max_rows=max(1, int(args.max_rows)),
                reconnect_delay=max(0.0, float(args.reconnect_delay)),
                read_commands=not bool(args.no_commands),
            )
        )
    except KeyboardInterrupt:
        return 0
    return 0


def handle_clear(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    _gateway(settings, EventLogger.for_data_dir(settings.data_dir)).clear()
    print("Collector log cleared")
    return 0


def handle_theme(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    choice = str(args.theme)
    if choice == "toggle":
        choice = "light" if settings.theme == "dark" else "dark"
    updated = persist_theme(settings, choice)
    print(f"Theme: {updated.theme}")
    return 0


def handle_status(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    table = Table(title="apiwatch settings")
    table.add_column("Field")
    table.add_column("Value")
    rows = {
        "url": settings.base_url,
        "ws_url": settings.ws_url,
        "username": settings.username or "-",
        "authenticated": settings.authenticated,
        "theme": settings.theme,
        "stats_window": settings.stats_window,
        "timeout": settings.timeout,
        "env_file": settings.env_path,
        "events_file": EventLogger.for_data_dir(settings.data_dir).path,
    }
    for key, value in rows.items():
        table.add_row(key, str(value))
    Console().print(table)
    return 0


def handle_logs(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    path = EventLogger.for_data_dir(settings.data_dir).path
    limit = max(1, int(args.lines))
    if args.event:
        records = read_records(path, event_prefix=args.event, limit=limit)
        lines = [json.dumps(record, ensure_ascii=False) for record in records]
    else:
        lines = tail_lines(path, limit=limit)
    if not lines:
        print("No logs found")
        return 0
    for line in lines:
        print(line)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="apiwatch live api traffic dashboard",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    watch_parser = sub.add_parser(
        "watch",
        help="open the live dashboard",
        formatter_class=argparse.RawTextHelpFormatter,
        epilog=(
            "Examples:\n"
            "  apiwatch watch --url http://127.0.0.1:8000 --username admin --password secret\n"
            "  apiwatch watch --status 5xx --sort duration-desc\n"
        ),
    )
    _add_runtime_options(watch_parser)
    watch_parser.add_argument("--status", choices=list(STATUS_FILTERS), default="all")
    watch_parser.add_argument("--method", default="all")
    watch_parser.add_argument("--sort", choices=list(SORT_KEYS), default="time-desc")
    watch_parser.add_argument("--max-rows", type=int, default=DEFAULT_MAX_ROWS)
    watch_parser.add_argument(
        "--reconnect-delay",
        type=float,
        default=0.0,
        help="seconds before reopening a closed live connection (0 = stay closed)",
    )
    watch_parser.add_argument("--no-commands", action="store_true", help="do not read commands from stdin")
    watch_parser.set_defaults(handler=handle_watch)

    login_parser = sub.add_parser("login", help="check credentials and remember the session")
    _add_runtime_options(login_parser)
    login_parser.set_defaults(handler=handle_login)

    logout_parser = sub.add_parser("logout", help="forget the remembered session")
    _add_runtime_options(logout_parser)
    logout_parser.set_defaults(handler=handle_logout)

    clear_parser = sub.add_parser("clear", help="clear the collector's request log")
    _add_runtime_options(clear_parser)
    clear_parser.set_defaults(handler=handle_clear)

    theme_parser = sub.add_parser("theme", help="set or toggle the dashboard theme")
    _add_runtime_options(theme_parser)
    theme_parser.add_argument("theme", choices=[*THEMES, "toggle"], nargs="?", default="toggle")
    theme_parser.set_defaults(handler=handle_theme)

    status_parser = sub.add_parser("status", help="show resolved settings")
    _add_runtime_options(status_parser)
    status_parser.set_defaults(handler=handle_status)

    logs_parser = sub.add_parser("logs", help="tail the dashboard event log")
    _add_runtime_options(logs_parser)
    logs_parser.add_argument("--lines", type=int, default=120)
    logs_parser.add_argument("--event", default="", help="only records whose event starts with this prefix")
    logs_parser.set_defaults(handler=handle_logs)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2
    try:
        return int(handler(args))
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2
