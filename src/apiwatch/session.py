from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import aiohttp

from apiwatch.config.settings import DEFAULT_STATS_WINDOW
from apiwatch.core.expansion import ExpansionTracker
from apiwatch.core.models import RequestEvent
from apiwatch.core.stats import DerivedMetrics, StatsSnapshot
from apiwatch.core.store import EventStore
from apiwatch.core.view import LiveView, ViewSpec, methods_seen
from apiwatch.errors import CommandError
from apiwatch.live.connection import ConnectionState, LiveConnection
from apiwatch.observability.event_log import NullEventLogger

RenderGateway = Callable[["DashboardSession"], None]


class DashboardSession:
    """Everything one logged-in dashboard owns.

    Built at login and dropped at logout. The rendering layer drives it only
    through the ``on_*`` commands and reads it back through ``rows``,
    ``metrics`` and ``is_expanded``; the session calls ``render`` after every
    state change and never reaches into presentation itself.
    """

    def __init__(
        self,
        *,
        ws_url: str = "",
        stats_window: int = DEFAULT_STATS_WINDOW,
        spec: Optional[ViewSpec] = None,
        clear_command: Optional[Callable[[], None]] = None,
        render: Optional[RenderGateway] = None,
        headers: Optional[Dict[str, str]] = None,
        logger: Any = None,
    ) -> None:
        self.ws_url = ws_url
        self.store = EventStore(stats_window=stats_window)
        self.expansion = ExpansionTracker()
        self.view = LiveView(spec)
        self.connection: Optional[LiveConnection] = None
        self.last_error: Optional[str] = None
        self._clear_command = clear_command
        self._render = render
        self._headers = dict(headers or {})
        self._logger = logger or NullEventLogger()
        self._connections_opened = 0

    def attach_renderer(self, render: Optional[RenderGateway]) -> None:
        self._render = render
        self._notify()

    def _notify(self) -> None:
        if self._render is not None:
            self._render(self)

    # Read side

    @property
    def spec(self) -> ViewSpec:
        return self.view.spec

    def rows(self) -> Tuple[RequestEvent, ...]:
        return self.view.rows

    def metrics(self) -> DerivedMetrics:
        return self.store.metrics()

    def stats_snapshot(self) -> StatsSnapshot:
        return self.store.stats_snapshot()

    def is_expanded(self, event_id: int) -> bool:
        return self.expansion.is_expanded(event_id)

    def methods(self) -> List[str]:
        return methods_seen(self.store.snapshot())

    @property
    def connection_state(self) -> ConnectionState:
        if self.connection is None:
            return ConnectionState.DISCONNECTED
        return self.connection.state

    # Commands

    def on_history(self, raws: Sequence[Mapping[str, Any]]) -> List[RequestEvent]:
        events = self.store.ingest_batch(raws, historical=True)
        self.view.refresh(self.store.snapshot())
        self._logger.write(level="INFO", event="session.history", message="backlog replayed", count=len(events))
        self._notify()
        return events

    def on_new_event(self, raw: Mapping[str, Any]) -> RequestEvent:
        event = self.store.ingest(raw)
        self.view.on_new_event(event, self.store.snapshot())
        self._notify()
        return event

    def on_filter_changed(self, *, status: Optional[str] = None, method: Optional[str] = None) -> ViewSpec:
        spec = self.view.spec.replace(status_filter=status, method_filter=method)
        self.view.set_spec(spec, self.store.snapshot())
        self._notify()
        return spec

    def on_sort_changed(self, sort: str) -> ViewSpec:
        spec = self.view.spec.replace(sort=sort)
        self.view.set_spec(spec, self.store.snapshot())
        self._notify()
        return spec

    def on_toggle_expand(self, event_id: int) -> bool:
        expanded = self.expansion.toggle(int(event_id))
        self._notify()
        return expanded

    def reset(self) -> None:
        self.store.clear()
        self.expansion.clear()
        self.view.reset()

    def clear_log(self) -> None:
        """Clear the collector's log, then the local state; nothing changes on failure."""
        if self._clear_command is not None:
            try:
                self._clear_command()
            except CommandError as exc:
                self._clear_failed(exc)
                raise
        self._apply_clear()

    async def clear_log_async(self) -> None:
        # Only the blocking network call leaves the loop; state changes stay on it.
        if self._clear_command is not None:
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self._clear_command)
            except CommandError as exc:
                self._clear_failed(exc)
                raise
        self._apply_clear()

    def _clear_failed(self, exc: CommandError) -> None:
        self.last_error = str(exc)
        self._logger.write(level="WARN", event="session.clear_failed", message="clear failed", error=str(exc))
        self._notify()

    def _apply_clear(self) -> None:
        self.reset()
        self.last_error = None
        self._logger.write(level="INFO", event="session.cleared", message="log cleared")
        self._notify()

    # Connection lifecycle

    def _on_state_change(self, state: ConnectionState) -> None:
        if state == ConnectionState.CONNECTED:
            self.last_error = None
        elif self.connection is not None and self.connection.last_error:
            self.last_error = self.connection.last_error
        self._notify()

    def build_connection(self) -> LiveConnection:
        if not self.ws_url:
            raise ValueError("no live endpoint configured")
        self.connection = LiveConnection(
            self.ws_url,
            on_history=self.on_history,
            on_event=self.on_new_event,
            headers=self._headers,
            on_state_change=self._on_state_change,
            logger=self._logger,
        )
        return self.connection

    async def connect(self, http: Optional[aiohttp.ClientSession] = None) -> None:
        # The collector replays its backlog on every connection.
        if self._connections_opened:
            self.reset()
        self._connections_opened += 1
        connection = self.build_connection()
        await connection.open(http)

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
        self.reset()
        self._notify()
