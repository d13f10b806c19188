from __future__ import annotations

import enum
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from apiwatch.errors import MessageDecodeError
from apiwatch.live.messages import HISTORY, decode_message
from apiwatch.observability.event_log import NullEventLogger

HistoryHandler = Callable[[List[Dict[str, Any]]], None]
EventHandler = Callable[[Dict[str, Any]], None]


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class LiveConnection:
    """Streaming link to the collector's event websocket.

    One ``open`` call walks ``disconnected -> connecting -> connected`` and
    returns once the peer closes or the transport fails, always ending in
    ``disconnected``. Nothing here retries; reopening is the owner's call.
    """

    def __init__(
        self,
        url: str,
        *,
        on_history: HistoryHandler,
        on_event: EventHandler,
        headers: Optional[Dict[str, str]] = None,
        on_state_change: Optional[Callable[[ConnectionState], None]] = None,
        logger: Any = None,
    ) -> None:
        self._url = url
        self._headers = dict(headers or {})
        self._on_history = on_history
        self._on_event = on_event
        self._on_state_change = on_state_change
        self._logger = logger or NullEventLogger()
        self._state = ConnectionState.DISCONNECTED
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._closing = False
        self.decode_errors = 0
        self.messages_received = 0
        self.last_error: Optional[str] = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        self._logger.write(level="INFO", event="live.state", message=f"connection {state.value}", url=self._url)
        if self._on_state_change is not None:
            self._on_state_change(state)

    async def open(self, http: Optional[aiohttp.ClientSession] = None) -> None:
        self._closing = False
        self._set_state(ConnectionState.CONNECTING)
        owns_http = http is None
        client = http if http is not None else aiohttp.ClientSession(headers=self._headers)
        try:
            async with client.ws_connect(self._url, headers=self._headers) as ws:
                if self._closing:
                    return
                self._ws = ws
                self.last_error = None
                self._set_state(ConnectionState.CONNECTED)
                await self.consume(ws)
        except (aiohttp.ClientError, OSError) as exc:
            self.last_error = str(exc) or type(exc).__name__
            self._logger.write(
                level="WARN",
                event="live.transport_error",
                message="live connection failed",
                url=self._url,
                error=self.last_error,
            )
        finally:
            self._ws = None
            if owns_http:
                await client.close()
            self._set_state(ConnectionState.DISCONNECTED)

    async def consume(self, ws: Any) -> None:
        async for msg in ws:
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                self.handle_text(msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                error = ws.exception() if hasattr(ws, "exception") else None
                self.last_error = str(error or "websocket error")
                break
            elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                break

    def handle_text(self, raw: Any) -> bool:
        self.messages_received += 1
        try:
            message = decode_message(raw)
        except MessageDecodeError as exc:
            self.decode_errors += 1
            self._logger.write(
                level="WARN",
                event="live.decode_error",
                message="skipped malformed message",
                error=str(exc),
            )
            return False
        if message.skipped:
            self._logger.write(
                level="WARN",
                event="live.decode_error",
                message="skipped non-object history items",
                skipped=message.skipped,
            )
        if message.kind == HISTORY:
            self._on_history(message.events)
        else:
            self._on_event(message.events[0])
        return True

    async def close(self) -> None:
        # Also stops an open that is still in its handshake.
        self._closing = True
        ws = self._ws
        if ws is not None and not ws.closed:
            await ws.close()
