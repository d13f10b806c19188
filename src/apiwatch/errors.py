from __future__ import annotations


class ApiWatchError(Exception):
    """Base class for dashboard errors."""


class MessageDecodeError(ApiWatchError, ValueError):
    """A single inbound live message could not be decoded."""


class CommandError(ApiWatchError, RuntimeError):
    """A request/response command (login, clear) failed; core state is unchanged."""
