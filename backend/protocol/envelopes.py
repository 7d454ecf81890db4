"""
Server -> client JSON envelopes.

Every relay-originated JSON message has the shape {"type": str, ...payload}.
Upstream events forwarded through the wildcard subscription are NOT built
here; they are sent verbatim.
"""

from __future__ import annotations

from typing import Any

from constants import (
    MSG_CLIENT_ERROR,
    MSG_CONNECTION_CHANGE,
    MSG_REALTIME_CONNECTED,
    MSG_REALTIME_ERROR,
    TEXT_CONNECTED,
)


def error_detail(error: BaseException | Any) -> Any:
    """
    Reduce an error to something JSON-serializable for the client.

    Exceptions become their message; anything else is passed through.
    """
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    return error


def realtime_connected(message: str = TEXT_CONNECTED) -> dict[str, Any]:
    return {"type": MSG_REALTIME_CONNECTED, "message": message}


def realtime_error(
    message: str,
    error: BaseException | Any | None = None,
) -> dict[str, Any]:
    """Upstream-originated error, connect failure, or forwarding failure."""
    msg: dict[str, Any] = {"type": MSG_REALTIME_ERROR, "message": message}
    if error is not None:
        msg["error"] = error_detail(error)
    return msg


def client_error(message: str) -> dict[str, Any]:
    return {"type": MSG_CLIENT_ERROR, "message": message}


def connection_change(status: Any) -> dict[str, Any]:
    return {"type": MSG_CONNECTION_CHANGE, "status": status}
