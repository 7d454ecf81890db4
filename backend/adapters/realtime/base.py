"""
Realtime upstream adapter contract.

This module defines the *interface only*. One adapter instance wraps one
upstream realtime session and is never reused.

Key invariants:
- connect() either opens the session or raises ConnectFailed. A failed or
  abandoned adapter needs nothing from the caller beyond close().
- Subscriptions are delivered in the order events arrive on the transport.
  Ordering across distinct kinds is whatever the transport provides.
- close() is synchronous, idempotent, and safe from any state, including
  while connect() is still pending.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from adapters.realtime.registry import Disposer, EventCallback


# -------------------------
# Exceptions
# -------------------------

class RealtimeAdapterError(Exception):
    """Base class for upstream adapter errors."""


class ConnectFailed(RealtimeAdapterError):
    """
    The upstream handshake was rejected, timed out, or was abandoned
    because close() was called first. Terminal for the adapter.
    """


class ForwardFailed(RealtimeAdapterError):
    """
    The transport rejected an outbound control event (adapter not open,
    closing, or the socket write failed). Per-message, not fatal.
    """


# -------------------------
# Types
# -------------------------

class AdapterState(str, Enum):
    """Adapter lifecycle. CLOSED is terminal."""

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class AudioChunk:
    """
    Decoded upstream audio, delivered to "audio" subscribers.

    data is exactly the bytes the upstream produced for one delta.
    """
    data: bytes
    response_id: str | None = None
    item_id: str | None = None


# -------------------------
# Adapter
# -------------------------

class RealtimeAdapter(ABC):
    """
    Abstract interface for an upstream realtime session.

    Event kinds (see constants.EVENT_KIND_*):
    - "*": every upstream server event, as a parsed JSON dict
    - "connection_change": a status string
    - "error": the upstream error detail
    - "audio": an AudioChunk
    """

    @property
    @abstractmethod
    def state(self) -> AdapterState:
        raise NotImplementedError

    @abstractmethod
    async def connect(self, credential: str, model: str) -> None:
        """
        Perform the upstream handshake.

        Raises:
            ConnectFailed on any failure.
        """
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, kind: str, callback: EventCallback) -> Disposer:
        """
        Register an async callback for one event kind.

        Returns a disposer that removes exactly this registration; calling
        it again is a no-op.
        """
        raise NotImplementedError

    @abstractmethod
    async def send_audio(self, data: bytes) -> None:
        """
        Forward opaque audio upstream.

        Fire-and-forget: no acknowledgment is awaited and nothing is raised.
        Frames sent while the adapter is not open are dropped.
        """
        raise NotImplementedError

    @abstractmethod
    async def send_event(self, event: dict[str, Any]) -> None:
        """
        Forward a structured control event upstream verbatim.

        Raises:
            ForwardFailed if the transport rejects it.
        """
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """
        Terminate the upstream connection and invalidate all subscriptions.

        Must not raise and must not await.
        """
        raise NotImplementedError
