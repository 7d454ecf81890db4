"""
Per-adapter subscription registry.

Each registration is an explicit (kind, callback) entry. subscribe() returns
a disposer bound to exactly that entry:

    dispose = registry.subscribe("audio", on_audio)
    ...
    dispose()
    dispose()  # no-op

Rules:
- Callbacks for one kind are awaited in registration order.
- The same callback may be registered more than once; each registration is
  independent and has its own disposer.
- A callback that raises is logged and skipped; later callbacks still run.
- clear() invalidates every entry; outstanding disposers become no-ops.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import count
from typing import Any, Awaitable, Callable

from observability.logger import log_event


EventCallback = Callable[[Any], Awaitable[None]]
Disposer = Callable[[], None]

_entry_ids = count(1)


@dataclass(eq=False)
class _Entry:
    kind: str
    callback: EventCallback
    entry_id: int = field(default_factory=lambda: next(_entry_ids))
    removed: bool = False


class SubscriptionRegistry:
    """Ordered registry of event callbacks keyed by event kind."""

    def __init__(self, *, owner: str | None = None) -> None:
        self._owner = owner
        self._entries: dict[str, list[_Entry]] = {}

    def subscribe(self, kind: str, callback: EventCallback) -> Disposer:
        entry = _Entry(kind=kind, callback=callback)
        self._entries.setdefault(kind, []).append(entry)

        def dispose() -> None:
            if entry.removed:
                return
            entry.removed = True
            entries = self._entries.get(entry.kind)
            if entries is not None and entry in entries:
                entries.remove(entry)

        return dispose

    def count(self, kind: str | None = None) -> int:
        """Number of live registrations, for one kind or overall."""
        if kind is not None:
            return len(self._entries.get(kind, ()))
        return sum(len(v) for v in self._entries.values())

    async def dispatch(self, kind: str, payload: Any) -> None:
        """
        Deliver payload to every live callback registered for kind.

        Iterates over a snapshot so callbacks may dispose themselves (or
        others) mid-dispatch; disposed entries are skipped.
        """
        for entry in tuple(self._entries.get(kind, ())):
            if entry.removed:
                continue
            try:
                await entry.callback(payload)
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "SUBSCRIBER_FAILED",
                    "owner": self._owner,
                    "kind": kind,
                    "entry_id": entry.entry_id,
                    "exception": type(e).__name__,
                    "message": str(e),
                })

    def clear(self) -> None:
        for entries in self._entries.values():
            for entry in entries:
                entry.removed = True
        self._entries.clear()
