"""Minimal synchronous event emitter.

Learn: the API and the shared redis client both speak in events
(``error``, ``log``, ``connect``...). Listeners are plain callables,
invoked in registration order on ``emit``. Anything that wants to
bind handlers idempotently only needs the ``EventSource`` surface:
``on`` plus ``listener_count``.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Protocol, runtime_checkable

Listener = Callable[..., Any]


@runtime_checkable
class EventSource(Protocol):
    """What the listener guard needs from an emitter."""

    def on(self, event: str, listener: Listener) -> Any: ...

    def listener_count(self, event: str) -> int: ...


class EventEmitter:
    """Register listeners per event name and call them on emit."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event: str, listener: Listener) -> "EventEmitter":
        self._listeners.setdefault(event, []).append(listener)
        return self

    def off(self, event: str, listener: Listener) -> "EventEmitter":
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)
        return self

    def listeners(self, event: str) -> List[Listener]:
        return list(self._listeners.get(event, ()))

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every listener for ``event``. Returns False if there were none.

        An ``error`` event with nobody listening raises its first argument,
        so errors never disappear silently.
        """
        listeners = self.listeners(event)
        if not listeners:
            if event == "error":
                err = args[0] if args else RuntimeError("Unhandled error event")
                if isinstance(err, BaseException):
                    raise err
                raise RuntimeError(f"Unhandled error event: {err!r}")
            return False
        for listener in listeners:
            listener(*args)
        return True
