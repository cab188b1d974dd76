"""
MODULE OVERVIEW:
The in-process publish/subscribe registry for stream events.

WHAT IS HAPPENING HERE:
Each EventKind maps to an ordered list of listeners. `publish()` walks that list in
subscription order and calls every listener. A listener that raises is logged and
skipped, so one broken subscriber never starves the others. Listeners may also be
coroutine functions: their coroutine is scheduled on the running loop and any failure
is logged from a done-callback.
"""
import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from sse_manager.shared.models import EventKind, StreamEvent

Listener = Callable[[StreamEvent], Any]


class EventDispatcher:
    def __init__(self):
        self._listeners: Dict[EventKind, List[Listener]] = {}
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, kind: EventKind, listener: Listener) -> None:
        self._listeners.setdefault(EventKind(kind), []).append(listener)

    def unsubscribe(self, kind: EventKind, listener: Optional[Listener] = None) -> None:
        kind = EventKind(kind)
        if listener is None:
            self._listeners.pop(kind, None)
            return

        listeners = self._listeners.get(kind)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[kind]

    def listener_count(self, kind: EventKind) -> int:
        return len(self._listeners.get(EventKind(kind), []))

    def clear(self) -> None:
        self._listeners.clear()

    def publish(self, kind: EventKind, event: StreamEvent) -> None:
        kind = EventKind(kind)
        # Copy so a listener may unsubscribe itself mid-publish
        for listener in list(self._listeners.get(kind, [])):
            try:
                result = listener(event)
            except Exception:
                logger.exception(f"event=listener_error kind={kind.value} listener={_name(listener)}")
                continue
            if inspect.isawaitable(result):
                self._schedule(kind, listener, result)

    def _schedule(self, kind: EventKind, listener: Listener, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.opt(exception=exc).error(
                    f"event=listener_error kind={kind.value} listener={_name(listener)}"
                )

        task.add_done_callback(_done)


def _name(listener: Listener) -> str:
    return getattr(listener, "__qualname__", repr(listener))
