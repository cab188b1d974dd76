"""
MODULE OVERVIEW:
The bounded, human-readable diagnostic log of everything the stream did.

WHAT IS HAPPENING HERE:
Like the server-side rolling buffer, we keep a `deque(maxlen=...)`: once full, each
append pushes the oldest record out of the front. Message payloads that parse as a
JSON object or array are pretty-printed. Anything else is stored verbatim, so a
malformed payload degrades the formatting and nothing more.
"""
import json
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Tuple

from sse_manager.shared.models import EventKind, LogRecord, StreamEvent

DEFAULT_CAPACITY = 50

_FIXED_TEXT = {
    EventKind.OPENED: "Connection established",
    EventKind.CLOSED: "Connection closed",
    EventKind.TIMED_OUT: "Connection timed out",
}


def format_event(event: StreamEvent) -> str:
    if event.kind in _FIXED_TEXT:
        return _FIXED_TEXT[event.kind]

    if event.kind == EventKind.MESSAGE:
        return _format_payload(event.data)

    detail = event.message or (str(event.error) if event.error else None)
    if event.kind == EventKind.TRANSPORT_EXCEPTION:
        return f"Exception - {detail or 'Unknown exception'}"
    return f"Error - {detail or 'Unknown error'}"


def _format_payload(data: str | None) -> str:
    if not data:
        return "Empty message"
    try:
        parsed = json.loads(data)
    except ValueError:
        return data
    if isinstance(parsed, (dict, list)):
        return json.dumps(parsed, indent=2, ensure_ascii=False)
    return data


class MessageLog:
    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._records: deque[LogRecord] = deque(maxlen=capacity)
        self._sequence = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._records.maxlen

    def append(self, event: StreamEvent) -> LogRecord:
        content = format_event(event)
        with self._lock:
            self._sequence += 1
            record = LogRecord(
                sequence=self._sequence,
                created_at=datetime.now(timezone.utc),
                kind=event.kind,
                content=content,
            )
            self._records.append(record)
        return record

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def snapshot(self) -> Tuple[LogRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)
