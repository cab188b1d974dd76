"""
MODULE OVERVIEW:
This module defines the strictly typed data structures shared by every part of the
SSE connection manager, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
`StreamConfig` is the caller's contract: it is frozen, so once a connection attempt
starts nobody can quietly change the address or the retry budget underneath it.
`StreamEvent` is what the transport observed, `LogRecord` is what the diagnostic log
keeps, and `ConnectionSnapshot` is the read-only view a dashboard renders.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    RECONNECTING = "reconnecting"


class EventKind(str, Enum):
    OPENED = "opened"
    MESSAGE = "message"
    ERRORED = "errored"
    CLOSED = "closed"
    TIMED_OUT = "timed-out"
    TRANSPORT_EXCEPTION = "transport-exception"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# WHAT IS HAPPENING HERE:
# The address is not validated on construction. ConnectionManager.connect() checks it
# and reports a bad one as an `errored` event, the same way as a refused connection.
class StreamConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    connect_timeout_ms: int = 10_000
    read_timeout_ms: Optional[int] = None
    debug: bool = False
    auto_reconnect: bool = True
    reconnect_base_delay_ms: int = 1000
    # 0 means "never retry", not "retry forever".
    max_reconnect_attempts: int = 5
    send_last_event_id: bool = True


class StreamEvent(BaseModel):
    """One observed transport occurrence. Lives only as long as dispatch and log formatting."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: EventKind
    created_at: datetime = Field(default_factory=_utcnow)

    # message
    data: Optional[str] = None
    event_id: Optional[str] = None
    event_name: str = "message"
    url: Optional[str] = None

    # errored / transport-exception
    message: Optional[str] = None
    error: Optional[BaseException] = None


class LogRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    sequence: int
    created_at: datetime
    kind: EventKind
    content: str


class ConnectionSnapshot(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    state: ConnectionState
    reconnect_attempts: int
    last_event: Optional[StreamEvent] = None
    last_error: Optional[BaseException] = None

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def is_connecting(self) -> bool:
        return self.state in (ConnectionState.CONNECTING, ConnectionState.RECONNECTING)

    @property
    def is_disconnected(self) -> bool:
        return self.state in (ConnectionState.DISCONNECTED, ConnectionState.IDLE)

    @property
    def is_error(self) -> bool:
        return self.state == ConnectionState.ERROR

    def describe(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "reconnect_attempts": self.reconnect_attempts,
            "last_event": self.last_event.kind.value if self.last_event else None,
            "last_error": str(self.last_error) if self.last_error else None,
        }
