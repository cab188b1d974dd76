"""Client-side Server-Sent Events connection manager."""
from sse_manager.client.connection_manager import ConnectionManager
from sse_manager.client.message_log import MessageLog
from sse_manager.client.transport import HttpxTransport, Transport, TransportHandle, TransportListener
from sse_manager.shared.errors import (
    MaxAttemptsExceeded,
    StreamError,
    StreamTimeoutError,
    TransportError,
    ValidationError,
)
from sse_manager.shared.events import EventDispatcher
from sse_manager.shared.models import (
    ConnectionSnapshot,
    ConnectionState,
    EventKind,
    LogRecord,
    StreamConfig,
    StreamEvent,
)
from sse_manager.shared.reconnect import ReconnectPolicy, delay_for, should_retry

__all__ = [
    "ConnectionManager",
    "ConnectionSnapshot",
    "ConnectionState",
    "EventDispatcher",
    "EventKind",
    "HttpxTransport",
    "LogRecord",
    "MaxAttemptsExceeded",
    "MessageLog",
    "ReconnectPolicy",
    "StreamConfig",
    "StreamError",
    "StreamEvent",
    "StreamTimeoutError",
    "Transport",
    "TransportError",
    "TransportHandle",
    "TransportListener",
    "ValidationError",
    "delay_for",
    "should_retry",
]
