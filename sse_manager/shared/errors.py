"""
Error taxonomy for the stream manager.

None of these are raised out of `connect()`, `disconnect()` or `reconnect()`. They are
attached to `errored` events and kept as the manager's `last_error` so a consumer only
has one place to look for failure.
"""
from typing import Optional


class StreamError(Exception):
    """Base class for every failure the manager reports."""


class ValidationError(StreamError):
    """The stream configuration is unusable (missing address, unsupported scheme)."""


class TransportError(StreamError):
    """The connection failed or was rejected by the remote endpoint."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StreamTimeoutError(StreamError):
    """No response, or no data, within the configured window."""


class MaxAttemptsExceeded(StreamError):
    def __init__(self, attempts: int, max_attempts: int):
        self.attempts = attempts
        self.max_attempts = max_attempts
        super().__init__(f"Maximum reconnect attempts reached ({max_attempts})")
