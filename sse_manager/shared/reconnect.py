"""
MODULE OVERVIEW:
Pure reconnection math: may we try again, and how long do we wait first?

WHAT IS HAPPENING HERE:
Plain exponential backoff: base, 2x base, 4x base, ... Attempts are counted from 1.
There is no jitter and no upper cap on the delay. A caller who asks for 20 attempts
with a one second base is asking for a very long last wait, and gets it.
"""
from dataclasses import dataclass

from sse_manager.shared.models import StreamConfig


def should_retry(attempt: int, max_attempts: int) -> bool:
    """`max_attempts == 0` disables retries entirely."""
    return max_attempts != 0 and attempt <= max_attempts


def delay_for(attempt: int, base_delay: float) -> float:
    if attempt < 1:
        raise ValueError(f"attempt is counted from 1, got {attempt}")
    return base_delay * (2 ** (attempt - 1))


@dataclass(frozen=True)
class ReconnectPolicy:
    base_delay_ms: int = 1000
    max_attempts: int = 5

    @classmethod
    def from_config(cls, config: StreamConfig) -> "ReconnectPolicy":
        return cls(
            base_delay_ms=config.reconnect_base_delay_ms,
            max_attempts=config.max_reconnect_attempts,
        )

    def should_retry(self, attempt: int) -> bool:
        return should_retry(attempt, self.max_attempts)

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds, ready for `loop.call_later`."""
        return delay_for(attempt, self.base_delay_ms) / 1000.0
