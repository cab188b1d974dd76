"""
MODULE OVERVIEW:
This module provides application-wide configuration using Pydantic Settings.

WHAT IS HAPPENING HERE:
Every default that shapes a stream (timeouts, retry budget, backoff base, log size)
is declared once here and can be overridden from the environment or a `.env` file.
`StreamConfig` instances built by the CLI come from `settings.stream_config()`, so
tuning the retry behaviour for a flaky network never means touching code.
"""
import sys
from typing import Any, Optional

from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict

from sse_manager.shared.models import StreamConfig


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        # Tolerate unrelated env vars so the tool runs out of the box
        extra="ignore",
    )

    LOG_LEVEL: str = "INFO"

    STREAM_URL: str = "http://localhost:3005/sse"

    # Connection windows
    CONNECT_TIMEOUT_MS: int = 10_000
    READ_TIMEOUT_MS: Optional[int] = None

    # Automatic recovery
    AUTO_RECONNECT: bool = True
    RECONNECT_BASE_DELAY_MS: int = 1000
    MAX_RECONNECT_ATTEMPTS: int = 5

    # Diagnostics
    MESSAGE_LOG_CAPACITY: int = 50

    def stream_config(self, **overrides: Any) -> StreamConfig:
        values: dict[str, Any] = {
            "address": self.STREAM_URL,
            "connect_timeout_ms": self.CONNECT_TIMEOUT_MS,
            "read_timeout_ms": self.READ_TIMEOUT_MS,
            "auto_reconnect": self.AUTO_RECONNECT,
            "reconnect_base_delay_ms": self.RECONNECT_BASE_DELAY_MS,
            "max_reconnect_attempts": self.MAX_RECONNECT_ATTEMPTS,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return StreamConfig(**values)


def configure_logging(level: Optional[str] = None) -> None:
    """Route loguru to stderr at the configured level. Called once by the CLI."""
    logger.remove()
    logger.add(sys.stderr, level=(level or settings.LOG_LEVEL).upper())


settings = Settings()
