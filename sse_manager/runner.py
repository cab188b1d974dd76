"""
CLI entrypoint for the SSE connection manager.
"""
import asyncio
from typing import Optional

import typer

from sse_manager.client.connection_manager import ConnectionManager
from sse_manager.client.visualizer import Visualizer
from sse_manager.shared.config import configure_logging, settings
from sse_manager.shared.models import EventKind, StreamConfig

app = typer.Typer(help="Server-Sent Events connection manager CLI")


def build_config(
    url: Optional[str],
    max_attempts: Optional[int],
    base_delay_ms: Optional[int],
    read_timeout_ms: Optional[int],
    no_reconnect: bool,
    debug: bool,
) -> StreamConfig:
    return settings.stream_config(
        address=url,
        max_reconnect_attempts=max_attempts,
        reconnect_base_delay_ms=base_delay_ms,
        read_timeout_ms=read_timeout_ms,
        auto_reconnect=False if no_reconnect else None,
        debug=debug or None,
    )


async def run_plain(manager: ConnectionManager, config: StreamConfig, duration_s: float) -> None:
    def echo(event):
        record = manager.messages[-1]
        typer.echo(f"[{record.sequence}] {record.kind.value} ({manager.state.value}): {record.content}")

    for kind in EventKind:
        manager.on(kind, echo)

    manager.connect(config)
    try:
        await asyncio.sleep(duration_s)
    finally:
        manager.disconnect()


@app.command()
def listen(
    url: Optional[str] = typer.Option(None, help="Stream address (defaults to SSE_STREAM_URL)"),
    duration: float = typer.Option(60.0, help="How long to stay subscribed, in seconds"),
    max_attempts: Optional[int] = typer.Option(None, help="Maximum automatic reconnect attempts (0 disables)"),
    base_delay_ms: Optional[int] = typer.Option(None, help="Base reconnect delay in milliseconds"),
    read_timeout_ms: Optional[int] = typer.Option(None, help="Inactivity timeout in milliseconds"),
    no_reconnect: bool = typer.Option(False, "--no-reconnect", help="Disable automatic recovery"),
    plain: bool = typer.Option(False, "--plain", help="Print log records instead of the live dashboard"),
    debug: bool = typer.Option(False, "--debug", help="Verbose transport logging"),
):
    """Subscribe to a stream and watch its state and messages."""
    configure_logging("DEBUG" if debug else None)
    config = build_config(url, max_attempts, base_delay_ms, read_timeout_ms, no_reconnect, debug)
    manager = ConnectionManager(log_capacity=settings.MESSAGE_LOG_CAPACITY)

    try:
        if plain:
            asyncio.run(run_plain(manager, config, duration))
        else:
            asyncio.run(Visualizer(manager).run(config, duration))
    except KeyboardInterrupt:
        pass


@app.command("show-config")
def show_config():
    """Print the effective settings."""
    for key, value in settings.model_dump().items():
        typer.echo(f"{key}={value}")


if __name__ == "__main__":
    app()
