"""
MODULE OVERVIEW:
The Rich Terminal Dashboard.

WHAT IS HAPPENING HERE:
The dashboard is just another observer of the ConnectionManager. It subscribes to the
dispatcher for a state timeline and otherwise reads the public surface (state, attempt
counter, last error, message log) on every refresh. It never touches the transport.
"""
import asyncio
from collections import deque

from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from sse_manager.client.connection_manager import ConnectionManager
from sse_manager.shared.models import ConnectionState, EventKind, StreamConfig, StreamEvent

STATE_COLORS = {
    ConnectionState.CONNECTED: "green",
    ConnectionState.CONNECTING: "yellow",
    ConnectionState.RECONNECTING: "yellow",
    ConnectionState.IDLE: "white",
    ConnectionState.DISCONNECTED: "white",
    ConnectionState.ERROR: "red",
}

KIND_STYLES = {
    EventKind.OPENED: "green",
    EventKind.MESSAGE: "cyan",
    EventKind.ERRORED: "red",
    EventKind.CLOSED: "white",
    EventKind.TIMED_OUT: "yellow",
    EventKind.TRANSPORT_EXCEPTION: "magenta",
}


class Visualizer:
    def __init__(self, manager: ConnectionManager, max_rows: int = 15):
        self.manager = manager
        self.max_rows = max_rows
        self.timeline = deque(maxlen=6)
        self.events_received = 0
        for kind in EventKind:
            manager.on(kind, self.on_event)

    def on_event(self, event: StreamEvent):
        if event.kind == EventKind.MESSAGE:
            self.events_received += 1
            return
        ts = event.created_at.astimezone().strftime("%H:%M:%S")
        self.timeline.appendleft(f"[{ts}] {event.kind.value} -> {self.manager.state.value}")

    def generate_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main")
        )
        layout["main"].split_row(
            Layout(name="left", ratio=2),
            Layout(name="right", ratio=1)
        )
        layout["right"].split_column(
            Layout(name="stats"),
            Layout(name="timeline"),
        )

        state = self.manager.state
        color = STATE_COLORS.get(state, "white")
        address = self.manager.config.address if self.manager.config else "-"
        layout["header"].update(Panel(f"[{color} bold]{address} | Status: {state.value}[/]", style=color))

        table = Table(title="Message Log", expand=True)
        table.add_column("#", justify="right", style="dim", no_wrap=True)
        table.add_column("Time", style="cyan", no_wrap=True)
        table.add_column("Kind")
        table.add_column("Content", style="green")

        for record in self.manager.messages[-self.max_rows:]:
            table.add_row(
                str(record.sequence),
                record.created_at.astimezone().strftime("%H:%M:%S"),
                f"[{KIND_STYLES.get(record.kind, 'white')}]{record.kind.value}[/]",
                Text(record.content),
            )
        layout["left"].update(Panel(table, title="Feed"))

        last_error = self.manager.last_error
        stats_text = (
            f"Messages Received: {self.events_received}\n"
            f"Reconnect Attempts: {self.manager.reconnect_attempts}\n"
            f"Generation: {self.manager.generation}\n"
            f"Last Event ID: {self.manager.last_event_id or '-'}\n"
            f"Last Error: {last_error if last_error else '-'}"
        )
        layout["stats"].update(Panel(stats_text, title="Connection Stats"))
        layout["timeline"].update(Panel("\n".join(self.timeline), title="Timeline"))

        return layout

    async def run(self, config: StreamConfig, duration_s: float):
        self.manager.connect(config)
        deadline = asyncio.get_running_loop().time() + duration_s
        try:
            with Live(self.generate_layout(), refresh_per_second=4) as live:
                while asyncio.get_running_loop().time() < deadline:
                    live.update(self.generate_layout())
                    await asyncio.sleep(0.25)
        finally:
            self.manager.disconnect()
