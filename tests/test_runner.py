"""cli and dashboard tests."""

from rich.console import Console
from typer.testing import CliRunner

from sse_manager.client.connection_manager import ConnectionManager
from sse_manager.client.visualizer import Visualizer
from sse_manager.runner import app, build_config


def test_show_config() -> None:
    result = CliRunner().invoke(app, ["show-config"])

    assert result.exit_code == 0
    assert "MAX_RECONNECT_ATTEMPTS=" in result.output
    assert "STREAM_URL=" in result.output


def test_build_config_from_options() -> None:
    config = build_config("http://cli/sse", 3, 200, None, no_reconnect=True, debug=False)

    assert config.address == "http://cli/sse"
    assert config.max_reconnect_attempts == 3
    assert config.reconnect_base_delay_ms == 200
    assert config.auto_reconnect is False
    assert config.debug is False


async def test_dashboard_renders_state_and_log(transport, config) -> None:
    manager = ConnectionManager(transport=transport)
    visualizer = Visualizer(manager)
    manager.connect(config)
    transport.current.opened()
    transport.current.message('{"price": 10}')

    console = Console(record=True, width=140)
    console.print(visualizer.generate_layout())
    output = console.export_text()

    assert "Status: connected" in output
    assert "Connection established" in output
    assert '"price": 10' in output
    assert visualizer.events_received == 1
