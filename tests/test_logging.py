# tests/test_logging.py
"""Tests for console helpers and the JSON log file."""

import io
import json
import logging
from contextlib import ExitStack
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog
from rich.console import Console

from res_monitor import logging as rlog
from res_monitor.config import Config, LoggingConfig


@pytest.fixture
def console_output():
    """Redirect the Rich console into a buffer."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=200, highlight=False, color_system=None)
    with patch.object(rlog, "_console", console):
        yield buffer


@pytest.fixture
def log_dir(tmp_path: Path):
    """Point Config state paths at tmp_path and undo structlog setup afterwards."""
    with ExitStack() as stack:
        # fmt: off
        stack.enter_context(patch.object(
            Config, "state_dir",
            new_callable=lambda: property(lambda self: tmp_path / "state")
        ))
        stack.enter_context(patch.object(
            Config, "log_path",
            new_callable=lambda: property(lambda self: tmp_path / "state" / "monitor.log")
        ))
        # fmt: on
        yield tmp_path / "state"

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    structlog.reset_defaults()


def _read_events(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


class TestConsoleHelpers:
    """Rich console output."""

    def test_log_has_timestamp_level_and_icon(self, console_output) -> None:
        rlog.log("info", "hello", rlog.Icon.OK)
        line = console_output.getvalue()
        assert "[info]" in line
        assert "✓" in line
        assert line.rstrip().endswith("hello")

    def test_usage_line_is_not_markup(self, console_output) -> None:
        """Text from /proc is printed literally, even if it looks like markup."""
        rlog.usage_line("CPU: 5.00%, Disk [bold]sda[/bold]")
        assert "Disk [bold]sda[/bold]" in console_output.getvalue()

    def test_process_line(self, console_output) -> None:
        rlog.process_line("io", "IO 1.00 kB/s [PID 42] cp [a] b")
        output = console_output.getvalue()
        assert "◆" in output
        assert "[PID 42] cp [a] b" in output

    def test_config_summary(self, console_output) -> None:
        rlog.config_summary(10.0, 1.0, 1.0, 1.0, 3)
        output = console_output.getvalue()
        assert "interval: 10sec" in output
        assert "numProcesses: 3" in output

    def test_tick_failed(self, console_output) -> None:
        rlog.tick_failed("boom")
        output = console_output.getvalue()
        assert "[err]" in output
        assert "Tick failed: boom" in output

    def test_heartbeat(self, console_output) -> None:
        rlog.heartbeat(60, 12, 21.46)
        assert "60 ticks, 12ms/tick, 21.5MB RSS" in console_output.getvalue()


class TestConfigure:
    """structlog JSON file output."""

    def test_writes_json_lines(self, log_dir: Path) -> None:
        handler = rlog.configure(Config())

        structlog.get_logger().info("resource_usage", cpu_percent=12.5)
        handler.flush()

        events = _read_events(log_dir / "monitor.log")
        assert events[-1]["event"] == "resource_usage"
        assert events[-1]["cpu_percent"] == 12.5
        assert events[-1]["level"] == "info"
        assert events[-1]["source"] == "monitor"
        assert "ts" in events[-1]

    def test_stdlib_records_also_json(self, log_dir: Path) -> None:
        handler = rlog.configure(Config())

        logging.getLogger("asyncio").warning("slow callback")
        handler.flush()

        events = _read_events(log_dir / "monitor.log")
        assert events[-1]["event"] == "slow callback"
        assert events[-1]["level"] == "warning"

    def test_debug_not_written(self, log_dir: Path) -> None:
        handler = rlog.configure(Config())

        structlog.get_logger().debug("cpu_stat_unavailable")
        handler.flush()

        assert not (log_dir / "monitor.log").read_text().strip()

    def test_rotation_settings(self, log_dir: Path) -> None:
        config = Config(logging=LoggingConfig(max_bytes=1024, backup_count=2))
        handler = rlog.configure(config)
        assert handler.maxBytes == 1024
        assert handler.backupCount == 2

    def test_replaces_existing_handlers(self, log_dir: Path) -> None:
        first = rlog.configure(Config())
        second = rlog.configure(Config())
        root = logging.getLogger()
        assert second in root.handlers
        assert first not in root.handlers
