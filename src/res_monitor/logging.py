"""Centralized console logging with Rich formatting.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Level-based styling
3. Core log functions (log, info, warn, error)
4. Domain-specific helpers (monitor_started, usage_line, heartbeat, etc.)
5. Structlog configuration (configure)

Console output uses Rich markup for colors. JSON file output via structlog
goes to a rotating log file (machine-parseable, no colors).
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console
from rich.markup import escape

if TYPE_CHECKING:
    from res_monitor.config import Config

# Rich console for colorful human-readable output
_console = Console(highlight=False)


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    WAIT = "⏳"
    HEARTBEAT = "[magenta]♡[/]"
    SIGNAL = "⚡"
    CPU = "[cyan]◆[/]"
    MEM = "[green]◆[/]"
    IO = "[yellow]◆[/]"


# ─────────────────────────────────────────────────────────────────────────────
# Level Styles
# ─────────────────────────────────────────────────────────────────────────────

_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Args:
        level: Log level (info, warn, error)
        msg: Message to print (can include Rich markup)
        icon: Optional icon to show after level (e.g., Icon.OK)
    """
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    _console.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}")


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message."""
    log("error", msg, icon)


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def monitor_started() -> None:
    """Log monitor startup complete."""
    info("Monitor started", Icon.OK)


def monitor_stopping() -> None:
    """Log monitor shutdown initiated."""
    info("Stopping...", Icon.WAIT)


def monitor_stopped() -> None:
    """Log monitor shutdown complete."""
    info("Monitor stopped", Icon.OK)


def signal_received(name: str) -> None:
    """Log signal received."""
    info(f"Received [bold]{name}[/]", Icon.SIGNAL)


def version_info(name: str, version: str) -> None:
    """Log version info."""
    info(f"[bold cyan]{name}[/] v{version}")


def config_summary(
    interval: float,
    min_cpu: float,
    min_mem: float,
    min_disk: float,
    count: int,
) -> None:
    """Log the effective polling options."""
    info(
        f"interval: [cyan]{interval:g}[/]sec, minCpu: [cyan]{min_cpu:g}[/]%, "
        f"minMem: [cyan]{min_mem:g}[/]M, minDisk: [cyan]{min_disk:g}[/]k, "
        f"numProcesses: [cyan]{count}[/]"
    )


def usage_line(line: str) -> None:
    """Log the CPU / memory / disk summary line."""
    info(escape(line))


_PROCESS_ICONS = {
    "cpu": Icon.CPU,
    "mem": Icon.MEM,
    "io": Icon.IO,
}


def process_line(dimension: str, line: str) -> None:
    """Log one top-N process (dimension: cpu, mem or io)."""
    info(escape(line), _PROCESS_ICONS.get(dimension, ""))


def tick_failed(error_msg: str) -> None:
    """Log tick collection failed."""
    error(f"Tick failed: {escape(error_msg)}", Icon.FAIL)


def proc_root_unreadable(path: str, error_msg: str) -> None:
    """Log that the process table could not be listed."""
    warn(f"Cannot list [bold]{escape(path)}[/]: {escape(error_msg)}", Icon.FAIL)


def heartbeat(ticks: int, avg_tick_ms: int, rss_mb: float) -> None:
    """Log periodic heartbeat stats."""
    info(
        f"[dim]{ticks} ticks, {avg_tick_ms}ms/tick, {round(rss_mb, 1)}MB RSS[/]",
        Icon.HEARTBEAT,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config) -> logging.handlers.RotatingFileHandler:
    """Configure structlog to write JSON Lines to a rotating log file.

    Console output is handled by Rich (see log functions above); structlog
    only writes to the file. Uses local time to match console timestamps.

    Args:
        config: Application config with log path and rotation settings

    Returns:
        The installed file handler.
    """
    config.state_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        config.log_path,
        maxBytes=config.logging.max_bytes,
        backupCount=config.logging.backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.INFO)

    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(logging.INFO)

    # Clear any existing handlers
    for handler in list(stdlib_root.handlers):
        stdlib_root.removeHandler(handler)
        handler.close()

    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
                _add_source("monitor"),
                structlog.processors.format_exc_info,
            ],
        )
    )
    stdlib_root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            _add_source("monitor"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return file_handler

