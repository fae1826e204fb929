"""Poll loop for res-monitor."""

import asyncio
import signal
from dataclasses import dataclass
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version

import psutil
import structlog

from res_monitor import logging as rlog
from res_monitor.collector import ResourceMonitor, TickReport
from res_monitor.config import Config
from res_monitor.formatting import format_process, format_usage_line
from res_monitor.procfs import ProcfsReader

log = structlog.get_logger()


def _package_version() -> str:
    try:
        return version("res-monitor")
    except PackageNotFoundError:
        return "unknown"


@dataclass
class DaemonState:
    """Runtime state of the poll loop."""

    running: bool = False
    tick_count: int = 0
    failed_ticks: int = 0
    last_tick_time: datetime | None = None

    def update_tick(self) -> None:
        """Update state after a completed tick."""
        self.tick_count += 1
        self.last_tick_time = datetime.now()


class Daemon:
    """Runs the sampling pipeline on a timer until shutdown is requested.

    Shutdown (SIGINT/SIGTERM) is only observed between ticks: a tick that
    has started always runs to completion, so delta engine state is never
    left half-updated.
    """

    def __init__(self, config: Config, monitor: ResourceMonitor | None = None):
        self.config = config
        self.state = DaemonState()
        self.monitor = monitor or ResourceMonitor(
            ProcfsReader(config.sampling.proc_root),
            config.thresholds,
        )
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Install signal handlers and run the main loop."""
        log.info("monitor_starting", version=_package_version())
        rlog.version_info("res-monitor", _package_version())

        t = self.config.thresholds
        log.info(
            "monitor_config",
            interval=self.config.sampling.interval,
            min_cpu_percent=t.min_cpu_percent,
            min_memory_mb=t.min_memory_mb,
            min_disk_kb=t.min_disk_kb,
            process_count=t.process_count,
            proc_root=self.config.sampling.proc_root,
        )
        rlog.config_summary(
            self.config.sampling.interval,
            t.min_cpu_percent,
            t.min_memory_mb,
            t.min_disk_kb,
            t.process_count,
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: self._handle_signal(s))

        self.state.running = True
        log.info("monitor_started")
        rlog.monitor_started()

        await self._main_loop()

    async def stop(self) -> None:
        """Stop the loop and remove signal handlers."""
        log.info("monitor_stopping")
        rlog.monitor_stopping()
        self.state.running = False
        self._shutdown_event.set()

        try:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
        except (RuntimeError, NotImplementedError):
            pass

        log.info("monitor_stopped", ticks=self.state.tick_count)
        rlog.monitor_stopped()

    def request_shutdown(self) -> None:
        """Ask the loop to exit after the current tick."""
        self._shutdown_event.set()

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signals."""
        log.info("signal_received", signal=sig.name)
        rlog.signal_received(sig.name)
        self._shutdown_event.set()

    def report(self, report: TickReport) -> None:
        """Log one tick: the usage line, then top processes per dimension."""
        line = format_usage_line(report.cpu_percent, report.memory, report.disk_busy)
        rlog.usage_line(line)
        log.info(
            "resource_usage",
            cpu_percent=None if report.cpu_percent is None else round(report.cpu_percent, 2),
            mem_percent=None if report.memory is None else round(report.memory.percent, 2),
            disk_busy=(
                None
                if report.disk_busy is None
                else {k: round(v, 2) for k, v in sorted(report.disk_busy.items())}
            ),
        )

        for dimension, entries in (
            ("cpu", report.top_cpu),
            ("mem", report.top_memory),
            ("io", report.top_io),
        ):
            for position, entry in enumerate(entries, start=1):
                pid = entry.entity_id
                command = report.commands.get(pid, "?")
                rlog.process_line(
                    dimension,
                    format_process(entry, command, report.io_rates.get(pid)),
                )
                log.info(
                    "top_process",
                    dimension=dimension,
                    rank=position,
                    pid=pid,
                    value=entry.value,
                    command=command,
                )

    async def _tick(self) -> TickReport | None:
        """Run and report one tick. Errors are logged, never raised."""
        try:
            report = await self.monitor.collect()
        except Exception as e:
            self.state.failed_ticks += 1
            log.exception("tick_failed", error=str(e))
            rlog.tick_failed(str(e))
            return None
        self.report(report)
        self.state.update_tick()
        return report

    def _heartbeat(self, ticks: int, tick_ms_sum: int) -> None:
        rss_mb = psutil.Process().memory_info().rss / 1024 / 1024
        avg_ms = round(tick_ms_sum / ticks) if ticks else 0
        log.info(
            "monitor_heartbeat",
            ticks=self.state.tick_count,
            failed_ticks=self.state.failed_ticks,
            avg_tick_ms=avg_ms,
            rss_mb=round(rss_mb, 1),
        )
        rlog.heartbeat(self.state.tick_count, avg_ms, rss_mb)

    async def _main_loop(self) -> None:
        """Collect, report, then sleep for the rest of the interval.

        The sleep is an interruptible wait on the shutdown event; shutdown is
        checked only between ticks.
        """
        interval = self.config.sampling.interval
        heartbeat_ticks = self.config.sampling.heartbeat_ticks
        heartbeat_count = 0
        heartbeat_ms_sum = 0
        loop = asyncio.get_running_loop()

        while not self._shutdown_event.is_set():
            iteration_start = loop.time()

            report = await self._tick()
            if report is not None:
                heartbeat_count += 1
                heartbeat_ms_sum += report.elapsed_ms

            if heartbeat_ticks and heartbeat_count >= heartbeat_ticks:
                self._heartbeat(heartbeat_count, heartbeat_ms_sum)
                heartbeat_count = 0
                heartbeat_ms_sum = 0

            # Sleep for remaining interval (maintains consistent tick rate)
            sleep_time = interval - (loop.time() - iteration_start)
            if sleep_time > 0:
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=sleep_time)
                except asyncio.TimeoutError:
                    pass


async def run_daemon(config: Config | None = None) -> None:
    """Run the monitor until shutdown.

    Args:
        config: Optional config, loads from file if not provided
    """
    if config is None:
        config = Config.load()

    rlog.configure(config)

    daemon = Daemon(config)

    try:
        await daemon.start()
    except Exception as e:
        log.exception("monitor_crashed", error=str(e))
        raise
    finally:
        await daemon.stop()
