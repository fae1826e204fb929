"""One-tick sampling pipeline: read -> delta -> rank."""

import asyncio
import time
from dataclasses import dataclass, field

import structlog

from res_monitor.config import ThresholdsConfig
from res_monitor.delta import CpuUsageDelta, DiskBusyDelta, ProcessCpuDelta, ProcessIoDelta
from res_monitor.models import IoRate, MemoryUsage, RankedEntry, ResourceKind
from res_monitor.procfs import ProcfsReader
from res_monitor.ranker import rank

log = structlog.get_logger()


@dataclass
class TickReport:
    """Everything computed in one tick.

    None means "unavailable" (cold start, unreadable source, or no time
    elapsed); an empty list means nothing cleared the threshold.
    """

    cpu_percent: float | None
    memory: MemoryUsage | None
    disk_busy: dict[str, float] | None
    top_cpu: list[RankedEntry] = field(default_factory=list)
    top_memory: list[RankedEntry] = field(default_factory=list)
    top_io: list[RankedEntry] = field(default_factory=list)
    io_rates: dict[int, IoRate] = field(default_factory=dict)  # Detail for top_io entries
    commands: dict[int, str] = field(default_factory=dict)  # pid -> command line
    elapsed_ms: int = 0  # Time spent collecting


class ResourceMonitor:
    """Runs the sampling pipeline for every resource kind.

    Owns one delta engine per kind. Not safe for concurrent use: callers
    must run at most one tick at a time (collect() awaits each tick).
    """

    def __init__(self, reader: ProcfsReader, thresholds: ThresholdsConfig) -> None:
        self.reader = reader
        self.thresholds = thresholds
        self._cpu = CpuUsageDelta()
        self._disk = DiskBusyDelta()
        self._process_cpu = ProcessCpuDelta()
        self._process_io = ProcessIoDelta()

    def reset(self) -> None:
        """Forget all baselines; the next tick is a cold start again."""
        self._cpu.reset()
        self._disk.reset()
        self._process_cpu.reset()
        self._process_io.reset()

    def cpu_usage(self) -> float | None:
        times = self.reader.read_cpu_times()
        if times is None:
            log.debug("cpu_stat_unavailable")
            return None
        return self._cpu.update(times)

    def memory_usage(self) -> MemoryUsage | None:
        return self.reader.read_meminfo()

    def disk_busy(self) -> dict[str, float] | None:
        snapshot = self.reader.read_disk_busy()
        if snapshot is None:
            log.debug("diskstats_unavailable")
            return None
        return self._disk.update(snapshot)

    def top_cpu_processes(self) -> list[RankedEntry]:
        snapshot = self.reader.read_process_cpu()
        if snapshot is None:
            return []
        shares = self._process_cpu.update(snapshot)
        return rank(
            shares,
            self.thresholds.process_count,
            self.thresholds.min_cpu_fraction,
            ResourceKind.PROCESS_CPU,
        )

    def top_memory_processes(self) -> list[RankedEntry]:
        snapshot = self.reader.read_process_memory()
        return rank(
            snapshot.counters,
            self.thresholds.process_count,
            self.thresholds.min_memory_bytes,
            ResourceKind.PROCESS_RESIDENT_MEMORY,
        )

    def top_io_processes(self) -> tuple[list[RankedEntry], dict[int, IoRate]]:
        """Rank processes by read + write bytes per second.

        Returns the ranked entries and the per-pid read/write split for them.
        """
        snapshot = self.reader.read_process_io()
        rates = self._process_io.update(snapshot)
        entries = rank(
            {pid: r.total for pid, r in rates.items()},
            self.thresholds.process_count,
            self.thresholds.min_disk_bytes_per_sec,
            ResourceKind.PROCESS_IO_BYTES,
        )
        return entries, {e.entity_id: rates[e.entity_id] for e in entries}

    def _lookup_commands(self, *groups: list[RankedEntry]) -> dict[int, str]:
        commands: dict[int, str] = {}
        for entries in groups:
            for entry in entries:
                pid = entry.entity_id
                if pid not in commands:
                    commands[pid] = self.reader.read_cmdline(pid) or "?"
        return commands

    def sample(self) -> TickReport:
        """Run one full tick synchronously."""
        start = time.monotonic()
        cpu_percent = self.cpu_usage()
        memory = self.memory_usage()
        disk_busy = self.disk_busy()
        top_cpu = self.top_cpu_processes()
        top_memory = self.top_memory_processes()
        top_io, io_rates = self.top_io_processes()

        return TickReport(
            cpu_percent=cpu_percent,
            memory=memory,
            disk_busy=disk_busy,
            top_cpu=top_cpu,
            top_memory=top_memory,
            top_io=top_io,
            io_rates=io_rates,
            commands=self._lookup_commands(top_cpu, top_memory, top_io),
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )

    async def collect(self) -> TickReport:
        """Run sample() in an executor (file reads are blocking)."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.sample)
