# src/res_monitor/procfs.py
"""Snapshot reader for Linux procfs.

All knowledge of /proc file layouts lives in this module. The parse_*
functions take already-read text and return plain values (or None when the
text is malformed), so they can be tested with canned input. ProcfsReader
does the file access and turns the parsed values into Snapshots.

Reads are best effort. A process that exits between the directory listing
and the field read is skipped, never reported as an error.
"""

from __future__ import annotations

import os
import re
import time
from collections.abc import Callable, Iterator
from pathlib import Path

import structlog

from res_monitor import logging as rlog
from res_monitor.models import CpuTimes, IoCounters, MemoryUsage, ResourceKind, Snapshot

log = structlog.get_logger()

# Fields of the aggregate "cpu" line, in order. Exactly these seven are summed.
CPU_FIELDS = ("user", "nice", "system", "idle", "iowait", "irq", "softirq")

# Block devices that count as physical disks
DISK_PREFIXES = ("sd", "hd", "nvme", "mmcblk")

# Whole-disk names only: sda, hdb, nvme0n1, mmcblk0 (no sda1, nvme0n1p2, mmcblk0p1)
_WHOLE_DISK = re.compile(r"(?:sd|hd)[a-z]+|nvme\d+n\d+|mmcblk\d+")

# /proc/diskstats: major minor name + 11 stat fields; io_ticks is column 13
_DISKSTATS_NAME = 2
_DISKSTATS_IO_TICKS = 12

# /proc/<pid>/stat needs at least this many fields to be trusted
MIN_STAT_FIELDS = 22
_STAT_UTIME = 13  # 14th field, 0-based
_STAT_STIME = 14  # 15th field

_MEMINFO_UNITS = {
    "kB": 1024,
    "MB": 1024**2,
    "GB": 1024**3,
    "TB": 1024**4,
}


# ─────────────────────────────────────────────────────────────────────────────
# Parsers
# ─────────────────────────────────────────────────────────────────────────────


def parse_cpu_times(text: str) -> CpuTimes | None:
    """Parse the aggregate cpu line of /proc/stat.

    Returns:
        CpuTimes with total = sum of the seven CPU_FIELDS and
        idle = idle + iowait, or None if the line is missing or malformed.
    """
    for line in text.splitlines():
        parts = line.split()
        if not parts or parts[0] != "cpu":
            continue
        if len(parts) < 1 + len(CPU_FIELDS):
            return None
        try:
            values = dict(zip(CPU_FIELDS, (int(p) for p in parts[1 : 1 + len(CPU_FIELDS)])))
        except ValueError:
            return None
        return CpuTimes(total=sum(values.values()), idle=values["idle"] + values["iowait"])
    return None


def is_physical_disk(name: str) -> bool:
    """Return True for whole physical disks (sdX, hdX, nvmeXnY, mmcblkX)."""
    return name.startswith(DISK_PREFIXES) and _WHOLE_DISK.fullmatch(name) is not None


def parse_diskstats(text: str) -> dict[str, int]:
    """Parse /proc/diskstats into {disk name: io busy milliseconds}.

    Partitions, loop devices, device-mapper volumes and ram disks are
    dropped. Lines that are too short or non-numeric are skipped.
    """
    busy: dict[str, int] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) <= _DISKSTATS_IO_TICKS:
            continue
        name = parts[_DISKSTATS_NAME]
        if not is_physical_disk(name):
            continue
        try:
            busy[name] = int(parts[_DISKSTATS_IO_TICKS])
        except ValueError:
            continue
    return busy


def parse_pid_stat(text: str) -> int | None:
    """Return utime + stime ticks from a /proc/<pid>/stat record.

    The comm field is wrapped in parentheses and may itself contain spaces
    or parentheses, so fields after it are located from the last ")".
    Records with fewer than MIN_STAT_FIELDS fields are rejected.
    """
    head, sep, tail = text.rpartition(")")
    if not sep or "(" not in head:
        return None
    # pid and (comm) count as the first two fields
    fields = ["pid", "comm", *tail.split()]
    if len(fields) < MIN_STAT_FIELDS:
        return None
    try:
        return int(fields[_STAT_UTIME]) + int(fields[_STAT_STIME])
    except ValueError:
        return None


def parse_pid_io(text: str) -> IoCounters | None:
    """Return storage-level read_bytes/write_bytes from /proc/<pid>/io.

    rchar/wchar (syscall-level counters) are deliberately ignored.
    """
    values: dict[str, int] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        if key in ("read_bytes", "write_bytes"):
            try:
                values[key] = int(value.strip())
            except ValueError:
                return None
    if "read_bytes" not in values or "write_bytes" not in values:
        return None
    return IoCounters(read_bytes=values["read_bytes"], write_bytes=values["write_bytes"])


def parse_pid_statm(text: str, page_size: int) -> int | None:
    """Return resident bytes from /proc/<pid>/statm (second field is pages)."""
    parts = text.split()
    if len(parts) < 2:
        return None
    try:
        return int(parts[1]) * page_size
    except ValueError:
        return None


def parse_meminfo(text: str) -> MemoryUsage | None:
    """Parse /proc/meminfo into memory and swap usage.

    used = MemTotal - MemFree - Buffers - Cached. Returns None when
    MemTotal is missing or zero.
    """
    wanted = {"MemTotal", "MemFree", "Buffers", "Cached", "SwapTotal", "SwapFree"}
    values = dict.fromkeys(wanted, 0)
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        key = parts[0].rstrip(":")
        if key not in wanted:
            continue
        try:
            value = int(parts[1])
        except ValueError:
            continue
        unit = parts[2] if len(parts) > 2 else ""
        values[key] = value * _MEMINFO_UNITS.get(unit, 1)

    total = values["MemTotal"]
    if total == 0:
        return None
    used = max(0, total - values["MemFree"] - values["Buffers"] - values["Cached"])
    swap_total = values["SwapTotal"]
    swap_used = max(0, swap_total - values["SwapFree"]) if swap_total > 0 else 0
    return MemoryUsage(total=total, used=used, swap_total=swap_total, swap_used=swap_used)


# ─────────────────────────────────────────────────────────────────────────────
# Reader
# ─────────────────────────────────────────────────────────────────────────────


class ProcfsReader:
    """Reads raw counters from a procfs tree and builds Snapshots.

    Args:
        proc_root: Mount point of procfs (tests point this at a fake tree)
        page_size: Bytes per page for statm conversion (defaults to the system's)
        clock: Monotonic clock used to timestamp snapshots, in seconds
    """

    def __init__(
        self,
        proc_root: str | Path = "/proc",
        page_size: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.proc_root = Path(proc_root)
        self.page_size = page_size or os.sysconf("SC_PAGE_SIZE")
        self._clock = clock

    def _read(self, *parts: str | int) -> str | None:
        try:
            return self.proc_root.joinpath(*map(str, parts)).read_text()
        except (OSError, UnicodeDecodeError):
            return None

    def pids(self) -> Iterator[int]:
        """Yield every numeric entry of the process table."""
        try:
            entries = list(self.proc_root.iterdir())
        except OSError as e:
            log.warning("proc_root_unreadable", path=str(self.proc_root), error=str(e))
            rlog.proc_root_unreadable(str(self.proc_root), str(e))
            return
        for entry in entries:
            if entry.name.isdigit():
                yield int(entry.name)

    def read_cpu_times(self) -> CpuTimes | None:
        text = self._read("stat")
        return parse_cpu_times(text) if text is not None else None

    def read_meminfo(self) -> MemoryUsage | None:
        text = self._read("meminfo")
        return parse_meminfo(text) if text is not None else None

    def read_disk_busy(self) -> Snapshot | None:
        """Snapshot of cumulative io busy milliseconds per physical disk."""
        text = self._read("diskstats")
        if text is None:
            return None
        return Snapshot(
            kind=ResourceKind.DISK_BUSY_TIME,
            timestamp=self._clock(),
            counters=parse_diskstats(text),
        )

    def read_process_cpu(self) -> Snapshot | None:
        """Snapshot of utime + stime per pid, plus the aggregate CPU total.

        Returns None if the aggregate total (the denominator) is unreadable.
        """
        cpu = self.read_cpu_times()
        if cpu is None:
            return None
        counters: dict[int, int] = {}
        for pid in self.pids():
            text = self._read(pid, "stat")
            if text is None:
                continue
            ticks = parse_pid_stat(text)
            if ticks is not None:
                counters[pid] = ticks
        return Snapshot(
            kind=ResourceKind.PROCESS_CPU,
            timestamp=self._clock(),
            counters=counters,
            system_total=cpu.total,
        )

    def read_process_io(self) -> Snapshot:
        """Snapshot of storage read/write byte counters per pid."""
        counters: dict[int, IoCounters] = {}
        for pid in self.pids():
            text = self._read(pid, "io")
            if text is None:
                continue
            io = parse_pid_io(text)
            if io is not None:
                counters[pid] = io
        return Snapshot(
            kind=ResourceKind.PROCESS_IO_BYTES,
            timestamp=self._clock(),
            counters=counters,
        )

    def read_process_memory(self) -> Snapshot:
        """Snapshot of resident bytes per pid. Absolute, no delta needed."""
        counters: dict[int, int] = {}
        for pid in self.pids():
            text = self._read(pid, "statm")
            if text is None:
                continue
            rss = parse_pid_statm(text, self.page_size)
            if rss is not None:
                counters[pid] = rss
        return Snapshot(
            kind=ResourceKind.PROCESS_RESIDENT_MEMORY,
            timestamp=self._clock(),
            counters=counters,
        )

    def read_cmdline(self, pid: int) -> str | None:
        """Return the command line of pid, joined by spaces.

        Kernel threads have an empty cmdline; like ps, fall back to the
        comm name in brackets. None if the process is gone.
        """
        try:
            raw = self.proc_root.joinpath(str(pid), "cmdline").read_bytes()
        except OSError:
            return None
        args = [a.decode("utf-8", errors="replace") for a in raw.split(b"\0") if a]
        if args:
            return " ".join(args)
        comm = self._read(pid, "comm")
        return f"[{comm.strip()}]" if comm else None
