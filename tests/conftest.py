"""Shared test fixtures for res-monitor."""

from pathlib import Path

import pytest

from res_monitor.models import CpuTimes, IoCounters, ResourceKind, Snapshot

PAGE_SIZE = 4096


def make_stat_line(
    user: int = 100,
    nice: int = 0,
    system: int = 50,
    idle: int = 800,
    iowait: int = 0,
    irq: int = 0,
    softirq: int = 0,
) -> str:
    """Create /proc/stat text with an aggregate cpu line and one per-cpu line."""
    return (
        f"cpu  {user} {nice} {system} {idle} {iowait} {irq} {softirq} 7 0 0\n"
        f"cpu0 {user} {nice} {system} {idle} {iowait} {irq} {softirq} 7 0 0\n"
        "intr 12345 0 0\n"
        "ctxt 67890\n"
    )


def make_pid_stat(pid: int, comm: str = "proc", utime: int = 0, stime: int = 0) -> str:
    """Create a /proc/<pid>/stat record with 52 fields."""
    # state ppid pgrp session tty tpgid flags minflt cminflt majflt cmajflt
    head = f"{pid} ({comm}) S 1 {pid} {pid} 0 -1 4194560 100 0 0 0"
    # cutime cstime priority nice num_threads itrealvalue starttime ...
    tail = " ".join(["0"] * 37)
    return f"{head} {utime} {stime} {tail}\n"


def make_pid_io(read_bytes: int = 0, write_bytes: int = 0) -> str:
    """Create /proc/<pid>/io text."""
    return (
        "rchar: 999999\n"
        "wchar: 888888\n"
        "syscr: 10\n"
        "syscw: 20\n"
        f"read_bytes: {read_bytes}\n"
        f"write_bytes: {write_bytes}\n"
        "cancelled_write_bytes: 0\n"
    )


def make_diskstats_line(name: str, io_ticks: int, major: int = 8, minor: int = 0) -> str:
    """Create one /proc/diskstats line with the given io busy milliseconds."""
    # reads merged sectors ms writes merged sectors ms in_flight io_ticks weighted
    return f"   {major}       {minor} {name} 10 0 80 5 20 0 160 9 0 {io_ticks} 14\n"


MEMINFO = (
    "MemTotal:        8000000 kB\n"
    "MemFree:         2000000 kB\n"
    "MemAvailable:    5000000 kB\n"
    "Buffers:          500000 kB\n"
    "Cached:          1500000 kB\n"
    "SwapCached:            0 kB\n"
    "SwapTotal:       2000000 kB\n"
    "SwapFree:        1500000 kB\n"
    "HugePages_Total:       0\n"
)


class FakeProc:
    """Writable fake procfs tree rooted at a temporary directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def set_stat(self, **kwargs: int) -> None:
        (self.root / "stat").write_text(make_stat_line(**kwargs))

    def set_meminfo(self, text: str = MEMINFO) -> None:
        (self.root / "meminfo").write_text(text)

    def set_diskstats(self, disks: dict[str, int]) -> None:
        lines = [
            make_diskstats_line(name, ticks, minor=minor)
            for minor, (name, ticks) in enumerate(disks.items())
        ]
        (self.root / "diskstats").write_text("".join(lines))

    def add_process(
        self,
        pid: int,
        comm: str = "proc",
        utime: int = 0,
        stime: int = 0,
        read_bytes: int | None = 0,
        write_bytes: int = 0,
        rss_pages: int = 0,
        cmdline: str | None = None,
    ) -> None:
        pid_dir = self.root / str(pid)
        pid_dir.mkdir(exist_ok=True)
        (pid_dir / "stat").write_text(make_pid_stat(pid, comm, utime, stime))
        if read_bytes is not None:
            (pid_dir / "io").write_text(make_pid_io(read_bytes, write_bytes))
        (pid_dir / "statm").write_text(f"{rss_pages * 2} {rss_pages} 100 10 0 500 0\n")
        (pid_dir / "comm").write_text(f"{comm}\n")
        args = cmdline if cmdline is not None else f"/usr/bin/{comm}"
        raw = args.replace(" ", "\0").encode() + b"\0" if args else b""
        (pid_dir / "cmdline").write_bytes(raw)

    def remove_process(self, pid: int) -> None:
        pid_dir = self.root / str(pid)
        for f in pid_dir.iterdir():
            f.unlink()
        pid_dir.rmdir()


@pytest.fixture
def fake_proc(tmp_path: Path) -> FakeProc:
    """A fake /proc with system files populated and no processes."""
    proc = FakeProc(tmp_path / "proc")
    proc.set_stat()
    proc.set_meminfo()
    proc.set_diskstats({"sda": 100, "sda1": 90, "loop0": 50})
    return proc


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def disk_snapshot(timestamp: float, **busy_ms: int) -> Snapshot:
    """Create a DISK_BUSY_TIME snapshot."""
    return Snapshot(kind=ResourceKind.DISK_BUSY_TIME, timestamp=timestamp, counters=dict(busy_ms))


def cpu_snapshot(system_total: int, ticks: dict[int, int], timestamp: float = 0.0) -> Snapshot:
    """Create a PROCESS_CPU snapshot."""
    return Snapshot(
        kind=ResourceKind.PROCESS_CPU,
        timestamp=timestamp,
        counters=dict(ticks),
        system_total=system_total,
    )


def io_snapshot(timestamp: float, counters: dict[int, tuple[int, int]]) -> Snapshot:
    """Create a PROCESS_IO_BYTES snapshot from {pid: (read, write)}."""
    return Snapshot(
        kind=ResourceKind.PROCESS_IO_BYTES,
        timestamp=timestamp,
        counters={
            pid: IoCounters(read_bytes=r, write_bytes=w) for pid, (r, w) in counters.items()
        },
    )


def cpu_times(total: int, idle: int) -> CpuTimes:
    return CpuTimes(total=total, idle=idle)
