"""Formatting utilities for console and log output."""

from res_monitor.models import IoRate, MemoryUsage, RankedEntry, ResourceKind

_SIZE_UNITS = (
    (1024**4, "TB"),
    (1024**3, "GB"),
    (1024**2, "MB"),
    (1024, "kB"),
)

_COMMAND_MAX = 80


def format_bytes(value: float) -> str:
    """Format a byte count as a human-readable string.

    Returns:
        "1.50 GB", "12.00 kB", or "512B" below one kilobyte.
    """
    for factor, unit in _SIZE_UNITS:
        if value >= factor:
            return f"{value / factor:.2f} {unit}"
    return f"{int(value)}B"


def format_cpu(percent: float | None) -> str:
    """Format system CPU usage ("CPU: ?" when unavailable)."""
    if percent is None:
        return "CPU: ?"
    return f"CPU: {percent:.2f}%"


def format_memory(memory: MemoryUsage | None) -> str:
    """Format memory usage, with swap when the system has any."""
    if memory is None:
        return "Mem: ?"
    line = (
        f"Mem: {memory.percent:.2f}% "
        f"({format_bytes(memory.used)} of {format_bytes(memory.total)})"
    )
    if memory.swap_total > 0:
        line += (
            f", Swap: {memory.swap_percent:.2f}% "
            f"({format_bytes(memory.swap_used)} of {format_bytes(memory.swap_total)})"
        )
    return line


def format_disks(busy: dict[str, float] | None) -> str:
    """Format per-disk busy percentages, sorted by disk name."""
    if busy is None:
        return "Disk: ?"
    if not busy:
        return "Disk: -"
    return ", ".join(f"Disk {name}: {busy[name]:.2f}%" for name in sorted(busy))


def format_usage_line(
    cpu_percent: float | None,
    memory: MemoryUsage | None,
    disk_busy: dict[str, float] | None,
) -> str:
    """Single summary line: CPU, memory and disks."""
    return f"{format_cpu(cpu_percent)}, {format_memory(memory)}, {format_disks(disk_busy)}"


def _truncate(command: str) -> str:
    return command if len(command) <= _COMMAND_MAX else command[: _COMMAND_MAX - 2] + ".."


def format_process(
    entry: RankedEntry,
    command: str = "?",
    io_rate: IoRate | None = None,
) -> str:
    """Format one ranked process for the log.

    Args:
        entry: Ranked entry (entity_id is the pid)
        command: Command line of the process
        io_rate: Read/write split, shown for I/O entries when given
    """
    pid = entry.entity_id
    if entry.kind is ResourceKind.PROCESS_CPU:
        metric = f"CPU {entry.value * 100:.2f}%"
    elif entry.kind is ResourceKind.PROCESS_RESIDENT_MEMORY:
        metric = f"Mem {format_bytes(entry.value)}"
    elif entry.kind is ResourceKind.PROCESS_IO_BYTES:
        metric = f"IO {format_bytes(entry.value)}/s"
        if io_rate is not None:
            metric += (
                f" (R {format_bytes(io_rate.read_per_sec)}/s,"
                f" W {format_bytes(io_rate.write_per_sec)}/s)"
            )
    else:
        metric = f"{entry.value:.2f}"
    return f"{metric} [PID {pid}] {_truncate(command)}"
