# src/res_monitor/delta.py
"""Delta engines: turn cumulative counters into rates and percentages.

Each engine is explicitly constructed and owns exactly one previous sample
for its resource kind. update() computes the result from (previous, current)
into a local, then commits current as the new previous as its last step on
every path: cold start, zero elapsed time and counter underflow included.
The next call therefore always measures from the most recent sample.

Counters are treated as unsigned and monotonic. If a counter went backwards
(counter reset, pid reuse, clock irregularity) the entity is treated as if
it had no previous sample. Pid recycling that keeps the counter increasing
is not detected.

Engines are not thread-safe; one pipeline runs at a time.
"""

from __future__ import annotations

from res_monitor.models import CpuTimes, IoCounters, IoRate, ResourceKind, Snapshot


class CpuUsageDelta:
    """System-wide CPU usage percentage from aggregate tick counters."""

    kind = ResourceKind.SYSTEM_CPU

    def __init__(self) -> None:
        self._previous: CpuTimes | None = None

    @property
    def has_baseline(self) -> bool:
        return self._previous is not None

    def reset(self) -> None:
        self._previous = None

    def update(self, current: CpuTimes) -> float | None:
        """Return CPU usage in percent, or None when it cannot be computed.

        None on the first call, when no ticks elapsed, or when either counter
        went backwards.
        """
        previous = self._previous
        usage: float | None = None
        if (
            previous is not None
            and current.total >= previous.total
            and current.idle >= previous.idle
        ):
            delta_total = current.total - previous.total
            delta_idle = current.idle - previous.idle
            if delta_total > 0:
                usage = 100.0 * (delta_total - min(delta_idle, delta_total)) / delta_total

        self._previous = current
        return usage


class _SnapshotDelta:
    """Shared state handling for engines that pair per-entity snapshots."""

    kind: ResourceKind

    def __init__(self) -> None:
        self._previous: Snapshot | None = None

    @property
    def has_baseline(self) -> bool:
        return self._previous is not None

    @property
    def previous(self) -> Snapshot | None:
        return self._previous

    def reset(self) -> None:
        self._previous = None

    def _check_kind(self, snapshot: Snapshot) -> None:
        if snapshot.kind is not self.kind:
            raise ValueError(
                f"{type(self).__name__} expects {self.kind.value} snapshots, "
                f"got {snapshot.kind.value}"
            )

    def _elapsed_ms(self, current: Snapshot) -> float | None:
        """Milliseconds since the previous snapshot, None if not positive."""
        if self._previous is None:
            return None
        elapsed_ms = (current.timestamp - self._previous.timestamp) * 1000.0
        return elapsed_ms if elapsed_ms > 0 else None


class DiskBusyDelta(_SnapshotDelta):
    """Per-disk busy percentage from cumulative io busy milliseconds."""

    kind = ResourceKind.DISK_BUSY_TIME

    def update(self, current: Snapshot) -> dict[str, float] | None:
        """Return {disk: busy %}, or None on cold start or zero elapsed time.

        Only disks present in both samples are reported.
        """
        self._check_kind(current)
        previous = self._previous
        elapsed_ms = self._elapsed_ms(current)
        busy: dict[str, float] | None = None
        if previous is not None and elapsed_ms is not None:
            busy = {}
            for name, busy_ms in current.counters.items():
                prev_ms = previous.counters.get(name)
                if prev_ms is None or busy_ms < prev_ms:
                    continue
                busy[name] = 100.0 * (busy_ms - prev_ms) / elapsed_ms

        self._previous = current
        return busy


class ProcessCpuDelta(_SnapshotDelta):
    """Per-process CPU share of the aggregate CPU ticks.

    The share is process ticks / system ticks over the same interval,
    not scaled by core count: 1.0 means the process used every tick of
    every CPU.
    """

    kind = ResourceKind.PROCESS_CPU

    def update(self, current: Snapshot) -> dict[int, float]:
        """Return {pid: fraction}. Empty on cold start or if no ticks elapsed."""
        self._check_kind(current)
        if current.system_total is None:
            raise ValueError("process cpu snapshot is missing system_total")
        previous = self._previous
        shares: dict[int, float] = {}
        if previous is not None and previous.system_total is not None:
            delta_system = current.system_total - previous.system_total
            if delta_system > 0:
                for pid, ticks in current.counters.items():
                    prev_ticks = previous.counters.get(pid)
                    if prev_ticks is None or ticks < prev_ticks:
                        continue
                    shares[pid] = (ticks - prev_ticks) / delta_system

        self._previous = current
        return shares


class ProcessIoDelta(_SnapshotDelta):
    """Per-process storage read/write rates in bytes per second."""

    kind = ResourceKind.PROCESS_IO_BYTES

    def update(self, current: Snapshot) -> dict[int, IoRate]:
        """Return {pid: IoRate}. Empty on cold start or zero elapsed time."""
        self._check_kind(current)
        previous = self._previous
        elapsed_ms = self._elapsed_ms(current)
        rates: dict[int, IoRate] = {}
        if previous is not None and elapsed_ms is not None:
            for pid, io in current.counters.items():
                prev: IoCounters | None = previous.counters.get(pid)
                if prev is None:
                    continue
                if io.read_bytes < prev.read_bytes or io.write_bytes < prev.write_bytes:
                    continue
                rates[pid] = IoRate(
                    read_per_sec=(io.read_bytes - prev.read_bytes) * 1000.0 / elapsed_ms,
                    write_per_sec=(io.write_bytes - prev.write_bytes) * 1000.0 / elapsed_ms,
                )

        self._previous = current
        return rates
