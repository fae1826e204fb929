"""Data models shared by the reader, delta engines and ranker."""

from dataclasses import dataclass, field
from enum import Enum

# Entity ids are disk names (str) or process ids (int)
EntityId = str | int


class ResourceKind(Enum):
    """Resource dimensions sampled each tick."""

    SYSTEM_CPU = "system_cpu"
    DISK_BUSY_TIME = "disk_busy_time"
    PROCESS_CPU = "process_cpu"
    PROCESS_IO_BYTES = "process_io_bytes"
    PROCESS_RESIDENT_MEMORY = "process_resident_memory"

    @property
    def entity_type(self) -> type | None:
        """Type of the entity id, or None for the system-wide aggregate."""
        if self is ResourceKind.SYSTEM_CPU:
            return None
        if self is ResourceKind.DISK_BUSY_TIME:
            return str
        return int

    @property
    def is_pair(self) -> bool:
        """True when the counter is a {read, write} pair."""
        return self is ResourceKind.PROCESS_IO_BYTES

    @property
    def unit(self) -> str:
        """Natural output unit: percent, rate or absolute."""
        if self is ResourceKind.PROCESS_IO_BYTES:
            return "rate"
        if self is ResourceKind.PROCESS_RESIDENT_MEMORY:
            return "absolute"
        return "percent"


@dataclass(slots=True, frozen=True)
class CpuTimes:
    """Aggregate CPU tick counters from the first line of /proc/stat."""

    total: int  # user + nice + system + idle + iowait + irq + softirq
    idle: int  # idle + iowait


@dataclass(slots=True, frozen=True)
class IoCounters:
    """Cumulative bytes a process caused to be fetched from / sent to storage."""

    read_bytes: int
    write_bytes: int


@dataclass(slots=True, frozen=True)
class IoRate:
    """Storage I/O rate of a process in bytes per second."""

    read_per_sec: float
    write_per_sec: float

    @property
    def total(self) -> float:
        return self.read_per_sec + self.write_per_sec


@dataclass(slots=True, frozen=True)
class MemoryUsage:
    """Physical memory and swap usage in bytes."""

    total: int
    used: int
    swap_total: int = 0
    swap_used: int = 0

    @property
    def percent(self) -> float:
        return 100.0 * self.used / self.total if self.total > 0 else 0.0

    @property
    def swap_percent(self) -> float:
        return 100.0 * self.swap_used / self.swap_total if self.swap_total > 0 else 0.0


@dataclass(frozen=True)
class Snapshot:
    """One observation of a resource kind.

    timestamp is in seconds from a monotonic clock. For PROCESS_CPU,
    system_total carries the aggregate CPU ticks read at the same instant
    and is the denominator for the per-process share.
    """

    kind: ResourceKind
    timestamp: float
    counters: dict[EntityId, int | IoCounters] = field(default_factory=dict)
    system_total: int | None = None


@dataclass(slots=True, frozen=True)
class RankedEntry:
    """One entity in a top-N result."""

    entity_id: EntityId
    value: float
    kind: ResourceKind | None = None
