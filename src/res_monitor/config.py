"""Configuration system for res-monitor."""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields, is_dataclass, replace
from pathlib import Path
from typing import Any

import tomlkit


@dataclass
class SamplingConfig:
    """Poll loop configuration."""

    interval: float = 10.0  # Seconds between ticks
    proc_root: str = "/proc"  # procfs mount point
    heartbeat_ticks: int = 60  # Log a heartbeat every N ticks (0 disables)


@dataclass
class ThresholdsConfig:
    """Top-N selection per resource dimension.

    A process is listed only if its value reaches the minimum for that
    dimension; process_count caps each list.
    """

    min_cpu_percent: float = 1.0  # Share of total CPU ticks, percent
    min_memory_mb: float = 1.0  # Resident memory, MiB
    min_disk_kb: float = 1.0  # Storage read + write, KiB per second
    process_count: int = 3  # Processes listed per dimension

    @property
    def min_cpu_fraction(self) -> float:
        return self.min_cpu_percent / 100.0

    @property
    def min_memory_bytes(self) -> float:
        return self.min_memory_mb * 1024 * 1024

    @property
    def min_disk_bytes_per_sec(self) -> float:
        return self.min_disk_kb * 1024


@dataclass
class LoggingConfig:
    """Rotating log file configuration."""

    max_bytes: int = 50 * 1024 * 1024  # Max log file size (50MB)
    backup_count: int = 10  # Number of rotated files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    """Return a top-level table, or an empty one if the file omits it."""
    section = data.get(name, {})
    if not isinstance(section, Mapping):
        raise ValueError(f"[{name}] must be a table, got {type(section).__name__}")
    return section


def _value(
    section: Mapping[str, Any],
    section_name: str,
    key: str,
    default: Any,
    convert: Callable[[Any], Any],
) -> Any:
    """Read one key, converting it to the type of its dataclass field."""
    raw = section.get(key, default)
    if isinstance(raw, (Mapping, list)):
        raise ValueError(f"{section_name}.{key} must be a scalar, got {type(raw).__name__}")
    try:
        return convert(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{section_name}.{key}: invalid value {raw!r}") from e


@dataclass
class Config:
    """Main configuration container."""

    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "res-monitor"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "res-monitor"

    @property
    def log_path(self) -> Path:
        """Rotating log file path."""
        return self.state_dir / "monitor.log"

    def validate(self) -> None:
        """Raise ValueError if any value is out of range."""
        if self.sampling.interval <= 0:
            raise ValueError(f"sampling.interval must be > 0, got {self.sampling.interval}")
        if self.sampling.heartbeat_ticks < 0:
            raise ValueError(
                f"sampling.heartbeat_ticks must be >= 0, got {self.sampling.heartbeat_ticks}"
            )
        t = self.thresholds
        for name in ("min_cpu_percent", "min_memory_mb", "min_disk_kb"):
            if getattr(t, name) < 0:
                raise ValueError(f"thresholds.{name} must be >= 0, got {getattr(t, name)}")
        if t.process_count < 0:
            raise ValueError(f"thresholds.process_count must be >= 0, got {t.process_count}")
        if self.logging.max_bytes < 0:
            raise ValueError(f"logging.max_bytes must be >= 0, got {self.logging.max_bytes}")
        if self.logging.backup_count < 0:
            raise ValueError(
                f"logging.backup_count must be >= 0, got {self.logging.backup_count}"
            )

    def with_overrides(
        self,
        *,
        interval: float | None = None,
        proc_root: str | None = None,
        min_cpu_percent: float | None = None,
        min_memory_mb: float | None = None,
        min_disk_kb: float | None = None,
        process_count: int | None = None,
    ) -> "Config":
        """Return a copy with the given (non-None) values replaced, validated."""
        sampling_changes = {
            k: v for k, v in (("interval", interval), ("proc_root", proc_root)) if v is not None
        }
        threshold_changes = {
            k: v
            for k, v in (
                ("min_cpu_percent", min_cpu_percent),
                ("min_memory_mb", min_memory_mb),
                ("min_disk_kb", min_disk_kb),
                ("process_count", process_count),
            )
            if v is not None
        }
        config = replace(
            self,
            sampling=replace(self.sampling, **sampling_changes),
            thresholds=replace(self.thresholds, **threshold_changes),
        )
        config.validate()
        return config

    def to_toml(self) -> str:
        """Render all sections as a TOML document."""
        doc = tomlkit.document()
        for name in ("sampling", "thresholds", "logging"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())
        return tomlkit.dumps(doc)

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_toml())

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() on a missing file are identical.

        Raises:
            ValueError: If the file is not valid TOML, a section or value has the
                wrong type, or a value is out of range.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        sampling_data = _section(data, "sampling")
        thresholds_data = _section(data, "thresholds")
        logging_data = _section(data, "logging")

        s = defaults.sampling
        t = defaults.thresholds
        lg = defaults.logging

        config = cls(
            sampling=SamplingConfig(
                interval=_value(sampling_data, "sampling", "interval", s.interval, float),
                proc_root=_value(sampling_data, "sampling", "proc_root", s.proc_root, str),
                heartbeat_ticks=_value(
                    sampling_data, "sampling", "heartbeat_ticks", s.heartbeat_ticks, int
                ),
            ),
            thresholds=ThresholdsConfig(
                min_cpu_percent=_value(
                    thresholds_data, "thresholds", "min_cpu_percent", t.min_cpu_percent, float
                ),
                min_memory_mb=_value(
                    thresholds_data, "thresholds", "min_memory_mb", t.min_memory_mb, float
                ),
                min_disk_kb=_value(
                    thresholds_data, "thresholds", "min_disk_kb", t.min_disk_kb, float
                ),
                process_count=_value(
                    thresholds_data, "thresholds", "process_count", t.process_count, int
                ),
            ),
            logging=LoggingConfig(
                max_bytes=_value(logging_data, "logging", "max_bytes", lg.max_bytes, int),
                backup_count=_value(
                    logging_data, "logging", "backup_count", lg.backup_count, int
                ),
            ),
        )
        config.validate()
        return config
