"""CLI commands for res-monitor."""

from pathlib import Path

import click

_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/res-monitor/config.toml)",
)


def _threshold_options(func):
    """Options shared by run and once; None means "use config value"."""
    options = [
        click.option("-c", "--min-cpu", type=float, default=None, help="Min CPU usage (%)"),
        click.option("-m", "--min-mem", type=float, default=None, help="Min memory usage (MB)"),
        click.option("-d", "--min-disk", type=float, default=None, help="Min disk I/O (KB/s)"),
        click.option(
            "-n", "--num-processes", type=int, default=None, help="Processes shown per resource"
        ),
        click.option(
            "--proc-root",
            type=click.Path(exists=True, file_okay=False),
            default=None,
            help="procfs mount point",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _load_config(config_path: Path | None, **overrides):
    from res_monitor.config import Config

    try:
        return Config.load(config_path).with_overrides(**overrides)
    except ValueError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(package_name="res-monitor")
def main() -> None:
    """Log top CPU, memory and disk I/O consumers on an interval."""
    pass


@main.command()
@click.option("-i", "--interval", type=float, default=None, help="Update interval (seconds)")
@_threshold_options
@_config_option
def run(
    interval: float | None,
    min_cpu: float | None,
    min_mem: float | None,
    min_disk: float | None,
    num_processes: int | None,
    proc_root: str | None,
    config_path: Path | None,
) -> None:
    """Run the monitor until SIGINT/SIGTERM."""
    import asyncio

    from res_monitor.daemon import run_daemon

    config = _load_config(
        config_path,
        interval=interval,
        proc_root=proc_root,
        min_cpu_percent=min_cpu,
        min_memory_mb=min_mem,
        min_disk_kb=min_disk,
        process_count=num_processes,
    )
    asyncio.run(run_daemon(config))


@main.command()
@click.option(
    "--delay",
    type=click.FloatRange(min=0),
    default=1.0,
    show_default=True,
    help="Seconds between the baseline and the reported sample",
)
@_threshold_options
@_config_option
def once(
    delay: float,
    min_cpu: float | None,
    min_mem: float | None,
    min_disk: float | None,
    num_processes: int | None,
    proc_root: str | None,
    config_path: Path | None,
) -> None:
    """Take a baseline, wait, and print a single report."""
    import time

    from res_monitor.collector import ResourceMonitor
    from res_monitor.formatting import format_process, format_usage_line
    from res_monitor.procfs import ProcfsReader

    config = _load_config(
        config_path,
        proc_root=proc_root,
        min_cpu_percent=min_cpu,
        min_memory_mb=min_mem,
        min_disk_kb=min_disk,
        process_count=num_processes,
    )
    monitor = ResourceMonitor(ProcfsReader(config.sampling.proc_root), config.thresholds)

    # First tick only establishes baselines
    monitor.sample()
    if delay > 0:
        time.sleep(delay)
    report = monitor.sample()

    click.echo(format_usage_line(report.cpu_percent, report.memory, report.disk_busy))
    for entries in (report.top_cpu, report.top_memory, report.top_io):
        for entry in entries:
            pid = entry.entity_id
            line = format_process(entry, report.commands.get(pid, "?"), report.io_rates.get(pid))
            click.echo(f"  {line}")


@main.group()
def config() -> None:
    """Manage the configuration file."""
    pass


@config.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@_config_option
def config_init(force: bool, config_path: Path | None) -> None:
    """Write a config file with default values."""
    from res_monitor.config import Config

    cfg = Config()
    path = config_path or cfg.config_path
    if path.exists() and not force:
        click.echo(f"Config already exists at {path} (use --force to overwrite)", err=True)
        raise SystemExit(1)
    cfg.save(path)
    click.echo(f"Created config at {path}")


@config.command("show")
@_config_option
def config_show(config_path: Path | None) -> None:
    """Print the effective configuration as TOML."""
    cfg = _load_config(config_path)
    click.echo(cfg.to_toml(), nl=False)
