"""
CLI interface for modstage.

Provides commands to discover modules and run them through the configured
lifecycle phases.

Modules come from directories of Python files (one module per file) and,
optionally, from installed packages advertising the ``modstage.modules``
entry point group.
"""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Optional

import click
from rich.table import Table

from modstage import __version__
from modstage.errors import ConfigError, DiscoveryError


@click.group()
@click.version_option(version=__version__, prog_name="modstage")
@click.pass_context
def main(ctx):
    """
    modstage - Staged lifecycle orchestration for discovered modules.

    Drives every module through setup, then start (or the configured
    phases), retrying failures and isolating misbehaving modules.
    """
    from modstage.config import default_config, load_config

    ctx.ensure_object(dict)
    try:
        try:
            ctx.obj["config"] = load_config()
        except FileNotFoundError:
            # No config file: run on defaults
            ctx.obj["config"] = default_config()
    except ConfigError as e:
        ctx.obj["config_error"] = str(e)


def _get_config(ctx):
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _collect_handles(config, paths: tuple[Path, ...], use_entry_points: bool):
    """Build handles from directories (args or config) and entry points."""
    from modstage.discovery import DirectoryDiscovery, EntryPointDiscovery, discover

    dirs = list(paths) or config.module_paths()
    sources = [DirectoryDiscovery(d) for d in dirs]
    if use_entry_points:
        sources.append(EntryPointDiscovery(config.entry_point_group))

    if not sources:
        click.echo("✗ No module sources: pass a directory or --entry-points", err=True)
        raise SystemExit(1)

    try:
        return discover(*sources)
    except DiscoveryError as e:
        click.echo(f"✗ Discovery failed: {e}", err=True)
        raise SystemExit(1)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize modstage configuration."""
    import yaml

    from modstage.config import ModstageConfig, get_modstage_home

    home = get_modstage_home()
    home.mkdir(parents=True, exist_ok=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = ModstageConfig(
        module_dirs=[str(home / "modules")],
        env_file=str(home / ".env"),
    ).to_dict()
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# MODSTAGE_MAX_ATTEMPTS=3\n# MODSTAGE_RETRY_DELAY=1.0\n")

    click.echo(f"Initialized modstage config at {cfg_path}")


@main.command("list")
@click.argument("paths", nargs=-1, type=click.Path(path_type=Path))
@click.option("--entry-points", "use_entry_points", is_flag=True, help="Include installed entry point modules")
@click.pass_context
def list_modules(ctx, paths: tuple[Path, ...], use_entry_points: bool):
    """List discovered modules without loading them."""
    config = _get_config(ctx)
    handles = _collect_handles(config, paths, use_entry_points)

    if not handles:
        from modstage.utils import print_status

        print_status("info", "No modules found.")
        return

    for handle in handles:
        click.echo(f"{handle.name}  {handle.origin or ''}".rstrip())


@main.command("run")
@click.argument("paths", nargs=-1, type=click.Path(path_type=Path))
@click.option("--entry-points", "use_entry_points", is_flag=True, help="Include installed entry point modules")
@click.option("--attempts", type=int, help="Attempt budget per module per phase")
@click.option("--delay", type=float, help="Seconds between a failed attempt and the next")
@click.option("--phase", "phases", multiple=True, help="Phase to run (repeatable, in order)")
@click.option("--debug/--no-debug", default=None, help="Log every attempt")
@click.option("--concurrent/--serial", default=None, help="Run modules within a phase concurrently")
@click.option("--json", "as_json", is_flag=True, help="Print the run summary as JSON")
@click.pass_context
def run(
    ctx,
    paths: tuple[Path, ...],
    use_entry_points: bool,
    attempts: Optional[int],
    delay: Optional[float],
    phases: tuple[str, ...],
    debug: Optional[bool],
    concurrent: Optional[bool],
    as_json: bool,
):
    """
    Run discovered modules through the lifecycle phases.

    PATHS are directories of module files; defaults to module_dirs from
    the config file.

    Examples:

        modstage run ./modules

        modstage run ./modules --attempts 5 --delay 0.5

        modstage run --entry-points --phase setup --phase start --json
    """
    from modstage.orchestrator import Orchestrator
    from modstage.schemas import normalize_phases
    from modstage.utils import LoggerPhaseLog, setup_logging

    config = _get_config(ctx)

    try:
        execution = config.execution().with_overrides(
            max_attempts=attempts,
            retry_delay=delay,
            debug=debug,
            concurrent=concurrent,
        )
        phase_sequence = normalize_phases(phases) if phases else config.phase_sequence()
    except (ConfigError, ValueError) as e:
        raise click.UsageError(str(e))

    handles = _collect_handles(config, paths, use_entry_points)

    logger = setup_logging(
        log_file=config.log_file_path(),
        log_level="DEBUG" if execution.debug else config.log_level,
        log_format=config.log_format,
        console_output=not as_json,
    )

    orchestrator = Orchestrator(
        phases=phase_sequence,
        config=execution,
        log=LoggerPhaseLog(logger),
    )
    summary = asyncio.run(_run_until_interrupted(orchestrator, handles))

    if as_json:
        click.echo(json.dumps(summary.to_dict(), indent=2))
    else:
        _print_summary(summary)

    if not summary.success:
        raise SystemExit(1)


def _print_summary(summary) -> None:
    from modstage.utils import console, format_duration, print_run_header, print_status, status_markup

    module_count = len(summary.phases[0].outcomes) if summary.phases else 0
    print_run_header(module_count, [p.phase for p in summary.phases])

    table = Table()
    table.add_column("Phase")
    table.add_column("Module")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Detail")

    for phase_summary in summary.phases:
        for outcome in phase_summary.outcomes:
            status = outcome.status.value
            detail = ""
            if outcome.error:
                detail = f"{outcome.error['type']}: {outcome.error['message']}"
            elif outcome.reason is not None:
                detail = outcome.reason.value
            table.add_row(
                phase_summary.phase,
                outcome.module,
                status_markup(status),
                str(outcome.attempt_count),
                detail,
            )

    console.print(table)

    totals = summary.totals()
    line = (
        f"{totals['succeeded']} succeeded, {totals['failed']} failed, "
        f"{totals['skipped']} skipped in {format_duration(summary.duration_ms / 1000)}"
    )
    if summary.cancelled:
        print_status("cancelled", f"Run cancelled: {line}")
    elif summary.success:
        print_status("succeeded", line)
    else:
        print_status("failed", line)


async def _run_until_interrupted(orchestrator, handles):
    """Run the orchestrator; SIGINT/SIGTERM cancel the remaining work."""
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, cancel.set)
            except (NotImplementedError, RuntimeError, ValueError):
                # Not on the main thread
                continue
            installed.append(sig)
    try:
        return await orchestrator.arun(handles, cancel)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
