# src/wpmigrate/cli.py
"""wpmigrate Command Line Interface.

Operator commands over persisted migration state and backend health:
listing resumable runs, inspecting one run, cleaning up old state
directories, and a one-shot health check.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from wpmigrate import __version__
from wpmigrate.contracts import ResumeOptions, SiteStatus, StateLocation
from wpmigrate.core.config import WpMigrateSettings, load_settings
from wpmigrate.core.state.serialization import format_timestamp

if TYPE_CHECKING:
    from wpmigrate.contracts import MigrationSummary
    from wpmigrate.core.state import MigrationCleaner, MigrationStateManager

__all__ = [
    "app",
]

app = typer.Typer(
    name="wpmigrate",
    help="wpmigrate: Resumable WordPress multisite environment migrations.",
    no_args_is_help=True,
)


@dataclass
class CliContext:
    """Options shared by every subcommand, set by the app callback."""

    config_path: Path | None = None
    _settings: WpMigrateSettings | None = None

    def settings(self) -> WpMigrateSettings:
        """Load settings once, exiting with a readable error on failure."""
        if self._settings is None:
            self._settings = _load_settings_or_exit(self.config_path)
        return self._settings


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"wpmigrate version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Returns:
        True if .env was found and loaded, False otherwise.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: .env file not found: {env_file}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)  # Don't override existing env vars


def _load_settings_or_exit(config_path: Path | None) -> WpMigrateSettings:
    try:
        return load_settings(config_path)
    except FileNotFoundError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from None
    except (YamlParserError, YamlScannerError) as e:
        typer.secho(f"Error: Invalid YAML in {config_path}: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.secho("Configuration errors:", fg=typer.colors.RED, err=True)
        for error in e.errors():
            loc = ".".join(str(part) for part in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _manager(ctx: typer.Context) -> MigrationStateManager:
    from wpmigrate.core.state import MigrationStateManager

    cli: CliContext = ctx.ensure_object(CliContext)
    return MigrationStateManager.from_settings(cli.settings().state)


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to settings YAML file (default: environment variables only).",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,  # We handle existence check ourselves for better error message
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """wpmigrate: Resumable WordPress multisite environment migrations."""
    from wpmigrate.core.logging import configure_logging

    log_level = "DEBUG" if verbose else "INFO"
    configure_logging(json_output=json_logs, level=log_level)

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )

    ctx.obj = CliContext(config_path=config)


def _summary_payload(summary: MigrationSummary) -> dict[str, Any]:
    return {
        "migration_id": summary.migration_id,
        "source_env": summary.source_env,
        "target_env": summary.target_env,
        "status": summary.status.value,
        "start_time": format_timestamp(summary.start_time),
        "end_time": format_timestamp(summary.end_time) if summary.end_time is not None else None,
        "total_sites": summary.total_sites,
        "completed_sites": summary.completed_sites,
        "failed_sites": summary.failed_sites,
        "timeout_sites": summary.timeout_sites,
        "duration_ms": summary.duration_ms,
        "can_resume": summary.can_resume,
        "location": summary.location.value,
    }


def _format_duration(duration_ms: float) -> str:
    total_seconds = int(duration_ms // 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


@app.command("list")
def list_migrations(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON.",
    ),
) -> None:
    """List incomplete migrations that can be inspected or resumed.

    Examples:

        # Human-readable listing
        wpmigrate list

        # JSON output for automation
        wpmigrate list --json
    """
    manager = _manager(ctx)
    active = manager.find_active_migration()
    summaries = manager.find_incomplete()

    if json_output:
        payload = {
            "active_migration": active,
            "incomplete": [_summary_payload(s) for s in summaries],
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    if active is not None:
        typer.secho(f"Active migration: {active}", fg=typer.colors.YELLOW)

    if not summaries:
        typer.echo("No incomplete migrations found.")
        return

    typer.echo(f"Incomplete migrations ({len(summaries)}):")
    for summary in summaries:
        done = summary.completed_sites + summary.failed_sites + summary.timeout_sites
        resumable = "resumable" if summary.can_resume else "locked"
        typer.echo(
            f"  {summary.migration_id}  {summary.source_env} -> {summary.target_env}  "
            f"{summary.status.value}  {done}/{summary.total_sites} sites  "
            f"{_format_duration(summary.duration_ms)}  [{resumable}]"
        )
        if summary.failed_sites or summary.timeout_sites:
            typer.echo(f"      failed: {summary.failed_sites}, timeouts: {summary.timeout_sites}")
        if summary.location == StateLocation.LEGACY:
            typer.echo("      (legacy location; run `wpmigrate cleanup --legacy` to relocate)")


@app.command()
def status(
    ctx: typer.Context,
    migration_id: str = typer.Argument(..., help="Migration id to inspect."),
    skip_failed: bool = typer.Option(False, "--skip-failed", help="Leave failed sites out of the worklist."),
    skip_timeouts: bool = typer.Option(False, "--skip-timeouts", help="Leave timed-out sites out of the worklist."),
    only_failed: bool = typer.Option(
        False,
        "--only-failed",
        help="Worklist is exactly the failed and timed-out sites (overrides --skip-*).",
    ),
) -> None:
    """Show counters, phases and the resume worklist of one migration."""
    manager = _manager(ctx)
    state = manager.load(migration_id)
    if state is None:
        typer.secho(f"Error: Migration not found or unreadable: {migration_id}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    options = ResumeOptions(skip_failed=skip_failed, skip_timeouts=skip_timeouts, only_failed=only_failed)
    worklist = manager.sites_to_process(state, options)

    typer.echo(f"Migration: {state.migration_id}")
    typer.echo(f"Route: {state.source_env} -> {state.target_env}")
    typer.echo(f"Status: {state.status.value}")
    typer.echo(f"Current phase: {state.current_phase.value}")
    typer.echo(f"Started: {format_timestamp(state.start_time)}")
    typer.echo(f"Last saved: {format_timestamp(state.last_save_time)}")
    typer.echo(
        f"Sites: {state.total_sites} total, {state.completed_sites} completed, "
        f"{state.failed_sites} failed, {state.skipped_sites} skipped, {state.timeout_sites} timeout"
    )

    typer.echo("\nPhases:")
    for phase in state.phases:
        line = f"  {phase.phase.value}: {phase.status.value}"
        if phase.error:
            line += f" ({phase.error})"
        typer.echo(line)

    failing = [site for site in state.sites.values() if site.status in (SiteStatus.FAILED, SiteStatus.TIMEOUT)]
    if failing:
        typer.echo("\nFailed sites:")
        for site in failing:
            typer.echo(f"  {site.site_id}: {site.status.value} after {site.attempts} attempt(s): {site.error or 'no error recorded'}")

    if worklist:
        shown = ", ".join(str(site_id) for site_id in worklist[:20])
        more = f" ... and {len(worklist) - 20} more" if len(worklist) > 20 else ""
        typer.echo(f"\nTo process on resume ({len(worklist)}): {shown}{more}")
    else:
        typer.echo("\nNothing left to process.")


@app.command()
def cleanup(
    ctx: typer.Context,
    migration_ids: list[str] | None = typer.Option(
        None,
        "--migration-id",
        "-m",
        help="Remove only these migrations (repeatable).",
    ),
    all_migrations: bool = typer.Option(
        False,
        "--all",
        help="Also remove migrations whose lock is held by a live process.",
    ),
    legacy: bool = typer.Option(
        False,
        "--legacy",
        help="Move migrations found in the legacy root to the current root instead of removing anything.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would be done without doing it.",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt.",
    ),
) -> None:
    """Remove state directories of incomplete migrations.

    By default only stale running migrations are removed. Paused and
    initializing runs, and runs locked by a live process, are kept unless
    --all is given. Completed runs are removed only when named with
    --migration-id.

    Examples:

        # See what would be removed
        wpmigrate cleanup --dry-run

        # Remove one migration without prompting
        wpmigrate cleanup -m env-migrate-2024-01-01T00-00-00-abc123 --yes

        # Move old ./logs migrations to the current location
        wpmigrate cleanup --legacy
    """
    from wpmigrate.core.state import MigrationCleaner

    manager = _manager(ctx)
    cleaner = MigrationCleaner(manager)

    if legacy:
        _relocate_legacy(cleaner, dry_run=dry_run, yes=yes)
        return

    if migration_ids:
        active = manager.find_active_migration()
        targets: dict[str, MigrationSummary | None] = {}
        for migration_id in migration_ids:
            if migration_id == active and not all_migrations:
                typer.secho(
                    f"Skipping {migration_id}: locked by a running process (use --all to override).",
                    fg=typer.colors.YELLOW,
                    err=True,
                )
                continue
            targets[migration_id] = cleaner.summary_for(migration_id)
    else:
        targets = {summary.migration_id: summary for summary in cleaner.select(include_active=all_migrations)}

    if not targets:
        typer.echo("No migrations to clean up.")
        return

    typer.echo(f"{'Would remove' if dry_run else 'Removing'} {len(targets)} migration(s):")
    for migration_id, summary in targets.items():
        typer.echo(f"  {_describe_target(migration_id, summary)}")
    if dry_run:
        return

    if not yes:
        confirm = typer.confirm(f"Remove {len(targets)} migration(s)?")
        if not confirm:
            typer.echo("Aborted.")
            raise typer.Exit(1)

    result = cleaner.remove(list(targets))

    typer.echo("Cleanup completed:")
    typer.echo(f"  Removed: {len(result.processed)}")
    if result.missing:
        typer.echo(f"  Not found: {len(result.missing)}")
        for migration_id in result.missing:
            typer.echo(f"    {migration_id}")
    if result.errors:
        typer.echo(f"  Failed: {len(result.errors)}")
        for migration_id, error in result.errors.items():
            typer.echo(f"    {migration_id}: {error}")
        raise typer.Exit(1)


def _describe_target(migration_id: str, summary: MigrationSummary | None) -> str:
    if summary is None:
        return f"{migration_id}  (not found)"
    done = summary.completed_sites + summary.failed_sites + summary.timeout_sites
    return f"{migration_id}  {summary.source_env} -> {summary.target_env}  {summary.status.value}  {done}/{summary.total_sites} sites"


def _relocate_legacy(cleaner: MigrationCleaner, *, dry_run: bool, yes: bool) -> None:
    sources = cleaner.legacy_directories()
    if not sources:
        typer.echo("No migrations found in the legacy location.")
        return

    if dry_run:
        typer.echo(f"Would move {len(sources)} migration(s) from the legacy location:")
        for source in sources:
            typer.echo(f"  {source}")
        return

    if not yes:
        confirm = typer.confirm(f"Move {len(sources)} migration(s) from the legacy location?")
        if not confirm:
            typer.echo("Aborted.")
            raise typer.Exit(1)

    result = cleaner.relocate_legacy()
    typer.echo("Relocation completed:")
    typer.echo(f"  Moved: {len(result.processed)}")
    if result.skipped:
        typer.echo(f"  Skipped (already present): {len(result.skipped)}")
    if result.errors:
        typer.echo(f"  Failed: {len(result.errors)}")
        for migration_id, error in result.errors.items():
            typer.echo(f"    {migration_id}: {error}")
        raise typer.Exit(1)


@app.command()
def health(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON.",
    ),
) -> None:
    """Check connectivity of configured databases and process memory.

    Exits non-zero when the migration database or a critical environment
    is unreachable, or memory use is critical.

    Examples:

        # Basic health check
        wpmigrate health

        # JSON output for automation
        wpmigrate health --json
    """
    from wpmigrate.engine.health import HealthChecker

    cli: CliContext = ctx.ensure_object(CliContext)
    checker = HealthChecker.from_settings(cli.settings())
    result = checker.check()

    if json_output:
        payload = {"status": "healthy" if result.healthy else "unhealthy", **result.to_dict()}
        typer.echo(json.dumps(payload, indent=2))
    else:
        typer.echo(f"Status: {'healthy' if result.healthy else 'unhealthy'}")
        typer.echo(f"Targets: {', '.join(name for name, _ in checker.targets()) or 'none configured'}")
        for issue in result.issues:
            typer.secho(f"  ✗ {issue}", fg=typer.colors.RED)
        for warning in result.warnings:
            typer.secho(f"  ⚠ {warning}", fg=typer.colors.YELLOW)
        typer.echo(f"Response time: {result.response_time_ms:.0f}ms")

    if not result.healthy:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
