"""CLI interface for running soak tests against the hash store."""

from __future__ import annotations

import logging
from typing import Optional

import typer

from harness.config import HarnessConfig, load_config
from harness.driver import CycleDriver, format_summary, write_summary
from harness.keys import RandomKeySource
from harness.logging_setup import configure_logging
from store.database import initialize_database
from store.errors import StorageError
from store.repository import HashRepository

app = typer.Typer(help="SQLite hash-store soak test CLI")

logger = logging.getLogger(__name__)

DEFAULT_DB = HarnessConfig().db_path


def _apply_overrides(config: HarnessConfig, overrides: dict[str, object]) -> HarnessConfig:
    updates = {k: v for k, v in overrides.items() if v is not None}
    if not updates:
        return config
    return HarnessConfig.from_dict({**config.to_dict(), **updates})


@app.command()
def run(
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to harness YAML config"),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite store path"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Append logs to this file"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Key generator seed"),
    cycles: Optional[int] = typer.Option(None, "--cycles", help="Stop after N cycles"),
    duration: Optional[float] = typer.Option(None, "--duration", help="Stop after N seconds"),
    skip_existing: bool = typer.Option(False, "--skip-existing", help="Do not re-save keys that already exist"),
    no_progress: bool = typer.Option(False, "--no-progress", help="Hide the progress bar"),
    summary: Optional[str] = typer.Option(None, "--summary", help="Append the run summary (JSON line) here"),
) -> None:
    """Initialize the store and run lookup/save cycles."""
    try:
        config = load_config(config_path) if config_path else HarnessConfig()
        config = _apply_overrides(
            config,
            {
                "db_path": db,
                "log_file": log_file,
                "seed": seed,
                "max_cycles": cycles,
                "duration_seconds": duration,
                "refresh_existing": False if skip_existing else None,
                "show_progress": False if no_progress else None,
                "summary_path": summary,
            },
        )
    except FileNotFoundError as e:
        typer.secho(f"❌ Config file not found: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except ValueError as e:
        typer.secho(f"❌ Invalid config: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    configure_logging(config.log_file, config.log_level)
    logger.info("Starting...")

    try:
        handle = initialize_database(config.db_path, timeout=config.busy_timeout_seconds)
    except StorageError as e:
        logger.error("Failed to open database: %s", e)
        typer.secho(f"❌ Failed to open database: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    driver = CycleDriver(
        HashRepository(handle),
        RandomKeySource(seed=config.seed, length=config.key_length),
        max_cycles=config.max_cycles,
        duration_seconds=config.duration_seconds,
        refresh_existing=config.refresh_existing,
        filename_suffix=config.filename_suffix,
        show_progress=config.show_progress,
    )
    driver.install_signal_handlers()
    try:
        result = driver.run()
    finally:
        driver.restore_signal_handlers()

    if config.summary_path:
        write_summary(result, config.summary_path)

    typer.echo(format_summary(result))
    if result.status == "failed":
        typer.secho("\n❌ Run aborted on a storage error", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    if result.status == "interrupted":
        typer.secho("\n⚠️  Run interrupted", fg=typer.colors.YELLOW)
    else:
        typer.secho("\n✅ Run completed", fg=typer.colors.GREEN)


@app.command()
def init(
    db: str = typer.Option(DEFAULT_DB, "--db", help="SQLite store path"),
) -> None:
    """Create the store and its table if they do not exist."""
    try:
        handle = initialize_database(db)
    except StorageError as e:
        typer.secho(f"❌ Failed to initialize database: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    if handle.created:
        typer.secho(f"✅ Created store: {handle.path}", fg=typer.colors.GREEN)
    else:
        typer.secho(f"Store already exists: {handle.path}", fg=typer.colors.BLUE)


@app.command()
def lookup(
    key: str = typer.Argument(..., help="Hash to look up"),
    db: str = typer.Option(DEFAULT_DB, "--db", help="SQLite store path"),
) -> None:
    """Show the stored row for a hash."""
    try:
        record = HashRepository(db).fetch(key)
    except StorageError as e:
        typer.secho(f"❌ Lookup failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    if record is None:
        typer.secho(f"Not found: {key}", fg=typer.colors.YELLOW)
        raise typer.Exit(1)

    typer.echo(f"Hash:         {record.hash}")
    typer.echo(f"File:         {record.filename}")
    typer.echo(f"Last checked: {record.format_checked('%Y-%m-%d %H:%M:%S')} ({record.last_checked})")


@app.command()
def count(
    db: str = typer.Option(DEFAULT_DB, "--db", help="SQLite store path"),
) -> None:
    """Print the number of stored hashes."""
    try:
        rows = HashRepository(db).count()
    except StorageError as e:
        typer.secho(f"❌ Count failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.echo(str(rows))


if __name__ == "__main__":
    app()
