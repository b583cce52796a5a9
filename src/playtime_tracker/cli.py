"""Command-line interface for the playtime tracker."""

from __future__ import annotations

import logging
import signal
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from .config import TrackerSettings
from .paths import get_db_path

app = typer.Typer(help="Playtime tracker for launcher-managed applications.")

logger = logging.getLogger(__name__)


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command()
def collect(
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the playtime SQLite database.",
    ),
    update_seconds: int = typer.Option(
        1,
        "--update-interval",
        min=1,
        help="Sampling interval in whole seconds.",
    ),
    commit_seconds: int = typer.Option(
        60,
        "--commit-interval",
        min=1,
        help="Interval in seconds between writes to the database.",
    ),
    suspend_minutes: Optional[float] = typer.Option(
        None,
        "--suspend-threshold",
        min=0.1,
        help="Minutes without a sample before the gap is recorded as a suspend.",
    ),
    launcher: str = typer.Option(
        "steam",
        "--launcher",
        help="Process name of the launcher whose children are tracked.",
    ),
) -> None:
    """Run the tracker until interrupted."""
    from .tracker import PlaytimeTracker

    settings = TrackerSettings.from_intervals(
        update_seconds=update_seconds,
        commit_seconds=commit_seconds,
        suspend_minutes=suspend_minutes,
        launcher_name=launcher,
    )
    db_path = db_path or get_db_path()
    try:
        tracker = PlaytimeTracker(db_path=db_path, settings=settings)
    except sqlite3.Error as exc:
        logger.error("Cannot open database %s: %s", db_path, exc)
        raise typer.Exit(code=1) from exc

    stop_event = threading.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, lambda *_: stop_event.set())
    tracker.run_until_stopped(stop_event)
    logger.info("exiting")


@app.command()
def summary(
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to summarize. Defaults to today.",
    ),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the playtime SQLite database.",
    ),
) -> None:
    """Print per-app playtime for a specific day."""
    from .reporting import SummaryPrinter

    target = datetime.strptime(date, "%Y-%m-%d") if date else datetime.now()
    summary_printer = SummaryPrinter(db_path=db_path or get_db_path())
    summary_printer.print_daily_summary(target)


@app.command()
def alias(
    app_id: int = typer.Argument(..., help="Launcher application id."),
    name: str = typer.Argument(..., help="Human-readable name to show in reports."),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the playtime SQLite database.",
    ),
) -> None:
    """Attach a readable alias to a tracked app."""
    from .db import database_connection, set_alias

    with database_connection(db_path or get_db_path()) as conn:
        try:
            set_alias(conn, app_id, name.strip() or None)
        except ValueError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc
    typer.echo(f"{app_id} -> {name}")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the dashboard."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the dashboard."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the playtime SQLite database."
    ),
    update_seconds: int = typer.Option(
        1,
        "--update-interval",
        min=1,
        help="Sampling interval in whole seconds.",
    ),
    commit_seconds: int = typer.Option(
        60,
        "--commit-interval",
        min=1,
        help="Interval in seconds between writes to the database.",
    ),
    launcher: str = typer.Option(
        "steam",
        "--launcher",
        help="Process name of the launcher whose children are tracked.",
    ),
) -> None:
    """Start the local API with the background tracker."""
    import uvicorn

    from .webapp import create_app

    settings = TrackerSettings.from_intervals(
        update_seconds=update_seconds,
        commit_seconds=commit_seconds,
        launcher_name=launcher,
    )
    api = create_app(db_path=db_path or get_db_path(), settings=settings)
    uvicorn.run(api, host=host, port=port, log_level="info")
