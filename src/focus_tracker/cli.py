"""Command-line interface for the focus tracker."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .classifier import DEFAULT_CATEGORY_MAP, normalize_category_map
from .config import TrackerSettings, default_db_path
from .db import database_connection, read_preference, write_preference
from .storage import CATEGORY_MAP_KEY, LAST_SHOWN_BREAK_KEY
from .webapp import run

app = typer.Typer(help="Local focus tracker with break reminders.")

DB_OPTION_HELP = "Location of the tracker SQLite database."


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the service."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the service."
    ),
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
    check_seconds: float = typer.Option(
        30.0,
        "--check-interval",
        min=1.0,
        help="Seconds between threshold checks.",
    ),
    get_back_minutes: float = typer.Option(
        15.0,
        "--get-back-after",
        min=1.0,
        help="Minutes on distracting sites before a get-back-to-work nudge.",
    ),
    reset_streak_total: bool = typer.Option(
        False,
        "--reset-streak-total/--keep-streak-total",
        help="Zero the productive total whenever a productive streak breaks.",
    ),
) -> None:
    """Run the tracker service until interrupted."""
    settings = TrackerSettings.from_intervals(
        check_seconds=check_seconds,
        get_back_minutes=get_back_minutes,
        reset_accumulated_on_streak_break=reset_streak_total,
    )
    run(host=host, port=port, db_path=db_path or default_db_path(), settings=settings)


@app.command()
def summary(
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
    limit: int = typer.Option(10, "--limit", min=1, help="Number of domains to list."),
) -> None:
    """Print time per category and the top domains."""
    from .reporting import SummaryPrinter

    SummaryPrinter(db_path=db_path or default_db_path()).print_summary(limit=limit)


@app.command("reset-breaks")
def reset_breaks(
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
) -> None:
    """Re-arm every break reminder threshold."""
    with database_connection(db_path or default_db_path()) as conn:
        write_preference(conn, LAST_SHOWN_BREAK_KEY, 0)
    typer.echo("Break notifications reset.")


@app.command()
def categories(
    db_path: Optional[Path] = typer.Option(None, "--db", path_type=Path, help=DB_OPTION_HELP),
) -> None:
    """Show the category patterns in the order they are matched."""
    with database_connection(db_path or default_db_path()) as conn:
        raw = read_preference(conn, CATEGORY_MAP_KEY)
    category_map = DEFAULT_CATEGORY_MAP if raw is None else normalize_category_map(raw)
    for name, patterns in category_map.items():
        typer.echo(f"{name}: {', '.join(patterns)}")
