"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from .db import database_connection, fetch_events, fetch_totals


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def print_daily_summary(self, day: datetime) -> None:
        start, end = day_bounds(day)
        with database_connection(self.db_path) as conn:
            rows = fetch_totals(conn, start.timestamp(), end.timestamp())
            events = fetch_events(conn, start.timestamp(), end.timestamp())
        if not rows:
            print("No playtime recorded for the selected day.")
            return

        total = sum(row["seconds"] for row in rows)

        print(f"Summary for {day.strftime('%Y-%m-%d')}")
        print("-" * 40)
        print(f"Total playtime: {format_duration(total)}")
        print()
        print("Top apps:")
        for row in rows[:10]:
            label = app_label(row["app_id"], row["alias"])
            print(f"  {label:<30} {format_duration(row['seconds'])}")

        if events:
            print()
            print(f"Lifecycle events: {len(events)}")


def day_bounds(day: datetime) -> tuple[datetime, datetime]:
    """Return the local start of ``day`` and the start of the following day."""
    start = day.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def app_label(app_id: int, alias: Optional[str]) -> str:
    return f"{alias} ({app_id})" if alias else str(app_id)


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
