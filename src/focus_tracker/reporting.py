"""Simple reporting utilities for CLI output and the summary endpoint."""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import Iterable

from .classifier import OTHER
from .db import database_connection, fetch_domain_stats
from .models import DomainStatsEntry


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def print_summary(self, limit: int = 10) -> None:
        with database_connection(self.db_path) as conn:
            entries = fetch_domain_stats(conn)
        if not entries:
            print("No activity recorded yet.")
            return

        total = sum(entry.accumulated_ms for entry in entries)
        print(f"Tracked time: {format_duration(total / 1000)}")
        print("-" * 40)
        for category, ms in category_totals(entries):
            print(f"  {category:<20} {format_duration(ms / 1000)}")

        print()
        print("Top domains:")
        for entry in entries[:limit]:
            label = entry.category or OTHER
            print(f"  {entry.domain[:35]:<35} {label:<12} {format_duration(entry.accumulated_ms / 1000)}")


def category_totals(entries: Iterable[DomainStatsEntry]) -> list[tuple[str, int]]:
    totals: defaultdict[str, int] = defaultdict(int)
    for entry in entries:
        totals[entry.category or OTHER] += entry.accumulated_ms
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_minutes(ms: int) -> str:
    """Floating timer label, whole minutes only."""
    return f"{max(ms, 0) // 60000}m"


def format_seconds(seconds: float) -> str:
    """Break countdown label: ``m:ss`` or ``h:mm:ss``."""
    if seconds < 0 or seconds != seconds:
        return "0s"
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
