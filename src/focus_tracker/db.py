"""SQLite database layer for domain stats and tracker preferences."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from .models import DomainStatsEntry


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS domain_stats (
            domain TEXT PRIMARY KEY,
            accumulated_ms INTEGER NOT NULL DEFAULT 0,
            category TEXT,
            last_active_at INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS preferences (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
        """
    )


def fetch_domain_entry(conn: sqlite3.Connection, domain: str) -> Optional[DomainStatsEntry]:
    row = conn.execute(
        """
        SELECT domain, accumulated_ms, category, last_active_at
        FROM domain_stats
        WHERE domain = ?
        """,
        (domain,),
    ).fetchone()
    return _row_to_entry(row) if row is not None else None


def fetch_domain_stats(conn: sqlite3.Connection) -> list[DomainStatsEntry]:
    """Return every domain entry, largest total first."""
    rows = conn.execute(
        """
        SELECT domain, accumulated_ms, category, last_active_at
        FROM domain_stats
        ORDER BY accumulated_ms DESC, domain;
        """
    )
    return [_row_to_entry(row) for row in rows]


def upsert_domain_entry(conn: sqlite3.Connection, entry: DomainStatsEntry) -> None:
    conn.execute(
        """
        INSERT INTO domain_stats (domain, accumulated_ms, category, last_active_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(domain) DO UPDATE SET
            accumulated_ms = excluded.accumulated_ms,
            category = excluded.category,
            last_active_at = excluded.last_active_at
        """,
        (entry.domain, entry.accumulated_ms, entry.category, entry.last_active_at),
    )


def read_preference(conn: sqlite3.Connection, key: str) -> Any:
    """Return the decoded value stored under ``key`` or ``None``."""
    row = conn.execute(
        "SELECT value FROM preferences WHERE key = ?",
        (key,),
    ).fetchone()
    if row is None:
        return None
    return json.loads(row["value"])


def write_preference(conn: sqlite3.Connection, key: str, value: Any) -> None:
    conn.execute(
        """
        INSERT INTO preferences (key, value) VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
        (key, json.dumps(value)),
    )


def _row_to_entry(row: sqlite3.Row) -> DomainStatsEntry:
    return DomainStatsEntry(
        domain=row["domain"],
        accumulated_ms=int(row["accumulated_ms"] or 0),
        category=row["category"],
        last_active_at=int(row["last_active_at"] or 0),
    )
