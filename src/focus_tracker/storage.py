"""Async persistence port with per-key serialization."""

from __future__ import annotations

import asyncio
import dataclasses
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional, TypeVar

from .db import (
    fetch_domain_entry,
    fetch_domain_stats,
    open_database,
    read_preference,
    upsert_domain_entry,
    write_preference,
)
from .models import DomainStatsEntry

DOMAIN_STATS_KEY = "domainStats"
PRODUCTIVE_ACCUMULATED_KEY = "productiveAccumulated"
LAST_SHOWN_BREAK_KEY = "lastShownBreakThreshold"
CATEGORY_MAP_KEY = "categoryMap"

T = TypeVar("T")


class StorageError(RuntimeError):
    """Raised when a read or write against the store fails."""


def domain_key(domain: str) -> str:
    return f"{DOMAIN_STATS_KEY}:{domain}"


class KeyedLock:
    """One asyncio lock per persisted key.

    Read-modify-write sequences against the same key must run inside
    ``hold(key)`` so a second writer observes the first writer's result.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


class Store(ABC):
    """Key-value persistence used by the tracker and scheduler.

    Domain stats are stored one entry per domain; every other key holds a
    JSON-compatible value. All methods raise :class:`StorageError` on failure.
    """

    @abstractmethod
    async def get_domain(self, domain: str) -> Optional[DomainStatsEntry]:
        ...

    @abstractmethod
    async def put_domain(self, entry: DomainStatsEntry) -> None:
        ...

    @abstractmethod
    async def all_domains(self) -> dict[str, DomainStatsEntry]:
        ...

    @abstractmethod
    async def get_value(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    async def set_value(self, key: str, value: Any) -> None:
        ...

    def close(self) -> None:
        pass


class MemoryStore(Store):
    """In-process store, nothing is persisted."""

    def __init__(self) -> None:
        self.domains: dict[str, DomainStatsEntry] = {}
        self.values: dict[str, Any] = {}

    async def get_domain(self, domain: str) -> Optional[DomainStatsEntry]:
        entry = self.domains.get(domain)
        return dataclasses.replace(entry) if entry else None

    async def put_domain(self, entry: DomainStatsEntry) -> None:
        self.domains[entry.domain] = dataclasses.replace(entry)

    async def all_domains(self) -> dict[str, DomainStatsEntry]:
        return {name: dataclasses.replace(e) for name, e in self.domains.items()}

    async def get_value(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    async def set_value(self, key: str, value: Any) -> None:
        self.values[key] = value


class SqliteStore(Store):
    """SQLite-backed store; blocking calls run in a worker thread."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn = open_database(self.db_path, check_same_thread=False)
        self._lock = threading.Lock()

    async def get_domain(self, domain: str) -> Optional[DomainStatsEntry]:
        return await self._run(fetch_domain_entry, domain)

    async def put_domain(self, entry: DomainStatsEntry) -> None:
        await self._run(upsert_domain_entry, entry)

    async def all_domains(self) -> dict[str, DomainStatsEntry]:
        entries = await self._run(fetch_domain_stats)
        return {entry.domain: entry for entry in entries}

    async def get_value(self, key: str, default: Any = None) -> Any:
        value = await self._run(read_preference, key)
        return default if value is None else value

    async def set_value(self, key: str, value: Any) -> None:
        await self._run(write_preference, key, value)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        def call() -> T:
            with self._lock:
                return func(self._conn, *args)

        try:
            return await asyncio.to_thread(call)
        except (sqlite3.Error, ValueError) as exc:
            raise StorageError(f"{func.__name__} failed: {exc}") from exc
