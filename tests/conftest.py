"""Shared fakes for the focus tracker test suite."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import pytest
from pydantic import BaseModel

from focus_tracker.messages import to_wire
from focus_tracker.models import DomainStatsEntry
from focus_tracker.storage import MemoryStore, StorageError


class SlowStore(MemoryStore):
    """Yields to the event loop around every access so callers interleave."""

    async def get_domain(self, domain: str) -> Optional[DomainStatsEntry]:
        await asyncio.sleep(0)
        entry = await super().get_domain(domain)
        await asyncio.sleep(0)
        return entry

    async def put_domain(self, entry: DomainStatsEntry) -> None:
        await asyncio.sleep(0)
        await super().put_domain(entry)

    async def get_value(self, key: str, default: Any = None) -> Any:
        await asyncio.sleep(0)
        return await super().get_value(key, default)


class FailingStore(MemoryStore):
    """Reads succeed, every write fails."""

    async def put_domain(self, entry: DomainStatsEntry) -> None:
        raise StorageError("disk full")

    async def set_value(self, key: str, value: Any) -> None:
        raise StorageError("disk full")


class BrokenStore(FailingStore):
    """Every read and write fails."""

    async def get_domain(self, domain: str) -> Optional[DomainStatsEntry]:
        raise StorageError("unreadable")

    async def all_domains(self) -> dict[str, DomainStatsEntry]:
        raise StorageError("unreadable")

    async def get_value(self, key: str, default: Any = None) -> Any:
        raise StorageError("unreadable")


class _FakeHandle:
    def __init__(self, due: int, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimers:
    """Deterministic virtual-time replacement for :class:`LoopTimers`.

    With ``honor_cancel=False`` cancelled callbacks still fire, which
    simulates a callback that was already dequeued when it was cancelled.
    """

    def __init__(self, honor_cancel: bool = True) -> None:
        self.now = 0
        self.honor_cancel = honor_cancel
        self._handles: list[_FakeHandle] = []
        self._seq = 0

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> _FakeHandle:
        self._seq += 1
        handle = _FakeHandle(self.now + delay_ms, self._seq, callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for h in self._handles if not (h.cancelled and self.honor_cancel))

    def advance(self, ms: int) -> None:
        target = self.now + ms
        while True:
            due = [
                h
                for h in self._handles
                if h.due <= target and not (h.cancelled and self.honor_cancel)
            ]
            if not due:
                break
            handle = min(due, key=lambda h: (h.due, h.seq))
            self._handles.remove(handle)
            self.now = handle.due
            handle.callback()
        self.now = target


class RecordingMessenger:
    """Messenger double that records requests and answers from a script."""

    def __init__(self, responses: Optional[dict[str, Any]] = None) -> None:
        self.sent: list[dict[str, Any]] = []
        self.responses = responses or {}

    async def request(self, message: BaseModel) -> Optional[dict[str, Any]]:
        payload = to_wire(message)
        self.sent.append(payload)
        return self.responses.get(payload["action"], {"ok": True})

    def actions(self) -> list[str]:
        return [payload["action"] for payload in self.sent]


class Inbox:
    """Bus listener that stores every payload it receives."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def __call__(self, payload: dict[str, Any]) -> None:
        self.messages.append(payload)

    def actions(self) -> list[str]:
        return [payload["action"] for payload in self.messages]


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def timers() -> FakeTimers:
    return FakeTimers()
