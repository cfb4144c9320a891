"""Domain models for tracked focus time."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

PRODUCTIVE_CATEGORIES = frozenset({"productive", "school"})
DISTRACTING_CATEGORIES = frozenset({"social", "games", "other"})

CategoryMap = dict[str, list[str]]


@dataclass(slots=True)
class DomainStatsEntry:
    """Total time attributed to a single domain."""

    domain: str
    accumulated_ms: int = 0
    category: Optional[str] = None
    last_active_at: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "time": self.accumulated_ms,
            "category": self.category,
            "lastActive": self.last_active_at,
        }


@dataclass(frozen=True, slots=True)
class Tab:
    """A focused browser tab as reported by a focus-change event."""

    url: Optional[str]
    tab_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class ActiveSession:
    domain: str
    category: str
    started_at: int
    tab_id: Optional[int] = None


@dataclass(slots=True)
class ProductivityStreak:
    session_started_at: Optional[int] = None
    accumulated_ms: int = 0

    def effective_ms(self, now: int) -> int:
        if self.session_started_at is None:
            return self.accumulated_ms
        return self.accumulated_ms + (now - self.session_started_at)


@dataclass(slots=True)
class DistractionStreak:
    started_at: Optional[int] = None


class BreakPhase(str, Enum):
    PRE_START = "pre_start"
    ACTIVE = "active"
    PRE_END = "pre_end"
    ENDED = "ended"


@dataclass(slots=True)
class BreakSession:
    """A single live break banner."""

    duration_ms: int
    phase: BreakPhase = BreakPhase.PRE_START
    remaining_ms: int = 0
    countdown: int = 0
    ended_early: bool = False


@dataclass(slots=True)
class ActivityState:
    last_activity_at: int = 0
    counting: bool = False
    unsent_ms: int = 0
    base_ms: int = 0

    @property
    def displayed_ms(self) -> int:
        return self.base_ms + self.unsent_ms
