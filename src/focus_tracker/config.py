"""Configuration models and helpers for the focus tracker."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from platformdirs import PlatformDirs

APP_NAME = "FocusTracker"
DB_FILENAME = "focus.sqlite3"

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS


def data_dir() -> Path:
    """Per-user directory that holds the tracker database."""
    dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_NAME, roaming=True)
    path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_db_path() -> Path:
    return data_dir() / DB_FILENAME


def _default_break_thresholds() -> tuple[int, ...]:
    return (2 * HOUR_MS, 3 * HOUR_MS, 4 * HOUR_MS)


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for the background tracker and scheduler."""

    check_interval_ms: int = 30 * SECOND_MS
    break_thresholds_ms: tuple[int, ...] = field(default_factory=_default_break_thresholds)
    get_back_threshold_ms: int = 15 * MINUTE_MS
    idle_poll_ms: int = 15 * SECOND_MS
    idle_threshold_ms: int = 60 * SECOND_MS
    reset_accumulated_on_streak_break: bool = False

    @classmethod
    def from_intervals(
        cls,
        check_seconds: float = 30.0,
        break_hours: tuple[float, ...] | None = None,
        get_back_minutes: float = 15.0,
        idle_seconds: float | None = None,
        reset_accumulated_on_streak_break: bool = False,
    ) -> "TrackerSettings":
        thresholds = (
            tuple(int(hours * HOUR_MS) for hours in break_hours)
            if break_hours
            else _default_break_thresholds()
        )
        idle = idle_seconds if idle_seconds is not None else 60.0
        return cls(
            check_interval_ms=int(check_seconds * SECOND_MS),
            break_thresholds_ms=thresholds,
            get_back_threshold_ms=int(get_back_minutes * MINUTE_MS),
            idle_poll_ms=int(max(check_seconds / 2, 1.0) * SECOND_MS),
            idle_threshold_ms=int(idle * SECOND_MS),
            reset_accumulated_on_streak_break=reset_accumulated_on_streak_break,
        )


@dataclass(slots=True)
class MonitorSettings:
    """Timing policy for the per-page activity monitor."""

    tick_ms: int = SECOND_MS
    flush_threshold_ms: int = 15 * SECOND_MS
    inactivity_timeout_ms: int = 60 * SECOND_MS
    reset_gap_ms: int = 30 * MINUTE_MS

    @classmethod
    def from_intervals(
        cls,
        flush_seconds: float = 15.0,
        inactivity_seconds: float = 60.0,
        reset_gap_minutes: float = 30.0,
    ) -> "MonitorSettings":
        return cls(
            flush_threshold_ms=int(flush_seconds * SECOND_MS),
            inactivity_timeout_ms=int(inactivity_seconds * SECOND_MS),
            reset_gap_ms=int(reset_gap_minutes * MINUTE_MS),
        )


@dataclass(slots=True)
class BreakSettings:
    """Countdown lengths and display delays for the break banner."""

    tick_ms: int = SECOND_MS
    pre_start_count: int = 3
    pre_end_count: int = 3
    early_end_delay_ms: int = SECOND_MS
    ended_display_ms: int = 3 * SECOND_MS
    early_ended_display_ms: int = 2 * SECOND_MS
    default_duration_ms: int = 10 * MINUTE_MS
    max_manual_duration_ms: int = 45 * MINUTE_MS
