"""Break countdown lifecycle for a single page context."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from pydantic import BaseModel

from .config import MINUTE_MS, BreakSettings
from .messages import EndBreakGlobal, StartBreakGlobal
from .models import BreakPhase, BreakSession
from .tasks import TimerHandle, Timers

logger = logging.getLogger(__name__)


class InvalidBreakDuration(ValueError):
    pass


def manual_duration_ms(minutes: float, settings: Optional[BreakSettings] = None) -> int:
    """Convert a user-typed break length, clamped to the manual maximum."""
    settings = settings or BreakSettings()
    if minutes <= 0:
        raise InvalidBreakDuration(f"Break length must be positive, got {minutes!r}")
    return min(int(minutes * MINUTE_MS), settings.max_manual_duration_ms)


class BreakController:
    """Drives one break banner through PRE_START, ACTIVE, PRE_END and ENDED.

    Only one session is live at a time. Every scheduled callback captures the
    generation it was scheduled under and does nothing if the controller has
    since moved on, so a superseded session can never touch its successor.
    """

    def __init__(
        self,
        timers: Timers,
        notify: Callable[[BaseModel], None],
        settings: Optional[BreakSettings] = None,
        on_change: Optional[Callable[[Optional[BreakSession]], None]] = None,
    ) -> None:
        self._timers = timers
        self._notify = notify
        self.settings = settings or BreakSettings()
        self._on_change = on_change
        self.session: Optional[BreakSession] = None
        self._generation = 0
        self._pending: Optional[TimerHandle] = None

    @property
    def phase(self) -> Optional[BreakPhase]:
        return self.session.phase if self.session else None

    def request(self, duration_ms: Optional[int] = None) -> BreakSession:
        """Start a new break, tearing down any break that is still live."""
        if duration_ms is None:
            duration_ms = self.settings.default_duration_ms
        self.teardown()
        self.session = BreakSession(
            duration_ms=max(0, int(duration_ms)),
            phase=BreakPhase.PRE_START,
            countdown=self.settings.pre_start_count,
        )
        logger.info("Break requested for %d ms.", self.session.duration_ms)
        self._changed()
        self._schedule(self.settings.tick_ms, self._pre_start_tick)
        return self.session

    def end_early(self) -> bool:
        """Close an active break; returns False when there is nothing to close."""
        session = self.session
        if session is None or session.phase is not BreakPhase.ACTIVE:
            return False
        self._cancel_pending()
        session.phase = BreakPhase.PRE_END
        session.ended_early = True
        session.countdown = 0
        self._changed()
        self._schedule(
            self.settings.early_end_delay_ms,
            lambda: self._enter_ended(self.settings.early_ended_display_ms),
        )
        return True

    def teardown(self) -> None:
        self._cancel_pending()
        if self.session is not None:
            logger.debug("Break torn down in phase %s.", self.session.phase.value)
            self.session = None
            self._changed()

    def _pre_start_tick(self) -> None:
        session = self._live()
        session.countdown -= 1
        if session.countdown > 0:
            self._changed()
            self._schedule(self.settings.tick_ms, self._pre_start_tick)
            return
        session.phase = BreakPhase.ACTIVE
        session.remaining_ms = session.duration_ms
        self._notify(StartBreakGlobal(duration_ms=session.duration_ms))
        self._changed()
        self._schedule(self.settings.tick_ms, self._active_tick)

    def _active_tick(self) -> None:
        session = self._live()
        session.remaining_ms = max(0, session.remaining_ms - self.settings.tick_ms)
        if session.remaining_ms > 0:
            self._changed()
            self._schedule(self.settings.tick_ms, self._active_tick)
            return
        session.phase = BreakPhase.PRE_END
        session.countdown = self.settings.pre_end_count
        self._changed()
        self._schedule(self.settings.tick_ms, self._pre_end_tick)

    def _pre_end_tick(self) -> None:
        session = self._live()
        session.countdown -= 1
        if session.countdown > 0:
            self._changed()
            self._schedule(self.settings.tick_ms, self._pre_end_tick)
            return
        self._enter_ended(self.settings.ended_display_ms)

    def _enter_ended(self, display_ms: int) -> None:
        session = self._live()
        session.phase = BreakPhase.ENDED
        session.remaining_ms = 0
        self._notify(EndBreakGlobal())
        logger.info("Break ended%s.", " early" if session.ended_early else "")
        self._changed()
        self._schedule(display_ms, self._remove)

    def _remove(self) -> None:
        self._pending = None
        self.session = None
        self._changed()

    def _live(self) -> BreakSession:
        assert self.session is not None
        return self.session

    def _schedule(self, delay_ms: int, step: Callable[[], None]) -> None:
        generation = self._generation

        def fire() -> None:
            if generation != self._generation or self.session is None:
                return
            step()

        self._pending = self._timers.call_later(delay_ms, fire)

    def _cancel_pending(self) -> None:
        self._generation += 1
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.session)
