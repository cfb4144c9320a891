"""Periodic threshold checks that raise break and get-back-to-work nudges."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel

from .bus import MessageBus
from .config import TrackerSettings
from .messages import GetBackToWork, ShowBreak
from .storage import (
    LAST_SHOWN_BREAK_KEY,
    PRODUCTIVE_ACCUMULATED_KEY,
    KeyedLock,
    Store,
    StorageError,
)
from .tracker import ActiveSessionTracker

logger = logging.getLogger(__name__)


class ThresholdScheduler:
    """Evaluates streak state against the configured thresholds on each tick.

    Break thresholds are guarded by a persisted latch: a threshold fires only
    while the latch is below it, and firing raises the latch to that value.
    ``reset_latch`` re-arms every threshold.
    """

    def __init__(
        self,
        tracker: ActiveSessionTracker,
        store: Store,
        locks: KeyedLock,
        bus: Optional[MessageBus] = None,
        settings: Optional[TrackerSettings] = None,
    ) -> None:
        self.tracker = tracker
        self.store = store
        self.locks = locks
        self.bus = bus
        self.settings = settings or tracker.settings

    @property
    def thresholds_desc(self) -> list[int]:
        return sorted(self.settings.break_thresholds_ms, reverse=True)

    async def tick(self, now: int) -> list[BaseModel]:
        """Run one check and return the interventions that fired."""
        fired: list[BaseModel] = []

        productivity = self.tracker.context.productivity
        if productivity.session_started_at is not None:
            suggestion = await self._check_break(productivity.effective_ms(now))
            if suggestion is not None:
                fired.append(suggestion)

        nudge = self._check_distraction(now)
        if nudge is not None:
            fired.append(nudge)

        try:
            await self.store.set_value(PRODUCTIVE_ACCUMULATED_KEY, productivity.accumulated_ms)
        except StorageError:
            logger.exception("Failed to checkpoint productive time.")

        if self.bus is not None:
            for message in fired:
                await self.bus.broadcast(message)
        return fired

    async def _check_break(self, effective_ms: int) -> Optional[ShowBreak]:
        async with self.locks.hold(LAST_SHOWN_BREAK_KEY):
            try:
                last_shown = int(await self.store.get_value(LAST_SHOWN_BREAK_KEY, 0) or 0)
            except StorageError:
                logger.exception("Failed to read break latch; skipping break check.")
                return None
            for threshold in self.thresholds_desc:
                if effective_ms >= threshold and last_shown < threshold:
                    try:
                        await self.store.set_value(LAST_SHOWN_BREAK_KEY, threshold)
                    except StorageError:
                        logger.exception("Failed to persist break latch at %d ms.", threshold)
                    logger.info(
                        "Productive streak at %d ms crossed %d ms; suggesting a break.",
                        effective_ms,
                        threshold,
                    )
                    return ShowBreak(reason="long_work", threshold_ms=threshold)
        return None

    def _check_distraction(self, now: int) -> Optional[GetBackToWork]:
        distraction = self.tracker.context.distraction
        if distraction.started_at is None:
            return None
        duration = now - distraction.started_at
        if duration < self.settings.get_back_threshold_ms:
            return None
        distraction.started_at = None
        logger.info("Distracted for %d ms; nudging back to work.", duration)
        return GetBackToWork(reason="distracted", duration_ms=duration)

    async def reset_latch(self) -> bool:
        async with self.locks.hold(LAST_SHOWN_BREAK_KEY):
            try:
                await self.store.set_value(LAST_SHOWN_BREAK_KEY, 0)
            except StorageError:
                logger.exception("Failed to reset break latch.")
                return False
        logger.info("Break thresholds re-armed.")
        return True
