"""Background service: owns the tracker, scheduler and message dispatch."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .bus import MessageBus
from .classifier import DEFAULT_CATEGORY_MAP
from .config import TrackerSettings
from .idle import IdleDetector, IdleWatcher, default_detector
from .messages import (
    ActiveCategory,
    AddDomainTime,
    EndBreakGlobal,
    FocusChange,
    GetBackToWork,
    GetDomainTime,
    GetSummary,
    IdleStateChanged,
    Message,
    ResetBreakShown,
    ShowBreak,
    StartBreak,
    StartBreakFromPopup,
    StartBreakGlobal,
    Summarize,
    UnknownActionError,
)
from .models import Tab
from .scheduler import ThresholdScheduler
from .storage import (
    CATEGORY_MAP_KEY,
    LAST_SHOWN_BREAK_KEY,
    PRODUCTIVE_ACCUMULATED_KEY,
    KeyedLock,
    Store,
    StorageError,
)
from .tasks import PeriodicTask, now_ms
from .tracker import ActiveSessionTracker

logger = logging.getLogger(__name__)

SUMMARIZER_REMOVED = {"ok": False, "error": "summarizer_removed"}


class TrackerService:
    """Wires the tracker actors to a store and a message bus."""

    def __init__(
        self,
        store: Store,
        settings: Optional[TrackerSettings] = None,
        *,
        bus: Optional[MessageBus] = None,
        idle_detector: Optional[IdleDetector] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.settings = settings or TrackerSettings()
        self.bus = bus or MessageBus()
        self.locks = KeyedLock()
        self.clock = clock
        self.tracker = ActiveSessionTracker(store, self.locks, self.settings, self.bus)
        self.scheduler = ThresholdScheduler(
            self.tracker, store, self.locks, self.bus, self.settings
        )
        self.idle_watcher = IdleWatcher(
            idle_detector or default_detector(),
            self.settings.idle_threshold_ms,
            self._on_idle_change,
        )
        self._check_task = PeriodicTask(
            "threshold-check", self.settings.check_interval_ms, self.run_checks
        )
        self._idle_task = PeriodicTask(
            "idle-poll", self.settings.idle_poll_ms, self.idle_watcher.poll
        )

    async def install(self) -> None:
        """Seed first-run defaults for any key that is not stored yet."""
        defaults = {
            CATEGORY_MAP_KEY: DEFAULT_CATEGORY_MAP,
            PRODUCTIVE_ACCUMULATED_KEY: 0,
            LAST_SHOWN_BREAK_KEY: 0,
        }
        for key, value in defaults.items():
            try:
                if await self.store.get_value(key) is None:
                    await self.store.set_value(key, value)
            except StorageError:
                logger.exception("Failed to seed default for %s", key)

    async def start(self) -> None:
        await self.install()
        await self.tracker.restore()
        self._check_task.start()
        self._idle_task.start()
        logger.info("Tracker service started.")

    async def stop(self) -> None:
        await self._check_task.stop()
        await self._idle_task.stop()
        await self.tracker.on_focus_change(None, self.clock())
        logger.info("Tracker service stopped.")

    def is_running(self) -> bool:
        return self._check_task.is_running()

    async def run_checks(self) -> None:
        await self.scheduler.tick(self.clock())

    async def _on_idle_change(self, state: str) -> None:
        await self.bus.broadcast(IdleStateChanged(state=state))

    async def handle(
        self, message: Message, sender: Optional[str] = None
    ) -> Optional[dict[str, Any]]:
        """Dispatch one inbound message and return its response, if any."""
        now = self.clock()
        match message:
            case AddDomainTime():
                return await self.tracker.add_domain_time(message.domain, message.delta_ms, now)
            case GetDomainTime():
                return await self.tracker.get_domain_time(message.domain)
            case GetSummary():
                return await self.tracker.get_summary()
            case ResetBreakShown():
                await self.scheduler.reset_latch()
                return {"ok": True}
            case StartBreakFromPopup():
                await self.bus.broadcast(StartBreak(duration_ms=message.duration_ms))
                return {"ok": True}
            case FocusChange():
                tab = Tab(url=message.url, tab_id=message.tab_id) if message.url else None
                await self.tracker.on_focus_change(tab, now)
                return {"ok": True}
            case StartBreakGlobal() | EndBreakGlobal() | IdleStateChanged():
                await self.bus.broadcast(message, exclude=sender)
                return None
            case Summarize():
                return dict(SUMMARIZER_REMOVED)
            case ShowBreak() | GetBackToWork() | StartBreak() | ActiveCategory():
                raise UnknownActionError(
                    f"{message.action!r} is sent by the tracker, not to it"
                )
            case _:
                raise UnknownActionError(f"Unhandled message {message!r}")
