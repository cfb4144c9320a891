"""Page-side client: activity monitor, break banner and inbound message handling."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from pydantic import BaseModel

from .breaks import BreakController, manual_duration_ms
from .bus import Messenger
from .classifier import domain_for_url
from .config import BreakSettings, MonitorSettings
from .messages import (
    ActiveCategory,
    EndBreakGlobal,
    GetBackToWork,
    IdleStateChanged,
    ShowBreak,
    StartBreak,
    UnknownActionError,
    parse_message,
)
from .models import BreakPhase
from .monitor import ActivityMonitor
from .reporting import format_minutes, format_seconds
from .tasks import PeriodicTask, Timers, now_ms

logger = logging.getLogger(__name__)

GET_BACK_TOAST = "Get back to work, looks like a distraction."
BREAK_ENDED_TOAST = "Break ended, back to work!"


class PageClient:
    """Everything a single page context runs.

    Rendering is left to the embedder: toasts are collected in ``toasts`` and
    a pending break suggestion is exposed as ``break_offer``.
    """

    def __init__(
        self,
        url: Optional[str],
        messenger: Messenger,
        timers: Timers,
        *,
        monitor_settings: Optional[MonitorSettings] = None,
        break_settings: Optional[BreakSettings] = None,
    ) -> None:
        self.url = url
        self.messenger = messenger
        self.monitor = ActivityMonitor(messenger, domain_for_url(url), monitor_settings)
        self.breaks = BreakController(timers, self._notify_tracker, break_settings)
        self.toasts: list[str] = []
        self.break_offer: Optional[int] = None
        self._background: set[asyncio.Task[Any]] = set()
        self._ticker = PeriodicTask(
            "activity-tick", self.monitor.settings.tick_ms, self._tick
        )

    @property
    def category(self) -> Optional[str]:
        return self.monitor.category

    @property
    def timer_label(self) -> str:
        return format_minutes(self.monitor.displayed_ms)

    @property
    def break_label(self) -> Optional[str]:
        session = self.breaks.session
        if session is None:
            return None
        if session.phase in (BreakPhase.PRE_START, BreakPhase.PRE_END):
            return str(session.countdown)
        return format_seconds(session.remaining_ms / 1000)

    async def start(self) -> None:
        await self.monitor.load(now_ms())
        self._ticker.start()

    async def close(self) -> None:
        await self._ticker.stop()
        self.breaks.teardown()
        await self.monitor.stop()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _tick(self) -> None:
        await self.monitor.tick(now_ms())

    async def receive(self, payload: dict[str, Any]) -> None:
        """Handle a message pushed from the tracker."""
        try:
            message = parse_message(payload)
        except UnknownActionError:
            logger.debug("Ignoring unsupported message %r", payload.get("action"))
            return
        match message:
            case ShowBreak():
                self.break_offer = message.threshold_ms
            case GetBackToWork():
                self.toasts.append(GET_BACK_TOAST)
            case StartBreak():
                self.break_offer = None
                # A zero or missing duration means the default length.
                self.breaks.request(message.duration_ms or None)
            case EndBreakGlobal():
                self.toasts.append(BREAK_ENDED_TOAST)
            case ActiveCategory():
                self.monitor.category = message.category
            case IdleStateChanged():
                await self.monitor.on_idle_state(message.state, now_ms())
            case _:
                logger.debug("No client handler for %s", message.action)

    def choose_break(self, minutes: float) -> None:
        """User picked a break length from the offer (or typed one)."""
        self.break_offer = None
        self.breaks.request(manual_duration_ms(minutes, self.breaks.settings))

    def dismiss_offer(self) -> None:
        self.break_offer = None

    def _notify_tracker(self, message: BaseModel) -> None:
        task = asyncio.get_running_loop().create_task(self.messenger.request(message))
        self._background.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Message to tracker failed: %s", task.exception())
