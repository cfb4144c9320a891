"""Per-page activity monitor that decides when time counts as active."""

from __future__ import annotations

import logging
from typing import Optional

from .bus import Messenger
from .config import MonitorSettings
from .messages import AddDomainTime, GetDomainTime
from .models import ActivityState

logger = logging.getLogger(__name__)

QUALIFYING_EVENTS = frozenset({"mousemove", "keydown", "click", "scroll", "touchstart"})


class ActivityMonitor:
    """Counts visible, recently-active time for one page and batches it to the tracker.

    Inactivity and the reset gap are wall-clock comparisons evaluated on
    ticks, so there are no per-event timers to clean up.
    """

    def __init__(
        self,
        messenger: Messenger,
        domain: Optional[str],
        settings: Optional[MonitorSettings] = None,
    ) -> None:
        self.messenger = messenger
        self.domain = domain
        self.settings = settings or MonitorSettings()
        self.state = ActivityState()
        self.hidden = False
        self.category: Optional[str] = None
        self.displayed_ms = 0

    @property
    def counting(self) -> bool:
        return self.state.counting

    async def load(self, now: int) -> None:
        """Fetch the persisted total for this domain and decide whether to resume it."""
        if not self.domain:
            return
        response = await self.messenger.request(GetDomainTime(domain=self.domain))
        if not response:
            return
        last_active = int(response.get("lastActive") or 0)
        if now - last_active > self.settings.reset_gap_ms:
            self.state.base_ms = 0
        else:
            self.state.base_ms = int(response.get("time") or 0)
        if response.get("category"):
            self.category = response["category"]
        self._refresh_display()

    def on_input(self, now: int, event: str = "mousemove") -> None:
        if event not in QUALIFYING_EVENTS:
            return
        self.state.last_activity_at = now
        if not self.hidden:
            self._start(now)

    async def on_visibility_change(self, hidden: bool, now: int) -> None:
        self.hidden = hidden
        if hidden:
            await self.stop()
        elif self._recently_active(now):
            self._start(now)

    async def on_idle_state(self, state: str, now: int) -> None:
        if state in ("idle", "locked"):
            await self.stop()
        elif self._recently_active(now):
            self._start(now)

    async def tick(self, now: int) -> None:
        if not self.state.counting:
            return
        if not self._recently_active(now):
            await self.stop()
            return
        if self.hidden:
            return
        self.state.unsent_ms += self.settings.tick_ms
        self._refresh_display()
        if self.state.unsent_ms >= self.settings.flush_threshold_ms:
            await self.flush()

    async def stop(self) -> None:
        if not self.state.counting:
            return
        self.state.counting = False
        await self.flush()
        logger.debug("Stopped counting on %s", self.domain)

    async def flush(self) -> None:
        """Send unsent time to the tracker and fold it into the base total."""
        delta = self.state.unsent_ms
        if not self.domain or delta <= 0:
            return
        self.state.base_ms += delta
        self.state.unsent_ms = 0
        self._refresh_display()
        response = await self.messenger.request(AddDomainTime(domain=self.domain, delta_ms=delta))
        if response is not None and not response.get("ok"):
            logger.debug("Tracker declined %d ms for %s", delta, self.domain)

    def _start(self, now: int) -> None:
        if self.state.counting:
            return
        self.state.counting = True
        self.state.last_activity_at = now
        logger.debug("Started counting on %s", self.domain)

    def _recently_active(self, now: int) -> bool:
        return now - self.state.last_activity_at <= self.settings.inactivity_timeout_ms

    def _refresh_display(self) -> None:
        self.displayed_ms = self.state.displayed_ms
