"""Active-session tracking: turns focus changes into domain time and streaks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .bus import MessageBus, tab_context
from .classifier import DEFAULT_CATEGORY_MAP, classify, domain_for_url, normalize_category_map
from .config import TrackerSettings
from .messages import ActiveCategory
from .models import (
    DISTRACTING_CATEGORIES,
    PRODUCTIVE_CATEGORIES,
    ActiveSession,
    CategoryMap,
    DistractionStreak,
    DomainStatsEntry,
    ProductivityStreak,
    Tab,
)
from .storage import (
    CATEGORY_MAP_KEY,
    PRODUCTIVE_ACCUMULATED_KEY,
    KeyedLock,
    Store,
    StorageError,
    domain_key,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TrackerContext:
    """In-memory state owned by a single tracker instance."""

    session: Optional[ActiveSession] = None
    productivity: ProductivityStreak = field(default_factory=ProductivityStreak)
    distraction: DistractionStreak = field(default_factory=DistractionStreak)


class ActiveSessionTracker:
    """Attributes focused time to domains and maintains work/distraction streaks."""

    def __init__(
        self,
        store: Store,
        locks: Optional[KeyedLock] = None,
        settings: Optional[TrackerSettings] = None,
        bus: Optional[MessageBus] = None,
        context: Optional[TrackerContext] = None,
    ) -> None:
        self.store = store
        self.locks = locks or KeyedLock()
        self.settings = settings or TrackerSettings()
        self.bus = bus
        self.context = context or TrackerContext()
        self._focus_seq = 0
        self._applied_seq = 0

    async def restore(self) -> None:
        """Reload the persisted productive accumulator after a restart."""
        try:
            stored = await self.store.get_value(PRODUCTIVE_ACCUMULATED_KEY, 0)
        except StorageError:
            logger.exception("Failed to restore productive time; starting from zero.")
            return
        self.context.productivity.accumulated_ms = int(stored or 0)
        logger.info("Restored productive accumulator: %d ms", self.context.productivity.accumulated_ms)

    async def load_category_map(self) -> CategoryMap:
        try:
            raw = await self.store.get_value(CATEGORY_MAP_KEY)
        except StorageError:
            logger.warning("Category map unavailable; using defaults.", exc_info=True)
            return dict(DEFAULT_CATEGORY_MAP)
        if raw is None:
            return dict(DEFAULT_CATEGORY_MAP)
        return normalize_category_map(raw)

    async def on_focus_change(self, tab: Optional[Tab], now: int) -> Optional[ActiveSession]:
        """Close the current session, update streaks and open the next one.

        Returns the session that was closed, if any. Events are numbered on
        arrival; one whose category-map read finishes after a later event has
        already been applied is dropped, so the newest focus always wins and
        no interval is credited twice. After the swap, in-memory state is
        updated before the first write is awaited.
        """
        self._focus_seq += 1
        seq = self._focus_seq
        opened: Optional[ActiveSession] = None
        domain = domain_for_url(tab.url) if tab is not None else None
        if tab is not None and domain:
            category_map = await self.load_category_map()
            opened = ActiveSession(
                domain=domain,
                category=classify(tab.url, category_map),
                started_at=now,
                tab_id=tab.tab_id,
            )

        if seq < self._applied_seq:
            logger.debug("Dropped stale focus change %d (latest applied %d).", seq, self._applied_seq)
            return None
        self._applied_seq = seq

        ctx = self.context
        closed, ctx.session = ctx.session, opened
        if closed is not None:
            delta = max(0, now - closed.started_at)
            self._apply_interval(closed, delta, now)
            if delta > 0:
                await self._add_time(closed.domain, delta, category=closed.category)

        if opened is not None and opened.tab_id is not None and self.bus is not None:
            await self.bus.send(tab_context(opened.tab_id), ActiveCategory(category=opened.category))
        return closed

    def _apply_interval(self, closed: ActiveSession, delta: int, now: int) -> None:
        productivity = self.context.productivity
        distraction = self.context.distraction
        if closed.category in PRODUCTIVE_CATEGORIES:
            if productivity.session_started_at is None:
                productivity.session_started_at = closed.started_at
            productivity.accumulated_ms += delta
            distraction.started_at = None
        elif closed.category in DISTRACTING_CATEGORIES:
            productivity.session_started_at = None
            if self.settings.reset_accumulated_on_streak_break:
                productivity.accumulated_ms = 0
            if distraction.started_at is None:
                distraction.started_at = now - delta
        logger.debug("Closed %s (%s) after %d ms", closed.domain, closed.category, delta)

    async def add_domain_time(self, domain: Optional[str], delta_ms: int, now: int) -> dict[str, Any]:
        """Record client-reported active time for ``domain``."""
        if not domain or delta_ms <= 0:
            return {"ok": False}
        category_map = await self.load_category_map()
        category = classify(f"https://{domain}", category_map)
        ok = await self._add_time(domain, delta_ms, fallback_category=category, active_at=now)
        return {"ok": ok}

    async def _add_time(
        self,
        domain: str,
        delta_ms: int,
        *,
        category: Optional[str] = None,
        fallback_category: Optional[str] = None,
        active_at: Optional[int] = None,
    ) -> bool:
        async with self.locks.hold(domain_key(domain)):
            try:
                entry = await self.store.get_domain(domain)
                if entry is None:
                    entry = DomainStatsEntry(domain=domain, category=category)
                entry.accumulated_ms += delta_ms
                entry.category = category or entry.category or fallback_category
                if active_at is not None:
                    entry.last_active_at = active_at
                await self.store.put_domain(entry)
            except StorageError:
                logger.exception("Dropped %d ms for %s; store write failed.", delta_ms, domain)
                return False
        return True

    async def get_domain_time(self, domain: Optional[str]) -> dict[str, Any]:
        entry: Optional[DomainStatsEntry] = None
        if domain:
            try:
                entry = await self.store.get_domain(domain)
            except StorageError:
                logger.exception("Failed to read stats for %s", domain)
        return (entry or DomainStatsEntry(domain=domain or "")).to_payload()

    async def get_summary(self) -> dict[str, Any]:
        try:
            domains = await self.store.all_domains()
            productive = await self.store.get_value(PRODUCTIVE_ACCUMULATED_KEY)
        except StorageError:
            logger.exception("Failed to build summary.")
            domains, productive = {}, None
        return {
            "domainStats": {name: entry.to_payload() for name, entry in domains.items()},
            "productiveAccumulated": productive or self.context.productivity.accumulated_ms,
        }
