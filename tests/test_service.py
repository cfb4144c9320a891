"""Tests for message dispatch and service lifecycle."""

import pytest

from conftest import Inbox
from focus_tracker.classifier import DEFAULT_CATEGORY_MAP
from focus_tracker.config import TrackerSettings
from focus_tracker.idle import IdleDetector
from focus_tracker.messages import UnknownActionError, parse_message
from focus_tracker.service import TrackerService
from focus_tracker.storage import (
    CATEGORY_MAP_KEY,
    LAST_SHOWN_BREAK_KEY,
    PRODUCTIVE_ACCUMULATED_KEY,
    MemoryStore,
)


class StubDetector(IdleDetector):
    def __init__(self) -> None:
        self.state = "active"

    def query_state(self, threshold_ms: int) -> str:
        return self.state


class FixedClock:
    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def make_service(store=None, clock=None, detector=None) -> TrackerService:
    return TrackerService(
        store or MemoryStore(),
        TrackerSettings(),
        idle_detector=detector or StubDetector(),
        clock=clock or FixedClock(),
    )


async def send(service: TrackerService, payload: dict, sender=None):
    return await service.handle(parse_message(payload), sender)


class TestDispatch:
    @pytest.mark.asyncio
    async def test_add_then_get_domain_time(self):
        clock = FixedClock(1_000)
        service = make_service(clock=clock)

        assert await send(service, {"action": "addDomainTime", "domain": "a.com", "deltaMs": 500}) == {"ok": True}
        clock.now = 2_000
        await send(service, {"action": "addDomainTime", "domain": "a.com", "deltaMs": "250"})

        reply = await send(service, {"action": "getDomainTime", "domain": "a.com"})
        assert reply == {"time": 750, "category": "other", "lastActive": 2_000}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"action": "addDomainTime", "deltaMs": 500},
            {"action": "addDomainTime", "domain": "a.com"},
            {"action": "addDomainTime", "domain": "a.com", "deltaMs": "soon"},
            {"action": "addDomainTime", "domain": "a.com", "deltaMs": -1},
        ],
    )
    async def test_bad_add_is_rejected(self, payload):
        service = make_service()
        assert await send(service, payload) == {"ok": False}
        assert await service.store.all_domains() == {}

    @pytest.mark.asyncio
    async def test_summary(self):
        service = make_service()
        await send(service, {"action": "addDomainTime", "domain": "github.com", "deltaMs": 10})
        reply = await send(service, {"action": "getSummary"})
        assert reply["domainStats"]["github.com"]["time"] == 10
        assert reply["productiveAccumulated"] == 0

    @pytest.mark.asyncio
    async def test_reset_break_shown(self):
        service = make_service()
        await service.store.set_value(LAST_SHOWN_BREAK_KEY, 7_200_000)
        assert await send(service, {"action": "resetBreakShown"}) == {"ok": True}
        assert await service.store.get_value(LAST_SHOWN_BREAK_KEY) == 0

    @pytest.mark.asyncio
    async def test_start_break_from_popup_broadcasts(self):
        service = make_service()
        inbox = Inbox()
        service.bus.subscribe("tab:4", inbox)

        reply = await send(service, {"action": "startBreakFromPopup", "durationMs": 600_000})

        assert reply == {"ok": True}
        assert inbox.messages == [{"action": "startBreak", "durationMs": 600_000}]

    @pytest.mark.asyncio
    async def test_focus_change(self):
        clock = FixedClock(0)
        service = make_service(clock=clock)
        await send(service, {"action": "focusChange", "url": "https://github.com/", "tabId": 1})
        clock.now = 4_000
        await send(service, {"action": "focusChange", "url": None})

        assert service.tracker.context.session is None
        assert (await service.store.get_domain("github.com")).accumulated_ms == 4_000

    @pytest.mark.asyncio
    async def test_global_break_events_rebroadcast_to_others(self):
        service = make_service()
        sender, other = Inbox(), Inbox()
        service.bus.subscribe("tab:1", sender)
        service.bus.subscribe("tab:2", other)

        reply = await send(service, {"action": "endBreakGlobal"}, sender="tab:1")

        assert reply is None
        assert sender.messages == []
        assert other.actions() == ["endBreakGlobal"]

    @pytest.mark.asyncio
    async def test_summarize_is_removed(self):
        service = make_service()
        assert await send(service, {"action": "summarize"}) == {
            "ok": False,
            "error": "summarizer_removed",
        }

    @pytest.mark.asyncio
    async def test_outbound_actions_are_rejected(self):
        service = make_service()
        with pytest.raises(UnknownActionError):
            await send(service, {"action": "showBreak", "thresholdMs": 1})

    def test_unknown_action(self):
        with pytest.raises(UnknownActionError):
            parse_message({"action": "openOptionsTab", "url": "x"})

    def test_missing_action(self):
        with pytest.raises(UnknownActionError):
            parse_message({"domain": "a.com"})


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_install_seeds_missing_defaults_only(self):
        store = MemoryStore()
        await store.set_value(PRODUCTIVE_ACCUMULATED_KEY, 5_000)
        service = make_service(store)

        await service.install()

        assert await store.get_value(CATEGORY_MAP_KEY) == DEFAULT_CATEGORY_MAP
        assert await store.get_value(PRODUCTIVE_ACCUMULATED_KEY) == 5_000
        assert await store.get_value(LAST_SHOWN_BREAK_KEY) == 0

    @pytest.mark.asyncio
    async def test_start_restores_and_stop_closes_session(self):
        store = MemoryStore()
        await store.set_value(PRODUCTIVE_ACCUMULATED_KEY, 5_000)
        clock = FixedClock(0)
        service = make_service(store, clock=clock)

        await service.start()
        assert service.is_running()
        assert service.tracker.context.productivity.accumulated_ms == 5_000

        await send(service, {"action": "focusChange", "url": "https://github.com/", "tabId": 1})
        clock.now = 2_000
        await service.stop()

        assert not service.is_running()
        assert (await store.get_domain("github.com")).accumulated_ms == 2_000

    @pytest.mark.asyncio
    async def test_run_checks_uses_clock(self):
        clock = FixedClock(0)
        service = make_service(clock=clock)
        service.tracker.context.distraction.started_at = 0
        inbox = Inbox()
        service.bus.subscribe("tab:1", inbox)

        clock.now = 16 * 60_000
        await service.run_checks()

        assert inbox.actions() == ["getBackToWork"]

    @pytest.mark.asyncio
    async def test_idle_changes_are_broadcast(self):
        detector = StubDetector()
        service = make_service(detector=detector)
        inbox = Inbox()
        service.bus.subscribe("tab:1", inbox)

        await service.idle_watcher.poll()
        detector.state = "locked"
        await service.idle_watcher.poll()
        await service.idle_watcher.poll()

        assert inbox.messages == [{"action": "idleState", "state": "locked"}]
