"""System idle/lock detection feeding ``idleState`` broadcasts."""

from __future__ import annotations

import ctypes
import logging
import sys
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

ACTIVE = "active"
IDLE = "idle"
LOCKED = "locked"


class IdleDetector:
    """Reports the user's idle state; the base detector never sees idleness."""

    def query_state(self, threshold_ms: int) -> str:
        return ACTIVE


def elapsed_since_input(tick_ms: int, last_input_tick: int) -> int:
    """Milliseconds between the 32-bit last-input tick and a 64-bit uptime tick."""
    return (tick_ms - last_input_tick) & 0xFFFFFFFF


class WindowsIdleDetector(IdleDetector):
    """Detects idle and locked states using Win32 APIs."""

    DESKTOP_SWITCHDESKTOP = 0x0100

    class LASTINPUTINFO(ctypes.Structure):
        _fields_ = [("cbSize", ctypes.c_uint), ("dwTime", ctypes.c_ulong)]

    def __init__(self) -> None:
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        self._kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        self._kernel32.GetTickCount64.restype = ctypes.c_uint64

    def milliseconds_since_input(self) -> int:
        last_input = self.LASTINPUTINFO()
        last_input.cbSize = ctypes.sizeof(last_input)
        if not self._user32.GetLastInputInfo(ctypes.byref(last_input)):
            raise ctypes.WinError()  # type: ignore[attr-defined]
        return elapsed_since_input(self._kernel32.GetTickCount64(), last_input.dwTime)

    def is_locked(self) -> bool:
        desktop = self._user32.OpenInputDesktop(0, False, self.DESKTOP_SWITCHDESKTOP)
        if not desktop:
            return True
        self._user32.CloseDesktop(desktop)
        return False

    def query_state(self, threshold_ms: int) -> str:
        try:
            if self.is_locked():
                return LOCKED
            return IDLE if self.milliseconds_since_input() >= threshold_ms else ACTIVE
        except OSError:  # pragma: no cover - Win32 failure path
            logger.exception("Failed to query idle state; assuming active.")
            return ACTIVE


def default_detector() -> IdleDetector:
    if sys.platform == "win32":
        return WindowsIdleDetector()
    return IdleDetector()


class IdleWatcher:
    """Polls a detector and reports state transitions."""

    def __init__(
        self,
        detector: IdleDetector,
        threshold_ms: int,
        on_change: Callable[[str], Awaitable[None]],
    ) -> None:
        self.detector = detector
        self.threshold_ms = threshold_ms
        self._on_change = on_change
        self.state = ACTIVE

    async def poll(self) -> str:
        state = self.detector.query_state(self.threshold_ms)
        if state != self.state:
            logger.info("Idle state changed: %s -> %s", self.state, state)
            self.state = state
            await self._on_change(state)
        return state
