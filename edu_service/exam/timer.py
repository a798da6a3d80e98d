"""
Session Timer — a fixed-interval countdown for one exam attempt.

Duration is derived from the configured question count:

    20 → 15 min     50 → 30 min     75 → 60 min
    100 → 90 min    200 → 180 min

Other counts round up to the next bracket; anything outside 1–200 is
rejected at configuration time.

The timer is an asyncio task that decrements once per tick while the session
is active and calls ``on_expire`` exactly once when it reaches zero.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from edu_service.errors import InvalidExamConfig

logger = logging.getLogger(__name__)

# question count → duration in seconds (ascending)
DURATION_BRACKETS: dict[int, int] = {
    20:  15 * 60,
    50:  30 * 60,
    75:  60 * 60,
    100: 90 * 60,
    200: 180 * 60,
}


def bracket_for(question_count: int) -> int:
    """Round ``question_count`` up to the nearest supported bracket."""
    if question_count < 1:
        raise InvalidExamConfig(f"question count must be positive, got {question_count}")
    for bracket in DURATION_BRACKETS:
        if question_count <= bracket:
            return bracket
    raise InvalidExamConfig(
        f"question count {question_count} exceeds the largest supported "
        f"bracket ({max(DURATION_BRACKETS)})"
    )


def duration_for(question_count: int) -> int:
    """Session length in seconds for ``question_count`` questions."""
    return DURATION_BRACKETS[bracket_for(question_count)]


def format_remaining(seconds: int) -> str:
    """``H:MM:SS`` when an hour or more is left, otherwise ``MM:SS``."""
    seconds = max(0, int(seconds))
    h, rest = divmod(seconds, 3600)
    m, s = divmod(rest, 60)
    if h:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m:02d}:{s:02d}"


class SessionTimer:
    """Countdown owned by a single exam controller."""

    def __init__(
        self,
        seconds:      int,
        on_expire:    Callable[[], Awaitable[None] | None],
        on_tick:      Callable[[int], None] | None = None,
        tick_seconds: float = 1.0,
    ) -> None:
        self.total         = int(seconds)
        self.remaining     = int(seconds)
        self._on_expire    = on_expire
        self._on_tick      = on_tick
        self._tick_seconds = tick_seconds
        self._task: asyncio.Task | None = None
        self._expired      = False
        self._stopped      = False

    @property
    def elapsed(self) -> int:
        return self.total - self.remaining

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._stopped:
            raise RuntimeError("timer has been stopped and cannot be restarted")
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run(), name="session-timer")

    def stop(self) -> None:
        self._stopped = True
        if self._task is not None and not self._task.done():
            current = asyncio.current_task() if _loop_running() else None
            # never cancel ourselves from inside on_expire
            if self._task is not current:
                self._task.cancel()

    async def _run(self) -> None:
        while self.remaining > 0 and not self._stopped:
            await asyncio.sleep(self._tick_seconds)
            if self._stopped:
                return
            self.remaining -= 1
            if self._on_tick is not None:
                self._on_tick(self.remaining)

        if self.remaining <= 0 and not self._expired:
            self._expired = True
            logger.info("Session timer expired after %ds", self.total)
            result = self._on_expire()
            if asyncio.iscoroutine(result):
                await result


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
        return True
    except RuntimeError:
        return False
