"""
cbt/services/session_clock.py
Countdown clock for an exam session

The clock is an asynchronous event source: iterate `events()` to receive a
TICK every `tick_seconds` and exactly one EXPIRED when the countdown reaches
zero. `cancel()` stops the stream; no event is emitted after cancellation.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable

logger = logging.getLogger(__name__)


class ClockEventKind(Enum):
    TICK = "tick"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ClockEvent:
    kind: ClockEventKind
    remaining_seconds: int


class SessionClock:
    def __init__(
        self,
        duration_seconds: int,
        tick_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if duration_seconds < 0:
            raise ValueError("duration_seconds must be >= 0")
        self.duration_seconds = duration_seconds
        self.tick_seconds = tick_seconds
        self._sleep = sleep
        self._remaining = duration_seconds
        self._cancelled = False
        self._expired = False
        self._started = False

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._started and not (self._cancelled or self._expired)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def expired(self) -> bool:
        return self._expired

    def cancel(self) -> None:
        if not self._cancelled and not self._expired:
            logger.debug(f"Clock cancelled with {self._remaining}s remaining")
        self._cancelled = True

    async def events(self) -> AsyncIterator[ClockEvent]:
        if self._started:
            raise RuntimeError("SessionClock can only be iterated once")
        self._started = True

        while not self._cancelled and self._remaining > 0:
            await self._sleep(self.tick_seconds)
            if self._cancelled:
                return
            self._remaining -= 1
            if self._remaining > 0:
                yield ClockEvent(ClockEventKind.TICK, self._remaining)

        if self._cancelled:
            return
        self._expired = True
        yield ClockEvent(ClockEventKind.EXPIRED, 0)
