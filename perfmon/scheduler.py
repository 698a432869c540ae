"""
Clock and Ticker Abstractions
Real asyncio-driven scheduling plus manual variants for deterministic tests
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Protocol

TickCallback = Callable[[], Awaitable[None]]


class Clock(Protocol):
    def now_ms(self) -> float: ...


class SystemClock:
    """Wall clock in milliseconds"""

    def now_ms(self) -> float:
        return time.time() * 1000


class ManualClock:
    """Clock that only moves when told to"""

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)

    def now_ms(self) -> float:
        return self._now

    def advance(self, delta_ms: float) -> float:
        self._now += delta_ms
        return self._now

    def set(self, now_ms: float) -> None:
        self._now = float(now_ms)


class Ticker(Protocol):
    is_active: bool

    def start(self, callback: TickCallback) -> None: ...

    def cancel(self) -> None: ...


class AsyncioTicker:
    """Invokes an async callback every interval_ms on the running event loop"""

    def __init__(self, interval_ms: float = 1000.0, logger: Optional[logging.Logger] = None):
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self.interval_ms = interval_ms
        self.logger = logger or logging.getLogger(__name__)
        self.is_active = False
        self._task: Optional[asyncio.Task] = None
        self._callback: Optional[TickCallback] = None

    def start(self, callback: TickCallback) -> None:
        if self.is_active:
            return
        self._callback = callback
        self.is_active = True
        self._task = asyncio.create_task(self._ticker_loop())

    def cancel(self) -> None:
        self.is_active = False
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _ticker_loop(self):
        """Sleep, tick, repeat until cancelled"""
        while self.is_active:
            try:
                await asyncio.sleep(self.interval_ms / 1000)
                if not self.is_active:
                    break
                await self._callback()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"❌ Tick failed: {e}")


class ManualTicker:
    """Ticker fired explicitly with fire(), for tests"""

    def __init__(self):
        self.is_active = False
        self.fire_count = 0
        self._callback: Optional[TickCallback] = None

    def start(self, callback: TickCallback) -> None:
        self._callback = callback
        self.is_active = True

    def cancel(self) -> None:
        self.is_active = False

    async def fire(self, times: int = 1) -> None:
        for _ in range(times):
            if not self.is_active or self._callback is None:
                return
            self.fire_count += 1
            await self._callback()
