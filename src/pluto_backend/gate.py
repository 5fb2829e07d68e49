from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from .metrics import extraction_gate_in_flight, extraction_gate_wait_seconds


class ConcurrencyGate:
    """Bounds how many extraction tasks drive the shared browser at once."""

    def __init__(self, ceiling: int = 1):
        self.ceiling = max(1, int(ceiling))
        self._sem = asyncio.BoundedSemaphore(self.ceiling)
        self._in_flight = 0
        self._peak = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak_in_flight(self) -> int:
        return self._peak

    async def acquire(self) -> None:
        started = time.monotonic()
        await self._sem.acquire()
        extraction_gate_wait_seconds.observe(time.monotonic() - started)
        self._in_flight += 1
        self._peak = max(self._peak, self._in_flight)
        extraction_gate_in_flight.inc()

    def release(self) -> None:
        # BoundedSemaphore raises ValueError on an unmatched release.
        self._sem.release()
        self._in_flight -= 1
        extraction_gate_in_flight.dec()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()
