"""Lock-guarded holder for the current circuit state."""

from __future__ import annotations

import asyncio

from noisebell.utils.logging import get_logger
from noisebell.webhooks.models import INITIAL_EVENT, CircuitEvent

log = get_logger(__name__)


class CircuitState:
    """The single most recently committed circuit event.

    One instance per process, passed to whatever reads or writes it. Writes
    overwrite unconditionally; the last writer wins.
    """

    def __init__(self, initial: CircuitEvent = INITIAL_EVENT) -> None:
        self._current = initial
        self._lock = asyncio.Lock()

    async def set(self, event: CircuitEvent) -> None:
        async with self._lock:
            previous = self._current
            self._current = event
        if previous != event:
            log.debug("circuit_state_changed", previous=previous.raw, current=event.raw)

    async def get(self) -> CircuitEvent:
        async with self._lock:
            return self._current
