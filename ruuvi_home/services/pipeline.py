"""Wires accepted readings to storage and live fan-out."""

from __future__ import annotations

import asyncio

from ruuvi_home.schemas import SensorReading
from ruuvi_home.services.broadcast import BroadcastHub
from ruuvi_home.services.store import TimeSeriesStore


class ReadingPipeline:
    """Persists (fire-and-forget) and broadcasts each reading.

    ``handle`` runs on the event loop and returns immediately; the write is a
    background task whose outcome is only logged by the store.
    """

    def __init__(self, store: TimeSeriesStore, hub: BroadcastHub):
        self.store = store
        self.hub = hub
        self._pending: set[asyncio.Task] = set()

    def handle(self, reading: SensorReading) -> None:
        task = asyncio.create_task(self.store.save(reading))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self.hub.broadcast(reading)

    async def drain(self) -> None:
        """Wait for in-flight writes, e.g. before shutting the engine down."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
