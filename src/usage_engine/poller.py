"""Background poller — drives `TrackingEngine.poll` on a fixed interval.

Features:
- Fetch runs on the engine's worker thread; the event loop never blocks
- At most one tick in flight (the engine refuses overlapping ticks)
- Early wake-up when the credentials file changes or `trigger_now()` is called
- Interval changes take effect on `restart()`
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from src.usage_engine.engine import TrackingEngine
from src.usage_engine.models import Snapshot

logger = logging.getLogger(__name__)

# How often the sleep checks for a credentials change
_WAKE_CHECK_INTERVAL = 1.0


class UsagePoller:
    """Polls the engine on its configured interval and publishes snapshots."""

    def __init__(
        self,
        engine: TrackingEngine,
        on_snapshot: Callable[[Snapshot], Any] | None = None,
    ) -> None:
        self.engine = engine
        self.on_snapshot = on_snapshot
        self.last_snapshot: Snapshot | None = None
        self._task: asyncio.Task[None] | None = None
        self._wake = asyncio.Event()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background polling loop."""
        if self._running:
            return
        self._running = True
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._poll_loop(), name="usage-poller")
        logger.info("Usage poller started (interval=%ss)", self.engine.config.poll_interval_seconds)

    async def stop(self) -> None:
        """Stop the background poller."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Usage poller stopped")

    async def restart(self) -> None:
        """Restart the loop so a changed interval starts counting now."""
        await self.stop()
        await self.start()

    def trigger_now(self) -> None:
        """Wake the loop for an immediate tick."""
        self._wake.set()

    async def poll_once(self) -> Snapshot | None:
        """Run a single tick off the event loop and publish its snapshot."""
        future = self.engine.poll_async()
        if future is None:
            return None
        snapshot = await asyncio.wrap_future(future)
        self.last_snapshot = snapshot
        if self.on_snapshot is not None:
            try:
                self.on_snapshot(snapshot)
            except Exception:
                logger.exception("Snapshot callback failed")
        return snapshot

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Usage poll failed")
            await self._sleep_until_next_tick()

    async def _sleep_until_next_tick(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.engine.config.poll_interval_seconds
        while self._running:
            remaining = deadline - loop.time()
            if remaining <= 0 or self._wake.is_set() or self.engine.credentials_changed():
                break
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=min(_WAKE_CHECK_INTERVAL, remaining))
            except asyncio.TimeoutError:
                pass
        self._wake.clear()
