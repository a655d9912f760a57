"""Heartbeat -- background keepalive against the marketplace.

Beats once immediately on start, then every interval. A failed beat is
logged and the loop carries on.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from prometheus_mars.marketplace import SpaceMarsClient

logger = logging.getLogger(__name__)


class Heartbeat:
    def __init__(self, client: SpaceMarsClient, interval: float) -> None:
        if interval <= 0:
            raise ValueError("heartbeat interval must be > 0")
        self._client = client
        self._interval = interval
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the heartbeat loop."""
        self._running = True
        self._task = asyncio.create_task(self._beat_loop(), name="heartbeat")
        logger.info("Heartbeat started (interval: %ds)", round(self._interval))

    async def stop(self) -> None:
        """Stop the heartbeat loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Heartbeat stopped")

    # ------------------------------------------------------------------
    # Beat loop
    # ------------------------------------------------------------------

    async def _beat_loop(self) -> None:
        """Periodic loop: beat -> sleep -> repeat."""
        while self._running:
            await self.beat()
            await asyncio.sleep(self._interval)

    async def beat(self) -> bool:
        """Send one heartbeat. Returns True on an acknowledged beat."""
        try:
            response = await self._client.heartbeat()
        except httpx.HTTPError as e:
            logger.warning("Heartbeat failed: %s", e)
            return False
        except Exception:
            logger.exception("Heartbeat failed")
            return False

        if response.success and response.data:
            data = response.data
            logger.info(
                "Heartbeat ok | agent: %s | tasks open: %d | next heartbeat: %ds",
                data.agent.name, data.tasks.open_count, data.next_heartbeat_seconds,
            )
            return True

        logger.warning("Heartbeat warning: %s", response.error or "no data")
        return False
