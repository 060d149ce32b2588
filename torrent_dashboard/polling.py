"""
Background refresh scheduler for the snapshot cache.

Runs ``SnapshotCache.refresh`` in a thread pool every POLL_INTERVAL seconds so
the dashboard can serve cached data. The cache itself has no timer; this is
the only place the cadence is decided. Failures are logged and the loop keeps
going: the daemon may be down at startup and come up later.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from .cache import SnapshotCache
from .config import Config
from .errors import DashboardError
from .logger import logger


class SnapshotPoller:
    def __init__(self, cache: SnapshotCache, interval: Optional[float] = None):
        self.cache = cache
        self.interval = interval if interval is not None else Config.POLL_INTERVAL
        self._executor = ThreadPoolExecutor(max_workers=1)
        self._running = False

    async def poll(self) -> bool:
        """Refresh once. Returns True on success."""
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, self.cache.refresh)
            return True
        except DashboardError as e:
            logger.debug(f"Poll failed: {e}")
            return False

    async def run(self) -> None:
        """Main polling loop."""
        self._running = True
        logger.info(f"Snapshot poller started (interval: {self.interval}s)")

        while self._running:
            try:
                await self.poll()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in polling loop: {e}")
                await asyncio.sleep(self.interval)

        self._executor.shutdown(wait=False)
        logger.info("Snapshot poller stopped")

    def stop(self) -> None:
        """Signal the polling loop to stop."""
        self._running = False
