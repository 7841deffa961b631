from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from pnodewatch.core.config import POLL_INTERVAL_SECONDS
from pnodewatch.core.errors import SeedExhaustedError
from pnodewatch.services.snapshots import SnapshotService

logger = logging.getLogger(__name__)


class PollScheduler:
    """Refreshes the default snapshot on a fixed interval."""

    def __init__(
        self,
        service: SnapshotService,
        interval_seconds: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        self._service = service
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self.polls: int = 0
        self.failures: int = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="pnode-poll-scheduler")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def run_once(self) -> None:
        self.polls += 1
        try:
            await self._service.get_pnode_snapshot(force_refresh=True)
        except SeedExhaustedError as e:
            self.failures += 1
            logger.error("Scheduled poll failed: %s", e)
        except Exception:
            self.failures += 1
            logger.exception("Scheduled poll failed")

    async def _run(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(float(self._interval_seconds))
