from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Callable

from pnodewatch.collectors.prpc import PrpcClient
from pnodewatch.collectors.seeds import discover_pods, normalize_seed_list, resolve_seeds
from pnodewatch.core.config import Settings
from pnodewatch.core.models import Snapshot, SnapshotHistoryEntry
from pnodewatch.services.analytics import build_analytics
from pnodewatch.services.health import determine_latest_version, finalize_nodes
from pnodewatch.services.normalizer import normalize_pods
from pnodewatch.services.snapshot_cache import DEFAULT_CACHE_KEY, SnapshotCache, build_cache_key
from pnodewatch.storage.history import HistoryStore

logger = logging.getLogger(__name__)


class SnapshotService:
    def __init__(
        self,
        settings: Settings,
        client: PrpcClient,
        cache: SnapshotCache,
        history: HistoryStore | None = None,
        *,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._client = client
        self._cache = cache
        self._history = history
        self._wall_clock = wall_clock
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def history(self) -> HistoryStore | None:
        return self._history

    async def get_pnode_snapshot(
        self,
        *,
        force_refresh: bool = False,
        custom_seeds: Sequence[str] | None = None,
    ) -> Snapshot:
        seeds = normalize_seed_list(custom_seeds)
        cache_key = build_cache_key(seeds)
        if not force_refresh:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

        snapshot = await self.poll(seeds)
        self._cache.put(cache_key, snapshot)

        if cache_key == DEFAULT_CACHE_KEY and self._history is not None:
            task = asyncio.create_task(self._record_history(snapshot), name="pnode-history-append")
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return snapshot

    async def poll(self, custom_seeds: Sequence[str] | None = None) -> Snapshot:
        candidates = resolve_seeds(
            custom_seeds,
            self._settings.env_seeds,
            self._settings.default_seeds,
        )
        started = time.monotonic()
        result = await discover_pods(self._client, candidates)

        now_seconds = float(int(self._wall_clock()))
        stale = self._settings.stale_threshold_seconds
        nodes = normalize_pods(result.pods, now_seconds=now_seconds, stale_threshold_seconds=stale)
        latest_label, latest_value = determine_latest_version(nodes)
        finalize_nodes(nodes, latest_value, now_seconds, stale)
        metrics = build_analytics(nodes, latest_label)

        snapshot = Snapshot(
            nodes=nodes,
            metrics=metrics,
            fetched_at=datetime.fromtimestamp(self._wall_clock(), tz=timezone.utc).isoformat(),
            seed=result.seed,
        )
        logger.info(
            "snapshot seed=%s pods=%d nodes=%d healthy=%d warning=%d critical=%d took=%.0fms",
            result.seed,
            len(result.pods),
            metrics.total_nodes,
            metrics.healthy,
            metrics.warning,
            metrics.critical,
            (time.monotonic() - started) * 1000,
        )
        return snapshot

    async def _record_history(self, snapshot: Snapshot) -> None:
        if self._history is None:
            return
        try:
            await self._history.record_snapshot(snapshot)
        except Exception:
            logger.exception("Failed to append snapshot history")

    async def drain(self) -> None:
        """Wait for history appends (and the alerts they trigger) still in flight."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def get_snapshot_history(self, limit: int) -> list[SnapshotHistoryEntry]:
        if self._history is None:
            return []
        return self._history.read(limit)
