from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Callable

from pnodewatch.core.config import CACHE_TTL_MS
from pnodewatch.core.models import Snapshot

DEFAULT_CACHE_KEY: str = "default"


def build_cache_key(seeds: Sequence[str] | None) -> str:
    if not seeds:
        return DEFAULT_CACHE_KEY
    return ",".join(seeds)


@dataclass(slots=True)
class _CachedSnapshot:
    snapshot: Snapshot
    expires_at: float


class SnapshotCache:
    """Latest snapshot per seed-set key, each with its own expiry.

    No locking: two concurrent misses on the same key both poll and the later
    ``put`` wins.
    """

    def __init__(
        self,
        ttl_ms: int = CACHE_TTL_MS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_ms / 1000.0
        self._clock = clock
        self._entries: dict[str, _CachedSnapshot] = {}

    def get(self, key: str) -> Snapshot | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            return None
        return entry.snapshot

    def put(self, key: str, snapshot: Snapshot) -> None:
        self._entries[key] = _CachedSnapshot(
            snapshot=snapshot,
            expires_at=self._clock() + self._ttl_seconds,
        )

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
