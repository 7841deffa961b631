from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from pnodewatch.core.config import (
    HISTORY_DEFAULT_LIMIT,
    HISTORY_MAX_ENTRIES,
    HISTORY_STORE_KEY,
    STORE_CAS_ATTEMPTS,
)
from pnodewatch.core.models import Snapshot, SnapshotHistoryEntry
from pnodewatch.storage.store import JsonStore

logger = logging.getLogger(__name__)

AppendHook = Callable[[SnapshotHistoryEntry | None, SnapshotHistoryEntry], Awaitable[Any]]


def _load_entries(raw: Any) -> list[SnapshotHistoryEntry]:
    if not isinstance(raw, list):
        return []
    entries: list[SnapshotHistoryEntry] = []
    for item in raw:
        entry = SnapshotHistoryEntry.from_dict(item)
        if entry is not None:
            entries.append(entry)
    return entries


class HistoryStore:
    """Capped snapshot digest series kept as one blob in a ``JsonStore``."""

    def __init__(
        self,
        store: JsonStore,
        *,
        max_entries: int = HISTORY_MAX_ENTRIES,
        on_append: AppendHook | None = None,
        cas_attempts: int = STORE_CAS_ATTEMPTS,
        key: str = HISTORY_STORE_KEY,
    ) -> None:
        self._store = store
        self._max_entries = max(1, max_entries)
        self._on_append = on_append
        self._cas_attempts = cas_attempts
        self._key = key

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def set_append_hook(self, hook: AppendHook | None) -> None:
        self._on_append = hook

    async def append(self, entry: SnapshotHistoryEntry) -> SnapshotHistoryEntry | None:
        """Append ``entry`` and return the entry that preceded it, if any."""
        previous: list[SnapshotHistoryEntry | None] = [None]

        def _push(raw: Any) -> list[dict[str, Any]]:
            series = raw if isinstance(raw, list) else []
            last = _load_entries(series[-1:])
            previous[0] = last[0] if last else None
            series.append(entry.to_dict())
            return series[-self._max_entries:]

        self._store.update(self._key, [], _push, attempts=self._cas_attempts)

        if self._on_append is not None:
            await self._on_append(previous[0], entry)
        return previous[0]

    async def record_snapshot(self, snapshot: Snapshot) -> SnapshotHistoryEntry:
        entry = SnapshotHistoryEntry.from_snapshot(snapshot)
        await self.append(entry)
        return entry

    def read(self, limit: int = HISTORY_DEFAULT_LIMIT) -> list[SnapshotHistoryEntry]:
        entries = _load_entries(self._store.read(self._key, []))
        if limit <= 0:
            return []
        return entries[-limit:]
