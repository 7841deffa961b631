"""Named JSON blob persistence.

Every backend exposes plain ``read``/``write`` plus a versioned read and a
compare-and-swap write. ``JsonStore.update`` builds a retry-on-conflict
read-modify-write on top of those two, which is what the history series and the
alert throttle log use.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Hashable

from pnodewatch.core.config import Settings
from pnodewatch.core.errors import StoreConflictError, StoreError
from pnodewatch.storage.db import get_connection, init_db

logger = logging.getLogger(__name__)

Version = Hashable


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class JsonStore(ABC):
    @abstractmethod
    def read_versioned(self, name: str) -> tuple[Any | None, Version]:
        """Return ``(value, version)``; value is None when the key is absent."""

    @abstractmethod
    def compare_and_swap(self, name: str, version: Version, value: Any) -> bool:
        """Write ``value`` only if the stored version still equals ``version``."""

    @abstractmethod
    def write(self, name: str, value: Any) -> None: ...

    def read(self, name: str, fallback: Any) -> Any:
        value, _ = self.read_versioned(name)
        if value is None:
            return copy.deepcopy(fallback)
        return value

    def update(
        self,
        name: str,
        fallback: Any,
        mutate: Callable[[Any], Any],
        *,
        attempts: int = 5,
    ) -> Any:
        for attempt in range(1, max(1, attempts) + 1):
            current, version = self.read_versioned(name)
            if current is None:
                current = copy.deepcopy(fallback)
            updated = mutate(current)
            if self.compare_and_swap(name, version, updated):
                return updated
            logger.debug("Store conflict on %s (attempt %d)", name, attempt)
        raise StoreConflictError(f"Gave up updating {name!r} after {attempts} conflicting writes")


class MemoryJsonStore(JsonStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, tuple[str, int]] = {}

    def read_versioned(self, name: str) -> tuple[Any | None, Version]:
        with self._lock:
            item = self._data.get(name)
        if item is None:
            return None, 0
        raw, version = item
        return json.loads(raw), version

    def compare_and_swap(self, name: str, version: Version, value: Any) -> bool:
        raw = _dumps(value)
        with self._lock:
            current = self._data.get(name)
            current_version = current[1] if current else 0
            if current_version != version:
                return False
            self._data[name] = (raw, current_version + 1)
            return True

    def write(self, name: str, value: Any) -> None:
        raw = _dumps(value)
        with self._lock:
            current = self._data.get(name)
            self._data[name] = (raw, (current[1] if current else 0) + 1)


class FileJsonStore(JsonStore):
    """One ``<name>.json`` file per key under ``root``.

    Compare-and-swap is guarded by a process-local lock only; separate processes
    sharing the directory are not coordinated.
    """

    def __init__(self, root: Path) -> None:
        self._root = root
        self._lock = threading.Lock()

    def _path(self, name: str) -> Path:
        return self._root / f"{name}.json"

    def _read_raw(self, name: str) -> bytes | None:
        try:
            return self._path(name).read_bytes()
        except FileNotFoundError:
            return None

    def _write_raw(self, name: str, value: Any) -> None:
        path = self._path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(value, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    def read_versioned(self, name: str) -> tuple[Any | None, Version]:
        raw = self._read_raw(name)
        if raw is None:
            return None, None
        try:
            value = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StoreError(f"Corrupt JSON in {self._path(name)}: {e}") from e
        return value, hashlib.sha1(raw).hexdigest()

    def compare_and_swap(self, name: str, version: Version, value: Any) -> bool:
        with self._lock:
            raw = self._read_raw(name)
            current = hashlib.sha1(raw).hexdigest() if raw is not None else None
            if current != version:
                return False
            self._write_raw(name, value)
            return True

    def write(self, name: str, value: Any) -> None:
        with self._lock:
            self._write_raw(name, value)


class SqliteJsonStore(JsonStore):
    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        init_db(db_path)

    def read_versioned(self, name: str) -> tuple[Any | None, Version]:
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT value, version FROM json_store WHERE key = ?",
                (name,),
            ).fetchone()
        if row is None:
            return None, 0
        try:
            return json.loads(row["value"]), int(row["version"])
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupt JSON for key {name!r}: {e}") from e

    def compare_and_swap(self, name: str, version: Version, value: Any) -> bool:
        ts_utc = datetime.now(timezone.utc).isoformat()
        raw = _dumps(value)
        with get_connection(self._db_path) as conn:
            if version == 0:
                cur = conn.execute(
                    """
                    INSERT OR IGNORE INTO json_store (key, value, version, updated_ts_utc)
                    VALUES (?, ?, 1, ?)
                    """,
                    (name, raw, ts_utc),
                )
            else:
                cur = conn.execute(
                    """
                    UPDATE json_store
                    SET value = ?,
                        version = version + 1,
                        updated_ts_utc = ?
                    WHERE key = ? AND version = ?
                    """,
                    (raw, ts_utc, name, int(version)),
                )
            conn.commit()
            return int(cur.rowcount) == 1

    def write(self, name: str, value: Any) -> None:
        ts_utc = datetime.now(timezone.utc).isoformat()
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO json_store (key, value, version, updated_ts_utc)
                VALUES (?, ?, 1, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    version = json_store.version + 1,
                    updated_ts_utc = excluded.updated_ts_utc
                """,
                (name, _dumps(value), ts_utc),
            )
            conn.commit()


def build_store(settings: Settings) -> JsonStore:
    backend = settings.store_backend
    if backend == "memory":
        return MemoryJsonStore()
    if backend == "file":
        return FileJsonStore(settings.data_root)
    if backend == "sqlite":
        return SqliteJsonStore(settings.db_path)
    raise ValueError(f"Unknown store backend: {backend!r}")
