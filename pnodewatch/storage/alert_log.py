from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from pnodewatch.core.config import ALERT_LOG_STORE_KEY, STORE_CAS_ATTEMPTS
from pnodewatch.storage.store import JsonStore


def throttle_key(tenant_id: str, webhook_id: str, trigger_index: int) -> str:
    return f"{tenant_id}:{webhook_id}:{trigger_index}"


def parse_ts(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class AlertThrottleLog:
    """Last successful dispatch time per (tenant, webhook, trigger index)."""

    def __init__(
        self,
        store: JsonStore,
        *,
        key: str = ALERT_LOG_STORE_KEY,
        cas_attempts: int = STORE_CAS_ATTEMPTS,
    ) -> None:
        self._store = store
        self._key = key
        self._cas_attempts = cas_attempts

    def load(self) -> dict[str, str]:
        raw = self._store.read(self._key, {})
        if not isinstance(raw, dict):
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def last_fired(self, log: dict[str, str], key: str) -> datetime | None:
        return parse_ts(log.get(key))

    def mark_fired(self, keys: Iterable[str], fired_at: str) -> dict[str, str]:
        fired = list(keys)

        def _merge(raw: Any) -> dict[str, Any]:
            merged = dict(raw) if isinstance(raw, dict) else {}
            for key in fired:
                merged[key] = fired_at
            return merged

        return self._store.update(self._key, {}, _merge, attempts=self._cas_attempts)
