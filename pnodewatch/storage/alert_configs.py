from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pnodewatch.core.alert_schema import AlertWebhookConfig, sanitize_config_list
from pnodewatch.core.config import ALERT_CONFIG_STORE_KEY, ALERT_LEGACY_TENANT_ID
from pnodewatch.storage.store import JsonStore

logger = logging.getLogger(__name__)

ConfigTuple = tuple[str, AlertWebhookConfig]


class AlertConfigStore:
    """Per-tenant webhook configs, plus the optional single-tenant legacy file."""

    def __init__(
        self,
        store: JsonStore,
        *,
        legacy_path: Path | None = None,
        key: str = ALERT_CONFIG_STORE_KEY,
    ) -> None:
        self._store = store
        self._legacy_path = legacy_path
        self._key = key

    def _read_store(self) -> dict[str, list[AlertWebhookConfig]]:
        parsed = self._store.read(self._key, {})
        if not isinstance(parsed, dict):
            return {}
        result: dict[str, list[AlertWebhookConfig]] = {}
        for tenant_id, configs in parsed.items():
            if not isinstance(tenant_id, str) or not tenant_id.strip():
                continue
            normalized = sanitize_config_list(configs)
            if normalized:
                result[tenant_id] = normalized
        return result

    def _write_store(self, data: dict[str, list[AlertWebhookConfig]]) -> None:
        self._store.write(
            self._key,
            {
                tenant_id: [config.model_dump(mode="json") for config in configs]
                for tenant_id, configs in data.items()
            },
        )

    def get_user_alert_configs(self, tenant_id: str) -> list[AlertWebhookConfig]:
        return self._read_store().get(tenant_id, [])

    def save_user_alert_configs(
        self, tenant_id: str, configs: list[AlertWebhookConfig] | list[dict[str, Any]]
    ) -> list[AlertWebhookConfig]:
        data = self._read_store()
        sanitized = sanitize_config_list(list(configs))
        if sanitized:
            data[tenant_id] = sanitized
        else:
            data.pop(tenant_id, None)
        self._write_store(data)
        return sanitized

    def get_all_user_alert_config_tuples(self) -> list[ConfigTuple]:
        return [
            (tenant_id, config)
            for tenant_id, configs in self._read_store().items()
            for config in configs
        ]

    def load_legacy_alert_configs(self) -> list[ConfigTuple]:
        if self._legacy_path is None:
            return []
        try:
            raw = self._legacy_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._legacy_path.parent.mkdir(parents=True, exist_ok=True)
            self._legacy_path.write_text("[]", encoding="utf-8")
            return []
        except OSError:
            logger.exception("Unable to read legacy alert config %s", self._legacy_path)
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.exception("Legacy alert config %s is not valid JSON", self._legacy_path)
            return []
        return [(ALERT_LEGACY_TENANT_ID, config) for config in sanitize_config_list(parsed)]

    def load_all_alert_configs(self) -> list[ConfigTuple]:
        return self.get_all_user_alert_config_tuples() + self.load_legacy_alert_configs()
