from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

APP_NAME: str = "pNodeWatch"
BASE_DIR: Path = Path(__file__).resolve().parents[2]
DB_PATH: Path = BASE_DIR / "pnodewatch.db"
DATA_ROOT: Path = BASE_DIR / "data"

DEFAULT_SEEDS: tuple[str, ...] = (
    "173.212.220.65",
    "161.97.97.41",
    "192.190.136.36",
    "192.190.136.38",
    "207.244.255.1",
    "192.190.136.28",
    "192.190.136.29",
    "173.212.203.145",
)

RPC_PORT: int = 6000
CACHE_TTL_MS: int = 25000
REQUEST_TIMEOUT_MS: int = 7000
STALE_THRESHOLD_SECONDS: int = 1800
HISTORY_MAX_ENTRIES: int = 288
HISTORY_DEFAULT_LIMIT: int = 72
POLL_INTERVAL_SECONDS: int = 60

STORE_BACKEND: str = "sqlite"
STORE_CAS_ATTEMPTS: int = 5

ALERT_DEFAULT_COOLDOWN_MINUTES: int = 30
ALERT_LEGACY_TENANT_ID: str = "__legacy__"
ALERT_LEGACY_ENABLED: bool = True

HISTORY_STORE_KEY: str = "pnode-history"
ALERT_CONFIG_STORE_KEY: str = "user-alert-webhooks"
ALERT_LOG_STORE_KEY: str = "alert-log"


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(float(raw))
    except (ValueError, OverflowError):
        return default


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_seeds(environ: Mapping[str, str]) -> tuple[str, ...]:
    raw = environ.get("PNODE_SEEDS") or ""
    return tuple(seed.strip() for seed in raw.split(",") if seed.strip())


@dataclass(frozen=True, slots=True)
class Settings:
    rpc_port: int = RPC_PORT
    cache_ttl_ms: int = CACHE_TTL_MS
    request_timeout_ms: int = REQUEST_TIMEOUT_MS
    stale_threshold_seconds: int = STALE_THRESHOLD_SECONDS
    history_max_entries: int = HISTORY_MAX_ENTRIES
    poll_interval_seconds: int = POLL_INTERVAL_SECONDS
    env_seeds: tuple[str, ...] = ()
    default_seeds: tuple[str, ...] = DEFAULT_SEEDS
    store_backend: str = STORE_BACKEND
    store_cas_attempts: int = STORE_CAS_ATTEMPTS
    db_path: Path = DB_PATH
    data_root: Path = DATA_ROOT
    legacy_alerts_enabled: bool = ALERT_LEGACY_ENABLED
    legacy_alert_path: Path = DATA_ROOT / "alert-webhooks.json"

    def to_dict(self) -> dict[str, object]:
        return {
            "rpc_port": self.rpc_port,
            "cache_ttl_ms": self.cache_ttl_ms,
            "request_timeout_ms": self.request_timeout_ms,
            "stale_threshold_seconds": self.stale_threshold_seconds,
            "history_max_entries": self.history_max_entries,
            "poll_interval_seconds": self.poll_interval_seconds,
            "env_seeds": list(self.env_seeds),
            "store_backend": self.store_backend,
            "legacy_alerts_enabled": self.legacy_alerts_enabled,
        }


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    data_root = Path(env.get("DATA_ROOT") or DATA_ROOT)
    legacy_path = env.get("PNODE_LEGACY_ALERT_PATH")
    return Settings(
        rpc_port=_env_int(env, "PNODE_RPC_PORT", RPC_PORT),
        cache_ttl_ms=_env_int(env, "PNODE_CACHE_TTL", CACHE_TTL_MS),
        request_timeout_ms=_env_int(env, "PNODE_REQUEST_TIMEOUT", REQUEST_TIMEOUT_MS),
        stale_threshold_seconds=max(
            1, _env_int(env, "PNODE_STALE_SECONDS", STALE_THRESHOLD_SECONDS)
        ),
        history_max_entries=max(1, _env_int(env, "PNODE_HISTORY_LIMIT", HISTORY_MAX_ENTRIES)),
        poll_interval_seconds=_env_int(env, "PNODE_POLL_INTERVAL", POLL_INTERVAL_SECONDS),
        env_seeds=_env_seeds(env),
        store_backend=(env.get("PNODE_STORE_BACKEND") or STORE_BACKEND).strip().lower(),
        store_cas_attempts=max(1, _env_int(env, "PNODE_STORE_CAS_ATTEMPTS", STORE_CAS_ATTEMPTS)),
        db_path=Path(env.get("PNODE_DB_PATH") or DB_PATH),
        data_root=data_root,
        legacy_alerts_enabled=_env_bool(env, "PNODE_LEGACY_ALERTS", ALERT_LEGACY_ENABLED),
        legacy_alert_path=Path(legacy_path) if legacy_path else data_root / "alert-webhooks.json",
    )
