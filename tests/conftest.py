from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
import pytest

from pnodewatch.core.config import Settings
from pnodewatch.storage.store import MemoryJsonStore

NOW_SECONDS: int = 1_700_000_000

SeedHandler = Callable[[str, httpx.Request], httpx.Response]


class FakeClock:
    def __init__(self, value: float = 0.0) -> None:
        self.value = value

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FakeUtcClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


def pod(pubkey: str, **fields: Any) -> dict[str, Any]:
    base: dict[str, Any] = {
        "pubkey": pubkey,
        "address": "10.0.0.1:9001",
        "is_public": True,
        "last_seen_timestamp": NOW_SECONDS,
        "rpc_port": 6000,
        "storage_committed": 1024**4,
        "storage_used": 0,
        "uptime": 7 * 24 * 3600,
        "version": "1.0.0",
    }
    base.update(fields)
    return base


def rpc_result(pods: list[dict[str, Any]]) -> httpx.Response:
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"pods": pods}})


class SeedNetwork:
    """Routes pRPC calls by seed host to per-host handlers and records them."""

    def __init__(self, handlers: dict[str, SeedHandler]) -> None:
        self.handlers = handlers
        self.calls: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method = json.loads(request.content)["method"]
        host = request.url.host
        self.calls.append((host, method))
        handler = self.handlers.get(host)
        if handler is None:
            raise httpx.ConnectError("connection refused", request=request)
        return handler(method, request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def store() -> MemoryJsonStore:
    return MemoryJsonStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        default_seeds=("seed-a", "seed-b"),
        env_seeds=(),
        poll_interval_seconds=0,
        store_backend="memory",
        legacy_alerts_enabled=False,
    )


@pytest.fixture
def utc_clock() -> FakeUtcClock:
    return FakeUtcClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))
