from __future__ import annotations

import asyncio
import dataclasses

import httpx
import pytest

from conftest import NOW_SECONDS, FakeClock, SeedNetwork, pod, rpc_result
from pnodewatch.collectors.prpc import PrpcClient
from pnodewatch.core.errors import SeedExhaustedError
from pnodewatch.services.alerts import AlertEngine
from pnodewatch.services.scheduler import PollScheduler
from pnodewatch.services.snapshot_cache import SnapshotCache, build_cache_key
from pnodewatch.services.snapshots import SnapshotService
from pnodewatch.storage.alert_configs import AlertConfigStore
from pnodewatch.storage.alert_log import AlertThrottleLog
from pnodewatch.storage.history import HistoryStore


def _network() -> SeedNetwork:
    return SeedNetwork(
        {
            "seed-a": lambda method, request: rpc_result([pod("a"), pod("b", is_public=False)]),
            "custom": lambda method, request: rpc_result([pod("c")]),
        }
    )


def _service(settings, network, clock, history=None) -> SnapshotService:
    client = PrpcClient(rpc_port=6000, timeout_ms=1000, transport=network.transport())
    cache = SnapshotCache(settings.cache_ttl_ms, clock=clock)
    return SnapshotService(settings, client, cache, history, wall_clock=lambda: NOW_SECONDS)


def test_cache_key():
    assert build_cache_key(None) == "default"
    assert build_cache_key([]) == "default"
    assert build_cache_key(["a", "b"]) == "a,b"


def test_cache_expiry():
    clock = FakeClock(100.0)
    cache = SnapshotCache(1000, clock=clock)
    cache.put("default", "snap")
    assert cache.get("default") == "snap"
    clock.advance(0.5)
    assert cache.get("default") == "snap"
    clock.advance(0.5)
    assert cache.get("default") is None
    assert cache.get("missing") is None


@pytest.mark.asyncio
async def test_poll_builds_scored_snapshot(settings):
    network = _network()
    service = _service(settings, network, FakeClock())

    snapshot = await service.get_pnode_snapshot()

    assert snapshot.seed == "seed-a"
    assert [n.pubkey for n in snapshot.nodes] == ["a", "b"]
    assert snapshot.metrics.total_nodes == 2
    assert snapshot.metrics.private_nodes == 1
    assert snapshot.metrics.latest_version == "1.0.0"
    assert snapshot.nodes[0].health_score == 100
    assert snapshot.nodes[0].status == "healthy"
    assert snapshot.fetched_at.startswith("2023-11-14T22:13:20")


@pytest.mark.asyncio
async def test_second_request_within_ttl_is_cached(settings):
    network = _network()
    service = _service(settings, network, FakeClock())

    first = await service.get_pnode_snapshot()
    calls = len(network.calls)
    second = await service.get_pnode_snapshot()

    assert second is first
    assert len(network.calls) == calls


@pytest.mark.asyncio
async def test_force_refresh_bypasses_cache(settings):
    network = _network()
    service = _service(settings, network, FakeClock())

    first = await service.get_pnode_snapshot()
    calls = len(network.calls)
    second = await service.get_pnode_snapshot(force_refresh=True)

    assert second is not first
    assert len(network.calls) > calls


@pytest.mark.asyncio
async def test_expired_entry_repolls(settings):
    network = _network()
    clock = FakeClock()
    service = _service(settings, network, clock)

    first = await service.get_pnode_snapshot()
    clock.advance(settings.cache_ttl_ms / 1000.0 + 1)
    second = await service.get_pnode_snapshot()

    assert second is not first


@pytest.mark.asyncio
async def test_custom_seeds_have_their_own_cache_entry(settings):
    network = _network()
    service = _service(settings, network, FakeClock())

    default = await service.get_pnode_snapshot()
    custom = await service.get_pnode_snapshot(custom_seeds=[" custom "])

    assert default.seed == "seed-a"
    assert custom.seed == "custom"
    assert [n.pubkey for n in custom.nodes] == ["c"]
    assert await service.get_pnode_snapshot() is default


@pytest.mark.asyncio
async def test_only_default_polls_record_history(settings, store):
    network = _network()
    history = HistoryStore(store, max_entries=10)
    service = _service(settings, network, FakeClock(), history)

    await service.get_pnode_snapshot(custom_seeds=["custom"])
    await service.drain()
    assert service.get_snapshot_history(10) == []

    await service.get_pnode_snapshot()
    await service.get_pnode_snapshot()  # cache hit, no new entry
    await service.drain()
    entries = service.get_snapshot_history(10)
    assert len(entries) == 1
    assert entries[0].total_nodes == 2


@pytest.mark.asyncio
async def test_history_failure_does_not_fail_the_poll(settings, store):
    async def broken_hook(previous, entry):
        raise RuntimeError("hook exploded")

    network = _network()
    history = HistoryStore(store, on_append=broken_hook)
    service = _service(settings, network, FakeClock(), history)

    snapshot = await service.get_pnode_snapshot()
    await service.drain()

    assert snapshot.metrics.total_nodes == 2
    assert len(service.get_snapshot_history(10)) == 1


@pytest.mark.asyncio
async def test_exhaustion_propagates_and_is_not_cached(settings):
    network = SeedNetwork({})
    service = _service(settings, network, FakeClock())

    with pytest.raises(SeedExhaustedError) as excinfo:
        await service.get_pnode_snapshot()
    assert excinfo.value.seeds == ["seed-a", "seed-b"]

    network.handlers["seed-b"] = lambda method, request: rpc_result([pod("x")])
    snapshot = await service.get_pnode_snapshot()
    assert snapshot.seed == "seed-b"


@pytest.mark.asyncio
async def test_scheduler_run_once_counts_failures(settings):
    network = SeedNetwork({"seed-a": lambda method, request: httpx.Response(500)})
    scheduler = PollScheduler(_service(settings, network, FakeClock()), interval_seconds=60)

    await scheduler.run_once()
    network.handlers["seed-a"] = lambda method, request: rpc_result([pod("a")])
    await scheduler.run_once()

    assert scheduler.polls == 2
    assert scheduler.failures == 1


@pytest.mark.asyncio
async def test_scheduler_start_and_stop(settings):
    scheduler = PollScheduler(_service(settings, _network(), FakeClock()), interval_seconds=3600)

    scheduler.start()
    assert scheduler.running
    await scheduler.stop()
    assert not scheduler.running


@pytest.mark.asyncio
async def test_slow_webhook_does_not_delay_the_snapshot(settings, store):
    release = asyncio.Event()
    delivered = []

    async def slow_receiver(request: httpx.Request) -> httpx.Response:
        await release.wait()
        delivered.append(request)
        return httpx.Response(200)

    configs = AlertConfigStore(store)
    configs.save_user_alert_configs(
        "tenant-1",
        [
            {
                "id": "ops",
                "url": "https://hooks.example.com/ops",
                "triggers": [{"type": "avgUsagePercentAbove", "percent": 10}],
            }
        ],
    )
    engine = AlertEngine(
        configs, AlertThrottleLog(store), transport=httpx.MockTransport(slow_receiver)
    )
    history = HistoryStore(store, on_append=engine.process_alert_webhooks)
    network = SeedNetwork(
        {"seed-a": lambda method, request: rpc_result([pod("a", storage_used=1024**4 // 2)])}
    )
    service = _service(settings, network, FakeClock(), history)

    snapshot = await asyncio.wait_for(service.get_pnode_snapshot(), timeout=1.0)
    assert snapshot.metrics.avg_usage_percent == pytest.approx(50.0)
    assert delivered == []

    release.set()
    await service.drain()
    await engine.aclose()

    assert len(delivered) == 1
    assert len(service.get_snapshot_history(10)) == 1


@pytest.mark.asyncio
async def test_zero_stale_threshold_still_polls(settings):
    settings = dataclasses.replace(settings, stale_threshold_seconds=0)
    service = _service(settings, _network(), FakeClock())

    snapshot = await service.get_pnode_snapshot()

    assert snapshot.metrics.total_nodes == 2
    assert all(node.status == "healthy" for node in snapshot.nodes)
