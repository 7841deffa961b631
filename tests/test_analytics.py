from __future__ import annotations

import pytest

from conftest import NOW_SECONDS, pod
from pnodewatch.services.analytics import TB, abbreviate, build_analytics
from pnodewatch.services.health import determine_latest_version, finalize_nodes
from pnodewatch.services.normalizer import normalize_pods


def _nodes(pods):
    nodes = normalize_pods(pods, now_seconds=NOW_SECONDS, stale_threshold_seconds=1800)
    _, latest = determine_latest_version(nodes)
    return finalize_nodes(nodes, latest, NOW_SECONDS, 1800)


def _metrics(pods):
    nodes = _nodes(pods)
    label, _ = determine_latest_version(nodes)
    return build_analytics(nodes, label)


def test_empty_node_list():
    metrics = build_analytics([], "unknown")
    assert metrics.total_nodes == 0
    assert metrics.avg_usage_percent == 0
    assert metrics.avg_uptime_hours == 0
    assert metrics.max_uptime_hours == 0
    assert metrics.version_distribution == []
    assert [b.nodes for b in metrics.usage_buckets] == [0, 0, 0, 0, 0]
    assert all(b.percentage == 0 for b in metrics.usage_buckets)
    assert metrics.storage_leaders == []


def test_totals_and_averages():
    metrics = _metrics(
        [
            pod("a", is_public=True, uptime=3600, storage_committed=2 * TB, storage_used=TB),
            pod("b", is_public=False, uptime=7200, storage_committed=TB, storage_used=0),
            pod("c", is_public=True, uptime=10800, storage_committed=TB, storage_used=0,
                last_seen_timestamp=NOW_SECONDS - 4000),
        ]
    )
    assert metrics.total_nodes == 3
    assert metrics.public_nodes == 2
    assert metrics.private_nodes == 1
    assert metrics.avg_uptime_hours == pytest.approx(2.0)
    assert metrics.max_uptime_hours == pytest.approx(3.0)
    assert metrics.committed_tb == pytest.approx(4.0)
    assert metrics.used_tb == pytest.approx(1.0)
    # mean of 50%, 0%, 0%; not volume weighted
    assert metrics.avg_usage_percent == pytest.approx(50 / 3)
    assert metrics.stale == 1
    assert metrics.healthy + metrics.warning + metrics.critical == 3


def test_version_distribution_orders_by_count_then_encounter():
    pods = [pod(f"n{i}", version=v) for i, v in enumerate(
        ["1.0.0", "0.9.0", "0.9.0", "1.0.0", "0.8.0", "1.1.0", "1.1.0"]
    )]
    metrics = _metrics(pods)
    versions = [(v.version, v.count) for v in metrics.version_distribution]
    assert versions == [("1.0.0", 2), ("0.9.0", 2), ("1.1.0", 2), ("0.8.0", 1)]
    assert metrics.version_distribution[0].percentage == pytest.approx(200 / 7)


def test_version_distribution_keeps_top_eight():
    pods = [pod(f"n{i}", version=f"1.0.{i}") for i in range(12)]
    assert len(_metrics(pods).version_distribution) == 8


def test_latest_version_and_outdated_count():
    metrics = _metrics([pod("a", version="1.0.0"), pod("b", version="1.1.0"), pod("c", version="1.1.0")])
    assert metrics.latest_version == "1.1.0"
    assert metrics.outdated_nodes == 1


def test_usage_bucket_boundaries():
    values = [0.005, 0.02, 0.05, 0.2, 0.5, 1.5, 4.99, 5.5, 50]
    pods = [
        pod(f"n{i}", storage_committed=1_000_000, storage_used=v * 10_000)
        for i, v in enumerate(values)
    ]
    metrics = _metrics(pods)
    assert [b.label for b in metrics.usage_buckets] == [
        "< 0.01%",
        "0.01% - 0.1%",
        "0.1% - 1%",
        "1% - 5%",
        "> 5%",
    ]
    assert [b.nodes for b in metrics.usage_buckets] == [1, 2, 2, 2, 2]
    assert sum(b.percentage for b in metrics.usage_buckets) == pytest.approx(100.0)


def test_storage_leaders_top_six_without_empty_nodes():
    pods = [pod(f"key-number-{i:02d}", storage_used=i * TB // 10, storage_committed=TB) for i in range(9)]
    leaders = _metrics(pods).storage_leaders
    assert len(leaders) == 6
    assert [leader.pubkey for leader in leaders] == [f"key-number-{i:02d}" for i in (8, 7, 6, 5, 4, 3)]
    assert leaders[0].used_tb == pytest.approx(0.8, rel=1e-6)
    assert leaders[0].short_key == "key-nu…r-08"


def test_storage_leaders_exclude_zero_usage():
    leaders = _metrics([pod("a", storage_used=0), pod("b", storage_used=5)]).storage_leaders
    assert [leader.pubkey for leader in leaders] == ["b"]


def test_abbreviate_short_keys_untouched():
    assert abbreviate("short") == "short"
    assert abbreviate("0123456789") == "0123456789"
    assert abbreviate("0123456789A") == "012345…789A"
