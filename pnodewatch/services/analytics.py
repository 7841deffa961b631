from __future__ import annotations

from collections import Counter
from typing import Callable

from pnodewatch.core.models import (
    AnalyticsMetrics,
    Node,
    StorageLeader,
    UsageBucket,
    VersionShare,
)

TB: int = 1024**4
VERSION_DISTRIBUTION_LIMIT: int = 8
STORAGE_LEADERS_LIMIT: int = 6

USAGE_BANDS: tuple[tuple[str, Callable[[float], bool]], ...] = (
    ("< 0.01%", lambda v: v < 0.01),
    ("0.01% - 0.1%", lambda v: 0.01 <= v < 0.1),
    ("0.1% - 1%", lambda v: 0.1 <= v < 1),
    ("1% - 5%", lambda v: 1 <= v < 5),
    ("> 5%", lambda v: v >= 5),
)


def _percentage(count: int, total: int) -> float:
    return (count / total) * 100 if total else 0.0


def abbreviate(value: str) -> str:
    if len(value) <= 10:
        return value
    return f"{value[:6]}…{value[-4:]}"


def build_version_distribution(nodes: list[Node]) -> list[VersionShare]:
    # Counter keeps insertion order and most_common() is stable on ties.
    counts = Counter(node.version for node in nodes)
    return [
        VersionShare(version=version, count=count, percentage=_percentage(count, len(nodes)))
        for version, count in counts.most_common(VERSION_DISTRIBUTION_LIMIT)
    ]


def build_usage_buckets(nodes: list[Node]) -> list[UsageBucket]:
    buckets: list[UsageBucket] = []
    for label, predicate in USAGE_BANDS:
        count = sum(1 for node in nodes if predicate(node.storage_usage_percent))
        buckets.append(UsageBucket(label=label, nodes=count, percentage=_percentage(count, len(nodes))))
    return buckets


def build_storage_leaders(nodes: list[Node]) -> list[StorageLeader]:
    ranked = sorted(
        (node for node in nodes if node.storage_used > 0),
        key=lambda node: node.storage_used,
        reverse=True,
    )
    return [
        StorageLeader(
            pubkey=node.pubkey,
            short_key=abbreviate(node.pubkey),
            address=node.address,
            used_tb=node.storage_used / TB,
            committed_tb=node.storage_committed / TB,
            usage_percent=node.storage_usage_percent,
            version=node.version,
            is_public=node.is_public,
            status=node.status,
        )
        for node in ranked[:STORAGE_LEADERS_LIMIT]
    ]


def build_analytics(nodes: list[Node], latest_version: str) -> AnalyticsMetrics:
    total = len(nodes)
    divisor = total or 1
    public = sum(1 for node in nodes if node.is_public)

    return AnalyticsMetrics(
        total_nodes=total,
        public_nodes=public,
        private_nodes=total - public,
        avg_uptime_hours=sum(node.uptime_hours for node in nodes) / divisor,
        max_uptime_hours=max((node.uptime_hours for node in nodes), default=0.0),
        committed_tb=sum(node.storage_committed for node in nodes) / TB,
        used_tb=sum(node.storage_used for node in nodes) / TB,
        avg_usage_percent=sum(node.storage_usage_percent for node in nodes) / divisor,
        latest_version=latest_version,
        outdated_nodes=sum(1 for node in nodes if node.version != latest_version),
        healthy=sum(1 for node in nodes if node.status == "healthy"),
        warning=sum(1 for node in nodes if node.status == "warning"),
        critical=sum(1 for node in nodes if node.status == "critical"),
        stale=sum(1 for node in nodes if node.is_stale),
        version_distribution=build_version_distribution(nodes),
        usage_buckets=build_usage_buckets(nodes),
        storage_leaders=build_storage_leaders(nodes),
    )
