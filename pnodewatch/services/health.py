from __future__ import annotations

import math

from pnodewatch.core.config import STALE_THRESHOLD_SECONDS
from pnodewatch.core.models import Node, NodeStatus

UPTIME_TARGET_SECONDS: int = 7 * 24 * 3600
USAGE_CEILING_PERCENT: float = 90.0
PRIVATE_EXPOSURE_SCORE: float = 0.88

WEIGHT_UPTIME: float = 0.32
WEIGHT_FRESHNESS: float = 0.28
WEIGHT_USAGE: float = 0.18
WEIGHT_VERSION: float = 0.12
WEIGHT_EXPOSURE: float = 0.10

HEALTHY_MIN_SCORE: int = 80
WARNING_MIN_SCORE: int = 55


def determine_latest_version(nodes: list[Node]) -> tuple[str, int]:
    if not nodes:
        return "unknown", 0
    latest = nodes[0]
    for node in nodes:
        if node.version_value > latest.version_value:
            latest = node
    return latest.version, latest.version_value


def compute_health_score(
    node: Node,
    latest_version_value: int,
    now_seconds: float,
    stale_threshold_seconds: int = STALE_THRESHOLD_SECONDS,
) -> int:
    uptime_score = min(node.uptime_seconds / UPTIME_TARGET_SECONDS, 1.0)
    usage_score = 1.0 - min(node.storage_usage_percent / USAGE_CEILING_PERCENT, 1.0)
    lag = max(now_seconds - node.last_seen_seconds, 0.0)
    window = max(stale_threshold_seconds, 1) * 2
    freshness_score = 1.0 - min(lag / window, 1.0)
    if latest_version_value > 0:
        version_score = min(node.version_value / latest_version_value, 1.0)
    else:
        version_score = 1.0
    exposure_score = 1.0 if node.is_public else PRIVATE_EXPOSURE_SCORE

    score = (
        uptime_score * WEIGHT_UPTIME
        + freshness_score * WEIGHT_FRESHNESS
        + usage_score * WEIGHT_USAGE
        + version_score * WEIGHT_VERSION
        + exposure_score * WEIGHT_EXPOSURE
    )
    # Rounds half up, not half to even.
    return int(math.floor(max(0.0, min(1.0, score)) * 100 + 0.5))


def derive_status(health_score: int, is_stale: bool) -> NodeStatus:
    if is_stale:
        return "critical"
    if health_score >= HEALTHY_MIN_SCORE:
        return "healthy"
    if health_score >= WARNING_MIN_SCORE:
        return "warning"
    return "critical"


def finalize_nodes(
    nodes: list[Node],
    latest_version_value: int,
    now_seconds: float,
    stale_threshold_seconds: int = STALE_THRESHOLD_SECONDS,
) -> list[Node]:
    for node in nodes:
        node.health_score = compute_health_score(
            node, latest_version_value, now_seconds, stale_threshold_seconds
        )
        node.status = derive_status(node.health_score, node.is_stale)
    return nodes
