from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from pnodewatch.core.config import STALE_THRESHOLD_SECONDS
from pnodewatch.core.models import Node, RawPod, ReleaseChannel


def sanitize_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    number = float(value)
    if not math.isfinite(number):
        return 0.0
    return max(0.0, number)


def resolve_usage_percent(committed: float, used: float, provided: Any) -> float:
    reported = sanitize_number(provided)
    if reported > 0:
        percent = reported * 100 if reported <= 1 else reported
    elif committed > 0 and used > 0:
        percent = (used / committed) * 100
    else:
        percent = 0.0
    return min(percent, 100.0)


def resolve_channel(version: Any) -> ReleaseChannel:
    if not isinstance(version, str) or not version.strip():
        return "unknown"
    lowered = version.lower()
    if "trynet" in lowered:
        return "trynet"
    if "dev" in lowered:
        return "devnet"
    return "mainnet"


def version_to_number(version: Any) -> int:
    if not isinstance(version, str) or not version.strip():
        return 0
    clean = version.strip().split("-")[0]
    segments = clean.split(".")
    parts: list[int] = []
    for segment in (segments + ["0", "0", "0"])[:3]:
        try:
            parts.append(max(0, int(segment)))
        except ValueError:
            parts.append(0)
    major, minor, patch = parts
    return major * 1_000_000 + minor * 1_000 + patch


def split_address(address: Any) -> tuple[str | None, int | None]:
    if not isinstance(address, str) or not address:
        return None, None
    ip, _, port = address.partition(":")
    try:
        port_num: int | None = int(port) if port else None
    except ValueError:
        port_num = None
    return ip or None, port_num


def _seconds_to_iso(seconds: float) -> str:
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return datetime.fromtimestamp(0, tz=timezone.utc).isoformat()


def _optional_port(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return int(value)


def normalize_pod(pod: RawPod, *, now_seconds: float, stale_threshold_seconds: int) -> Node | None:
    pubkey = pod.pubkey.strip() if isinstance(pod.pubkey, str) else ""
    if not pubkey:
        return None

    address = pod.address if isinstance(pod.address, str) else None
    ip, port = split_address(address)
    committed = sanitize_number(pod.storage_committed)
    used = sanitize_number(pod.storage_used)
    uptime = sanitize_number(pod.uptime)
    last_seen = sanitize_number(pod.last_seen_timestamp)
    version = pod.version.strip() if isinstance(pod.version, str) else ""

    return Node(
        pubkey=pubkey,
        address=address,
        ip=ip,
        gossip_port=port,
        rpc_port=_optional_port(pod.rpc_port),
        is_public=bool(pod.is_public),
        version=version or "unknown",
        channel=resolve_channel(pod.version),
        uptime_seconds=uptime,
        uptime_hours=uptime / 3600,
        last_seen_seconds=last_seen,
        last_seen_iso=_seconds_to_iso(last_seen),
        storage_committed=committed,
        storage_used=used,
        storage_free=max(committed - used, 0.0),
        storage_usage_percent=resolve_usage_percent(committed, used, pod.storage_usage_percent),
        is_stale=(now_seconds - last_seen) > stale_threshold_seconds,
        version_value=version_to_number(pod.version),
    )


def normalize_pods(
    pods: Iterable[Any],
    *,
    now_seconds: float,
    stale_threshold_seconds: int = STALE_THRESHOLD_SECONDS,
) -> list[Node]:
    """Sanitize raw gossip records into nodes, one per pubkey.

    The same node can be reported through several gossip paths; the record with
    the most recent ``last_seen_timestamp`` wins, the first one on a tie.
    """
    deduped: dict[str, Node] = {}
    for item in pods:
        raw = item if isinstance(item, RawPod) else RawPod.from_wire(item)
        if raw is None:
            continue
        node = normalize_pod(
            raw, now_seconds=now_seconds, stale_threshold_seconds=stale_threshold_seconds
        )
        if node is None:
            continue
        existing = deduped.get(node.pubkey)
        if existing is None or node.last_seen_seconds > existing.last_seen_seconds:
            deduped[node.pubkey] = node
    return list(deduped.values())
