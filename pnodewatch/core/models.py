from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

NodeStatus = Literal["healthy", "warning", "critical"]
ReleaseChannel = Literal["mainnet", "trynet", "devnet", "unknown"]

RAW_POD_FIELDS: tuple[str, ...] = (
    "address",
    "is_public",
    "last_seen_timestamp",
    "pubkey",
    "rpc_port",
    "storage_committed",
    "storage_usage_percent",
    "storage_used",
    "uptime",
    "version",
)


@dataclass(frozen=True, slots=True)
class RawPod:
    """One pod record as gossiped by a seed. Values are untrusted and unchecked."""

    address: Any = None
    is_public: Any = None
    last_seen_timestamp: Any = None
    pubkey: Any = None
    rpc_port: Any = None
    storage_committed: Any = None
    storage_usage_percent: Any = None
    storage_used: Any = None
    uptime: Any = None
    version: Any = None

    @classmethod
    def from_wire(cls, item: Any) -> RawPod | None:
        if not isinstance(item, dict):
            return None
        return cls(**{name: item.get(name) for name in RAW_POD_FIELDS})


@dataclass(slots=True)
class Node:
    pubkey: str
    address: str | None
    ip: str | None
    gossip_port: int | None
    rpc_port: int | None
    is_public: bool
    version: str
    channel: ReleaseChannel
    uptime_seconds: float
    uptime_hours: float
    last_seen_seconds: float
    last_seen_iso: str
    storage_committed: float
    storage_used: float
    storage_free: float
    storage_usage_percent: float
    is_stale: bool
    version_value: int = 0
    health_score: int = 0
    status: NodeStatus = "critical"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("version_value", None)
        return data


@dataclass(frozen=True, slots=True)
class VersionShare:
    version: str
    count: int
    percentage: float


@dataclass(frozen=True, slots=True)
class UsageBucket:
    label: str
    nodes: int
    percentage: float


@dataclass(frozen=True, slots=True)
class StorageLeader:
    pubkey: str
    short_key: str
    address: str | None
    used_tb: float
    committed_tb: float
    usage_percent: float
    version: str
    is_public: bool
    status: NodeStatus


@dataclass(slots=True)
class AnalyticsMetrics:
    total_nodes: int = 0
    public_nodes: int = 0
    private_nodes: int = 0
    avg_uptime_hours: float = 0.0
    max_uptime_hours: float = 0.0
    committed_tb: float = 0.0
    used_tb: float = 0.0
    avg_usage_percent: float = 0.0
    latest_version: str = "unknown"
    outdated_nodes: int = 0
    healthy: int = 0
    warning: int = 0
    critical: int = 0
    stale: int = 0
    version_distribution: list[VersionShare] = field(default_factory=list)
    usage_buckets: list[UsageBucket] = field(default_factory=list)
    storage_leaders: list[StorageLeader] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Snapshot:
    nodes: list[Node]
    metrics: AnalyticsMetrics
    fetched_at: str
    seed: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "metrics": self.metrics.to_dict(),
            "fetched_at": self.fetched_at,
            "seed": self.seed,
        }


@dataclass(frozen=True, slots=True)
class SnapshotHistoryEntry:
    timestamp: str
    total_nodes: int
    used_tb: float
    committed_tb: float
    avg_usage_percent: float
    healthy: int
    warning: int
    critical: int

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> SnapshotHistoryEntry:
        m = snapshot.metrics
        return cls(
            timestamp=snapshot.fetched_at,
            total_nodes=m.total_nodes,
            used_tb=m.used_tb,
            committed_tb=m.committed_tb,
            avg_usage_percent=m.avg_usage_percent,
            healthy=m.healthy,
            warning=m.warning,
            critical=m.critical,
        )

    @classmethod
    def from_dict(cls, data: Any) -> SnapshotHistoryEntry | None:
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                timestamp=str(data["timestamp"]),
                total_nodes=int(data.get("total_nodes") or 0),
                used_tb=float(data.get("used_tb") or 0.0),
                committed_tb=float(data.get("committed_tb") or 0.0),
                avg_usage_percent=float(data.get("avg_usage_percent") or 0.0),
                healthy=int(data.get("healthy") or 0),
                warning=int(data.get("warning") or 0),
                critical=int(data.get("critical") or 0),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
