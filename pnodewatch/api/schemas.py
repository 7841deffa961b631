from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from pnodewatch.core.alert_schema import AlertWebhookConfig


class HealthData(BaseModel):
    status: str


class HealthResponse(BaseModel):
    ok: bool
    data: HealthData | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class SnapshotResponse(BaseModel):
    ok: bool
    data: dict[str, Any] | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class HistoryEntryData(BaseModel):
    timestamp: str
    total_nodes: int
    used_tb: float
    committed_tb: float
    avg_usage_percent: float
    healthy: int
    warning: int
    critical: int


class HistoryResponse(BaseModel):
    ok: bool
    data: list[HistoryEntryData] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class WebhooksResponse(BaseModel):
    ok: bool
    data: list[AlertWebhookConfig] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    ok: bool = False
    data: None = None
    meta: dict[str, Any] = Field(default_factory=dict)
