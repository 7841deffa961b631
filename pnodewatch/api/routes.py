from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from pnodewatch.api.schemas import (
    ErrorResponse,
    HealthResponse,
    HistoryResponse,
    SnapshotResponse,
    WebhooksResponse,
)
from pnodewatch.core.alert_schema import TENANT_ID_PATTERN, WEBHOOK_ID_PATTERN, AlertWebhookConfig
from pnodewatch.core.config import HISTORY_DEFAULT_LIMIT
from pnodewatch.core.errors import SeedExhaustedError, TenantRequiredError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

TENANT_HEADERS: tuple[str, ...] = ("x-alert-user", "x-tenant-id", "x-user-id")
TENANT_QUERY_KEYS: tuple[str, ...] = ("user", "tenant", "token")
_TENANT_RE = re.compile(TENANT_ID_PATTERN)
_WEBHOOK_ID_RE = re.compile(WEBHOOK_ID_PATTERN)

NO_STORE = {"Cache-Control": "no-store"}


def _normalize_tenant_id(value: str | None) -> str | None:
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed or not _TENANT_RE.match(trimmed):
        return None
    return trimmed


def resolve_tenant_id(request: Request) -> str | None:
    for header in TENANT_HEADERS:
        tenant_id = _normalize_tenant_id(request.headers.get(header))
        if tenant_id:
            return tenant_id
    for key in TENANT_QUERY_KEYS:
        tenant_id = _normalize_tenant_id(request.query_params.get(key))
        if tenant_id:
            return tenant_id
    return None


def _error(status_code: int, message: str, **meta: Any) -> JSONResponse:
    body = ErrorResponse(meta={"message": message, **meta})
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=NO_STORE)


def require_tenant(request: Request) -> str:
    tenant_id = resolve_tenant_id(request)
    if not tenant_id:
        raise TenantRequiredError("Missing x-alert-user header")
    return tenant_id


async def tenant_required_handler(request: Request, exc: Exception) -> JSONResponse:
    return _error(401, str(exc))


def _valid_webhook_id(webhook_id: str) -> bool:
    return 2 <= len(webhook_id) <= 64 and bool(_WEBHOOK_ID_RE.match(webhook_id))


@router.get("/health")
def health() -> HealthResponse:
    return HealthResponse(ok=True, data={"status": "ok"}, meta={})


@router.get("/pnodes", response_model=None)
async def pnodes(
    request: Request,
    refresh: str | None = Query(default=None),
    seeds: str | None = Query(default=None),
    seed: str | None = Query(default=None),
) -> SnapshotResponse | JSONResponse:
    raw_seeds = seed or seeds
    custom_seeds = [s.strip() for s in raw_seeds.split(",") if s.strip()] if raw_seeds else None
    force_refresh = refresh == "1"

    service = request.app.state.services.snapshots
    try:
        snapshot = await service.get_pnode_snapshot(
            force_refresh=force_refresh, custom_seeds=custom_seeds
        )
    except SeedExhaustedError as e:
        logger.error("/api/pnodes: %s", e)
        return _error(
            502,
            str(e),
            failures=[{"seed": s, "error": reason} for s, reason in e.failures],
        )

    return SnapshotResponse(
        ok=True,
        data=snapshot.to_dict(),
        meta={
            "seed": snapshot.seed,
            "fetched_at": snapshot.fetched_at,
            "custom_seeds": custom_seeds or [],
            "refresh": force_refresh,
        },
    )


@router.get("/history")
def history(
    request: Request,
    limit: int = Query(default=HISTORY_DEFAULT_LIMIT, ge=1, le=1000),
) -> HistoryResponse:
    service = request.app.state.services.snapshots
    entries = service.get_snapshot_history(limit)
    return HistoryResponse(
        ok=True,
        data=[entry.to_dict() for entry in entries],
        meta={
            "limit": limit,
            "count": len(entries),
            "ts_utc": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.get("/alerts/webhooks", response_model=None)
def list_webhooks(
    request: Request, tenant_id: str = Depends(require_tenant)
) -> WebhooksResponse | JSONResponse:
    configs = request.app.state.services.alert_configs
    webhooks = configs.get_user_alert_configs(tenant_id)
    return WebhooksResponse(ok=True, data=webhooks, meta={"tenant_id": tenant_id})


@router.post("/alerts/webhooks", response_model=None, status_code=201)
def create_webhook(
    request: Request,
    payload: AlertWebhookConfig,
    tenant_id: str = Depends(require_tenant),
) -> WebhooksResponse | JSONResponse:
    configs = request.app.state.services.alert_configs
    existing = configs.get_user_alert_configs(tenant_id)
    if any(hook.id == payload.id for hook in existing):
        return _error(409, "Webhook id already exists", webhook_id=payload.id)

    webhooks = configs.save_user_alert_configs(tenant_id, [*existing, payload])
    logger.info("Webhook %s/%s created", tenant_id, payload.id)
    return WebhooksResponse(ok=True, data=webhooks, meta={"tenant_id": tenant_id})


@router.put("/alerts/webhooks/{webhook_id}", response_model=None)
def update_webhook(
    webhook_id: str,
    request: Request,
    payload: AlertWebhookConfig,
    tenant_id: str = Depends(require_tenant),
) -> WebhooksResponse | JSONResponse:
    webhook_id = webhook_id.strip()
    if not _valid_webhook_id(webhook_id):
        return _error(400, "Invalid webhook id")
    if payload.id != webhook_id:
        return _error(400, "Webhook id mismatch")

    configs = request.app.state.services.alert_configs
    existing = configs.get_user_alert_configs(tenant_id)
    index = next((i for i, hook in enumerate(existing) if hook.id == webhook_id), None)
    if index is None:
        return _error(404, "Webhook not found", webhook_id=webhook_id)

    updated = list(existing)
    updated[index] = payload
    webhooks = configs.save_user_alert_configs(tenant_id, updated)
    logger.info("Webhook %s/%s updated", tenant_id, webhook_id)
    return WebhooksResponse(ok=True, data=webhooks, meta={"tenant_id": tenant_id})


@router.delete("/alerts/webhooks/{webhook_id}", response_model=None)
def delete_webhook(
    webhook_id: str, request: Request, tenant_id: str = Depends(require_tenant)
) -> WebhooksResponse | JSONResponse:
    webhook_id = webhook_id.strip()
    if not _valid_webhook_id(webhook_id):
        return _error(400, "Invalid webhook id")

    configs = request.app.state.services.alert_configs
    existing = configs.get_user_alert_configs(tenant_id)
    remaining = [hook for hook in existing if hook.id != webhook_id]
    if len(remaining) == len(existing):
        return _error(404, "Webhook not found", webhook_id=webhook_id)

    webhooks = configs.save_user_alert_configs(tenant_id, remaining)
    logger.info("Webhook %s/%s deleted", tenant_id, webhook_id)
    return WebhooksResponse(ok=True, data=webhooks, meta={"tenant_id": tenant_id})
