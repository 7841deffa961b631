from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from fastapi import FastAPI

from pnodewatch.api.routes import router as api_router, tenant_required_handler
from pnodewatch.collectors.prpc import PrpcClient
from pnodewatch.core.config import APP_NAME, Settings, load_settings
from pnodewatch.core.errors import TenantRequiredError
from pnodewatch.core.logging import setup_logging
from pnodewatch.services.alerts import AlertEngine
from pnodewatch.services.scheduler import PollScheduler
from pnodewatch.services.snapshot_cache import SnapshotCache
from pnodewatch.services.snapshots import SnapshotService
from pnodewatch.storage.alert_configs import AlertConfigStore
from pnodewatch.storage.alert_log import AlertThrottleLog
from pnodewatch.storage.history import HistoryStore
from pnodewatch.storage.store import JsonStore, build_store

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: JsonStore
    client: PrpcClient
    cache: SnapshotCache
    history: HistoryStore
    alert_configs: AlertConfigStore
    alert_engine: AlertEngine
    snapshots: SnapshotService
    scheduler: PollScheduler | None = None

    async def aclose(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.stop()
        await self.snapshots.drain()
        await self.client.aclose()
        await self.alert_engine.aclose()


def build_services(
    settings: Settings,
    *,
    store: JsonStore | None = None,
    rpc_transport: httpx.AsyncBaseTransport | None = None,
    webhook_transport: httpx.AsyncBaseTransport | None = None,
) -> Services:
    store = store if store is not None else build_store(settings)
    client = PrpcClient(
        rpc_port=settings.rpc_port,
        timeout_ms=settings.request_timeout_ms,
        transport=rpc_transport,
    )
    alert_configs = AlertConfigStore(
        store,
        legacy_path=settings.legacy_alert_path if settings.legacy_alerts_enabled else None,
    )
    alert_engine = AlertEngine(
        alert_configs,
        AlertThrottleLog(store, cas_attempts=settings.store_cas_attempts),
        timeout_ms=settings.request_timeout_ms,
        transport=webhook_transport,
    )
    history = HistoryStore(
        store,
        max_entries=settings.history_max_entries,
        on_append=alert_engine.process_alert_webhooks,
        cas_attempts=settings.store_cas_attempts,
    )
    cache = SnapshotCache(settings.cache_ttl_ms)
    snapshots = SnapshotService(settings, client, cache, history)
    scheduler = (
        PollScheduler(snapshots, settings.poll_interval_seconds)
        if settings.poll_interval_seconds > 0
        else None
    )
    return Services(
        settings=settings,
        store=store,
        client=client,
        cache=cache,
        history=history,
        alert_configs=alert_configs,
        alert_engine=alert_engine,
        snapshots=snapshots,
        scheduler=scheduler,
    )


def create_app(
    settings: Settings | None = None,
    *,
    services: Services | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        active = services or build_services(settings or load_settings())
        app.state.services = active
        if active.scheduler is not None:
            active.scheduler.start()
        logger.info(
            "%s started backend=%s poll_interval=%ss",
            APP_NAME,
            active.settings.store_backend,
            active.settings.poll_interval_seconds,
        )
        try:
            yield
        finally:
            await active.aclose()
            logger.info("%s stopped", APP_NAME)

    app = FastAPI(title=APP_NAME, lifespan=lifespan)
    app.include_router(api_router)
    app.add_exception_handler(TenantRequiredError, tenant_required_handler)
    return app


setup_logging()
app = create_app()
