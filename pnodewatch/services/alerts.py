from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx

from pnodewatch.core.alert_schema import AlertTrigger, AlertWebhookConfig
from pnodewatch.core.config import ALERT_DEFAULT_COOLDOWN_MINUTES, REQUEST_TIMEOUT_MS
from pnodewatch.core.models import SnapshotHistoryEntry
from pnodewatch.storage.alert_configs import AlertConfigStore, ConfigTuple
from pnodewatch.storage.alert_log import AlertThrottleLog, throttle_key

logger = logging.getLogger(__name__)

SECRET_HEADER: str = "x-alert-secret"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _threshold(value: float) -> str:
    return f"{value:g}"


@dataclass(frozen=True, slots=True)
class TriggerMatch:
    tenant_id: str
    config: AlertWebhookConfig
    trigger: AlertTrigger
    trigger_index: int
    reason: str

    @property
    def key(self) -> str:
        return throttle_key(self.tenant_id, self.config.id, self.trigger_index)


@dataclass(slots=True)
class DispatchReport:
    fired: int = 0
    suppressed: int = 0
    delivered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def evaluate_trigger(
    trigger: AlertTrigger,
    previous: SnapshotHistoryEntry | None,
    current: SnapshotHistoryEntry,
) -> str | None:
    """Return a human readable reason when ``trigger`` fires, else None."""
    if trigger.type == "totalNodesDrop":
        if previous is None or previous.total_nodes <= 0:
            return None
        delta = previous.total_nodes - current.total_nodes
        if delta <= 0:
            return None
        percent_drop = (delta / previous.total_nodes) * 100
        if percent_drop < trigger.percent:
            return None
        return (
            f"Total nodes dropped {percent_drop:.2f}% "
            f"({previous.total_nodes} → {current.total_nodes})"
        )

    if trigger.type == "healthyPercentBelow":
        if current.total_nodes <= 0:
            return None
        healthy_percent = (current.healthy / current.total_nodes) * 100
        if healthy_percent >= trigger.percent:
            return None
        return f"Healthy share {healthy_percent:.2f}% is below {_threshold(trigger.percent)}%"

    if trigger.type == "criticalPercentAbove":
        if current.total_nodes <= 0:
            return None
        critical_percent = (current.critical / current.total_nodes) * 100
        if critical_percent <= trigger.percent:
            return None
        return f"Critical share {critical_percent:.2f}% exceeds {_threshold(trigger.percent)}%"

    if trigger.type == "avgUsagePercentAbove":
        if current.avg_usage_percent <= trigger.percent:
            return None
        return (
            f"Average usage {current.avg_usage_percent:.2f}% exceeds "
            f"{_threshold(trigger.percent)}%"
        )

    return None


def cooldown_for(trigger: AlertTrigger) -> timedelta:
    minutes = trigger.cooldown_minutes or ALERT_DEFAULT_COOLDOWN_MINUTES
    return timedelta(minutes=minutes)


class AlertEngine:
    """Evaluates webhook triggers against consecutive history entries.

    Each (tenant, webhook, trigger index) is either idle or cooling down; the
    throttle log holds the last successful dispatch time and is only advanced
    for deliveries that got a 2xx answer.
    """

    def __init__(
        self,
        configs: AlertConfigStore,
        throttle_log: AlertThrottleLog,
        *,
        timeout_ms: int = REQUEST_TIMEOUT_MS,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._configs = configs
        self._log = throttle_log
        self._clock = clock
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_ms / 1000.0),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def collect_triggered_events(
        self,
        configs: list[ConfigTuple],
        previous: SnapshotHistoryEntry | None,
        current: SnapshotHistoryEntry,
        log: dict[str, str],
        now: datetime,
        report: DispatchReport,
    ) -> list[TriggerMatch]:
        matches: list[TriggerMatch] = []
        for tenant_id, config in configs:
            if not config.is_enabled or not config.triggers:
                continue
            for index, trigger in enumerate(config.triggers):
                reason = evaluate_trigger(trigger, previous, current)
                if reason is None:
                    continue
                report.fired += 1
                match = TriggerMatch(
                    tenant_id=tenant_id,
                    config=config,
                    trigger=trigger,
                    trigger_index=index,
                    reason=reason,
                )
                last_fired = self._log.last_fired(log, match.key)
                if last_fired is not None and now - last_fired < cooldown_for(trigger):
                    report.suppressed += 1
                    logger.debug("Alert %s cooling down since %s", match.key, last_fired.isoformat())
                    continue
                matches.append(match)
        return matches

    async def dispatch_webhook(
        self,
        match: TriggerMatch,
        current: SnapshotHistoryEntry,
        previous: SnapshotHistoryEntry | None,
        generated_at: str,
    ) -> bool:
        headers = {"Content-Type": "application/json"}
        if match.config.secret:
            headers[SECRET_HEADER] = match.config.secret
        body: dict[str, Any] = {
            "webhookId": match.config.id,
            "triggerType": match.trigger.type,
            "reason": match.reason,
            "generatedAt": generated_at,
            "tenantId": match.tenant_id,
            "current": current.to_dict(),
            "previous": previous.to_dict() if previous is not None else None,
        }
        try:
            response = await self._client.post(match.config.url, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Alert webhook %s/%s failed: %s", match.tenant_id, match.config.id, e)
            return False
        if not response.is_success:
            logger.error(
                "Alert webhook %s/%s responded with %s",
                match.tenant_id,
                match.config.id,
                response.status_code,
            )
            return False
        return True

    async def _deliver(
        self,
        match: TriggerMatch,
        current: SnapshotHistoryEntry,
        previous: SnapshotHistoryEntry | None,
        generated_at: str,
    ) -> bool:
        try:
            return await self.dispatch_webhook(match, current, previous, generated_at)
        except Exception:
            logger.exception("Failed to dispatch alert webhook %s", match.key)
            return False

    async def process_alert_webhooks(
        self,
        previous: SnapshotHistoryEntry | None,
        current: SnapshotHistoryEntry,
    ) -> DispatchReport:
        report = DispatchReport()
        try:
            configs = self._configs.load_all_alert_configs()
            if not configs:
                return report
            log = self._log.load()
            now = self._clock()
            matches = self.collect_triggered_events(configs, previous, current, log, now, report)
            if not matches:
                return report

            generated_at = now.isoformat()
            results = await asyncio.gather(
                *(self._deliver(m, current, previous, generated_at) for m in matches),
                return_exceptions=True,
            )
            for match, delivered in zip(matches, results):
                if delivered is True:
                    report.delivered.append(match.key)
                else:
                    report.failed.append(match.key)

            if report.delivered:
                self._log.mark_fired(report.delivered, generated_at)
        except Exception:
            logger.exception("Alert webhook processing failed")
        finally:
            if report.fired:
                logger.info(
                    "alerts fired=%d suppressed=%d delivered=%d failed=%d",
                    report.fired,
                    report.suppressed,
                    len(report.delivered),
                    len(report.failed),
                )
        return report
