from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from pnodewatch.collectors.prpc import METHOD_PODS, METHOD_PODS_WITH_STATS, PrpcClient
from pnodewatch.core.config import DEFAULT_SEEDS
from pnodewatch.core.errors import RpcError, SeedExhaustedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DiscoveryResult:
    pods: list[Any]
    seed: str


def normalize_seed_list(seeds: Iterable[str] | None) -> list[str]:
    if not seeds:
        return []
    return [seed.strip() for seed in seeds if seed and seed.strip()]


def resolve_seeds(
    custom_seeds: Iterable[str] | None = None,
    env_seeds: Iterable[str] | None = None,
    default_seeds: Sequence[str] = DEFAULT_SEEDS,
) -> list[str]:
    custom = normalize_seed_list(custom_seeds)
    if custom:
        return custom
    env = normalize_seed_list(env_seeds)
    if env:
        return env
    return list(default_seeds)


def _pods_of(payload: dict[str, Any]) -> list[Any]:
    pods = payload.get("pods")
    return pods if isinstance(pods, list) else []


async def fetch_from_seed(client: PrpcClient, seed: str) -> list[Any]:
    try:
        pods = _pods_of(await client.call(seed, METHOD_PODS_WITH_STATS))
        if pods:
            return pods
    except RpcError as e:
        logger.debug("%s failed for %s: %s", METHOD_PODS_WITH_STATS, seed, e)

    return _pods_of(await client.call(seed, METHOD_PODS))


async def discover_pods(client: PrpcClient, seeds: Sequence[str]) -> DiscoveryResult:
    failures: list[tuple[str, str]] = []
    for seed in seeds:
        try:
            pods = await fetch_from_seed(client, seed)
        except RpcError as e:
            failures.append((seed, str(e)))
            logger.warning("Seed %s failed: %s", seed, e)
            continue
        if not pods:
            failures.append((seed, "Seed returned no pods"))
            logger.warning("Seed %s returned no pods", seed)
            continue
        return DiscoveryResult(pods=pods, seed=seed)

    raise SeedExhaustedError(failures)
