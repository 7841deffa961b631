from __future__ import annotations

import itertools
import json
import logging
import time
from typing import Any

import httpx

from pnodewatch.core.config import REQUEST_TIMEOUT_MS, RPC_PORT
from pnodewatch.core.errors import (
    RpcHttpStatusError,
    RpcResponseError,
    RpcTimeoutError,
    RpcTransportError,
)

logger = logging.getLogger(__name__)

METHOD_PODS_WITH_STATS: str = "get-pods-with-stats"
METHOD_PODS: str = "get-pods"


def build_seed_url(seed: str, default_port: int = RPC_PORT) -> str:
    trimmed = seed.strip()
    if trimmed.startswith("http://") or trimmed.startswith("https://"):
        if trimmed.endswith("/rpc"):
            return trimmed
        return f"{trimmed.rstrip('/')}/rpc"

    host, _, explicit_port = trimmed.partition(":")
    port = explicit_port or str(default_port)
    return f"http://{host}:{port}/rpc"


class PrpcClient:
    """JSON-RPC 2.0 over HTTP(S) against a single seed per call."""

    def __init__(
        self,
        *,
        rpc_port: int = RPC_PORT,
        timeout_ms: int = REQUEST_TIMEOUT_MS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._rpc_port = rpc_port
        self._timeout_ms = timeout_ms
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_ms / 1000.0),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        self._ids = itertools.count(int(time.time() * 1000))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> PrpcClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def call(self, seed: str, method: str) -> dict[str, Any]:
        url = build_seed_url(seed, self._rpc_port)
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}

        try:
            response = await self._client.post(url, json=payload)
        except httpx.TimeoutException as e:
            raise RpcTimeoutError("pRPC request timed out") from e
        except httpx.HTTPError as e:
            raise RpcTransportError(str(e) or type(e).__name__) from e

        if response.status_code >= 400:
            raise RpcHttpStatusError(response.status_code)

        try:
            parsed = json.loads(response.text)
        except json.JSONDecodeError as e:
            raise RpcResponseError(f"Invalid JSON from {url}: {e}") from e
        if not isinstance(parsed, dict):
            raise RpcResponseError(f"Invalid JSON-RPC envelope from {url}")

        error = parsed.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else None
            raise RpcResponseError(str(message or "Unknown pRPC error"))

        result = parsed.get("result")
        if not isinstance(result, dict):
            return {"pods": []}
        return result
