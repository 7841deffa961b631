from __future__ import annotations

import json

import httpx
import pytest

from conftest import pod, rpc_result
from pnodewatch.collectors.prpc import PrpcClient, build_seed_url
from pnodewatch.core.errors import (
    RpcHttpStatusError,
    RpcResponseError,
    RpcTimeoutError,
    RpcTransportError,
)


@pytest.mark.parametrize(
    ("seed", "expected"),
    [
        ("1.2.3.4", "http://1.2.3.4:6000/rpc"),
        (" 1.2.3.4 ", "http://1.2.3.4:6000/rpc"),
        ("1.2.3.4:7000", "http://1.2.3.4:7000/rpc"),
        ("https://seed.example.com", "https://seed.example.com/rpc"),
        ("https://seed.example.com/", "https://seed.example.com/rpc"),
        ("http://seed.example.com/rpc", "http://seed.example.com/rpc"),
    ],
)
def test_build_seed_url(seed, expected):
    assert build_seed_url(seed, 6000) == expected


def _client(handler) -> PrpcClient:
    return PrpcClient(rpc_port=6000, timeout_ms=1000, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_call_posts_json_rpc_envelope():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((str(request.url), json.loads(request.content)))
        return rpc_result([pod("a")])

    async with _client(handler) as client:
        result = await client.call("1.2.3.4", "get-pods-with-stats")

    assert [p["pubkey"] for p in result["pods"]] == ["a"]
    url, body = seen[0]
    assert url == "http://1.2.3.4:6000/rpc"
    assert body["jsonrpc"] == "2.0"
    assert body["method"] == "get-pods-with-stats"
    assert isinstance(body["id"], int)


@pytest.mark.asyncio
async def test_request_ids_increase():
    ids = []

    def handler(request: httpx.Request) -> httpx.Response:
        ids.append(json.loads(request.content)["id"])
        return rpc_result([])

    async with _client(handler) as client:
        await client.call("s", "get-pods")
        await client.call("s", "get-pods")

    assert ids[1] == ids[0] + 1


@pytest.mark.asyncio
async def test_missing_result_means_no_pods():
    async with _client(lambda request: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1})) as client:
        assert await client.call("s", "get-pods") == {"pods": []}


@pytest.mark.asyncio
async def test_http_error_status():
    async with _client(lambda request: httpx.Response(503, text="busy")) as client:
        with pytest.raises(RpcHttpStatusError) as excinfo:
            await client.call("s", "get-pods")
    assert excinfo.value.status_code == 503
    assert str(excinfo.value) == "HTTP 503"


@pytest.mark.asyncio
async def test_invalid_json_body():
    async with _client(lambda request: httpx.Response(200, text="<html>")) as client:
        with pytest.raises(RpcResponseError, match="Invalid JSON"):
            await client.call("s", "get-pods")


@pytest.mark.asyncio
async def test_json_rpc_error_message():
    body = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "Method not found"}}
    async with _client(lambda request: httpx.Response(200, json=body)) as client:
        with pytest.raises(RpcResponseError, match="Method not found"):
            await client.call("s", "get-pods")


@pytest.mark.asyncio
async def test_json_rpc_error_without_message():
    body = {"jsonrpc": "2.0", "id": 1, "error": {"code": -1}}
    async with _client(lambda request: httpx.Response(200, json=body)) as client:
        with pytest.raises(RpcResponseError, match="Unknown pRPC error"):
            await client.call("s", "get-pods")


@pytest.mark.asyncio
async def test_timeout_is_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with _client(handler) as client:
        with pytest.raises(RpcTimeoutError, match="pRPC request timed out"):
            await client.call("s", "get-pods")


@pytest.mark.asyncio
async def test_connection_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(RpcTransportError, match="connection refused"):
            await client.call("s", "get-pods")
