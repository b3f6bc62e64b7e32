"""Tests unitaires: relay HTTP (sandbox_mcp.features.relay.server).

Objectifs:
    - Forward `POST /mcp/<serverName>` vers `{RELAY_URL}/<serverName>` (Bearer)
    - 404 / 400 / 502 selon le contrat
    - Refus de démarrer sans RELAY_URL / RELAY_TOKEN (uvicorn jamais appelé)

Contraintes:
    - App servie in-process (httpx.ASGITransport), relay distant mocké (MockTransport)
"""

from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

import sandbox_mcp.features.relay.server as relay_server
from sandbox_mcp.config.settings import RelayConfig
from sandbox_mcp.features.relay.server import create_app, match_server_name


Handler = Callable[[httpx.Request], httpx.Response]

PING = {"jsonrpc": "2.0", "id": 1, "method": "ping"}


def _echo(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=request.content, headers={"Content-Type": "application/json"})


async def _request(
    config: RelayConfig,
    handler: Handler,
    method: str,
    path: str,
    **kwargs: object,
) -> httpx.Response:
    upstream = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    app = create_app(config, http_client=upstream)
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://127.0.0.1:9788") as client:
            return await client.request(method, path, **kwargs)
    finally:
        await upstream.aclose()


@pytest.mark.unit
@pytest.mark.parametrize(
    "path,expected",
    [
        ("/mcp/foo", "foo"),
        ("/mcp/my_server-2/", "my_server-2"),
        ("/mcp/", None),
        ("/mcp/foo/bar", None),
        ("/mcp/fo.o", None),
        ("/bad/path", None),
    ],
)
def test_match_server_name(path: str, expected: str | None) -> None:
    assert match_server_name(path) == expected


@pytest.mark.unit
@pytest.mark.asyncio
async def test_post_is_forwarded_and_echoed_verbatim(relay_config: RelayConfig) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _echo(request)

    resp = await _request(relay_config, handler, "POST", "/mcp/foo", json=PING)

    assert resp.status_code == 200
    assert resp.json() == PING
    assert resp.content == seen[0].content

    forwarded = seen[0]
    assert str(forwarded.url) == "https://relay.test/mcp-relay/foo"
    assert forwarded.method == "POST"
    assert forwarded.headers["authorization"] == "Bearer tok-123"
    assert json.loads(forwarded.content) == PING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remote_body_is_returned_byte_for_byte(relay_config: RelayConfig) -> None:
    remote = b'{"jsonrpc": "2.0", "id": 1, "result": {"tools": []}}'

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=remote)

    resp = await _request(relay_config, handler, "POST", "/mcp/filesystem/", json=PING)
    assert resp.status_code == 200
    assert resp.content == remote
    assert resp.headers["content-type"].startswith("application/json")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remote_jsonrpc_error_with_non_2xx_is_still_200(relay_config: RelayConfig) -> None:
    remote = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "server offline"}}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json=remote)

    resp = await _request(relay_config, handler, "POST", "/mcp/foo", json=PING)
    assert resp.status_code == 200
    assert resp.json() == remote


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method,path",
    [
        ("POST", "/bad/path"),
        ("GET", "/mcp/foo"),
        ("PUT", "/mcp/foo"),
        ("POST", "/mcp/foo/bar"),
        ("GET", "/"),
        ("GET", "/docs"),
        ("GET", "/redoc"),
        ("GET", "/openapi.json"),
        ("GET", "/docs/oauth2-redirect"),
    ],
)
async def test_unmatched_route_or_method_is_404(relay_config: RelayConfig, method: str, path: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("aucun forward attendu")

    resp = await _request(relay_config, handler, method, path)
    assert resp.status_code == 404
    assert resp.json() == {"error": "Not found"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_json_body_is_400_parse_error(relay_config: RelayConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("aucun forward attendu")

    resp = await _request(
        relay_config,
        handler,
        "POST",
        "/mcp/foo",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["jsonrpc"] == "2.0"
    assert body["error"]["code"] == -32700
    assert body["error"]["message"] == "Parse error"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_network_failure_is_502(relay_config: RelayConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    resp = await _request(relay_config, handler, "POST", "/mcp/foo", json=PING)
    assert resp.status_code == 502
    body = resp.json()
    assert body["error"]["code"] == -32603
    assert "connection refused" in body["error"]["message"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_timeout_is_502(relay_config: RelayConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    resp = await _request(relay_config, handler, "POST", "/mcp/foo", json=PING)
    assert resp.status_code == 502
    assert resp.json()["error"]["message"] == "Relay request timed out after 30s"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_non_json_remote_response_is_502(relay_config: RelayConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    resp = await _request(relay_config, handler, "POST", "/mcp/foo", json=PING)
    assert resp.status_code == 502
    assert resp.json()["error"] == {"code": -32603, "message": "Invalid JSON response from relay (HTTP 200)"}


@pytest.mark.unit
def test_run_refuses_to_start_without_credentials(monkeypatch) -> None:
    import uvicorn

    calls: list[object] = []
    monkeypatch.setattr(uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))

    assert relay_server.run() == 1

    monkeypatch.setenv("RELAY_URL", "https://relay.test/mcp-relay")
    assert relay_server.run() == 1

    assert calls == []


@pytest.mark.unit
def test_run_serves_on_loopback_port(monkeypatch) -> None:
    import uvicorn

    calls: list[dict[str, object]] = []

    def fake_run(app: object, **kwargs: object) -> None:
        calls.append({"app": app, **kwargs})

    monkeypatch.setattr(uvicorn, "run", fake_run)
    monkeypatch.setenv("RELAY_URL", "https://relay.test/mcp-relay/")
    monkeypatch.setenv("RELAY_TOKEN", "tok")

    assert relay_server.run() == 0
    assert len(calls) == 1
    assert calls[0]["host"] == "127.0.0.1"
    assert calls[0]["port"] == 9788
    assert calls[0]["access_log"] is False


@pytest.mark.unit
def test_run_refuses_non_loopback_host(monkeypatch) -> None:
    import uvicorn

    calls: list[object] = []
    monkeypatch.setattr(uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))
    monkeypatch.setenv("RELAY_URL", "https://relay.test/mcp-relay")
    monkeypatch.setenv("RELAY_TOKEN", "tok")
    monkeypatch.setenv("RELAY_HOST", "0.0.0.0")

    assert relay_server.run() == 1
    assert calls == []
