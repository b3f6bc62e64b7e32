"""sandbox_mcp.features.relay.server

Relay HTTP local (loopback) vers le tunnel MCP distant.

Route unique: `POST /mcp/<serverName>` → `{RELAY_URL}/<serverName>` avec
`Authorization: Bearer {RELAY_TOKEN}`.

Contrat:
- Chemin/méthode non reconnus → 404 `{"error": "Not found"}`
- Corps non-JSON → 400 + enveloppe JSON-RPC -32700
- Succès → corps distant tel quel, statut 200 (les erreurs JSON-RPC voyagent
  dans le corps)
- Échec réseau, timeout, réponse distante non-JSON → 502 + enveloppe -32603
- RELAY_URL / RELAY_TOKEN absents → refus de démarrer (code de sortie 1)
"""

from __future__ import annotations

import json
import logging
import re
import sys

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from sandbox_mcp.config.loader import load_config
from sandbox_mcp.config.settings import RelayConfig
from sandbox_mcp.core import constants
from sandbox_mcp.core.exceptions import ConfigurationError
from sandbox_mcp.core.jsonrpc import jsonrpc_error
from sandbox_mcp.core.log import configure_logging


logger = logging.getLogger(__name__)

MCP_PATH_RE = re.compile(r"^/mcp/([A-Za-z0-9_-]+)/?$")

NOT_FOUND_BODY = {"error": "Not found"}


class RelayForwardError(Exception):
    """Échec du forward (réseau, timeout, réponse non-JSON)."""


def match_server_name(path: str) -> str | None:
    """Extrait `serverName` de `/mcp/<serverName>` (None si le chemin ne matche pas)."""
    m = MCP_PATH_RE.match(path)
    return m.group(1) if m else None


def _relay_timeout(timeout_s: float) -> httpx.Timeout:
    return httpx.Timeout(timeout_s, connect=min(5.0, timeout_s))


async def forward_to_relay(
    http_client: httpx.AsyncClient,
    config: RelayConfig,
    *,
    server_name: str,
    payload: object,
) -> bytes:
    """POST le payload vers le relay distant; retourne le corps JSON brut.

    Raises:
        RelayForwardError: timeout, erreur réseau ou corps distant non-JSON.
    """
    url = config.target_url(server_name)
    try:
        resp = await http_client.post(
            url,
            json=payload,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {config.relay_token}",
            },
            timeout=_relay_timeout(config.timeout_s),
        )
    except httpx.TimeoutException as e:
        raise RelayForwardError(f"Relay request timed out after {config.timeout_s:g}s") from e
    except httpx.HTTPError as e:
        raise RelayForwardError(f"Relay request failed: {e}") from e

    body = resp.content
    try:
        json.loads(body)
    except ValueError as e:
        raise RelayForwardError(f"Invalid JSON response from relay (HTTP {resp.status_code})") from e

    if not resp.is_success:
        logger.warning(f"Relay {server_name}: HTTP {resp.status_code} (corps JSON relayé tel quel)")
    return body


def create_app(config: RelayConfig, *, http_client: httpx.AsyncClient | None = None) -> FastAPI:
    """Construit l'app FastAPI du relay.

    Args:
        config: Credentials de session + paramètres réseau
        http_client: Client injecté (tests). Sinon un client partagé est créé
            au démarrage et fermé à l'arrêt.
    """
    owns_client = http_client is None
    shared_client: httpx.AsyncClient | None = http_client

    # Pas de /docs, /redoc, /openapi.json: toute route hors /mcp/<name> répond 404
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.on_event("startup")
    async def _startup() -> None:
        nonlocal shared_client
        if shared_client is None:
            # Client partagé (keep-alive) vers le relay distant.
            shared_client = httpx.AsyncClient(timeout=_relay_timeout(config.timeout_s))

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        nonlocal shared_client
        if owns_client and shared_client is not None:
            await shared_client.aclose()
            shared_client = None

    @app.api_route(
        "/{full_path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    )
    async def relay(request: Request, full_path: str) -> Response:
        nonlocal shared_client
        server_name = match_server_name(request.url.path)
        if server_name is None or request.method != "POST":
            return JSONResponse(status_code=404, content=NOT_FOUND_BODY)

        raw = await request.body()
        try:
            payload: object = json.loads(raw)
        except ValueError:
            logger.warning(f"Relay {server_name}: corps JSON invalide")
            return JSONResponse(
                status_code=400,
                content=jsonrpc_error(code=constants.PARSE_ERROR, message="Parse error", req_id=None),
            )

        if shared_client is None:
            # ASGI sans lifespan (ex: tests)
            shared_client = httpx.AsyncClient(timeout=_relay_timeout(config.timeout_s))

        try:
            body = await forward_to_relay(shared_client, config, server_name=server_name, payload=payload)
        except RelayForwardError as e:
            logger.error(f"Relay {server_name}: {e}")
            return JSONResponse(
                status_code=502,
                content=jsonrpc_error(
                    code=constants.INTERNAL_ERROR,
                    message=str(e) or "Relay error",
                    req_id=None,
                ),
            )

        return Response(content=body, status_code=200, media_type="application/json")

    return app


def run() -> int:
    """Point d'entrée `mcp-relay-proxy`. Retourne le code de sortie."""
    configure_logging()

    try:
        toml_config = load_config()
    except ConfigurationError as e:
        logger.error(f"Configuration TOML ignorée: {e}")
        toml_config = {}

    try:
        config = RelayConfig.from_env(toml_config)
    except ConfigurationError as e:
        if e.details.get("key") == "RELAY_HOST":
            logger.error(f"{e.message}, exiting.")
        else:
            logger.error("Missing RELAY_URL or RELAY_TOKEN, exiting.")
            logger.debug(f"Détail: {e}")
        return 1

    app = create_app(config)

    # Import local pour éviter d'imposer uvicorn dans les chemins d'import des tests.
    import uvicorn

    logger.info(f"Listening on http://{config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port, log_level="warning", access_log=False)
    return 0


if __name__ == "__main__":
    sys.exit(run())
