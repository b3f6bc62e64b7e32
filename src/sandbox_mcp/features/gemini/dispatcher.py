"""sandbox_mcp.features.gemini.dispatcher

Dispatch MCP (JSON-RPC 2.0) sans état.

Méthodes supportées:
- `initialize`                 → version de protocole, capabilities, identité serveur
- `notifications/initialized`  → aucune réponse (notification)
- `tools/list`                 → registre complet
- `tools/call`                 → handler de l'outil; tout échec devient un
                                 résultat outil `isError: true` (jamais une
                                 erreur JSON-RPC)
- `ping`                       → résultat vide
- autre                        → -32601 Method not found
"""

from __future__ import annotations

import logging

from sandbox_mcp.core import constants
from sandbox_mcp.core.exceptions import SandboxMCPError
from sandbox_mcp.core.jsonrpc import (
    extract_request_id,
    is_notification,
    jsonrpc_error,
    jsonrpc_result,
    tool_result,
)

from .tools import ToolRegistry


logger = logging.getLogger(__name__)

JsonDict = dict[str, object]

MISSING_API_KEY_MESSAGE = "GEMINI_API_KEY not configured. Add it in Settings > AI Providers."


class MCPDispatcher:
    """Route une requête JSON-RPC vers le handler MCP correspondant."""

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        api_key_configured: bool,
        server_name: str = constants.GEMINI_SERVER_NAME,
        server_version: str = constants.GEMINI_SERVER_VERSION,
    ) -> None:
        self._registry = registry
        self._api_key_configured = api_key_configured
        self._server_info = {"name": server_name, "version": server_version}

    async def handle(self, message: object) -> JsonDict | None:
        """Traite un message déjà parsé.

        Returns:
            L'enveloppe de réponse, ou None pour une notification.
        """
        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            req_id = extract_request_id(message)
            if req_id is None:
                logger.warning("Message JSON-RPC invalide ignoré (ni méthode ni id)")
                return None
            return jsonrpc_error(code=constants.INVALID_REQUEST, message="Invalid Request", req_id=req_id)

        method = str(message["method"])
        params = message.get("params")
        params_dict: JsonDict = params if isinstance(params, dict) else {}

        if is_notification(message):
            logger.debug(f"Notification reçue: {method}")
            return None

        req_id = message.get("id")

        if method == "initialize":
            return jsonrpc_result(
                req_id=req_id,
                result={
                    "protocolVersion": constants.MCP_PROTOCOL_VERSION,
                    "capabilities": {"tools": {}},
                    "serverInfo": dict(self._server_info),
                },
            )

        if method == "tools/list":
            return jsonrpc_result(req_id=req_id, result={"tools": self._registry.descriptors()})

        if method == "tools/call":
            return jsonrpc_result(req_id=req_id, result=await self.call_tool(params_dict))

        if method == "ping":
            return jsonrpc_result(req_id=req_id, result={})

        return jsonrpc_error(
            code=constants.METHOD_NOT_FOUND,
            message=f"Method not found: {method}",
            req_id=req_id,
        )

    async def call_tool(self, params: JsonDict) -> JsonDict:
        """Exécute `tools/call`; ne lève jamais (erreurs → `isError: true`)."""
        tool_name = params.get("name")
        arguments = params.get("arguments")
        tool_args: JsonDict = arguments if isinstance(arguments, dict) else {}

        tool = self._registry.get(tool_name)
        # Clé absente: vérifiée avant le nom, même pour un outil inconnu
        if not self._api_key_configured and (tool is None or tool.requires_api_key):
            return tool_result(MISSING_API_KEY_MESSAGE, is_error=True)

        if tool is None:
            logger.warning(f"Outil inconnu: {tool_name}")
            return tool_result(f"Unknown tool: {tool_name}", is_error=True)

        try:
            text = await tool.handler(tool_args)
        except SandboxMCPError as e:
            logger.warning(f"{tool.descriptor.name} a échoué: {e}")
            return tool_result(f"Gemini error: {e.message}", is_error=True)
        except Exception as e:
            logger.exception(f"{tool.descriptor.name}: erreur inattendue")
            return tool_result(f"Gemini error: {e}", is_error=True)

        return tool_result(text)
