"""sandbox_mcp.core.jsonrpc

Helpers JSON-RPC 2.0 partagés par le serveur stdio et le relay HTTP.

- Construction des enveloppes `result` / `error` (toujours avec `"jsonrpc": "2.0"`).
- Enveloppe de résultat d'outil MCP (`content` + `isError`).
- Inspection best-effort des messages entrants (id, notification).
"""

from __future__ import annotations

import json
import re

from .constants import JSONRPC_VERSION


JsonDict = dict[str, object]

# `"id": "abc"` ou `"id": 42` au niveau d'une ligne non parsable.
_RAW_ID_RE = re.compile(rb'"id"\s*:\s*("(?:[^"\\]|\\.)*"|-?\d+(?:\.\d+)?)')


def jsonrpc_result(*, req_id: object | None, result: object) -> JsonDict:
    return {"jsonrpc": JSONRPC_VERSION, "id": req_id, "result": result}


def jsonrpc_error(*, code: int, message: str, req_id: object | None, data: object | None = None) -> JsonDict:
    error: JsonDict = {"code": int(code), "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": req_id, "error": error}


def tool_result(text: str, *, is_error: bool = False) -> JsonDict:
    """Enveloppe `tools/call` MCP: un unique bloc texte, `isError` si échec outil."""
    result: JsonDict = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


def extract_request_id(obj: object) -> object | None:
    if isinstance(obj, dict) and "id" in obj:
        return obj.get("id")
    return None


def is_notification(obj: JsonDict) -> bool:
    """Une notification n'attend jamais de réponse (pas d'id, ou méthode `notifications/*`)."""
    if "id" not in obj or obj.get("id") is None:
        return True
    method = obj.get("method")
    return isinstance(method, str) and method.startswith("notifications/")


def recover_raw_id(raw_line: bytes) -> str | int | float | None:
    """Récupère l'id d'une ligne JSON invalide (best-effort, pour répondre -32700).

    Returns:
        L'id (str ou nombre) si un token `"id": ...` est trouvé, sinon None.
    """
    match = _RAW_ID_RE.search(raw_line)
    if match is None:
        return None
    try:
        value = json.loads(match.group(1).decode("utf-8", errors="replace"))
    except json.JSONDecodeError:
        return None
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return value
    return None


def encode_line(payload: JsonDict) -> str:
    """Sérialise une réponse sur une seule ligne (terminée par `\\n`)."""
    return json.dumps(payload, ensure_ascii=False) + "\n"
