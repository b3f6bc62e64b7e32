"""sandbox_mcp.features.gemini.transport

Transport stdio du serveur MCP Gemini.

- Lit stdin par blocs, découpe sur `\\n` (LineFramer), une ligne = un document JSON.
- Une ligne partielle reste en buffer jusqu'au bloc suivant.
- Une ligne invalide est loggée sur stderr puis ignorée (ou -32700 si l'id est
  récupérable); elle ne casse jamais le découpage des lignes suivantes.
- Chaque message est traité dans sa propre tâche asyncio: la réponse est
  écrite quand son traitement se termine.
- EOF sur stdin: on attend les tâches en vol puis on sort avec le code 0.

Important:
- stdout ne reçoit QUE des réponses JSON-RPC (jamais de logs).
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Protocol, TextIO

from sandbox_mcp.config.loader import load_config
from sandbox_mcp.config.settings import GeminiServerConfig
from sandbox_mcp.core import constants
from sandbox_mcp.core.exceptions import ConfigurationError
from sandbox_mcp.core.jsonrpc import encode_line, extract_request_id, jsonrpc_error, recover_raw_id
from sandbox_mcp.core.log import configure_logging

from .client import GeminiClient
from .dispatcher import MCPDispatcher
from .tools import GeminiToolbox


logger = logging.getLogger(__name__)

JsonDict = dict[str, object]

READ_CHUNK_BYTES = 64 * 1024


class ChunkReader(Protocol):
    async def read(self, n: int = -1) -> bytes: ...


def _env_int(name: str, *, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _get_max_line_bytes() -> int:
    """Taille max d'une ligne JSON-RPC en buffer (défaut 8 MiB, bornée à [64 KiB, 64 MiB])."""
    default_limit = 8 * 1024 * 1024
    configured = _env_int("SANDBOX_MCP_MAX_LINE_BYTES", default=default_limit)
    if configured <= 0:
        return default_limit
    return min(64 * 1024 * 1024, max(64 * 1024, configured))


class LineFramer:
    """Découpage newline-delimited indépendant des frontières de lecture.

    Travaille sur des bytes: un caractère UTF-8 multi-octets coupé entre deux
    lectures est reconstitué avant décodage.
    """

    def __init__(self, *, max_line_bytes: int | None = None) -> None:
        self._buffer = bytearray()
        self._max_line_bytes = max_line_bytes or _get_max_line_bytes()
        self._discarding = False

    def feed(self, chunk: bytes) -> list[bytes]:
        """Ajoute un bloc; retourne les lignes complètes non vides (strippées)."""
        self._buffer.extend(chunk)
        *complete, rest = self._buffer.split(b"\n")
        self._buffer = bytearray(rest)

        lines: list[bytes] = []
        for raw in complete:
            if self._discarding:
                # Fin de la ligne surdimensionnée: on reprend au message suivant
                self._discarding = False
                continue
            line = bytes(raw).strip()
            if line:
                lines.append(line)

        if len(self._buffer) > self._max_line_bytes:
            logger.error(f"Ligne JSON-RPC > {self._max_line_bytes} octets ignorée")
            self._buffer.clear()
            self._discarding = True
        return lines

    def flush(self) -> bytes | None:
        """Reste du buffer en fin de flux (None si vide ou en cours de rejet)."""
        rest = bytes(self._buffer).strip()
        self._buffer.clear()
        if self._discarding:
            self._discarding = False
            return None
        return rest or None


class StdioMCPServer:
    """Boucle lecture → dispatch → écriture pour un dispatcher MCP."""

    def __init__(self, dispatcher: MCPDispatcher, *, output: TextIO | None = None) -> None:
        self._dispatcher = dispatcher
        self._output = output
        self._pending: set[asyncio.Task[None]] = set()

    async def handle_line(self, raw_line: bytes) -> JsonDict | None:
        """Parse une ligne et la dispatche. Ne lève pas."""
        try:
            message: object = json.loads(raw_line.decode("utf-8"))
        except (ValueError, RecursionError) as e:
            # RecursionError: JSON valide mais imbrication trop profonde
            logger.warning(f"Parse error: {e}")
            req_id = recover_raw_id(raw_line)
            if req_id is None:
                return None
            return jsonrpc_error(code=constants.PARSE_ERROR, message="Parse error", req_id=req_id)

        try:
            return await self._dispatcher.handle(message)
        except Exception:
            logger.exception("Erreur inattendue pendant le dispatch")
            req_id = extract_request_id(message)
            if req_id is None:
                return None
            return jsonrpc_error(code=constants.INTERNAL_ERROR, message="Internal error", req_id=req_id)

    def write(self, payload: JsonDict) -> None:
        out = self._output if self._output is not None else sys.stdout
        out.write(encode_line(payload))
        out.flush()

    async def _process(self, raw_line: bytes) -> None:
        try:
            response = await self.handle_line(raw_line)
            if response is not None:
                self.write(response)
        except Exception:
            logger.exception("Échec du traitement d'une ligne JSON-RPC")

    def submit(self, raw_line: bytes) -> asyncio.Task[None]:
        task = asyncio.create_task(self._process(raw_line))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def serve(self, reader: ChunkReader) -> int:
        """Consomme `reader` jusqu'à EOF. Retourne le code de sortie (0)."""
        framer = LineFramer()
        while True:
            chunk = await reader.read(READ_CHUNK_BYTES)
            if not chunk:
                break
            for line in framer.feed(chunk):
                self.submit(line)

        # Flux terminé: le reste du buffer ne peut plus grandir
        tail = framer.flush()
        if tail is not None:
            self.submit(tail)

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        logger.info("stdin fermé, arrêt du serveur")
        return 0


async def _connect_stdin_reader() -> asyncio.StreamReader:
    """Retourne un StreamReader non-bloquant connecté à stdin (binaire)."""

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=_get_max_line_bytes())
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin.buffer)
    return reader


async def serve_stdio(
    config: GeminiServerConfig,
    *,
    reader: ChunkReader | None = None,
    output: TextIO | None = None,
) -> int:
    """Assemble client → toolbox → dispatcher → serveur stdio et sert jusqu'à EOF."""
    if not config.has_api_key:
        logger.warning("GEMINI_API_KEY absente: chaque tools/call renverra une erreur de configuration")

    async with GeminiClient(config) as client:
        toolbox = GeminiToolbox(config, client)
        dispatcher = MCPDispatcher(toolbox.registry(), api_key_configured=config.has_api_key)
        server = StdioMCPServer(dispatcher, output=output)

        if reader is None:
            reader = await _connect_stdin_reader()

        logger.info("Server started")
        return await server.serve(reader)


def run() -> int:
    """Point d'entrée `gemini-mcp-server`."""
    configure_logging()

    try:
        toml_config = load_config()
    except ConfigurationError as e:
        # Mode dégradé: on continue avec env + défauts
        logger.error(f"Configuration TOML ignorée: {e}")
        toml_config = {}

    config = GeminiServerConfig.from_env(toml_config)
    return asyncio.run(serve_stdio(config))


if __name__ == "__main__":
    sys.exit(run())
