"""sandbox_mcp.features.gemini.client

Client HTTP minimal pour l'API Gemini `generateContent`.

Objectifs:
- Appeler l'endpoint REST via httpx.AsyncClient (clé dans `x-goog-api-key`,
  jamais dans l'URL donc jamais dans les logs httpx).
- Classer chaque réponse via une fonction **pure** `classify_response`:
  texte extrait, ou exception typée (retryable ou fatale).

Notes:
- Ce module ne décide pas des retries. La boucle de retry vit dans `retry.py`
  et ne consomme que `GeminiError.retryable` / `retry_after_ms`.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass

import httpx

from sandbox_mcp.config.settings import GeminiServerConfig
from sandbox_mcp.core.exceptions import SandboxMCPError


logger = logging.getLogger(__name__)

JsonObject = dict[str, object]

RETRYABLE_SERVER_STATUSES: frozenset[int] = frozenset({500, 503})
RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"


class GeminiError(SandboxMCPError):
    """Erreur de base Gemini (côté client). Fatale sauf sous-classe contraire."""

    retryable: bool = False

    def __init__(self, message: str, code: str = "gemini_error", details: JsonObject | None = None):
        super().__init__(message=message, code=code, details=details or {})

    @property
    def retry_after_ms(self) -> int | None:
        return None


class GeminiRateLimitedError(GeminiError):
    """HTTP 429 ou statut API `RESOURCE_EXHAUSTED`."""

    retryable = True

    def __init__(self, message: str, *, retry_after_ms: int | None = None, status_code: int | None = None):
        details: JsonObject = {}
        if status_code is not None:
            details["status_code"] = int(status_code)
        if retry_after_ms is not None:
            details["retry_after_ms"] = int(retry_after_ms)
        super().__init__(message=message, code="gemini_rate_limited", details=details)
        self._retry_after_ms = retry_after_ms

    @property
    def retry_after_ms(self) -> int | None:
        return self._retry_after_ms


class GeminiServerError(GeminiError):
    """HTTP 500/503: retryable, backoff exponentiel uniquement."""

    retryable = True

    def __init__(self, message: str, *, status_code: int):
        super().__init__(message=message, code="gemini_server_error", details={"status_code": int(status_code)})
        self.status_code = int(status_code)


class GeminiFatalError(GeminiError):
    """Objet `error` renvoyé par l'API (clé invalide, requête invalide...) ou statut HTTP non géré."""

    def __init__(self, message: str, *, status_code: int | None = None, api_status: str | None = None):
        details: JsonObject = {}
        if status_code is not None:
            details["status_code"] = int(status_code)
        if api_status is not None:
            details["api_status"] = api_status
        super().__init__(message=message, code="gemini_fatal_error", details=details)


class GeminiParseError(GeminiError):
    """Réponse non-JSON ou de forme inattendue."""

    def __init__(self, message: str = "Failed to parse Gemini response", *, response_preview: str | None = None):
        details: JsonObject = {}
        if response_preview is not None:
            details["response_preview"] = response_preview
        super().__init__(message=message, code="gemini_parse_error", details=details)


class GeminiTransportError(GeminiError):
    """Timeout ou erreur réseau (non retryable: borné par le timeout de 120s)."""

    def __init__(self, message: str, *, model: str | None = None):
        super().__init__(message=message, code="gemini_transport_error", details={"model": model} if model else {})


def parse_retry_after_ms(value: str | None) -> int | None:
    """`Retry-After` (secondes, entier ou décimal) → millisecondes.

    Les valeurs absentes, nulles, négatives ou non numériques sont ignorées
    (l'appelant retombe alors sur le backoff exponentiel).
    """
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if seconds != seconds or seconds <= 0:  # NaN ou <= 0
        return None
    return int(seconds * 1000)


def extract_text(data: JsonObject) -> str:
    """Texte du premier candidat; pas de candidat → chaîne vide (pas une erreur)."""
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    first = candidates[0]
    content = first.get("content") if isinstance(first, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts:
        return ""
    part = parts[0]
    text = part.get("text") if isinstance(part, dict) else None
    return text if isinstance(text, str) else ""


def _api_error(data: object) -> JsonObject | None:
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict):
            return err
        if err is not None:
            return {"message": str(err)}
    return None


def _error_message(err: JsonObject | None, default: str) -> str:
    if err is not None:
        message = err.get("message")
        if isinstance(message, str) and message:
            return message
    return default


def _truncate_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max(0, max_chars - 3)] + "..."


def classify_response(status_code: int, body: str, retry_after: str | None = None) -> str:
    """Classe une réponse `generateContent`.

    Fonction pure: aucun I/O, aucun état partagé.

    Returns:
        Le texte généré (éventuellement vide).

    Raises:
        GeminiRateLimitedError: 429 ou `RESOURCE_EXHAUSTED` (retryable, hint Retry-After).
        GeminiServerError: 500/503 (retryable, backoff seul).
        GeminiFatalError: objet `error` de l'API ou autre statut non-2xx.
        GeminiParseError: corps non-JSON / non-objet.
    """
    data: object = None
    parsed = False
    try:
        data = json.loads(body) if body else None
        parsed = True
    except (json.JSONDecodeError, ValueError):
        parsed = False

    err = _api_error(data)

    # Le statut HTTP prime sur le corps: un 503 HTML reste retryable.
    if status_code == 429 or (err is not None and err.get("status") == RESOURCE_EXHAUSTED):
        raise GeminiRateLimitedError(
            _error_message(err, "Rate limit exceeded"),
            retry_after_ms=parse_retry_after_ms(retry_after),
            status_code=status_code,
        )

    if status_code in RETRYABLE_SERVER_STATUSES:
        raise GeminiServerError(_error_message(err, f"Server error {status_code}"), status_code=status_code)

    if err is not None:
        api_status = err.get("status")
        raise GeminiFatalError(
            _error_message(err, "Gemini API error"),
            status_code=status_code,
            api_status=api_status if isinstance(api_status, str) else None,
        )

    if not parsed or not isinstance(data, dict):
        raise GeminiParseError(response_preview=_truncate_text(body, 200))

    if not 200 <= status_code < 300:
        raise GeminiFatalError(f"Gemini HTTP {status_code}", status_code=status_code)

    return extract_text(data)


@dataclass(frozen=True)
class GeminiResult:
    text: str
    model: str
    elapsed_ms: int


class GeminiClient:
    """Client Gemini minimal (une tentative par appel).

    Usage:
        cfg = GeminiServerConfig.from_env()
        async with GeminiClient(cfg) as client:
            result = await client.generate(model=cfg.flash_model, prompt="...")
    """

    def __init__(self, config: GeminiServerConfig, *, http_client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._http_client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "GeminiClient":
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=_timeout_from_s(self._config.timeout_s))
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def config(self) -> GeminiServerConfig:
        return self._config

    def endpoint_url(self, model: str) -> str:
        return f"{self._config.api_base_url}/models/{model}:generateContent"

    def build_payload(self, prompt: str) -> JsonObject:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": self._config.max_output_tokens,
                "temperature": self._config.temperature,
            },
        }

    async def generate(self, *, model: str, prompt: str) -> GeminiResult:
        """Un seul POST `generateContent`.

        Raises:
            GeminiError: voir `classify_response`, plus GeminiTransportError.
        """
        if self._http_client is None:
            raise GeminiTransportError("GeminiClient doit être utilisé via 'async with' (client HTTP non initialisé)")

        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self._config.api_key,
        }

        started = time.perf_counter()
        try:
            resp = await self._http_client.post(
                self.endpoint_url(model),
                json=self.build_payload(prompt),
                headers=headers,
                timeout=_timeout_from_s(self._config.timeout_s),
            )
        except httpx.TimeoutException as e:
            raise GeminiTransportError("Gemini API request timed out", model=model) from e
        except httpx.HTTPError as e:
            raise GeminiTransportError(f"Gemini API request failed: {e}", model=model) from e

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.debug(f"Gemini {model}: HTTP {resp.status_code} en {elapsed_ms}ms")

        text = classify_response(resp.status_code, resp.text, resp.headers.get("retry-after"))
        return GeminiResult(text=text, model=model, elapsed_ms=elapsed_ms)


def _timeout_from_s(timeout_s: float) -> httpx.Timeout:
    # Connect court; total = timeout_s (la génération peut prendre ~2 min)
    return httpx.Timeout(timeout_s, connect=min(10.0, timeout_s))
