"""sandbox_mcp.features.gemini.retry

Contrôleur de retry pour les appels Gemini.

- Boucle sans état, paramétrée uniquement par le numéro de tentative.
- Délai = hint `Retry-After` si présent, sinon `base_delay_ms * 2**attempt`.
- Sommeil non bloquant (`asyncio.sleep`, injectable pour les tests).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from sandbox_mcp.config.settings import GeminiServerConfig
from sandbox_mcp.core import constants

from .client import GeminiError, GeminiRateLimitedError


logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[object]]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = constants.GEMINI_MAX_RETRIES
    base_delay_ms: int = constants.GEMINI_BASE_DELAY_MS

    @classmethod
    def from_config(cls, config: GeminiServerConfig) -> "RetryPolicy":
        return cls(max_retries=config.max_retries, base_delay_ms=config.base_delay_ms)


def retry_delay_ms(error: GeminiError, attempt: int, base_delay_ms: int) -> int | None:
    """Délai avant la tentative suivante, ou None si l'erreur n'est pas retryable.

    Args:
        error: Erreur de la tentative `attempt`
        attempt: Numéro de tentative (0 = appel initial)
        base_delay_ms: Délai de base du backoff exponentiel
    """
    if not error.retryable:
        return None
    hint = error.retry_after_ms
    if hint:
        return int(hint)
    return int(base_delay_ms * (2 ** attempt))


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """Exécute `operation` avec au plus `policy.max_retries` retries.

    Les erreurs non retryables sont propagées immédiatement; après épuisement
    des retries, la dernière erreur est relancée.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except GeminiError as e:
            delay_ms = retry_delay_ms(e, attempt, policy.base_delay_ms)
            if delay_ms is None or attempt >= policy.max_retries:
                raise

            label = "Rate limited" if isinstance(e, GeminiRateLimitedError) else "Upstream error"
            logger.warning(f"{label}, retrying in {delay_ms}ms ({attempt + 1}/{policy.max_retries})...")
            await sleep(delay_ms / 1000.0)
            attempt += 1
