"""sandbox_mcp.config.settings

Dataclasses de configuration, construites une seule fois au démarrage puis
passées explicitement à chaque composant (substituables dans les tests).

Priorité: variables d'environnement > table TOML > défauts.
"""
from __future__ import annotations

import ipaddress
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..core import constants
from ..core.exceptions import ConfigurationError
from .loader import get_section


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _pick_int(env_name: str, section: Dict[str, Any], key: str, *, default: int, min_value: int, max_value: int) -> int:
    value: object = default
    raw = _env_str(env_name)
    if raw is not None:
        try:
            value = int(raw)
        except ValueError:
            value = default
    elif isinstance(section.get(key), int) and not isinstance(section.get(key), bool):
        value = section[key]
    return max(min_value, min(max_value, int(value)))


def _pick_float(env_name: str, section: Dict[str, Any], key: str, *, default: float, min_value: float, max_value: float) -> float:
    value: object = default
    raw = _env_str(env_name)
    if raw is not None:
        try:
            value = float(raw)
        except ValueError:
            value = default
    elif isinstance(section.get(key), (int, float)) and not isinstance(section.get(key), bool):
        value = section[key]
    return max(min_value, min(max_value, float(value)))


def _pick_str(env_name: str, section: Dict[str, Any], key: str, *, default: str) -> str:
    raw = _env_str(env_name)
    if raw is not None:
        return raw
    toml_value = section.get(key)
    if isinstance(toml_value, str) and toml_value.strip():
        return toml_value.strip()
    return default


def _loopback_host(host: str) -> str:
    """Valide une adresse d'écoute loopback (le relay ne s'expose jamais au réseau)."""
    if host == "localhost":
        return host
    try:
        is_loopback = ipaddress.ip_address(host.strip("[]")).is_loopback
    except ValueError:
        is_loopback = False
    if not is_loopback:
        raise ConfigurationError(f"RELAY_HOST doit être une adresse loopback: {host}", config_key="RELAY_HOST")
    return host


@dataclass(frozen=True)
class GeminiServerConfig:
    """Configuration du serveur MCP Gemini (stdio)."""

    api_key: str = ""
    api_base_url: str = constants.GEMINI_API_BASE_URL
    flash_model: str = constants.GEMINI_FLASH_MODEL
    pro_model: str = constants.GEMINI_PRO_MODEL
    max_output_tokens: int = constants.GEMINI_MAX_OUTPUT_TOKENS
    temperature: float = constants.GEMINI_TEMPERATURE
    timeout_s: float = constants.GEMINI_TIMEOUT_S
    max_retries: int = constants.GEMINI_MAX_RETRIES
    base_delay_ms: int = constants.GEMINI_BASE_DELAY_MS
    allowed_roots: tuple[str, ...] = field(default=constants.DEFAULT_ALLOWED_ROOTS)
    max_file_bytes: int = constants.DEFAULT_MAX_FILE_BYTES

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls, toml_config: Optional[Dict[str, Any]] = None) -> "GeminiServerConfig":
        """
        Construit la configuration depuis l'environnement (+ table TOML `[gemini]`).

        Une clé API absente n'est PAS une erreur: le serveur démarre et chaque
        `tools/call` renvoie une erreur outil explicite.
        """
        section = get_section(toml_config or {}, "gemini")

        allowed_roots: tuple[str, ...] = constants.DEFAULT_ALLOWED_ROOTS
        raw_roots = _env_str("GEMINI_ALLOWED_ROOTS")
        if raw_roots is not None:
            allowed_roots = tuple(r for r in raw_roots.split(os.pathsep) if r.strip())
        elif isinstance(section.get("allowed_roots"), list):
            allowed_roots = tuple(str(r) for r in section["allowed_roots"] if str(r).strip())

        return cls(
            api_key=_env_str("GEMINI_API_KEY") or "",
            api_base_url=_pick_str("GEMINI_API_BASE_URL", section, "api_base_url", default=constants.GEMINI_API_BASE_URL).rstrip("/"),
            flash_model=_pick_str("GEMINI_FLASH_MODEL", section, "flash_model", default=constants.GEMINI_FLASH_MODEL),
            pro_model=_pick_str("GEMINI_PRO_MODEL", section, "pro_model", default=constants.GEMINI_PRO_MODEL),
            max_output_tokens=_pick_int(
                "GEMINI_MAX_OUTPUT_TOKENS", section, "max_output_tokens",
                default=constants.GEMINI_MAX_OUTPUT_TOKENS, min_value=1, max_value=65_536,
            ),
            temperature=_pick_float(
                "GEMINI_TEMPERATURE", section, "temperature",
                default=constants.GEMINI_TEMPERATURE, min_value=0.0, max_value=2.0,
            ),
            timeout_s=_pick_float(
                "GEMINI_TIMEOUT_S", section, "timeout_s",
                default=constants.GEMINI_TIMEOUT_S, min_value=1.0, max_value=600.0,
            ),
            max_retries=_pick_int(
                "GEMINI_MAX_RETRIES", section, "max_retries",
                default=constants.GEMINI_MAX_RETRIES, min_value=0, max_value=10,
            ),
            base_delay_ms=_pick_int(
                "GEMINI_BASE_DELAY_MS", section, "base_delay_ms",
                default=constants.GEMINI_BASE_DELAY_MS, min_value=1, max_value=60_000,
            ),
            allowed_roots=allowed_roots or constants.DEFAULT_ALLOWED_ROOTS,
            max_file_bytes=_pick_int(
                "GEMINI_MAX_FILE_BYTES", section, "max_file_bytes",
                default=constants.DEFAULT_MAX_FILE_BYTES, min_value=1, max_value=64 * 1024 * 1024,
            ),
        )


@dataclass(frozen=True)
class RelayConfig:
    """Credentials de session du relay + paramètres d'écoute.

    `relay_url` et `relay_token` sont lus une seule fois; un nouveau token
    implique un nouveau processus.
    """

    relay_url: str
    relay_token: str
    host: str = constants.RELAY_HOST
    port: int = constants.RELAY_PORT
    timeout_s: float = constants.RELAY_TIMEOUT_S

    def target_url(self, server_name: str) -> str:
        return f"{self.relay_url}/{server_name}"

    @classmethod
    def from_env(cls, toml_config: Optional[Dict[str, Any]] = None) -> "RelayConfig":
        """
        Raises:
            ConfigurationError: RELAY_URL ou RELAY_TOKEN absent, ou RELAY_HOST
                hors loopback (démarrage refusé)
        """
        relay_url = _env_str("RELAY_URL")
        relay_token = _env_str("RELAY_TOKEN")
        if relay_url is None:
            raise ConfigurationError("RELAY_URL manquante", config_key="RELAY_URL")
        if relay_token is None:
            raise ConfigurationError("RELAY_TOKEN manquant", config_key="RELAY_TOKEN")

        section = get_section(toml_config or {}, "relay")
        return cls(
            relay_url=relay_url.rstrip("/"),
            relay_token=relay_token,
            host=_loopback_host(_pick_str("RELAY_HOST", section, "host", default=constants.RELAY_HOST)),
            port=_pick_int("RELAY_PORT", section, "port", default=constants.RELAY_PORT, min_value=1, max_value=65_535),
            timeout_s=_pick_float(
                "RELAY_TIMEOUT_S", section, "timeout_s",
                default=constants.RELAY_TIMEOUT_S, min_value=0.1, max_value=600.0,
            ),
        )
