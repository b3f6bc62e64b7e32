"""
Configuration des tests pytest.
"""
import os
import sys

import pytest

# Ajoute src au path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from sandbox_mcp.config import loader  # noqa: E402


_CONFIG_ENV_VARS = (
    "GEMINI_API_KEY",
    "GEMINI_API_BASE_URL",
    "GEMINI_FLASH_MODEL",
    "GEMINI_PRO_MODEL",
    "GEMINI_MAX_OUTPUT_TOKENS",
    "GEMINI_TEMPERATURE",
    "GEMINI_TIMEOUT_S",
    "GEMINI_MAX_RETRIES",
    "GEMINI_BASE_DELAY_MS",
    "GEMINI_ALLOWED_ROOTS",
    "GEMINI_MAX_FILE_BYTES",
    "RELAY_URL",
    "RELAY_TOKEN",
    "RELAY_HOST",
    "RELAY_PORT",
    "RELAY_TIMEOUT_S",
    "SANDBOX_MCP_CONFIG",
    "SANDBOX_MCP_LOG_LEVEL",
    "SANDBOX_MCP_MAX_LINE_BYTES",
)


def pytest_configure(config):
    """Déclare les marqueurs utilisés par la suite."""
    config.addinivalue_line("markers", "asyncio: marque un test comme asynchrone")
    config.addinivalue_line("markers", "unit: test unitaire (aucun réseau)")


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch):
    """Isole chaque test de l'environnement du poste et du cache TOML."""
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    loader._config_cache = None
    yield
    loader._config_cache = None


@pytest.fixture
def gemini_config():
    """Configuration Gemini de test (clé factice, backoff court)."""
    from sandbox_mcp.config.settings import GeminiServerConfig

    return GeminiServerConfig(
        api_key="test-key",
        api_base_url="https://gemini.test/v1beta",
        base_delay_ms=10,
    )


@pytest.fixture
def relay_config():
    """Configuration relay de test."""
    from sandbox_mcp.config.settings import RelayConfig

    return RelayConfig(relay_url="https://relay.test/mcp-relay", relay_token="tok-123")
