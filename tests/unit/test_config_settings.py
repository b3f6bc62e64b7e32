"""Tests unitaires: chargement TOML et dataclasses de configuration.

Priorité attendue: env > TOML > défauts.
"""

from __future__ import annotations

import os

import pytest

from sandbox_mcp.config.loader import get_section, load_config, reload_config
from sandbox_mcp.config.settings import GeminiServerConfig, RelayConfig
from sandbox_mcp.core import constants
from sandbox_mcp.core.exceptions import ConfigurationError


@pytest.mark.unit
def test_load_config_without_path_is_empty() -> None:
    assert load_config() == {}


@pytest.mark.unit
def test_load_config_expands_env_vars_and_caches(tmp_path, monkeypatch) -> None:
    cfg_file = tmp_path / "sandbox.toml"
    cfg_file.write_text('[gemini]\nflash_model = "${FLASH_NAME}"\nmax_retries = 5\n', encoding="utf-8")
    monkeypatch.setenv("FLASH_NAME", "gemini-test-flash")
    monkeypatch.setenv("SANDBOX_MCP_CONFIG", str(cfg_file))

    cfg = load_config()
    assert cfg["gemini"]["flash_model"] == "gemini-test-flash"
    assert get_section(cfg, "gemini")["max_retries"] == 5
    assert get_section(cfg, "relay") == {}

    # Cache: une modification du fichier n'est visible qu'après reload
    cfg_file.write_text("[gemini]\nmax_retries = 1\n", encoding="utf-8")
    assert load_config()["gemini"]["max_retries"] == 5
    assert reload_config()["gemini"]["max_retries"] == 1


@pytest.mark.unit
def test_load_config_missing_or_invalid_file_raises(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        load_config(str(tmp_path / "absent.toml"))

    bad = tmp_path / "bad.toml"
    bad.write_text("[gemini\nnope", encoding="utf-8")
    with pytest.raises(ConfigurationError) as exc_info:
        load_config(str(bad))
    assert exc_info.value.code == "config_error"


@pytest.mark.unit
def test_load_config_unreadable_file_raises(tmp_path) -> None:
    # Un répertoire passe exists() mais open() échoue (IsADirectoryError)
    with pytest.raises(ConfigurationError) as exc_info:
        load_config(str(tmp_path))
    assert exc_info.value.details == {"key": "config_path"}

    latin1 = tmp_path / "latin1.toml"
    latin1.write_bytes(b'[gemini]\nflash_model = "\xe9t\xe9"\n')
    with pytest.raises(ConfigurationError):
        load_config(str(latin1))


@pytest.mark.unit
def test_gemini_config_defaults() -> None:
    cfg = GeminiServerConfig.from_env()
    assert cfg.api_key == ""
    assert not cfg.has_api_key
    assert cfg.flash_model == "gemini-2.5-flash"
    assert cfg.pro_model == "gemini-2.5-pro"
    assert cfg.max_output_tokens == 8192
    assert cfg.temperature == pytest.approx(0.7)
    assert cfg.timeout_s == pytest.approx(120.0)
    assert cfg.max_retries == 3
    assert cfg.base_delay_ms == 2000
    assert cfg.allowed_roots == ("/workspace", "/root")
    assert cfg.max_file_bytes == constants.DEFAULT_MAX_FILE_BYTES


@pytest.mark.unit
def test_gemini_config_env_beats_toml(monkeypatch) -> None:
    toml_cfg = {"gemini": {"pro_model": "toml-pro", "max_retries": 7, "allowed_roots": ["/srv"]}}
    monkeypatch.setenv("GEMINI_API_KEY", "  sk-test  ")
    monkeypatch.setenv("GEMINI_MAX_RETRIES", "2")

    cfg = GeminiServerConfig.from_env(toml_cfg)
    assert cfg.api_key == "sk-test"
    assert cfg.has_api_key
    assert cfg.pro_model == "toml-pro"
    assert cfg.max_retries == 2
    assert cfg.allowed_roots == ("/srv",)


@pytest.mark.unit
def test_gemini_config_clamps_and_ignores_garbage(monkeypatch) -> None:
    monkeypatch.setenv("GEMINI_MAX_RETRIES", "999")
    monkeypatch.setenv("GEMINI_TEMPERATURE", "not-a-number")
    monkeypatch.setenv("GEMINI_ALLOWED_ROOTS", os.pathsep.join(["/workspace", "", "/data"]))
    monkeypatch.setenv("GEMINI_API_BASE_URL", "https://example.test/v1/")

    cfg = GeminiServerConfig.from_env()
    assert cfg.max_retries == 10
    assert cfg.temperature == pytest.approx(0.7)
    assert cfg.allowed_roots == ("/workspace", "/data")
    assert cfg.api_base_url == "https://example.test/v1"


@pytest.mark.unit
def test_relay_config_requires_url_and_token(monkeypatch) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        RelayConfig.from_env()
    assert exc_info.value.details == {"key": "RELAY_URL"}

    monkeypatch.setenv("RELAY_URL", "https://relay.example/mcp-relay")
    monkeypatch.setenv("RELAY_TOKEN", "   ")
    with pytest.raises(ConfigurationError) as exc_info:
        RelayConfig.from_env()
    assert exc_info.value.details == {"key": "RELAY_TOKEN"}


@pytest.mark.unit
def test_relay_config_strips_trailing_slash_and_reads_toml(monkeypatch) -> None:
    monkeypatch.setenv("RELAY_URL", "https://relay.example/mcp-relay///")
    monkeypatch.setenv("RELAY_TOKEN", "tok")

    cfg = RelayConfig.from_env({"relay": {"port": 9999, "timeout_s": 5}})
    assert cfg.relay_url == "https://relay.example/mcp-relay"
    assert cfg.target_url("filesystem") == "https://relay.example/mcp-relay/filesystem"
    assert cfg.host == "127.0.0.1"
    assert cfg.port == 9999
    assert cfg.timeout_s == pytest.approx(5.0)

    monkeypatch.setenv("RELAY_PORT", "9788")
    assert RelayConfig.from_env({"relay": {"port": 9999}}).port == 9788


@pytest.mark.unit
@pytest.mark.parametrize("host", ["0.0.0.0", "192.168.1.10", "::", "relay.example"])
def test_relay_config_rejects_non_loopback_host(monkeypatch, host: str) -> None:
    monkeypatch.setenv("RELAY_URL", "https://relay.example/mcp-relay")
    monkeypatch.setenv("RELAY_TOKEN", "tok")
    monkeypatch.setenv("RELAY_HOST", host)

    with pytest.raises(ConfigurationError) as exc_info:
        RelayConfig.from_env()
    assert exc_info.value.details == {"key": "RELAY_HOST"}


@pytest.mark.unit
def test_relay_config_rejects_non_loopback_host_from_toml(monkeypatch) -> None:
    monkeypatch.setenv("RELAY_URL", "https://relay.example/mcp-relay")
    monkeypatch.setenv("RELAY_TOKEN", "tok")

    with pytest.raises(ConfigurationError):
        RelayConfig.from_env({"relay": {"host": "0.0.0.0"}})


@pytest.mark.unit
@pytest.mark.parametrize("host", ["127.0.0.2", "::1", "localhost"])
def test_relay_config_accepts_loopback_host(monkeypatch, host: str) -> None:
    monkeypatch.setenv("RELAY_URL", "https://relay.example/mcp-relay")
    monkeypatch.setenv("RELAY_TOKEN", "tok")
    monkeypatch.setenv("RELAY_HOST", host)

    assert RelayConfig.from_env().host == host
