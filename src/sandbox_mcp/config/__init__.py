"""
Configuration du Sandbox MCP Bridge.
"""

from .loader import load_config, reload_config
from .settings import GeminiServerConfig, RelayConfig

__all__ = [
    "load_config",
    "reload_config",
    "GeminiServerConfig",
    "RelayConfig",
]
