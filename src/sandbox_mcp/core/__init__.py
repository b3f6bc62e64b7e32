"""
Cœur du Sandbox MCP Bridge.
Modules indépendants sans dépendances externes au package.
"""

from .exceptions import (
    SandboxMCPError,
    ConfigurationError,
    ToolArgumentError,
)
from .constants import (
    JSONRPC_VERSION,
    PARSE_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    INTERNAL_ERROR,
    MCP_PROTOCOL_VERSION,
)

__all__ = [
    # Exceptions
    "SandboxMCPError",
    "ConfigurationError",
    "ToolArgumentError",
    # Constants
    "JSONRPC_VERSION",
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INTERNAL_ERROR",
    "MCP_PROTOCOL_VERSION",
]
