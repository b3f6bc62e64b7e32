"""
Constantes globales pour Sandbox MCP Bridge.
"""

# ============================================================================
# JSON-RPC 2.0
# ============================================================================
JSONRPC_VERSION = "2.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

# ============================================================================
# MCP
# ============================================================================
MCP_PROTOCOL_VERSION = "2024-11-05"
GEMINI_SERVER_NAME = "gemini-mcp-server"
GEMINI_SERVER_VERSION = "1.0.0"

# ============================================================================
# GEMINI API
# ============================================================================
GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_FLASH_MODEL = "gemini-2.5-flash"
GEMINI_PRO_MODEL = "gemini-2.5-pro"

GEMINI_MAX_OUTPUT_TOKENS = 8192
GEMINI_TEMPERATURE = 0.7
GEMINI_TIMEOUT_S = 120.0  # la génération peut être lente

# Retry (429 / 500 / 503)
GEMINI_MAX_RETRIES = 3
GEMINI_BASE_DELAY_MS = 2000

# ============================================================================
# FILE ACCESS GUARD
# ============================================================================
DEFAULT_ALLOWED_ROOTS = ("/workspace", "/root")
DEFAULT_MAX_FILE_BYTES = 1024 * 1024  # 1 MiB par fichier

# ============================================================================
# RELAY HTTP BRIDGE
# ============================================================================
RELAY_HOST = "127.0.0.1"
RELAY_PORT = 9788
RELAY_TIMEOUT_S = 30.0
