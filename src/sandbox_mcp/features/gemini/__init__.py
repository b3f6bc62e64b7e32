"""Serveur MCP Gemini (stdio): framing, dispatch, outils, client API, retry."""

from .client import (
    GeminiClient,
    GeminiError,
    GeminiFatalError,
    GeminiParseError,
    GeminiRateLimitedError,
    GeminiResult,
    GeminiServerError,
    GeminiTransportError,
    classify_response,
)
from .dispatcher import MISSING_API_KEY_MESSAGE, MCPDispatcher
from .files import FileAccessGuard, FileReadResult
from .retry import RetryPolicy, call_with_retry
from .tools import GeminiToolbox, ToolDescriptor, ToolRegistry
from .transport import LineFramer, StdioMCPServer, run, serve_stdio

__all__ = [
    # Client
    "GeminiClient",
    "GeminiError",
    "GeminiFatalError",
    "GeminiParseError",
    "GeminiRateLimitedError",
    "GeminiResult",
    "GeminiServerError",
    "GeminiTransportError",
    "classify_response",
    # Retry
    "RetryPolicy",
    "call_with_retry",
    # Fichiers
    "FileAccessGuard",
    "FileReadResult",
    # Outils / dispatch
    "GeminiToolbox",
    "ToolDescriptor",
    "ToolRegistry",
    "MCPDispatcher",
    "MISSING_API_KEY_MESSAGE",
    # Transport
    "LineFramer",
    "StdioMCPServer",
    "serve_stdio",
    "run",
]
