"""
Exceptions personnalisées pour Sandbox MCP Bridge.
"""


class SandboxMCPError(Exception):
    """Exception de base pour toutes les erreurs du bridge."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code or "unknown_error"
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"[{self.code}] {self.message} - Détails: {self.details}"
        return f"[{self.code}] {self.message}"


class ConfigurationError(SandboxMCPError):
    """Erreur de configuration (variable d'environnement absente, valeur invalide)."""

    def __init__(self, message: str, config_key: str = None):
        super().__init__(
            message=message,
            code="config_error",
            details={"key": config_key} if config_key else {}
        )


class ToolArgumentError(SandboxMCPError):
    """Arguments d'outil MCP manquants ou du mauvais type."""

    def __init__(self, message: str, tool: str = None, argument: str = None):
        details = {}
        if tool:
            details["tool"] = tool
        if argument:
            details["argument"] = argument
        super().__init__(
            message=message,
            code="tool_argument_error",
            details=details
        )
