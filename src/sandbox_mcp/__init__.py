"""
Sandbox MCP Bridge.

Serveur MCP Gemini (stdio) et relay HTTP vers les serveurs MCP locaux de
l'utilisateur, tous deux exécutés dans le conteneur sandbox de l'agent.
"""

__version__ = "1.0.0"
