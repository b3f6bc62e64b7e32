"""
Fonctionnalités du bridge: serveur MCP Gemini (stdio) et relay HTTP.

Les sous-packages ne sont pas importés ici: le serveur stdio n'a pas besoin
de charger FastAPI.
"""
