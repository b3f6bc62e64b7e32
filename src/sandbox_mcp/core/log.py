"""
Configuration du logging.

Important: stdout est réservé au flux JSON-RPC du serveur stdio. Tous les logs
partent sur stderr.
"""
import logging
import os
import sys

LOGGER_NAME = "sandbox_mcp"
LOG_FORMAT = "[%(name)s] %(levelname)s %(message)s"


def configure_logging(level: str = None) -> logging.Logger:
    """
    Installe un handler stderr unique sur le logger du package.

    Args:
        level: Niveau (DEBUG, INFO, ...). Défaut: SANDBOX_MCP_LOG_LEVEL ou INFO.

    Returns:
        Logger racine du package
    """
    level_name = (level or os.getenv("SANDBOX_MCP_LOG_LEVEL") or "INFO").strip().upper()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    # Idempotent: un seul handler même si appelé plusieurs fois (tests, CLI)
    if not any(getattr(h, "_sandbox_mcp", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._sandbox_mcp = True
        logger.addHandler(handler)
    logger.propagate = False

    # httpx logge chaque requête en INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logger
