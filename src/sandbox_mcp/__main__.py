"""
Point d'entrée pour `python -m sandbox_mcp`.

    python -m sandbox_mcp gemini   # serveur MCP Gemini sur stdin/stdout
    python -m sandbox_mcp relay    # relay HTTP sur 127.0.0.1:9788
"""
import argparse
import os
import sys


def main(argv=None):
    """Fonction principale. Retourne via sys.exit le code du sous-programme."""
    parser = argparse.ArgumentParser(prog="sandbox-mcp", description="Sandbox MCP Bridge")
    parser.add_argument("--log-level", default=None, help="Niveau de log (défaut: SANDBOX_MCP_LOG_LEVEL ou INFO)")
    parser.add_argument("--config", default=None, help="Fichier TOML optionnel (défaut: SANDBOX_MCP_CONFIG)")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("gemini", help="Serveur MCP Gemini (JSON-RPC sur stdio)")
    subparsers.add_parser("relay", help="Relay HTTP local vers RELAY_URL")

    args = parser.parse_args(argv)

    # Transmis via l'environnement: chaque run() lit sa config au démarrage
    if args.log_level:
        os.environ["SANDBOX_MCP_LOG_LEVEL"] = args.log_level
    if args.config:
        os.environ["SANDBOX_MCP_CONFIG"] = args.config

    if args.command == "gemini":
        from .features.gemini.transport import run
    else:
        from .features.relay.server import run

    sys.exit(run())


if __name__ == "__main__":
    main()
