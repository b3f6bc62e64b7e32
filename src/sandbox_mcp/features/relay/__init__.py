"""Relay HTTP loopback vers les serveurs MCP distants (via le tunnel navigateur)."""

from .server import create_app, forward_to_relay, match_server_name, run

__all__ = ["create_app", "forward_to_relay", "match_server_name", "run"]
