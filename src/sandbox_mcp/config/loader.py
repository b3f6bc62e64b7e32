"""sandbox_mcp.config.loader

Chargement de la configuration TOML (optionnelle).

Note d'architecture:
- Dans la sandbox, la configuration vient d'abord des variables d'environnement
  injectées par le gestionnaire de conteneur. Le fichier TOML n'est qu'un
  fallback (priorité finale: env > toml > défauts, voir `settings.py`).
- Les secrets (GEMINI_API_KEY, RELAY_TOKEN) ne sont jamais lus depuis le TOML.
"""
import os
import re
from pathlib import Path
from typing import Dict, Any, Optional

from ..core.exceptions import ConfigurationError

CONFIG_PATH_ENV = "SANDBOX_MCP_CONFIG"

# Cache global de configuration
_config_cache: Optional[Dict[str, Any]] = None


def _expand_env_vars(obj: Any) -> Any:
    """
    Récursivement étend les variables d'environnement ${VAR} dans la config.

    Args:
        obj: Valeur à traiter (str, dict, list)

    Returns:
        Valeur avec variables d'environnement expansées
    """
    if isinstance(obj, str):
        def replace_env_var(match):
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))
        return re.sub(r'\$\{([^}]+)\}', replace_env_var, obj)
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    return obj


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Charge la configuration TOML.

    Args:
        config_path: Chemin explicite (sinon SANDBOX_MCP_CONFIG, sinon aucune config)

    Returns:
        Dictionnaire de configuration (vide si aucun fichier n'est configuré)

    Raises:
        ConfigurationError: Si le fichier désigné n'existe pas ou est invalide
    """
    global _config_cache

    if _config_cache is not None:
        return _config_cache

    if config_path is None:
        config_path = (os.getenv(CONFIG_PATH_ENV) or "").strip() or None

    if config_path is None:
        _config_cache = {}
        return _config_cache

    path = Path(config_path).expanduser()
    if not path.exists():
        raise ConfigurationError(
            message=f"Fichier de configuration non trouvé: {config_path}",
            config_key="config_path"
        )

    try:
        import tomllib
    except ImportError:
        import tomli as tomllib

    try:
        with open(path, "rb") as f:
            raw_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            message=f"Fichier de configuration invalide: {e}",
            config_key="config_path"
        ) from e
    except (OSError, UnicodeDecodeError) as e:
        # Répertoire, droits insuffisants, octets non UTF-8
        raise ConfigurationError(
            message=f"Fichier de configuration illisible: {e}",
            config_key="config_path"
        ) from e

    _config_cache = _expand_env_vars(raw_config)
    return _config_cache


def reload_config(config_path: str = None) -> Dict[str, Any]:
    """
    Recharge la configuration depuis le fichier.

    Returns:
        Nouvelle configuration chargée
    """
    global _config_cache
    _config_cache = None
    return load_config(config_path)


def get_section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Retourne la table `[name]` (dict vide si absente ou mal typée)."""
    section = config.get(name, {}) if isinstance(config, dict) else {}
    return section if isinstance(section, dict) else {}
