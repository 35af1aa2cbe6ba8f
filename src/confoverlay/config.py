"""
Configuration loading with layered precedence:
  1. Built-in defaults
  2. User-global:  ~/.config/confoverlay/config.toml
  3. Repo-local:   .confoverlay/config.toml  (highest priority)

All config is read-only at runtime; create/edit the TOML files manually.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from .env_snippet import GEMINI_COMMON_ENV_FORBIDDEN_KEYS
from .state import REPO_CONFIG_FILE, USER_CONFIG_FILE

logger = logging.getLogger(__name__)

# ── Defaults ──────────────────────────────────────────────────────────────────

DEFAULT_CONFIG: dict[str, Any] = {
    # Root log level for the CLI; --verbose forces DEBUG
    "log_level": "WARNING",

    "gemini": {
        # Env keys the provider switcher owns; a common snippet may not set them
        "forbidden_keys": list(GEMINI_COMMON_ENV_FORBIDDEN_KEYS),
    },

    # Snippet used for an app when nothing has been saved with
    # `confoverlay snippet --set`. None means the adapter's built-in default.
    "snippets": {
        "claude": None,
        "codex": None,
        "gemini": None,
    },
}


# ── Loader ────────────────────────────────────────────────────────────────────


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge `override` into `base`, returning a new dict."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _load_toml_file(path: Path) -> dict[str, Any]:
    """
    Load a TOML file into a dict.
    Returns {} if the file cannot be read or parsed.
    """
    try:
        with path.open("rb") as f:
            loaded = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    return loaded if isinstance(loaded, dict) else {}


def load_config() -> dict[str, Any]:
    """
    Return the merged configuration dict.
    Keys from higher-priority sources override lower ones (but nested dicts merge).
    """
    config = dict(DEFAULT_CONFIG)

    # User-global config (lower priority)
    if USER_CONFIG_FILE.exists():
        config = _deep_merge(config, _load_toml_file(USER_CONFIG_FILE))

    # Repo-local config (highest priority)
    if REPO_CONFIG_FILE.exists():
        config = _deep_merge(config, _load_toml_file(REPO_CONFIG_FILE))

    return config
