"""
Does a provider's persisted config already carry the common snippet?

Used when opening an existing provider (to show the toggle in the right
position) and by `confoverlay status`. Unlike the adapters' boolean
`has_content`, these report why detection failed, so a corrupt config can be
told apart from one that simply lacks the overlay.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

from .env_snippet import env_from_string, parse_env_snippet, GEMINI_COMMON_ENV_FORBIDDEN_KEYS
from .merge import is_plain_object, is_subset
from .models import AppType
from .toml_merge import safe_parse_toml


@dataclass
class ContentDetectionResult:
    has_content: bool
    parse_error: Optional[str] = None


# ── Claude ────────────────────────────────────────────────────────────────────


def has_claude_content(config_str: str, snippet_str: str) -> ContentDetectionResult:
    if not snippet_str.strip():
        return ContentDetectionResult(has_content=False)
    try:
        config = json.loads(config_str) if config_str and config_str.strip() else {}
        snippet = json.loads(snippet_str)
    except json.JSONDecodeError as exc:
        return ContentDetectionResult(has_content=False, parse_error=exc.msg)
    if not is_plain_object(snippet):
        return ContentDetectionResult(has_content=False, parse_error="snippet is not a plain object")
    # None values are never merged in, so they cannot be expected in the config
    applied = {key: value for key, value in snippet.items() if value is not None}
    return ContentDetectionResult(has_content=bool(applied) and is_subset(config, applied))


# ── Codex ─────────────────────────────────────────────────────────────────────


def extract_codex_config_toml(config_str: str) -> tuple[str, Optional[str]]:
    """
    Return (toml_text, parse_error) for a bare-TOML or {"config": "..."} config.
    A JSON object without a `config` field has no TOML to inspect.
    """
    if not config_str or not config_str.strip():
        return "", None
    try:
        parsed = json.loads(config_str)
    except json.JSONDecodeError:
        return config_str, None

    if not is_plain_object(parsed):
        return config_str, None
    config = parsed.get("config")
    if isinstance(config, str):
        return config, None
    if "config" in parsed:
        return "", f"config field exists but is {type(config).__name__}, expected string"
    return "", None


def has_codex_content(config_str: str, snippet_str: str) -> ContentDetectionResult:
    if not snippet_str.strip():
        return ContentDetectionResult(has_content=False)

    config_toml, config_error = extract_codex_config_toml(config_str)
    if config_error:
        return ContentDetectionResult(has_content=False, parse_error=config_error)

    config_parsed = safe_parse_toml(config_toml)
    if config_parsed.error:
        return ContentDetectionResult(has_content=False, parse_error=config_parsed.error.detail)
    snippet_parsed = safe_parse_toml(snippet_str)
    if snippet_parsed.error:
        return ContentDetectionResult(has_content=False, parse_error=snippet_parsed.error.detail)

    return ContentDetectionResult(
        has_content=is_subset(config_parsed.config, snippet_parsed.config)
    )


# ── Gemini ────────────────────────────────────────────────────────────────────


def _gemini_env(config_str: str) -> tuple[dict, Optional[str]]:
    if not config_str or not config_str.strip():
        return {}, None
    try:
        config = json.loads(config_str)
    except json.JSONDecodeError:
        # Not JSON: a raw .env file
        return env_from_string(config_str), None
    if not is_plain_object(config):
        return {}, "config is not a plain object"
    env = config.get("env")
    if env is None:
        return {}, None
    if not is_plain_object(env):
        return {}, "env field is not a plain object"
    return dict(env), None


def has_gemini_content(
    config_str: str,
    snippet_str: str,
    forbidden_keys=GEMINI_COMMON_ENV_FORBIDDEN_KEYS,
) -> ContentDetectionResult:
    """
    Forbidden keys in the snippet are ignored here, so a snippet written
    before a key became reserved is still recognised by its other keys.
    """
    if not snippet_str.strip():
        return ContentDetectionResult(has_content=False)

    env, env_error = _gemini_env(config_str)
    if env_error:
        return ContentDetectionResult(has_content=False, parse_error=env_error)

    parsed = parse_env_snippet(snippet_str, strict=False, forbidden_keys=forbidden_keys)
    if parsed.error:
        return ContentDetectionResult(has_content=False, parse_error=parsed.error.detail or str(parsed.error))
    if not parsed.config:
        return ContentDetectionResult(has_content=False)

    return ContentDetectionResult(
        has_content=all(
            isinstance(env.get(key), str) and env[key] == value
            for key, value in parsed.config.items()
        )
    )


# ── Dispatch ──────────────────────────────────────────────────────────────────


def detect_content(app: AppType, config_str: str, snippet_str: str) -> ContentDetectionResult:
    """Check `config_str` for the snippet using the rules of `app`'s format."""
    if app == AppType.CLAUDE:
        return has_claude_content(config_str, snippet_str)
    if app == AppType.CODEX:
        return has_codex_content(config_str, snippet_str)
    if app == AppType.GEMINI:
        return has_gemini_content(config_str, snippet_str)
    return ContentDetectionResult(has_content=False)


def has_content_by_app_type(app: AppType, config_str: str, snippet_str: str) -> bool:
    """Boolean form of detect_content; the parse error is discarded."""
    return detect_content(app, config_str, snippet_str).has_content
