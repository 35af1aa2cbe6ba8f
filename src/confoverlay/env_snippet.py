"""
ENV snippet parsing and string-map merge for Gemini overlays.

A Gemini common snippet is a flat string-to-string environment map, accepted
in three shapes:

  Flat JSON:     {"KEY": "VALUE", ...}
  Wrapped JSON:  {"env": {"KEY": "VALUE", ...}}
  ENV lines:     KEY=VALUE   (one per line, '#' comments, quotes stripped)

Validation is all-or-nothing: one forbidden key or one non-string value
rejects the whole snippet. The forbidden keys are the ones the provider
switcher writes itself (API key, base URL); letting an overlay set them would
silently point every provider at the same account.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from .exceptions import ConfigFormatError, ConfigValidationError
from .merge import compute_final_config, extract_difference, is_plain_object
from .models import ErrorCode, ExtractResult, ParseResult

GEMINI_COMMON_ENV_FORBIDDEN_KEYS: tuple[str, ...] = (
    "GOOGLE_GEMINI_BASE_URL",
    "GEMINI_API_KEY",
)

_SURROUNDING_QUOTES = re.compile(r"""^["'](.*)["']$""")


# ── Line format ───────────────────────────────────────────────────────────────


def env_from_string(text: str) -> dict[str, str]:
    """
    Parse KEY=VALUE lines. Blank lines, '#' comments and lines without a key
    are skipped; the first '=' splits key from value.
    """
    env: dict[str, str] = {}
    for line in (text or "").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, raw_value = stripped.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        env[key] = _SURROUNDING_QUOTES.sub(r"\1", raw_value.strip())
    return env


def env_to_string(env: Mapping[str, Any]) -> str:
    """Render a map as KEY=VALUE lines. Non-string values are skipped."""
    return "\n".join(
        f"{key}={value}" for key, value in env.items() if isinstance(value, str)
    )


# ── Snippet parsing ───────────────────────────────────────────────────────────


def _raw_env(trimmed: str) -> tuple[Optional[dict[str, Any]], bool, Optional[ConfigFormatError]]:
    """
    Decode the snippet into an unvalidated map.
    Returns (raw_env, is_json, error).
    """
    try:
        parsed = json.loads(trimmed)
    except json.JSONDecodeError:
        return env_from_string(trimmed), False, None

    if not is_plain_object(parsed):
        return None, True, ConfigFormatError(
            ErrorCode.ENV_SNIPPET_NOT_OBJECT,
            "must be a JSON object, not array or primitive",
        )

    if "env" in parsed:
        env_field = parsed["env"]
        if not is_plain_object(env_field):
            return None, True, ConfigFormatError(
                ErrorCode.ENV_FIELD_NOT_OBJECT,
                "'env' field must be a plain object",
            )
        return dict(env_field), True, None

    return dict(parsed), True, None


def parse_env_snippet(
    text: str,
    *,
    strict: bool = True,
    forbidden_keys: Iterable[str] = GEMINI_COMMON_ENV_FORBIDDEN_KEYS,
) -> ParseResult[dict[str, str]]:
    """
    Parse and validate an ENV snippet.

    strict=True rejects any forbidden key with an error; strict=False drops
    them and reports a warning instead (used when detecting whether an
    existing config already carries the snippet).

    Values are trimmed and empty values are dropped. Non-string JSON values
    are an error, never coerced.
    """
    trimmed = (text or "").strip()
    if not trimmed:
        return ParseResult(config={})

    raw_env, is_json, error = _raw_env(trimmed)
    if error is not None:
        return ParseResult(error=error)

    forbidden = set(forbidden_keys)
    env: dict[str, str] = {}
    forbidden_found: list[str] = []

    for key, value in raw_env.items():
        if key in forbidden:
            forbidden_found.append(key)
            continue

        if not isinstance(value, str):
            if is_json:
                return ParseResult(
                    error=ConfigValidationError(
                        ErrorCode.VALUE_NOT_STRING,
                        f"value for '{key}' must be a string, got {type(value).__name__}",
                        keys=[key],
                    )
                )
            continue

        trimmed_value = value.strip()
        if trimmed_value:
            env[key] = trimmed_value

    if forbidden_found:
        error = ConfigValidationError(
            ErrorCode.FORBIDDEN_KEYS,
            ", ".join(forbidden_found),
            keys=forbidden_found,
        )
        if strict:
            return ParseResult(error=error)
        return ParseResult(config=env, warning=str(error))

    return ParseResult(config=env)


# ── Merge / diff ──────────────────────────────────────────────────────────────


def _strings_only(values: Mapping[str, Any]) -> dict[str, str]:
    return {key: value for key, value in values.items() if isinstance(value, str)}


def compute_final_env(
    custom: Mapping[str, str],
    common: Mapping[str, str],
    enabled: bool,
) -> dict[str, str]:
    """
    Common env as the base, custom env on top. The consuming tool only
    understands strings, so anything else is dropped rather than passed on.
    """
    if not enabled or not common:
        return dict(custom)
    return _strings_only(compute_final_config(custom, common, True))


def extract_env_difference(
    custom: Mapping[str, str],
    common: Mapping[str, str],
) -> ExtractResult[dict[str, str]]:
    custom_only, has_common_keys = extract_difference(custom, common)
    return ExtractResult(custom=_strings_only(custom_only), has_common_keys=has_common_keys)
