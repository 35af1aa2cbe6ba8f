"""
Plain-object merge and diff for JSON-shaped config trees.

The overlay rules:
  - merge: the common snippet supplies top-level defaults, the custom config
    wins on every top-level key it already has. Nested objects are NOT merged
    recursively; a custom value replaces the common value wholesale.
  - extract: every top-level custom key whose value structurally equals the
    common value for that key is treated as contributed by the overlay and
    removed.

Merge stays one level deep while extraction compares nested values deeply.
The two rules are consistent with each other (merge never produces a nested
mix, so extraction never has to split one), and tests pin both down.

All functions here are pure: inputs are never mutated and every result is a
fresh object.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Optional

from .exceptions import ConfigFormatError
from .models import ErrorCode, ParseResult


# ── Value helpers ─────────────────────────────────────────────────────────────


def is_plain_object(value: Any) -> bool:
    """True for mappings only; lists, None and primitives are rejected."""
    return isinstance(value, Mapping)


def deep_clone(value: Any) -> Any:
    """Copy nested dict/list trees so callers can never alias our output."""
    if is_plain_object(value):
        return {k: deep_clone(v) for k, v in value.items()}
    if isinstance(value, list):
        return [deep_clone(item) for item in value]
    return value


def deep_equal(a: Any, b: Any) -> bool:
    """
    Structural equality for JSON/TOML values.
    Unlike ==, a bool never equals an int (True != 1) since the formats
    treat them as different types.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b

    if is_plain_object(a) and is_plain_object(b):
        if len(a) != len(b):
            return False
        return all(key in b and deep_equal(a[key], b[key]) for key in a)

    if isinstance(a, list) and isinstance(b, list):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))

    if is_plain_object(a) or is_plain_object(b):
        return False
    if isinstance(a, list) or isinstance(b, list):
        return False

    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    return type(a) is type(b) and a == b


def is_subset(target: Any, source: Any) -> bool:
    """
    True when every key/value of `source` is present in `target`.
    Objects are checked recursively; lists must match element-for-element.
    """
    if is_plain_object(source):
        if not is_plain_object(target):
            return False
        return all(
            key in target and is_subset(target[key], value)
            for key, value in source.items()
        )

    if isinstance(source, list):
        if not isinstance(target, list) or len(target) != len(source):
            return False
        return all(is_subset(t, s) for t, s in zip(target, source))

    return deep_equal(target, source)


# ── Parsing ───────────────────────────────────────────────────────────────────


def parse_json_object(text: str) -> ParseResult[dict[str, Any]]:
    """
    Parse text that must hold a JSON object.
    Blank text is an empty object; anything else that is not an object
    yields an error and no config.
    """
    trimmed = (text or "").strip()
    if not trimmed:
        return ParseResult(config={})

    try:
        parsed = json.loads(trimmed)
    except json.JSONDecodeError as exc:
        return ParseResult(
            error=ConfigFormatError(ErrorCode.JSON_INVALID, exc.msg)
        )

    if not is_plain_object(parsed):
        return ParseResult(
            error=ConfigFormatError(
                ErrorCode.JSON_NOT_OBJECT,
                f"expected an object, got {type(parsed).__name__}",
            )
        )
    return ParseResult(config=parsed)


def load_json_object(text: Optional[str]) -> Optional[dict[str, Any]]:
    """Return the parsed JSON object, or None when `text` is not one."""
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if is_plain_object(parsed) else None


# ── Merge / diff ──────────────────────────────────────────────────────────────


def merge(custom: Mapping[str, Any], common: Mapping[str, Any]) -> dict[str, Any]:
    """
    Lay `custom` over `common`, one level deep.

    Every top-level key of `common` is used as a default, except keys whose
    value is None; every top-level key of `custom` replaces it.
    """
    if not common:
        return deep_clone(dict(custom))

    result: dict[str, Any] = {
        key: deep_clone(value) for key, value in common.items() if value is not None
    }

    for key, value in custom.items():
        result[key] = deep_clone(value)

    return result


def compute_final_config(
    custom: Mapping[str, Any] | None,
    common: Mapping[str, Any] | None,
    enabled: bool,
) -> dict[str, Any]:
    """Return the config that should be applied for this toggle state."""
    safe_custom = custom or {}
    safe_common = common or {}

    if not enabled or not safe_common:
        return deep_clone(dict(safe_custom))
    return merge(safe_custom, safe_common)


def extract_difference(
    custom: Mapping[str, Any],
    common: Mapping[str, Any],
) -> tuple[dict[str, Any], bool]:
    """
    Strip the overlay's contribution from `custom`.

    Returns (custom_only, has_common_keys). A key whose value equals the
    common value is dropped even if the user set it on purpose; there is no
    way to tell the two cases apart from the data alone.
    """
    custom_only: dict[str, Any] = {}
    has_common_keys = False

    for key, value in custom.items():
        if common.get(key) is not None and deep_equal(value, common[key]):
            has_common_keys = True
            continue
        custom_only[key] = deep_clone(value)

    return custom_only, has_common_keys
