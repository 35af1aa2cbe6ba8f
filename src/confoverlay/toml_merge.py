"""
TOML merge and diff for Codex config.toml overlays.

Two parsers are used on purpose:
  - tomllib (stdlib) validates text and yields plain dicts for comparisons.
  - tomlkit edits the custom document in place, so comments, key order and
    formatting of everything the overlay does not touch survive a merge or
    an extraction byte-for-byte.

Granularity is the top-level table:
  merge    common keys missing from custom are appended; when both sides
           hold a table under the same key, common entries missing from the
           custom table are added. Custom wins on every collision.
  extract  top-level values equal to common's are removed; inside shared
           tables, entries equal to common's entries are removed and a table
           left empty is dropped.

No function here raises. Every failure comes back as an `error` on the
result, with the original custom text returned untouched.
"""

from __future__ import annotations

import logging
import tomllib
from collections.abc import MutableMapping
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError

from .exceptions import ConfigFormatError
from .merge import deep_clone, deep_equal, is_plain_object, is_subset
from .models import ErrorCode, ExtractResult, MergeResult, ParseResult

logger = logging.getLogger(__name__)

# Typographic quotes pasted from docs or chat break TOML strings
_QUOTE_TRANSLATION = str.maketrans({
    "\u201c": '"',
    "\u201d": '"',
    "\u201e": '"',
    "\u2018": "'",
    "\u2019": "'",
})


# ── Text helpers ──────────────────────────────────────────────────────────────


def normalize_toml_text(text: str) -> str:
    """Strip a BOM, unify line endings and straighten smart quotes."""
    normalized = text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    return normalized.translate(_QUOTE_TRANSLATION)


def has_toml_content(text: str) -> bool:
    """
    True iff at least one line is neither blank nor a comment.
    Separates "nothing to apply" from "syntax error".
    """
    for line in (text or "").split("\n"):
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            return True
    return False


# ── Parsing ───────────────────────────────────────────────────────────────────


def safe_parse_toml(text: str) -> ParseResult[dict[str, Any]]:
    """
    Parse TOML text into a plain dict without ever raising.
    Blank text parses to an empty dict.
    """
    if not (text or "").strip():
        return ParseResult(config={})
    try:
        parsed = tomllib.loads(normalize_toml_text(text))
    except tomllib.TOMLDecodeError as exc:
        return ParseResult(error=ConfigFormatError(ErrorCode.TOML_INVALID, str(exc)))
    return ParseResult(config=parsed)


def validate_toml(text: str) -> ConfigFormatError | None:
    """Return the syntax error of `text`, if any. Blank or comment-only text is valid."""
    if not has_toml_content(text):
        return None
    return safe_parse_toml(text).error


def _load_document(text: str) -> tomlkit.TOMLDocument:
    return tomlkit.parse(normalize_toml_text(text or ""))


def _unwrap(item: Any) -> Any:
    # tomlkit items wrap plain values; comparisons need the plain form
    return item.unwrap() if hasattr(item, "unwrap") else item


def _tagged(exc: ConfigFormatError, side: str) -> ConfigFormatError:
    return ConfigFormatError(exc.code, f"{side} config: {exc.detail}")


# ── Merge ─────────────────────────────────────────────────────────────────────


def compute_final_toml_config(
    custom: str,
    common: str,
    enabled: bool,
) -> MergeResult[str]:
    """
    Lay the custom TOML over the common TOML and re-serialize.

    Disabled, or a common snippet without content, returns `custom`
    verbatim. A parse failure on either side returns `custom` with `error`
    set, so a broken overlay never blocks saving the provider's own config.
    """
    if not enabled or not has_toml_content(common):
        return MergeResult(final=custom)

    custom_parsed = safe_parse_toml(custom)
    if custom_parsed.error:
        return MergeResult(final=custom, error=_tagged(custom_parsed.error, "custom"))

    common_parsed = safe_parse_toml(common)
    if common_parsed.error:
        return MergeResult(final=custom, error=_tagged(common_parsed.error, "common"))

    try:
        doc = _load_document(custom)
        for key, value in common_parsed.config.items():
            if key not in doc:
                doc[key] = deep_clone(value)
                continue

            current = doc[key]
            if isinstance(current, MutableMapping) and is_plain_object(value):
                for sub_key, sub_value in value.items():
                    if sub_key not in current:
                        current[sub_key] = deep_clone(sub_value)
        final = tomlkit.dumps(doc)
    except (TOMLKitError, ValueError, TypeError) as exc:
        logger.warning("TOML merge failed, keeping custom config: %s", exc)
        return MergeResult(
            final=custom,
            error=ConfigFormatError(ErrorCode.TOML_INVALID, f"merge failed: {exc}"),
        )

    return MergeResult(final=final)


# ── Extract ───────────────────────────────────────────────────────────────────


def extract_toml_difference(live: str, common: str) -> ExtractResult[str]:
    """
    Remove the common snippet's contribution from `live`.

    Returns the custom-only TOML text and whether anything was removed.
    A blank common snippet leaves `live` untouched.
    """
    if not (common or "").strip():
        return ExtractResult(custom=live, has_common_keys=False)

    live_parsed = safe_parse_toml(live)
    if live_parsed.error:
        return ExtractResult(custom=live, error=_tagged(live_parsed.error, "live"))

    common_parsed = safe_parse_toml(common)
    if common_parsed.error:
        return ExtractResult(custom=live, error=_tagged(common_parsed.error, "common"))

    has_common_keys = False
    try:
        doc = _load_document(live)
        for key, common_value in common_parsed.config.items():
            if key not in doc:
                continue

            current = doc[key]
            if deep_equal(_unwrap(current), common_value):
                del doc[key]
                has_common_keys = True
                continue

            if isinstance(current, MutableMapping) and is_plain_object(common_value):
                for sub_key, sub_value in common_value.items():
                    if sub_key in current and deep_equal(_unwrap(current[sub_key]), sub_value):
                        del current[sub_key]
                        has_common_keys = True
                if len(current) == 0:
                    del doc[key]
        custom_toml = tomlkit.dumps(doc)
    except (TOMLKitError, ValueError, TypeError) as exc:
        logger.warning("TOML extraction failed, keeping live config: %s", exc)
        return ExtractResult(
            custom=live,
            error=ConfigFormatError(ErrorCode.TOML_INVALID, f"extract failed: {exc}"),
        )

    if not has_common_keys:
        # Nothing removed: hand back the caller's exact text
        return ExtractResult(custom=live, has_common_keys=False)
    return ExtractResult(custom=custom_toml, has_common_keys=True)


# ── Detection ─────────────────────────────────────────────────────────────────


def has_toml_common_config(text: str, common: str) -> bool:
    """True when every key/value of `common` already appears in `text`."""
    if not (common or "").strip():
        return False

    live_parsed = safe_parse_toml(text)
    common_parsed = safe_parse_toml(common)
    if live_parsed.error or common_parsed.error:
        return False
    return is_subset(live_parsed.config, common_parsed.config)
