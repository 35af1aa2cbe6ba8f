"""
Codex adapter (TOML).

Codex reads ~/.codex/config.toml. A provider record stores it either as bare
TOML text or inside a JSON envelope next to the auth block:

  {"auth": {"OPENAI_API_KEY": "..."}, "config": "model = \\"o3\\"\\n..."}

The TOML engine only ever sees the unwrapped `config` text; the envelope is
restored on the way out so `auth` and any other sibling field survive.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional

from .base import CommonConfigAdapter, Translate
from ..detection import has_codex_content
from ..exceptions import ConfigFormatError, OverlayError
from ..merge import load_json_object
from ..models import AppType, ErrorCode, ExtractResult, MergeResult, ParseResult
from ..toml_merge import (
    compute_final_toml_config,
    extract_toml_difference,
    has_toml_content,
    validate_toml,
)

logger = logging.getLogger(__name__)

CODEX_LEGACY_STORAGE_KEY = "cc-switch:codex-common-config-snippet"
CODEX_DEFAULT_SNIPPET = """# Common Codex config
# Add your common TOML configuration here"""


# ── Envelope helpers ──────────────────────────────────────────────────────────


def extract_config_toml(settings_config: str) -> str:
    """
    Pull the TOML text out of a persisted Codex config.

    A JSON envelope yields its `config` string; a JSON object without a
    string `config` yields "" (there is no TOML to work on). Anything that is
    not JSON is taken as bare TOML.
    """
    if not settings_config or not settings_config.strip():
        return ""

    wrapper = load_json_object(settings_config)
    if wrapper is None:
        return settings_config

    config = wrapper.get("config")
    if isinstance(config, str):
        return config
    if "config" in wrapper:
        logger.warning(
            "Codex config field is %s, expected string", type(config).__name__
        )
    return ""


@dataclass
class PreservedConfig:
    """Result of writing TOML back into the provider's original format."""
    config: str
    error: Optional[OverlayError] = None


def preserve_codex_config_format(original: str, updated_toml: str) -> PreservedConfig:
    """
    Write `updated_toml` back in the same shape `original` used.

    JSON envelope -> envelope with `config` replaced (siblings kept).
    Bare TOML     -> bare TOML.
    An envelope whose `config` is not a string is left alone and reported,
    since overwriting it could destroy data we do not understand.
    """
    wrapper = load_json_object(original) if original else None
    if wrapper is None:
        return PreservedConfig(config=updated_toml)

    if "config" in wrapper and not isinstance(wrapper["config"], str):
        return PreservedConfig(
            config=original,
            error=ConfigFormatError(
                ErrorCode.CONFIG_FIELD_NOT_STRING,
                f"config field is {type(wrapper['config']).__name__}, expected string",
            ),
        )

    wrapper["config"] = updated_toml
    return PreservedConfig(config=json.dumps(wrapper, indent=2, ensure_ascii=False))


# ── Adapter ───────────────────────────────────────────────────────────────────


class CodexAdapter(CommonConfigAdapter[str, str]):
    app = AppType.CODEX
    default_snippet = CODEX_DEFAULT_SNIPPET
    legacy_storage_key = CODEX_LEGACY_STORAGE_KEY

    def parse_snippet(self, snippet: str) -> ParseResult[str]:
        error = validate_toml(snippet)
        if error:
            return ParseResult(error=error)
        return ParseResult(config=snippet)

    def has_valid_content(self, snippet: str) -> bool:
        return has_toml_content(snippet) and validate_toml(snippet) is None

    def has_content(self, settings_config: str, snippet: str) -> bool:
        return has_codex_content(settings_config, snippet).has_content

    def get_apply_error(self, snippet: str, t: Translate) -> str:
        if not has_toml_content(snippet):
            return t("codexConfig.noCommonConfigToApply")
        error = validate_toml(snippet)
        if error:
            return t("codexConfig.tomlFormatError", detail=error.detail)
        return ""

    def parse_input(self, settings_config: str) -> str:
        return extract_config_toml(settings_config)

    def validate_input(self, settings_config: str) -> Optional[OverlayError]:
        wrapper = load_json_object(settings_config) if settings_config else None
        if wrapper is not None and "config" in wrapper and not isinstance(wrapper["config"], str):
            return ConfigFormatError(
                ErrorCode.CONFIG_FIELD_NOT_STRING,
                f"config field is {type(wrapper['config']).__name__}, expected string",
            )
        error = validate_toml(extract_config_toml(settings_config))
        if error is None:
            return None
        return ConfigFormatError(error.code, f"custom config: {error.detail}")

    def compute_final(self, custom: str, common: str, enabled: bool) -> str:
        if not enabled or not has_toml_content(common):
            return custom
        result = compute_final_toml_config(custom, common, True)
        if result.error:
            logger.warning("Common config not applied: %s", result.error)
            return custom
        return result.final

    def apply_overlay(self, custom: str, common: str) -> MergeResult[str]:
        if not has_toml_content(common):
            return MergeResult(final=custom)
        return compute_final_toml_config(custom, common, True)

    def extract_diff(self, custom: str, common: str) -> ExtractResult[str]:
        return extract_toml_difference(custom, common)

    def serialize_output(self, config: str) -> str:
        return config

    def build_extract_request(
        self,
        final_value: str,
        original: Optional[str] = None,
    ) -> dict[str, str]:
        """
        Raises ConfigFormatError when `original` is an envelope whose
        `config` field is not a string.
        """
        if original is None:
            return {"settingsConfig": json.dumps({"config": final_value or ""})}
        preserved = preserve_codex_config_format(original, final_value)
        if preserved.error:
            raise preserved.error
        return {"settingsConfig": preserved.config}
