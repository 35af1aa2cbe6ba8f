"""
Gemini adapter (ENV).

Gemini CLI providers are a flat environment map, persisted as
{"env": {"GEMINI_MODEL": "...", ...}} and written to ~/.gemini/.env as
KEY=VALUE lines.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Optional

from .base import CommonConfigAdapter, Translate
from ..detection import has_gemini_content
from ..exceptions import ConfigFormatError, ConfigValidationError, OverlayError
from ..merge import is_plain_object, load_json_object
from ..env_snippet import (
    GEMINI_COMMON_ENV_FORBIDDEN_KEYS,
    compute_final_env,
    env_from_string,
    env_to_string,
    extract_env_difference,
    parse_env_snippet,
)
from ..models import AppType, ErrorCode, ExtractResult, ParseResult

GEMINI_LEGACY_STORAGE_KEY = "cc-switch:gemini-common-config-snippet"
GEMINI_DEFAULT_SNIPPET = ""


class GeminiAdapter(CommonConfigAdapter[dict[str, str], dict[str, str]]):
    app = AppType.GEMINI
    default_snippet = GEMINI_DEFAULT_SNIPPET
    legacy_storage_key = GEMINI_LEGACY_STORAGE_KEY

    def __init__(
        self,
        forbidden_keys: Iterable[str] = GEMINI_COMMON_ENV_FORBIDDEN_KEYS,
    ) -> None:
        self.forbidden_keys: tuple[str, ...] = tuple(forbidden_keys)

    def parse_snippet(self, snippet: str) -> ParseResult[dict[str, str]]:
        return parse_env_snippet(snippet, strict=True, forbidden_keys=self.forbidden_keys)

    def has_valid_content(self, snippet: str) -> bool:
        result = self.parse_snippet(snippet)
        return result.ok and len(result.config) > 0

    def has_content(self, settings_config: str, snippet: str) -> bool:
        return has_gemini_content(settings_config, snippet, self.forbidden_keys).has_content

    def get_apply_error(self, snippet: str, t: Translate) -> str:
        result = self.parse_snippet(snippet)
        if result.error:
            code = result.error.code
            if code == ErrorCode.FORBIDDEN_KEYS:
                return t("geminiConfig.commonConfigInvalidKeys", keys=", ".join(result.error.keys))
            if code == ErrorCode.VALUE_NOT_STRING:
                return t("geminiConfig.commonConfigInvalidValues")
            return t("geminiConfig.invalidEnvFormat", detail=result.error.detail)
        if not result.config:
            return t("geminiConfig.noCommonConfigToApply")
        return ""

    def parse_input(self, settings_config: str) -> dict[str, str]:
        """Accept either the persisted {"env": {...}} envelope or KEY=VALUE lines."""
        if not settings_config or not settings_config.strip():
            return {}
        wrapper = load_json_object(settings_config)
        if wrapper is None:
            return env_from_string(settings_config)
        env = wrapper.get("env")
        if not is_plain_object(env):
            return {}
        return {key: value for key, value in env.items() if isinstance(value, str)}

    def validate_input(self, settings_config: str) -> Optional[OverlayError]:
        """
        Text that looks like JSON must be a well-formed envelope with string
        env values; anything else is read as KEY=VALUE lines.
        """
        trimmed = (settings_config or "").strip()
        if not trimmed:
            return None
        try:
            parsed = json.loads(trimmed)
        except json.JSONDecodeError as exc:
            if trimmed.startswith(("{", "[")):
                return ConfigFormatError(ErrorCode.JSON_INVALID, exc.msg)
            return None

        if not is_plain_object(parsed):
            return ConfigFormatError(
                ErrorCode.ENV_SNIPPET_NOT_OBJECT,
                f"expected an object, got {type(parsed).__name__}",
            )
        env = parsed.get("env", {})
        if not is_plain_object(env):
            return ConfigFormatError(ErrorCode.ENV_FIELD_NOT_OBJECT, "env field must be an object")
        non_strings = [key for key, value in env.items() if not isinstance(value, str)]
        if non_strings:
            return ConfigValidationError(
                ErrorCode.VALUE_NOT_STRING, "env values must be strings", keys=non_strings
            )
        return None

    def compute_final(
        self,
        custom: dict[str, str],
        common: dict[str, str],
        enabled: bool,
    ) -> dict[str, str]:
        return compute_final_env(custom, common, enabled)

    def extract_diff(
        self,
        custom: dict[str, str],
        common: dict[str, str],
    ) -> ExtractResult[dict[str, str]]:
        return extract_env_difference(custom, common)

    def serialize_output(self, config: dict[str, str]) -> str:
        return env_to_string(config)

    def build_extract_request(
        self,
        final_value: dict[str, str],
        original: Optional[str] = None,
    ) -> dict[str, str]:
        # Keep sibling fields (e.g. a settings.json "config" block) of the
        # original envelope; only `env` is ours to replace
        wrapper = (load_json_object(original) if original else None) or {}
        wrapper["env"] = dict(final_value)
        if len(wrapper) == 1:
            return {"settingsConfig": json.dumps(wrapper, ensure_ascii=False)}
        return {"settingsConfig": json.dumps(wrapper, indent=2, ensure_ascii=False)}
