"""
Claude adapter (JSON).

Claude Code keeps provider settings as one JSON object, e.g.

  {"env": {"ANTHROPIC_BASE_URL": "..."}, "includeCoAuthoredBy": false}

The common snippet is a JSON object literal merged one level deep.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from .base import CommonConfigAdapter, Translate
from ..detection import has_claude_content
from ..exceptions import OverlayError
from ..merge import compute_final_config, extract_difference, parse_json_object
from ..models import AppType, ExtractResult, ParseResult

CLAUDE_LEGACY_STORAGE_KEY = "cc-switch:common-config-snippet"
CLAUDE_DEFAULT_SNIPPET = """{
  "includeCoAuthoredBy": false
}"""


def dump_json(value: Any) -> str:
    """Pretty-print with a 2-space indent, keeping non-ASCII text readable."""
    return json.dumps(value, indent=2, ensure_ascii=False)


class ClaudeAdapter(CommonConfigAdapter[dict[str, Any], str]):
    app = AppType.CLAUDE
    default_snippet = CLAUDE_DEFAULT_SNIPPET
    legacy_storage_key = CLAUDE_LEGACY_STORAGE_KEY

    def parse_snippet(self, snippet: str) -> ParseResult[dict[str, Any]]:
        return parse_json_object(snippet)

    def has_valid_content(self, snippet: str) -> bool:
        result = self.parse_snippet(snippet)
        return result.ok and len(result.config) > 0

    def has_content(self, settings_config: str, snippet: str) -> bool:
        return has_claude_content(settings_config, snippet).has_content

    def get_apply_error(self, snippet: str, t: Translate) -> str:
        result = self.parse_snippet(snippet)
        if result.error:
            return t(f"claudeConfig.{result.error.code.value}", detail=result.error.detail)
        if not result.config:
            return t("claudeConfig.noCommonConfigToApply")
        return ""

    def parse_input(self, settings_config: str) -> dict[str, Any]:
        result = parse_json_object(settings_config or "{}")
        return result.config if result.ok else {}

    def validate_input(self, settings_config: str) -> Optional[OverlayError]:
        return parse_json_object(settings_config).error

    def compute_final(
        self,
        custom: dict[str, Any],
        common: dict[str, Any],
        enabled: bool,
    ) -> str:
        return dump_json(compute_final_config(custom, common, enabled))

    def extract_diff(
        self,
        custom: dict[str, Any],
        common: dict[str, Any],
    ) -> ExtractResult[dict[str, Any]]:
        custom_only, has_common_keys = extract_difference(custom, common)
        return ExtractResult(custom=custom_only, has_common_keys=has_common_keys)

    def serialize_output(self, config: dict[str, Any]) -> str:
        return dump_json(config)

    def build_extract_request(
        self,
        final_value: str,
        original: Optional[str] = None,
    ) -> dict[str, str]:
        return {"settingsConfig": final_value}
