"""
Default English message catalog.

The engine only emits message keys; whoever owns the UI supplies the real
translate function. This catalog backs the CLI and any caller that has no
localization of its own.
"""

from __future__ import annotations

from typing import Any

MESSAGES: dict[str, str] = {
    # Claude (JSON)
    "claudeConfig.noCommonConfigToApply": "The common config snippet is empty; nothing to apply.",
    "claudeConfig.JSON_INVALID": "Common config is not valid JSON: {detail}",
    "claudeConfig.JSON_NOT_OBJECT": "Common config must be a JSON object ({detail}).",
    # Codex (TOML)
    "codexConfig.noCommonConfigToApply": "The common TOML snippet has no settings; nothing to apply.",
    "codexConfig.tomlFormatError": "Common config is not valid TOML: {detail}",
    # Gemini (ENV)
    "geminiConfig.noCommonConfigToApply": "The common env snippet is empty; nothing to apply.",
    "geminiConfig.commonConfigInvalidKeys": (
        "Common config may not set reserved keys: {keys}"
    ),
    "geminiConfig.commonConfigInvalidValues": "Every common env value must be a string.",
    "geminiConfig.invalidEnvFormat": "Common env snippet is malformed: {detail}",
    "geminiConfig.forbiddenKeysWarning": "Ignored reserved keys in common config: {keys}",
    # Provider config being rewritten
    "providerConfig.invalidFormat": "The provider config cannot be read ({detail}); it was left unchanged.",
}


def translate(key: str, **params: Any) -> str:
    """
    Render `key` from the catalog. Unknown keys fall back to `default_value`
    or the key itself; missing params are left as literal placeholders.
    """
    default = params.pop("default_value", None)
    template = MESSAGES.get(key, default if default is not None else key)
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template
