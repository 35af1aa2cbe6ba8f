"""
Tests for controller.py: the enable/disable state machine and snippet bookkeeping.
"""

import json
import tomllib

import pytest

from confoverlay.adapters.claude import CLAUDE_LEGACY_STORAGE_KEY, ClaudeAdapter
from confoverlay.adapters.codex import CodexAdapter
from confoverlay.adapters.gemini import GeminiAdapter
import confoverlay.controller as controller_module
from confoverlay.controller import CommonConfigController, controller_for
from confoverlay.exceptions import (
    ConfigFormatError,
    ConfigValidationError,
    EmptyOverlayError,
    OverlayError,
)
from confoverlay.models import AppType, ErrorCode, MergeResult, OverlayState, ProviderMeta


SNIPPET = '{"includeCoAuthoredBy": false}'


def _claude(snippet=SNIPPET, **kwargs):
    return CommonConfigController(ClaudeAdapter(), snippet, **kwargs)


# ── Construction ──────────────────────────────────────────────────────────────


def test_missing_snippet_falls_back_to_adapter_default():
    ctrl = CommonConfigController(CodexAdapter())
    assert ctrl.snippet == CodexAdapter.default_snippet
    assert ctrl.state == OverlayState.DISABLED


def test_controller_for_uses_configured_snippet():
    ctrl = controller_for(AppType.CODEX, config={"snippets": {"codex": "a = 1"}})
    assert ctrl.snippet == "a = 1"
    assert controller_for(AppType.CODEX, "b = 2", config={"snippets": {"codex": "a = 1"}}).snippet == "b = 2"


def test_public_names_are_the_controllers_own():
    assert set(controller_module.__all__) == {
        "ADAPTERS",
        "CommonConfigController",
        "controller_for",
        "get_adapter",
    }


# ── enable / disable ──────────────────────────────────────────────────────────


def test_enable_then_disable_round_trips_custom():
    ctrl = _claude()
    custom = '{"model": "x"}'

    enabled = ctrl.enable(custom)
    assert enabled.state == OverlayState.ENABLED
    assert enabled.changed
    assert json.loads(enabled.settings_config) == {"includeCoAuthoredBy": False, "model": "x"}

    disabled = ctrl.disable(enabled.settings_config)
    assert disabled.state == OverlayState.DISABLED
    assert disabled.has_common_keys
    assert json.loads(disabled.settings_config) == {"model": "x"}


def test_repeated_transition_is_noop():
    ctrl = _claude(enabled=True)
    result = ctrl.enable('{"a": 1}')
    assert result.settings_config == '{"a": 1}'
    assert not result.changed

    ctrl = _claude()
    result = ctrl.disable('{"includeCoAuthoredBy": false}')
    assert result.settings_config == '{"includeCoAuthoredBy": false}'
    assert not result.changed
    assert ctrl.state == OverlayState.DISABLED


def test_enable_empty_snippet_is_refused():
    ctrl = _claude("{}")
    with pytest.raises(EmptyOverlayError) as exc_info:
        ctrl.enable('{"a": 1}')
    assert exc_info.value.code == ErrorCode.EMPTY_OVERLAY
    assert ctrl.state == OverlayState.DISABLED
    assert ctrl.error == "The common config snippet is empty; nothing to apply."


def test_enable_invalid_json_snippet_raises_format_error():
    ctrl = _claude("{bad")
    with pytest.raises(ConfigFormatError) as exc_info:
        ctrl.enable("{}")
    assert exc_info.value.code == ErrorCode.JSON_INVALID
    assert ctrl.error.startswith("Common config is not valid JSON")
    assert not ctrl.enabled


def test_enable_forbidden_env_key_raises_validation_error():
    adapter = GeminiAdapter(forbidden_keys=("ANTHROPIC_API_KEY", "GEMINI_API_KEY"))
    ctrl = CommonConfigController(adapter, '{"ANTHROPIC_API_KEY": "k", "GEMINI_MODEL": "m"}')
    with pytest.raises(ConfigValidationError) as exc_info:
        ctrl.enable('{"env": {}}')
    assert exc_info.value.keys == ("ANTHROPIC_API_KEY",)
    assert "ANTHROPIC_API_KEY" in ctrl.error
    assert ctrl.state == OverlayState.DISABLED


def test_enable_toml_syntax_error_changes_nothing():
    ctrl = CommonConfigController(CodexAdapter(), "approval_policy = ")
    with pytest.raises(OverlayError):
        ctrl.enable('model = "o3"\n')
    assert ctrl.state == OverlayState.DISABLED


def test_codex_envelope_round_trip_keeps_auth():
    ctrl = CommonConfigController(CodexAdapter(), 'approval_policy = "never"\n')
    original = json.dumps({"auth": {"OPENAI_API_KEY": "sk"}, "config": 'model = "o3"\n'})

    enabled = ctrl.enable(original)
    wrapper = json.loads(enabled.settings_config)
    assert wrapper["auth"] == {"OPENAI_API_KEY": "sk"}
    assert tomllib.loads(wrapper["config"])["approval_policy"] == "never"

    disabled = ctrl.disable(enabled.settings_config)
    wrapper = json.loads(disabled.settings_config)
    assert wrapper["auth"] == {"OPENAI_API_KEY": "sk"}
    assert tomllib.loads(wrapper["config"]) == {"model": "o3"}


def test_disable_with_broken_custom_toml_raises_and_stays_enabled():
    ctrl = CommonConfigController(CodexAdapter(), "a = 1\n", enabled=True)
    with pytest.raises(ConfigFormatError):
        ctrl.disable("[broken")
    assert ctrl.state == OverlayState.ENABLED


@pytest.mark.parametrize(
    "adapter, snippet, broken",
    [
        (ClaudeAdapter(), '{"x": 1}', '{"env": {"ANTHROPIC_API_KEY": "secret"},}'),
        (ClaudeAdapter(), '{"x": 1}', "[1, 2]"),
        (CodexAdapter(), 'model = "o3"', "not [ valid"),
        (CodexAdapter(), 'model = "o3"', json.dumps({"auth": {}, "config": {"model": "o3"}})),
        (GeminiAdapter(), "GEMINI_MODEL=m", '{"env": {"GEMINI_API_KEY": "k"},}'),
        (GeminiAdapter(), "GEMINI_MODEL=m", '{"env": ["GEMINI_API_KEY=k"]}'),
    ],
)
def test_enable_with_unreadable_config_raises_and_stays_disabled(adapter, snippet, broken):
    ctrl = CommonConfigController(adapter, snippet)
    with pytest.raises(ConfigFormatError):
        ctrl.enable(broken)
    assert ctrl.state == OverlayState.DISABLED
    assert "left unchanged" in ctrl.error


def test_enable_gemini_non_string_env_value_raises():
    ctrl = CommonConfigController(GeminiAdapter(), "GEMINI_MODEL=m")
    with pytest.raises(ConfigValidationError) as exc_info:
        ctrl.enable('{"env": {"GEMINI_API_KEY": "k", "TIMEOUT": 30}}')
    assert exc_info.value.keys == ("TIMEOUT",)
    assert ctrl.state == OverlayState.DISABLED


def test_enable_codex_reports_merge_failure():
    class FailingMerge(CodexAdapter):
        def apply_overlay(self, custom, common):
            return MergeResult(
                final=custom,
                error=ConfigFormatError(ErrorCode.TOML_INVALID, "custom config: cannot merge"),
            )

    ctrl = CommonConfigController(FailingMerge(), 'model = "o3"')
    with pytest.raises(ConfigFormatError):
        ctrl.enable('approval_policy = "never"\n')
    assert ctrl.state == OverlayState.DISABLED
    assert "cannot merge" in ctrl.error


def test_enable_accepts_gemini_env_lines_and_blank_configs():
    ctrl = CommonConfigController(GeminiAdapter(), "GEMINI_MODEL=m")
    assert ctrl.enable("GEMINI_API_KEY=k\n").state == OverlayState.ENABLED

    for adapter, snippet in ((ClaudeAdapter(), SNIPPET), (CodexAdapter(), 'model = "o3"')):
        ctrl = CommonConfigController(adapter, snippet)
        assert ctrl.enable("").state == OverlayState.ENABLED


def test_disable_with_unreadable_claude_settings_stays_enabled():
    ctrl = _claude(enabled=True)
    with pytest.raises(ConfigFormatError):
        ctrl.disable('{"includeCoAuthoredBy": false,')
    assert ctrl.state == OverlayState.ENABLED


def test_disable_with_empty_snippet_keeps_config():
    ctrl = _claude("", enabled=True)
    result = ctrl.disable('{"a": 1}')
    assert result.settings_config == '{"a": 1}'
    assert ctrl.state == OverlayState.DISABLED


def test_disable_strips_user_value_equal_to_common():
    ctrl = _claude('{"a": 1}', enabled=True)
    result = ctrl.disable('{"a": 1}')
    assert json.loads(result.settings_config) == {}
    assert result.has_common_keys


def test_gemini_disable_writes_env_envelope():
    ctrl = CommonConfigController(GeminiAdapter(), "GEMINI_MODEL=m", enabled=True)
    result = ctrl.disable('{"env": {"GEMINI_MODEL": "m", "GEMINI_API_KEY": "k"}}')
    assert json.loads(result.settings_config) == {"env": {"GEMINI_API_KEY": "k"}}


# ── final_value / toggle ──────────────────────────────────────────────────────


def test_final_value_disabled_is_custom():
    ctrl = _claude()
    assert json.loads(ctrl.final_value('{"a": 1}')) == {"a": 1}


def test_final_value_enabled_merges():
    ctrl = _claude(enabled=True)
    assert json.loads(ctrl.final_value('{"a": 1}')) == {"includeCoAuthoredBy": False, "a": 1}


def test_final_value_enabled_with_broken_snippet_is_custom():
    ctrl = _claude("{bad", enabled=True)
    assert json.loads(ctrl.final_value('{"a": 1}')) == {"a": 1}


def test_toggle_on_with_empty_snippet_stays_off():
    ctrl = _claude("{}")
    assert ctrl.toggle(True) is False
    assert not ctrl.enabled
    assert ctrl.error


def test_toggle_on_and_off():
    ctrl = _claude()
    assert ctrl.toggle(True) is True
    assert ctrl.enabled
    assert ctrl.toggle(False) is False
    assert not ctrl.enabled
    assert ctrl.error == ""


# ── Snippet editing ───────────────────────────────────────────────────────────


def test_set_snippet_invalid_keeps_text_but_not_pending():
    ctrl = _claude()
    assert ctrl.set_snippet("{oops") is False
    assert ctrl.snippet == "{oops"
    assert ctrl.error
    assert ctrl.pending_snippet() is None


def test_set_snippet_valid_is_pending_until_saved():
    ctrl = _claude()
    assert ctrl.set_snippet('{"a": 1}') is True
    assert ctrl.pending_snippet() == '{"a": 1}'
    ctrl.mark_saved()
    assert ctrl.pending_snippet() is None


def test_set_snippet_blank_is_allowed():
    ctrl = _claude()
    assert ctrl.set_snippet("") is True
    assert ctrl.pending_snippet() == ""


# ── resolve_initial_state ─────────────────────────────────────────────────────


def test_new_provider_enabled_when_snippet_has_content():
    assert _claude().resolve_initial_state(None) == OverlayState.ENABLED
    assert CommonConfigController(CodexAdapter()).resolve_initial_state(None) == OverlayState.DISABLED


def test_per_app_flag_overrides_global_flag():
    meta = ProviderMeta(
        common_config_enabled=True,
        common_config_enabled_by_app={AppType.CLAUDE: False},
    )
    assert _claude().resolve_initial_state(meta) == OverlayState.DISABLED

    meta = ProviderMeta(common_config_enabled=False, common_config_enabled_by_app={"claude": True})
    assert _claude().resolve_initial_state(meta) == OverlayState.ENABLED


def test_enabled_flag_with_unusable_snippet_starts_disabled():
    ctrl = _claude("{bad")
    assert ctrl.resolve_initial_state(ProviderMeta(common_config_enabled=True)) == OverlayState.DISABLED
    assert ctrl.error


def test_missing_flags_start_disabled():
    assert _claude().resolve_initial_state(ProviderMeta()) == OverlayState.DISABLED


# ── migrate_legacy_snippet ────────────────────────────────────────────────────


def test_legacy_snippet_is_adopted_and_removed():
    ctrl = CommonConfigController(ClaudeAdapter())
    legacy = {CLAUDE_LEGACY_STORAGE_KEY: '{"theme": "dark"}', "other": "x"}

    adopted = ctrl.migrate_legacy_snippet(None, legacy)
    assert adopted == '{"theme": "dark"}'
    assert ctrl.snippet == adopted
    assert ctrl.pending_snippet() == adopted
    assert legacy == {"other": "x"}


def test_legacy_empty_object_is_ignored_but_removed():
    ctrl = CommonConfigController(ClaudeAdapter())
    legacy = {CLAUDE_LEGACY_STORAGE_KEY: "{}"}

    assert ctrl.migrate_legacy_snippet(None, legacy) is None
    assert ctrl.snippet == ClaudeAdapter.default_snippet
    assert legacy == {}


def test_legacy_is_not_consulted_when_snippet_stored():
    ctrl = CommonConfigController(ClaudeAdapter())
    legacy = {CLAUDE_LEGACY_STORAGE_KEY: '{"theme": "dark"}'}

    assert ctrl.migrate_legacy_snippet('{"a": 1}', legacy) is None
    assert ctrl.snippet == '{"a": 1}'
    assert CLAUDE_LEGACY_STORAGE_KEY in legacy


# ── strip_snippet_from ────────────────────────────────────────────────────────


def test_strip_snippet_from_removes_extracted_keys():
    ctrl = _claude()
    result = ctrl.strip_snippet_from('{"a": 1, "b": 2}', '{"a": 1}')
    assert json.loads(result) == {"b": 2}
    assert ctrl.snippet == '{"a": 1}'
    assert ctrl.pending_snippet() == '{"a": 1}'


def test_strip_snippet_from_rejects_empty_extraction():
    ctrl = _claude()
    with pytest.raises(EmptyOverlayError):
        ctrl.strip_snippet_from('{"a": 1}', "{}")
    assert ctrl.snippet == SNIPPET


def test_strip_snippet_from_codex_toml():
    ctrl = CommonConfigController(CodexAdapter())
    result = ctrl.strip_snippet_from('model = "o3"\napproval_policy = "never"\n', 'approval_policy = "never"\n')
    assert tomllib.loads(result) == {"model": "o3"}
