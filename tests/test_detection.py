"""
Tests for detection.py: does a persisted config already carry the snippet?
"""

import json

from confoverlay.detection import (
    detect_content,
    extract_codex_config_toml,
    has_content_by_app_type,
)
from confoverlay.models import AppType


def test_claude_detection():
    result = detect_content(AppType.CLAUDE, '{"a": 1, "b": {"c": 2}}', '{"b": {"c": 2}}')
    assert result.has_content
    assert result.parse_error is None


def test_claude_detection_reports_parse_error():
    result = detect_content(AppType.CLAUDE, "{bad", '{"a": 1}')
    assert not result.has_content
    assert result.parse_error


def test_claude_detection_rejects_non_object_snippet():
    result = detect_content(AppType.CLAUDE, "{}", "[1]")
    assert result.parse_error == "snippet is not a plain object"


def test_blank_snippet_never_detected():
    for app in AppType:
        result = detect_content(app, "{}", "   ")
        assert not result.has_content
        assert result.parse_error is None


def test_codex_detection_through_envelope():
    config = json.dumps({"auth": {}, "config": 'model = "o3"\n[features]\nweb_search = true\n'})
    assert has_content_by_app_type(AppType.CODEX, config, "[features]\nweb_search = true\n")
    assert not has_content_by_app_type(AppType.CODEX, config, "[features]\nweb_search = false\n")


def test_codex_detection_non_string_config_field():
    result = detect_content(AppType.CODEX, '{"config": 1}', "a = 1")
    assert not result.has_content
    assert "expected string" in result.parse_error


def test_extract_codex_config_toml_json_without_config():
    assert extract_codex_config_toml('{"auth": {}}') == ("", None)
    assert extract_codex_config_toml('a = 1') == ("a = 1", None)


def test_gemini_detection_env_envelope_and_lines():
    config = json.dumps({"env": {"GEMINI_MODEL": "m", "OTHER": "x"}})
    assert has_content_by_app_type(AppType.GEMINI, config, '{"GEMINI_MODEL": "m"}')
    assert has_content_by_app_type(AppType.GEMINI, "GEMINI_MODEL=m\n", "GEMINI_MODEL=m")
    assert not has_content_by_app_type(AppType.GEMINI, config, "GEMINI_MODEL=n")


def test_gemini_detection_env_not_object():
    result = detect_content(AppType.GEMINI, '{"env": []}', "GEMINI_MODEL=m")
    assert result.parse_error == "env field is not a plain object"


def test_gemini_detection_ignores_forbidden_keys_in_snippet():
    config = json.dumps({"env": {"GEMINI_MODEL": "m"}})
    assert has_content_by_app_type(AppType.GEMINI, config, "GEMINI_API_KEY=k\nGEMINI_MODEL=m")


def test_claude_detection_ignores_none_snippet_values():
    assert has_content_by_app_type(AppType.CLAUDE, '{"a": 1}', '{"a": 1, "b": null}')
    assert not has_content_by_app_type(AppType.CLAUDE, '{"a": 1}', '{"b": null}')
