"""
Tests for toml_merge.py: tomlkit-based merge/extract for Codex config.toml.
"""

import tomllib

from confoverlay.exceptions import ConfigFormatError
from confoverlay.models import ErrorCode
from confoverlay.toml_merge import (
    compute_final_toml_config,
    extract_toml_difference,
    has_toml_common_config,
    has_toml_content,
    normalize_toml_text,
    safe_parse_toml,
    validate_toml,
)


CUSTOM = """# my provider
model = "o3"
model_provider = "acme"

[model_providers.acme]
name = "Acme"  # keep me
base_url = "https://acme.example/v1"
"""

COMMON = """approval_policy = "never"

[features]
web_search = true
"""


# ── Text helpers ──────────────────────────────────────────────────────────────


def test_has_toml_content_ignores_comments_and_blanks():
    assert not has_toml_content("")
    assert not has_toml_content("# only\n\n   # comments\n")
    assert has_toml_content("# c\nkey = 1\n")


def test_normalize_toml_text_straightens_quotes_and_line_endings():
    text = "\ufeffmodel = \u201co3\u201d\r\nname = \u2018x\u2019\r\n"
    assert normalize_toml_text(text) == "model = \"o3\"\nname = 'x'\n"


def test_safe_parse_toml_accepts_smart_quotes():
    result = safe_parse_toml("model = \u201co3\u201d")
    assert result.ok
    assert result.config == {"model": "o3"}


def test_safe_parse_toml_reports_syntax_error():
    result = safe_parse_toml("model = ")
    assert result.config is None
    assert isinstance(result.error, ConfigFormatError)
    assert result.error.code == ErrorCode.TOML_INVALID


def test_validate_toml_accepts_comment_only_text():
    assert validate_toml("# nothing here") is None
    assert validate_toml("[broken") is not None


# ── compute_final_toml_config ─────────────────────────────────────────────────


def test_merge_adds_common_keys_and_keeps_custom_comments():
    result = compute_final_toml_config(CUSTOM, COMMON, True)
    assert result.error is None

    merged = tomllib.loads(result.final)
    assert merged["model"] == "o3"
    assert merged["approval_policy"] == "never"
    assert merged["features"] == {"web_search": True}
    assert merged["model_providers"]["acme"]["name"] == "Acme"
    assert "# my provider" in result.final
    assert "# keep me" in result.final


def test_merge_custom_wins_on_collision():
    result = compute_final_toml_config('model = "o3"\n', 'model = "gpt-5"\n', True)
    assert tomllib.loads(result.final) == {"model": "o3"}


def test_merge_fills_missing_entries_of_shared_table():
    custom = "[features]\nweb_search = false\n"
    common = "[features]\nweb_search = true\nstreaming = true\n"
    result = compute_final_toml_config(custom, common, True)
    assert tomllib.loads(result.final) == {
        "features": {"web_search": False, "streaming": True}
    }


def test_merge_disabled_returns_custom_verbatim():
    result = compute_final_toml_config(CUSTOM, COMMON, False)
    assert result.final == CUSTOM
    assert result.error is None


def test_merge_comment_only_common_is_noop():
    result = compute_final_toml_config(CUSTOM, "# Common Codex config\n", True)
    assert result.final == CUSTOM


def test_merge_syntax_error_returns_custom_with_error():
    result = compute_final_toml_config(CUSTOM, "approval_policy = ", True)
    assert result.final == CUSTOM
    assert result.error is not None
    assert result.error.code == ErrorCode.TOML_INVALID
    assert "common" in result.error.detail


def test_merge_broken_custom_is_left_untouched():
    broken = "model = \n"
    result = compute_final_toml_config(broken, COMMON, True)
    assert result.final == broken
    assert "custom" in result.error.detail


# ── extract_toml_difference ───────────────────────────────────────────────────


def test_round_trip_restores_custom_and_comments():
    merged = compute_final_toml_config(CUSTOM, COMMON, True).final
    extracted = extract_toml_difference(merged, COMMON)

    assert extracted.error is None
    assert extracted.has_common_keys
    assert tomllib.loads(extracted.custom) == tomllib.loads(CUSTOM)
    assert "# keep me" in extracted.custom


def test_extract_drops_table_left_empty():
    live = "model = \"o3\"\n\n[features]\nweb_search = true\n"
    extracted = extract_toml_difference(live, "[features]\nweb_search = true\n")
    assert tomllib.loads(extracted.custom) == {"model": "o3"}


def test_extract_keeps_custom_entries_in_shared_table():
    live = "[features]\nweb_search = true\nstreaming = false\n"
    extracted = extract_toml_difference(live, "[features]\nweb_search = true\n")
    assert extracted.has_common_keys
    assert tomllib.loads(extracted.custom) == {"features": {"streaming": False}}


def test_extract_without_common_keys_returns_live_text():
    extracted = extract_toml_difference(CUSTOM, COMMON)
    assert extracted.custom == CUSTOM
    assert not extracted.has_common_keys


def test_extract_blank_common_is_noop():
    extracted = extract_toml_difference(CUSTOM, "  ")
    assert extracted.custom == CUSTOM
    assert not extracted.has_common_keys


def test_extract_invalid_live_reports_error():
    extracted = extract_toml_difference("[broken", COMMON)
    assert extracted.custom == "[broken"
    assert extracted.error is not None


# ── has_toml_common_config ────────────────────────────────────────────────────


def test_has_toml_common_config():
    merged = compute_final_toml_config(CUSTOM, COMMON, True).final
    assert has_toml_common_config(merged, COMMON)
    assert not has_toml_common_config(CUSTOM, COMMON)
    assert not has_toml_common_config(CUSTOM, "")
    assert not has_toml_common_config("[broken", COMMON)
