"""Pydantic models and shared result types for confoverlay."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from .exceptions import OverlayError

TConfig = TypeVar("TConfig")
TFinal = TypeVar("TFinal")


class AppType(str, Enum):
    """The three supported target tools, one per config format."""
    CLAUDE = "claude"   # JSON settings object
    CODEX = "codex"     # TOML document
    GEMINI = "gemini"   # flat ENV map


class ErrorCode(str, Enum):
    """
    Machine-readable failure codes. Every OverlayError carries one, and
    user-facing text is rendered from it by the caller's translate function.
    """
    JSON_INVALID = "JSON_INVALID"
    JSON_NOT_OBJECT = "JSON_NOT_OBJECT"
    TOML_INVALID = "TOML_INVALID"
    # codex {auth, config} envelope whose config field is not a string
    CONFIG_FIELD_NOT_STRING = "CONFIG_FIELD_NOT_STRING"
    ENV_SNIPPET_NOT_OBJECT = "GEMINI_CONFIG_NOT_OBJECT"
    ENV_FIELD_NOT_OBJECT = "GEMINI_CONFIG_ENV_NOT_OBJECT"
    VALUE_NOT_STRING = "GEMINI_CONFIG_VALUE_NOT_STRING"
    FORBIDDEN_KEYS = "FORBIDDEN_KEYS"
    EMPTY_OVERLAY = "EMPTY_OVERLAY"
    STORE_ERROR = "STORE_ERROR"


class OverlayState(str, Enum):
    """Per provider × app toggle state."""
    DISABLED = "disabled"
    ENABLED = "enabled"


# ── Per-call results ──────────────────────────────────────────────────────────


@dataclass
class ParseResult(Generic[TConfig]):
    """
    Outcome of parsing a snippet. Exactly one of `config` / `error` is set;
    a failed parse never carries a partial config.
    """
    config: Optional[TConfig] = None
    error: Optional[OverlayError] = None
    # Non-fatal notice (e.g. forbidden keys filtered in non-strict mode)
    warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.config is not None


@dataclass
class MergeResult(Generic[TFinal]):
    """
    Outcome of applying an overlay. On error `final` is the untouched custom
    config, never an empty or half-merged document.
    """
    final: TFinal
    error: Optional[OverlayError] = None


@dataclass
class ExtractResult(Generic[TConfig]):
    """
    Outcome of detaching an overlay.
    `has_common_keys` is True iff removing the overlay changed anything.
    """
    custom: TConfig
    has_common_keys: bool = False
    error: Optional[OverlayError] = None


@dataclass
class TransitionResult:
    """
    Result of a Disabled <-> Enabled transition, ready to hand back to the
    provider store as the new settingsConfig.
    """
    state: OverlayState
    settings_config: str
    # False when the transition was a no-op (already in the target state,
    # or nothing to add/remove)
    changed: bool = False
    has_common_keys: bool = False


# ── Persisted shapes ──────────────────────────────────────────────────────────


class ProviderMeta(BaseModel):
    """
    The slice of a provider record's metadata that decides whether the common
    config starts enabled when the provider is opened for editing.
    """
    # Legacy global flag; superseded by the per-app map when both are set
    common_config_enabled: Optional[bool] = None
    common_config_enabled_by_app: dict[AppType, bool] = Field(default_factory=dict)

    def enabled_for(self, app: AppType) -> Optional[bool]:
        if app in self.common_config_enabled_by_app:
            return self.common_config_enabled_by_app[app]
        return self.common_config_enabled


class CommonConfigStore(BaseModel):
    """
    Root object serialized to .confoverlay/snippets.json.
    Holds the saved common snippet for each app.
    """
    snippets: dict[AppType, str] = Field(default_factory=dict)
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def get_snippet(self, app: AppType) -> Optional[str]:
        return self.snippets.get(app)

    def set_snippet(self, app: AppType, snippet: Optional[str]) -> None:
        if snippet is None:
            self.snippets.pop(app, None)
        else:
            self.snippets[app] = snippet
