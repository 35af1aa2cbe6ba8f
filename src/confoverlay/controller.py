"""
Common-config orchestration: adapter selection and the overlay state machine.

Per provider × app there are two states and two transitions:

  Disabled --enable--> Enabled    validate snippet, merge it under the
                                  custom config, return the final config
  Enabled  --disable-> Disabled   subtract the snippet's keys, return the
                                  custom-only config

A transition either fully succeeds (new settingsConfig returned, state
flips) or raises an OverlayError with the state and the caller's config
untouched. Repeating a transition in the state it leads to is a no-op.

This module holds no IO. The caller persists the returned settingsConfig and
must not run two transitions for the same provider at once.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any, Generic, Optional

from .adapters.base import CommonConfigAdapter, Translate
from .adapters.claude import ClaudeAdapter
from .adapters.codex import CodexAdapter
from .adapters.gemini import GeminiAdapter
from .exceptions import EmptyOverlayError, OverlayError
from .messages import translate
from .models import (
    AppType,
    ErrorCode,
    OverlayState,
    ProviderMeta,
    TConfig,
    TFinal,
    TransitionResult,
)

logger = logging.getLogger(__name__)

# ── Adapter registry ──────────────────────────────────────────────────────────

# Module-level singletons; adapters hold no per-call state.
# Tests can patch this dict to inject fakes.
ADAPTERS: dict[AppType, CommonConfigAdapter] = {
    AppType.CLAUDE: ClaudeAdapter(),
    AppType.CODEX: CodexAdapter(),
    AppType.GEMINI: GeminiAdapter(),
}


def get_adapter(app: AppType, config: Optional[dict] = None) -> CommonConfigAdapter:
    """
    Return the adapter for `app`. With a loaded config, the Gemini adapter
    is built with the configured forbidden-key list.
    """
    if config is not None and app == AppType.GEMINI:
        forbidden = config.get("gemini", {}).get("forbidden_keys")
        if forbidden is not None:
            return GeminiAdapter(forbidden_keys=forbidden)
    return ADAPTERS[app]


# ── Controller ────────────────────────────────────────────────────────────────


class CommonConfigController(Generic[TConfig, TFinal]):
    """
    Holds the common snippet and toggle state for one provider form and
    drives the enable/disable transitions through its adapter.

    Parameters
    ----------
    adapter:
        Format binding for the app being edited.
    snippet:
        Saved common snippet; None means the adapter's default snippet.
    translate:
        translate(key, **params) -> str used for every user-facing message.
    enabled:
        Initial toggle state.
    """

    def __init__(
        self,
        adapter: CommonConfigAdapter[TConfig, TFinal],
        snippet: Optional[str] = None,
        *,
        translate: Translate = translate,
        enabled: bool = False,
    ) -> None:
        self.adapter = adapter
        self.snippet: str = adapter.default_snippet if snippet is None else snippet
        self.translate = translate
        self.enabled = enabled
        # Last user-facing error ("" when none)
        self.error: str = ""
        self._unsaved = False

    @property
    def state(self) -> OverlayState:
        return OverlayState.ENABLED if self.enabled else OverlayState.DISABLED

    # ── Derived values ────────────────────────────────────────────────────────

    def _parsed_snippet(self) -> Optional[TConfig]:
        parsed = self.adapter.parse_snippet(self.snippet)
        return parsed.config if parsed.ok else None

    def final_value(self, settings_config: str) -> TFinal:
        """
        The config that would be applied right now. A disabled overlay or an
        unparseable snippet yields the custom config unchanged.
        """
        custom = self.adapter.parse_input(settings_config)
        common = self._parsed_snippet() if self.enabled else None
        if common is None:
            return self.adapter.compute_final(custom, custom, False)
        return self.adapter.compute_final(custom, common, True)

    def has_content(self, settings_config: str) -> bool:
        """True when `settings_config` already carries the snippet."""
        return self.adapter.has_content(settings_config, self.snippet)

    def apply_error(self) -> str:
        return self.adapter.get_apply_error(self.snippet, self.translate)

    # ── Toggle / snippet editing ──────────────────────────────────────────────

    def toggle(self, checked: bool) -> bool:
        """
        Flip the toggle without touching any config. Enabling with an
        unappliable snippet records the message in `error` and stays off.
        Returns the resulting enabled flag.
        """
        if checked:
            message = self.apply_error()
            if message:
                self.error = message
                self.enabled = False
                return False
        self.error = ""
        self.enabled = checked
        return checked

    def set_snippet(self, snippet: str) -> bool:
        """
        Replace the snippet text. Invalid text is kept (so the editor does not
        lose it) but sets `error` and is not marked for saving.
        Returns True when the snippet is valid.
        """
        self.snippet = snippet
        if not snippet.strip():
            self.error = ""
            self._unsaved = True
            return True

        parsed = self.adapter.parse_snippet(snippet)
        if parsed.error:
            self.error = self.adapter.get_apply_error(snippet, self.translate)
            return False

        self.error = ""
        self._unsaved = True
        return True

    def pending_snippet(self) -> Optional[str]:
        """The snippet to save, or None when nothing changed since mark_saved()."""
        return self.snippet if self._unsaved else None

    def mark_saved(self) -> None:
        self._unsaved = False

    # ── Initial state resolution ──────────────────────────────────────────────

    def resolve_initial_state(self, meta: Optional[ProviderMeta]) -> OverlayState:
        """
        Decide the starting toggle state for a provider form.

        Editing (meta given): the stored per-app flag, else the global flag.
        An enabled flag whose snippet can no longer be applied starts
        disabled with `error` set. Creating (meta None): enabled whenever the
        snippet has valid content.
        """
        if meta is None:
            self.enabled = self.adapter.has_valid_content(self.snippet)
            return self.state

        flag = meta.enabled_for(self.adapter.app)
        if not flag:
            self.enabled = False
            return self.state

        message = self.apply_error()
        if message:
            logger.info("Common config for %s starts disabled: %s", self.adapter.app.value, message)
            self.error = message
            self.enabled = False
        else:
            self.error = ""
            self.enabled = True
        return self.state

    def migrate_legacy_snippet(
        self,
        stored: Optional[str],
        legacy_store: MutableMapping[str, str],
    ) -> Optional[str]:
        """
        Adopt a snippet from pre-store legacy storage.

        Only runs when nothing is stored yet. A legacy entry is adopted if it
        parses and has content ("{}" does not count); the entry is removed
        from `legacy_store` either way. Returns the adopted snippet (already
        set on the controller and marked unsaved) or None.
        """
        if stored and stored.strip():
            self.snippet = stored
            return None

        key = self.adapter.legacy_storage_key
        if not key or key not in legacy_store:
            return None

        legacy = legacy_store.pop(key)
        if not legacy.strip():
            return None

        parsed = self.adapter.parse_snippet(legacy)
        if parsed.error or not self.adapter.has_valid_content(legacy):
            logger.info("Dropping unusable legacy %s snippet", self.adapter.app.value)
            return None

        logger.info("Migrated %s common config from legacy storage", self.adapter.app.value)
        self.snippet = legacy
        self._unsaved = True
        return legacy

    # ── Transitions ───────────────────────────────────────────────────────────

    def _require_applicable(self) -> TConfig:
        """
        Parse the snippet for a transition, raising the matching OverlayError
        (message already translated) when it cannot be used.
        """
        parsed = self.adapter.parse_snippet(self.snippet)
        message = self.adapter.get_apply_error(self.snippet, self.translate)
        if parsed.error is not None:
            error = parsed.error
            raise type(error)(error.code, message or error.detail, keys=error.keys)
        if message or parsed.config is None:
            raise EmptyOverlayError(ErrorCode.EMPTY_OVERLAY, message)
        return parsed.config

    def _require_valid_input(self, settings_config: str) -> None:
        """Raise when the provider config cannot be rewritten without losing data."""
        error = self.adapter.validate_input(settings_config)
        if error is not None:
            self._refuse_input(error)

    def _refuse_input(self, error: OverlayError) -> None:
        logger.info("Refusing to rewrite %s config: %s", self.adapter.app.value, error)
        self.error = self.translate("providerConfig.invalidFormat", detail=error.detail)
        raise error

    def _settings_config(self, final: TFinal, original: str) -> str:
        return self.adapter.build_extract_request(final, original)["settingsConfig"]

    def enable(self, settings_config: str) -> TransitionResult:
        """
        Disabled -> Enabled. Returns the merged settingsConfig.
        Raises EmptyOverlayError / ConfigFormatError / ConfigValidationError
        with nothing changed when the snippet cannot be applied or the
        provider config cannot be read.
        """
        if self.enabled:
            return TransitionResult(state=self.state, settings_config=settings_config)

        try:
            common = self._require_applicable()
        except OverlayError as exc:
            self.error = exc.detail
            raise

        self._require_valid_input(settings_config)
        custom = self.adapter.parse_input(settings_config)
        merged = self.adapter.apply_overlay(custom, common)
        if merged.error is not None:
            self._refuse_input(merged.error)
        new_config = self._settings_config(merged.final, settings_config)

        self.enabled = True
        self.error = ""
        return TransitionResult(
            state=self.state,
            settings_config=new_config,
            changed=new_config != settings_config,
        )

    def disable(self, settings_config: str) -> TransitionResult:
        """
        Enabled -> Disabled. Returns the custom-only settingsConfig.
        An empty snippet disables without touching the config; a snippet or
        config that cannot be parsed raises with nothing changed.
        """
        if not self.enabled:
            return TransitionResult(state=self.state, settings_config=settings_config)

        parsed = self.adapter.parse_snippet(self.snippet)
        if parsed.error is not None:
            self.error = self.adapter.get_apply_error(self.snippet, self.translate)
            raise parsed.error
        if not self.adapter.has_valid_content(self.snippet):
            self.enabled = False
            self.error = ""
            return TransitionResult(state=self.state, settings_config=settings_config)

        self._require_valid_input(settings_config)
        custom = self.adapter.parse_input(settings_config)
        diff = self.adapter.extract_diff(custom, parsed.config)
        if diff.error is not None:
            self.error = diff.error.detail
            raise diff.error

        if not diff.has_common_keys:
            self.enabled = False
            self.error = ""
            return TransitionResult(state=self.state, settings_config=settings_config)

        final = self.adapter.compute_final(diff.custom, diff.custom, False)
        new_config = self._settings_config(final, settings_config)

        self.enabled = False
        self.error = ""
        return TransitionResult(
            state=self.state,
            settings_config=new_config,
            changed=True,
            has_common_keys=True,
        )

    def strip_snippet_from(self, settings_config: str, extracted: str) -> str:
        """
        After a new snippet has been extracted from a final config, adopt it
        and remove its content from the provider's custom config.

        Raises ConfigFormatError / ConfigValidationError when `extracted` is
        unusable; the caller's config is then left as is.
        """
        parsed = self.adapter.parse_snippet(extracted)
        if parsed.error is not None:
            raise parsed.error
        if not self.adapter.has_valid_content(extracted):
            raise EmptyOverlayError(ErrorCode.EMPTY_OVERLAY, "extracted snippet is empty")

        self._require_valid_input(settings_config)
        custom = self.adapter.parse_input(settings_config)
        diff = self.adapter.extract_diff(custom, parsed.config)
        if diff.error is not None:
            raise diff.error

        self.snippet = extracted
        self._unsaved = True
        final = self.adapter.compute_final(diff.custom, diff.custom, False)
        return self._settings_config(final, settings_config)


def controller_for(
    app: AppType,
    snippet: Optional[str] = None,
    *,
    config: Optional[dict[str, Any]] = None,
    translate: Translate = translate,
    enabled: bool = False,
) -> CommonConfigController:
    """Build a controller for `app`, falling back to the configured default snippet."""
    if snippet is None and config is not None:
        snippet = config.get("snippets", {}).get(app.value)
    return CommonConfigController(
        get_adapter(app, config),
        snippet,
        translate=translate,
        enabled=enabled,
    )


__all__ = [
    "ADAPTERS",
    "CommonConfigController",
    "controller_for",
    "get_adapter",
]
