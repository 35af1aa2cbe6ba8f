"""Abstract base class for common-config format adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, ClassVar, Generic, Optional

from ..exceptions import OverlayError
from ..models import AppType, ExtractResult, MergeResult, ParseResult, TConfig, TFinal

# translate(key, **params) -> user-facing text; owned by the caller
Translate = Callable[..., str]


class CommonConfigAdapter(ABC, Generic[TConfig, TFinal]):
    """
    Shared contract every format binding (JSON, TOML, ENV) must satisfy.

    TConfig is the in-memory shape of a custom config and a parsed snippet;
    TFinal is the shape produced by compute_final and handed to
    build_extract_request.
    """

    app: ClassVar[AppType]
    default_snippet: ClassVar[str] = ""
    # Key the snippet lived under before it moved into the config store.
    # Only consulted by CommonConfigController.migrate_legacy_snippet.
    legacy_storage_key: ClassVar[Optional[str]] = None

    @abstractmethod
    def parse_snippet(self, snippet: str) -> ParseResult[TConfig]:
        """
        Parse the snippet text. Fails with a ConfigFormatError (or, for ENV,
        a ConfigValidationError) on bad input and never returns a partial config.
        """
        ...

    @abstractmethod
    def has_valid_content(self, snippet: str) -> bool:
        """True when the snippet parses and has something to apply."""
        ...

    @abstractmethod
    def has_content(self, settings_config: str, snippet: str) -> bool:
        """True when the persisted provider config already contains the snippet."""
        ...

    @abstractmethod
    def get_apply_error(self, snippet: str, t: Translate) -> str:
        """
        User-facing reason the snippet cannot be applied, or "" when it can.
        """
        ...

    @abstractmethod
    def parse_input(self, settings_config: str) -> TConfig:
        """
        Convert a persisted provider config into TConfig.
        Unusable input yields an empty config instead of raising, so this is
        only safe for previews. Transitions call validate_input first.
        """
        ...

    @abstractmethod
    def validate_input(self, settings_config: str) -> Optional[OverlayError]:
        """
        Strict counterpart of parse_input: the reason `settings_config` cannot
        be rewritten without losing data, or None when it can.
        """
        ...

    @abstractmethod
    def compute_final(self, custom: TConfig, common: TConfig, enabled: bool) -> TFinal:
        """
        Merge `common` under `custom`. Returns `custom` (in TFinal shape)
        unchanged when disabled, when `common` is empty, or on any error.
        """
        ...

    def apply_overlay(self, custom: TConfig, common: TConfig) -> MergeResult[TFinal]:
        """Merge for a transition. A merge that cannot be done is reported, not hidden."""
        return MergeResult(final=self.compute_final(custom, common, True))

    @abstractmethod
    def extract_diff(self, custom: TConfig, common: TConfig) -> ExtractResult[TConfig]:
        """Strip the keys `common` contributed to `custom`."""
        ...

    @abstractmethod
    def serialize_output(self, config: TConfig) -> str:
        ...

    @abstractmethod
    def build_extract_request(
        self,
        final_value: TFinal,
        original: Optional[str] = None,
    ) -> dict[str, str]:
        """
        Marshal a final value into the persisted {"settingsConfig": ...} shape.
        `original` is the provider's previous settingsConfig, used by formats
        that must preserve sibling fields.
        """
        ...
