"""Exceptions for confoverlay.

Engine functions never raise these; they return them inside result objects.
The controller raises them at transition boundaries so callers can refuse a
write with a single ``except OverlayError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from .models import ErrorCode


class OverlayError(Exception):
    """Base exception for common-config overlay errors."""

    def __init__(
        self,
        code: "ErrorCode",
        detail: str = "",
        *,
        keys: Optional[Iterable[str]] = None,
    ) -> None:
        self.code = code
        self.detail = detail
        self.keys: tuple[str, ...] = tuple(keys or ())
        super().__init__(f"{code.value}: {detail}" if detail else code.value)


class ConfigFormatError(OverlayError):
    """Snippet or config is not valid JSON / TOML, or not an object."""

    pass


class ConfigValidationError(OverlayError):
    """ENV snippet carries a forbidden key or a non-string value."""

    pass


class EmptyOverlayError(OverlayError):
    """Snippet is syntactically fine but has nothing to apply."""

    pass


class StoreError(OverlayError):
    """Error reading or writing the local snippet store."""

    pass
