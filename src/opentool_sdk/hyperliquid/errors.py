"""Error types for the Hyperliquid adapter.

Every failure is a :class:`HyperliquidError` tagged with a ``kind``. The
subclasses only pin the kind so callers can ``except`` on the category they
care about, or inspect ``error.kind`` directly.
"""

from typing import Any, Literal, Optional

ErrorKind = Literal[
    "validation",
    "config",
    "resolution",
    "api",
    "terms",
    "builder_approval",
    "signing",
]


class HyperliquidError(Exception):
    """Base error carrying a kind tag and an inspectable detail payload."""

    kind: ErrorKind = "api"

    def __init__(
        self,
        message: str,
        detail: Any = None,
        kind: Optional[ErrorKind] = None,
    ):
        super().__init__(message)
        self.message = message
        self.detail = detail
        if kind is not None:
            self.kind = kind

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, message={self.message!r})"


class HyperliquidValidationError(HyperliquidError, ValueError):
    """Invalid caller input, raised before any network or signing call."""

    kind: ErrorKind = "validation"


class HyperliquidConfigError(HyperliquidError):
    """Missing client configuration such as a nonce source or signing wallet."""

    kind: ErrorKind = "config"


class HyperliquidResolutionError(HyperliquidError):
    """Symbol could not be mapped to an asset index (unknown dex, asset or pair)."""

    kind: ErrorKind = "resolution"


class HyperliquidApiError(HyperliquidError):
    """Venue returned a non-2xx status, malformed body or per-item error."""

    kind: ErrorKind = "api"

    @property
    def response(self) -> Any:
        return self.detail


class HyperliquidGuardError(HyperliquidError):
    """Local precondition the caller must satisfy before the action is allowed."""

    kind: ErrorKind = "terms"

    @classmethod
    def terms(
        cls,
        message: str = "Hyperliquid terms must be accepted before proceeding.",
    ) -> "HyperliquidGuardError":
        return cls(message, kind="terms")

    @classmethod
    def builder_approval(
        cls,
        message: str = "Hyperliquid builder approval is required before using builder codes.",
        detail: Any = None,
    ) -> "HyperliquidGuardError":
        return cls(message, detail=detail, kind="builder_approval")


class HyperliquidSigningError(HyperliquidError):
    """Wallet returned a signature that cannot be decomposed."""

    kind: ErrorKind = "signing"


def resolve_error_detail(error: BaseException) -> Any:
    """Return the diagnostic payload of an error, dispatching on its kind.

    Args:
        error: Any exception raised by the adapter (or elsewhere)

    Returns:
        The raw venue response for ``api`` errors, the attached detail for
        other kinds, or None for foreign exceptions.
    """
    if not isinstance(error, HyperliquidError):
        return getattr(error, "response", None)
    if error.kind == "api":
        return error.detail
    if error.kind in ("terms", "builder_approval"):
        return error.detail or {"guard": error.kind}
    return error.detail
