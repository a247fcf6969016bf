"""Venue symbol parsing.

Hyperliquid accepts four symbol shapes:

- ``BTC``: perp on the default dex
- ``HYPE/USDC`` or ``HYPE-USDC``: spot pair by token names
- ``@107``: spot market by index
- ``xyz:TSLA``: perp listed on a builder-deployed dex

Nothing here touches the network; see :mod:`.resolver` for turning a symbol
into an asset index.
"""

from typing import List, Optional, Tuple

from .types import Environment, MarketIdentity

UNKNOWN_SYMBOL = "UNKNOWN"
VENUE = "hyperliquid"


def _strip_dex(value: str) -> str:
    if ":" in value:
        return value.split(":", 1)[1]
    return value


def _unique(values: List[str]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def extract_dex(symbol: Optional[str]) -> Optional[str]:
    """Return the lowercase dex prefix of ``dex:NAME`` symbols, else None."""
    if not symbol:
        return None
    trimmed = symbol.strip()
    if trimmed.startswith("@") or ":" not in trimmed:
        return None
    dex = trimmed.split(":", 1)[0].strip().lower()
    return dex or None


def normalize_spot_token_name(value: Optional[str]) -> str:
    """Uppercase a spot token name and drop a trailing ``0`` suffix.

    The venue lists some tokens twice (``USDT0`` and ``USDT``); both spellings
    collapse to the same key.
    """
    raw = (value or "").strip().upper()
    if not raw:
        return ""
    if raw.endswith("0") and len(raw) > 1:
        return raw[:-1]
    return raw


def normalize_base_symbol(value: Optional[str]) -> Optional[str]:
    """Extract the uppercase base asset from any symbol shape."""
    if not value or not value.strip():
        return None
    base = _strip_dex(value.strip()).split("-")[0].split("/")[0]
    normalized = base.strip().upper()
    if not normalized or normalized == UNKNOWN_SYMBOL:
        return None
    return normalized


def normalize_meta_symbol(symbol: str) -> str:
    """Strip dex prefix and quote from a symbol, keeping the original case."""
    no_dex = _strip_dex(symbol.strip())
    return no_dex.split("-")[0].split("/")[0].strip()


def parse_pair(value: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split ``BASE/QUOTE`` or ``BASE-QUOTE`` into uppercase parts.

    Returns:
        ``(base, quote)`` or None when the value is not a pair
    """
    if not value or not value.strip():
        return None
    without_dex = _strip_dex(value.strip())
    if "/" in without_dex:
        separator = "/"
    elif "-" in without_dex:
        separator = "-"
    else:
        return None
    base_raw, _, quote_raw = without_dex.partition(separator)
    base = base_raw.strip().upper()
    quote = quote_raw.strip().upper()
    if not base or not quote:
        return None
    return base, quote


def resolve_pair(value: Optional[str]) -> Optional[str]:
    """Canonical ``BASE/QUOTE`` form of a pair symbol, or None."""
    pair = parse_pair(value)
    if pair is None:
        return None
    return f"{pair[0]}/{pair[1]}"


def parse_spot_pair_symbol(symbol: str) -> Optional[Tuple[str, str]]:
    """Like :func:`parse_pair` but only accepts the ``/`` separator."""
    trimmed = symbol.strip()
    if "/" not in trimmed:
        return None
    parts = trimmed.split("/")
    base = parts[0].strip().upper()
    quote = parts[1].strip().upper()
    if not base or not quote:
        return None
    return base, quote


def is_spot_symbol(symbol: str) -> bool:
    return symbol.startswith("@") or "/" in symbol


def resolve_spot_mid_candidates(base_symbol: str) -> List[str]:
    """Keys to try in the all-mids map for a spot base token."""
    base = base_symbol.strip().upper()
    if not base:
        return []
    candidates = [base]
    if base.startswith("U") and len(base) > 1:
        candidates.append(base[1:])
    return _unique(candidates)


def resolve_spot_token_candidates(value: str) -> List[str]:
    """Aliases under which a spot token may be listed (``UBTC`` also ``BTC``)."""
    normalized = normalize_spot_token_name(value)
    if not normalized:
        return []
    candidates = [normalized]
    if normalized.startswith("U") and len(normalized) > 1:
        candidates.append(normalized[1:])
    return _unique(candidates)


def resolve_order_symbol(value: Optional[str]) -> Optional[str]:
    """Normalize a user-supplied symbol into the form the resolver accepts.

    ``@N`` is kept, ``dex:name`` becomes ``dex:NAME``, pairs become
    ``BASE/QUOTE`` and anything else is reduced to its uppercase base.
    """
    if not value or not value.strip():
        return None
    trimmed = value.strip()
    if trimmed.startswith("@"):
        return trimmed
    if ":" in trimmed:
        raw_dex, _, rest = trimmed.partition(":")
        dex = raw_dex.strip().lower()
        base = rest.split("/")[0].split("-")[0].strip().upper()
        if not dex or not base or base == UNKNOWN_SYMBOL:
            return None
        return f"{dex}:{base}"
    pair = resolve_pair(trimmed)
    if pair:
        return pair
    return normalize_base_symbol(trimmed)


def resolve_symbol(asset: str, override: Optional[str] = None) -> str:
    """Pick the order symbol for an asset, preferring a non-blank override."""
    raw = override.strip() if override and override.strip() else asset.strip()
    if not raw or raw.startswith("@"):
        return raw
    if ":" in raw:
        raw_dex, _, rest = raw.partition(":")
        dex = raw_dex.strip().lower()
        base = rest.split("/")[0].split("-")[0].strip().upper()
        return f"{dex}:{base}" if dex else base
    pair = resolve_pair(raw)
    if pair:
        return pair
    return raw.split("-")[0].split("/")[0].strip().upper()


def build_market_identity(
    symbol: str,
    environment: Environment,
    raw_symbol: Optional[str] = None,
    is_spot: Optional[bool] = None,
    base: Optional[str] = None,
    quote: Optional[str] = None,
) -> Optional[MarketIdentity]:
    """Derive the stable market identity for a venue symbol.

    Args:
        symbol: Display symbol (``BTC``, ``HYPE/USDC``)
        environment: Venue environment
        raw_symbol: Symbol as sent to the venue, if different (``@107``)
        is_spot: Force spot/perp classification. Default: inferred
        base: Explicit base asset
        quote: Explicit quote asset (spot only)

    Returns:
        MarketIdentity, or None when base (or quote for spot) cannot be derived

    Example:
        >>> build_market_identity("HYPE/USDC", "mainnet").canonical_symbol
        'spot:hyperliquid:HYPE-USDC'
    """
    raw = raw_symbol if raw_symbol is not None else symbol
    dex = extract_dex(raw)
    pair = parse_pair(raw) or parse_pair(symbol)
    if is_spot is None:
        is_spot = bool(pair) or raw.startswith("@") or "/" in symbol

    resolved_base = (
        (base.strip().upper() if base else None)
        or (pair[0] if pair else None)
        or normalize_base_symbol(symbol)
        or normalize_base_symbol(raw)
    )
    if not resolved_base:
        return None

    if is_spot:
        resolved_quote = (quote.strip().upper() if quote else None) or (pair[1] if pair else None)
        if not resolved_quote:
            return None
        return MarketIdentity(
            market_type="spot",
            venue=VENUE,
            environment=environment,
            base=resolved_base,
            quote=resolved_quote,
            dex=dex,
            raw_symbol=raw,
            canonical_symbol=f"spot:{VENUE}:{resolved_base}-{resolved_quote}",
        )

    return MarketIdentity(
        market_type="perp",
        venue=VENUE,
        environment=environment,
        base=resolved_base,
        dex=dex,
        raw_symbol=raw,
        canonical_symbol=f"perp:{VENUE}:{resolved_base}",
    )
