"""Decimal formatting rules for Hyperliquid prices and sizes.

All arithmetic runs on :class:`decimal.Decimal` so that truncation happens on
exact digits. Prices and sizes end up inside signed payloads, so the same input
must always produce the same string.
"""

import math
import re
from decimal import (
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_UP,
    Context,
    Decimal,
    InvalidOperation,
)
from typing import Optional, Union

from .errors import HyperliquidValidationError
from .types import MarketType, Side, TickSize

NumberLike = Union[str, int, float, Decimal]

MAX_PRICE_DECIMALS = 8
PRICE_SIGNIFICANT_FIGURES = 5
DEFAULT_MARKET_SLIPPAGE_BPS = 30

_NUMBER_PATTERN = re.compile(r"^-?(?:\d+\.?\d*|\.\d+)$")
_INTEGER_PATTERN = re.compile(r"^-?\d+$")
_POSITIVE_DECIMAL_PATTERN = re.compile(r"^(?:\d+\.?\d*|\.\d+)$")

# Wide enough for any price or size the venue accepts.
_CONTEXT = Context(prec=80)


def _plain(value: Decimal) -> str:
    """Render a decimal without exponent or trailing fractional zeros."""
    if value.is_zero():
        return "0"
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _quantum(exponent: int) -> Decimal:
    return Decimal(1).scaleb(exponent)


def to_api_decimal(value: NumberLike) -> str:
    """Convert a number to the decimal string used on the wire.

    Strings pass through untouched and integers are stringified. Floats are
    rendered from their shortest round-trip representation with any exponent
    expanded, so ``1e-7`` becomes ``"0.0000001"`` and ``100.0`` becomes
    ``"100"``.

    Args:
        value: String, integer, float or Decimal

    Returns:
        Decimal string without exponent

    Raises:
        HyperliquidValidationError: If the value is non-finite or of an unsupported type
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        raise HyperliquidValidationError("Boolean values are not numeric.")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise HyperliquidValidationError("Numeric values must be finite.")
        return _plain(Decimal(repr(value)))
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise HyperliquidValidationError("Numeric values must be finite.")
        return _plain(value)
    raise HyperliquidValidationError(f"Unsupported numeric type: {type(value).__name__}")


def _decimal_text(value: NumberLike) -> str:
    text = value.strip() if isinstance(value, str) else to_api_decimal(value)
    if not _NUMBER_PATTERN.match(text):
        raise HyperliquidValidationError(f"Invalid decimal number string: {value!r}")
    return text


def _to_decimal(value: NumberLike) -> Decimal:
    return Decimal(_decimal_text(value))


def truncate_decimals(value: Decimal, decimals: int) -> Decimal:
    """Drop fraction digits beyond ``decimals`` without rounding."""
    if decimals < 0:
        raise HyperliquidValidationError("Decimals must be a non-negative integer.")
    return value.quantize(_quantum(-decimals), rounding=ROUND_DOWN, context=_CONTEXT)


def truncate_significant(value: Decimal, precision: int) -> Decimal:
    """Keep at most ``precision`` significant digits, truncating the rest."""
    if precision < 1:
        raise HyperliquidValidationError("Precision must be a positive integer.")
    if value.is_zero():
        return Decimal(0)
    exponent = value.adjusted() - precision + 1
    return value.quantize(_quantum(exponent), rounding=ROUND_DOWN, context=_CONTEXT)


def format_price(
    price: NumberLike,
    sz_decimals: int,
    market_type: MarketType = "perp",
) -> str:
    """Format a price to the venue's precision rules.

    Integer prices are returned as-is (normalized). Otherwise the price is
    truncated to ``(6 for perp, 8 for spot) - sz_decimals`` fraction digits and
    then to 5 significant figures.

    Args:
        price: Price as decimal string or number
        sz_decimals: Size decimals of the asset
        market_type: "perp" or "spot"

    Returns:
        Price string accepted by the venue

    Raises:
        HyperliquidValidationError: If the price is malformed or truncates to zero
    """
    text = _decimal_text(price)
    if _INTEGER_PATTERN.match(text):
        return _plain(Decimal(text))

    base_decimals = 6 if market_type == "perp" else 8
    max_decimals = max(base_decimals - sz_decimals, 0)
    decimals_trimmed = truncate_decimals(Decimal(text), max_decimals)
    sig_fig_trimmed = truncate_significant(decimals_trimmed, PRICE_SIGNIFICANT_FIGURES)
    if sig_fig_trimmed.is_zero():
        raise HyperliquidValidationError("Price is too small and was truncated to 0.")
    return _plain(sig_fig_trimmed)


def format_size(size: NumberLike, sz_decimals: int) -> str:
    """Truncate a size to ``sz_decimals`` fraction digits.

    Raises:
        HyperliquidValidationError: If the size is malformed or truncates to zero
    """
    truncated = truncate_decimals(_to_decimal(size), sz_decimals)
    if truncated.is_zero():
        raise HyperliquidValidationError("Size is too small and was truncated to 0.")
    return _plain(truncated)


def format_order_size(value: NumberLike, sz_decimals: int) -> str:
    """Like :func:`format_size` but returns ``"0"`` instead of raising."""
    try:
        if _to_decimal(value) <= 0:
            return "0"
        return format_size(value, sz_decimals)
    except HyperliquidValidationError:
        return "0"


def _clamp_price_decimals(value: Decimal) -> str:
    clamped = value.quantize(
        _quantum(-MAX_PRICE_DECIMALS), rounding=ROUND_HALF_UP, context=_CONTEXT
    )
    if clamped <= 0:
        raise HyperliquidValidationError("Price must be positive.")
    return _plain(clamped)


def round_price_to_tick(price: NumberLike, tick: TickSize, side: Side) -> str:
    """Snap a price onto the tick grid, biased toward a fill.

    Buys round up to the next tick and sells round down.

    Args:
        price: Positive price
        tick: Tick size as integer units of ``10**-tick_decimals``
        side: "buy" or "sell"

    Returns:
        Tick-conformant price string
    """
    value = _to_decimal(price)
    if value <= 0:
        raise HyperliquidValidationError("Price must be positive.")
    if tick.tick_decimals < 0:
        raise HyperliquidValidationError("tick.tick_decimals must be a non-negative number.")
    if tick.tick_size_int <= 0:
        raise HyperliquidValidationError("tick.tick_size_int must be positive.")

    scaled = int(value.scaleb(tick.tick_decimals).to_integral_value(rounding=ROUND_HALF_UP))
    step = tick.tick_size_int
    if side == "sell":
        rounded = (scaled // step) * step
    else:
        rounded = -(-scaled // step) * step
    return _clamp_price_decimals(Decimal(rounded).scaleb(-tick.tick_decimals))


def format_marketable_price(
    mid: NumberLike,
    side: Side,
    slippage_bps: NumberLike,
    tick: Optional[TickSize] = None,
) -> str:
    """Apply slippage to a mid price and round it in the aggressive direction.

    Without a tick the result keeps the number of decimals the mid price has.
    """
    mid_value = _to_decimal(mid)
    bps = _to_decimal(slippage_bps) / Decimal(10_000)
    adjusted = mid_value * (1 + bps if side == "buy" else 1 - bps)

    if tick is not None:
        return round_price_to_tick(adjusted, tick, side)

    decimals = max(0, -mid_value.normalize().as_tuple().exponent)
    rounding = ROUND_CEILING if side == "buy" else ROUND_FLOOR
    rounded = adjusted.scaleb(decimals).to_integral_value(rounding=rounding)
    return _clamp_price_decimals(rounded.scaleb(-decimals))


def compute_market_ioc_limit_price(
    mark_price: NumberLike,
    side: Side,
    slippage_bps: Optional[NumberLike] = None,
    decimals: Optional[int] = None,
) -> str:
    """Limit price for an IOC order emulating a market order.

    Args:
        mark_price: Current mark price
        side: "buy" or "sell"
        slippage_bps: Allowed slippage. Default: 30
        decimals: Decimal places to round to (clamped to 0..12). Default: 6

    Returns:
        Price string rounded half-up
    """
    bps = DEFAULT_MARKET_SLIPPAGE_BPS if slippage_bps is None else slippage_bps
    places = 6 if decimals is None else decimals
    try:
        mark = _to_decimal(mark_price)
        bps_value = _to_decimal(bps)
    except HyperliquidValidationError:
        raise HyperliquidValidationError("mark_price and slippage_bps must be finite numbers.") from None
    if mark <= 0:
        raise HyperliquidValidationError("mark_price must be a positive number.")
    if bps_value < 0:
        raise HyperliquidValidationError("slippage_bps must be a non-negative number.")

    precision = max(0, min(12, int(math.floor(places))))
    slippage = bps_value / Decimal(10_000)
    price = mark * (1 + slippage if side == "buy" else 1 - slippage)
    rounded = price.quantize(_quantum(-precision), rounding=ROUND_HALF_UP, context=_CONTEXT)
    if rounded <= 0:
        raise HyperliquidValidationError("Price must be positive.")
    return _plain(rounded)


def assert_non_empty_string(value: object, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise HyperliquidValidationError(f"{label} must be a non-empty string.")
    return value


def assert_positive_number(value: object, label: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise HyperliquidValidationError(f"{label} must be a positive number.")
    if not math.isfinite(value) or value <= 0:
        raise HyperliquidValidationError(f"{label} must be a positive number.")


def assert_positive_decimal(value: object, label: str) -> None:
    """Validate a price/size style input.

    Integers must be > 0, floats positive and finite, and strings must be a
    plain unsigned decimal that parses to a positive value.
    """
    if isinstance(value, bool):
        raise HyperliquidValidationError(f"{label} must be positive.")
    if isinstance(value, int):
        if value <= 0:
            raise HyperliquidValidationError(f"{label} must be positive.")
        return
    if isinstance(value, float):
        assert_positive_number(value, label)
        return
    if isinstance(value, Decimal):
        if not value.is_finite() or value <= 0:
            raise HyperliquidValidationError(f"{label} must be positive.")
        return
    assert_non_empty_string(value, label)
    normalize_positive_decimal_string(value, label)


def normalize_positive_decimal_string(raw: str, label: str) -> str:
    """Validate a positive decimal string and strip redundant zeros."""
    trimmed = raw.strip()
    if not trimmed:
        raise HyperliquidValidationError(f"{label} must be a non-empty decimal string.")
    if not _POSITIVE_DECIMAL_PATTERN.match(trimmed):
        raise HyperliquidValidationError(f"{label} must be a positive decimal string.")
    try:
        parsed = Decimal(trimmed)
    except InvalidOperation:
        raise HyperliquidValidationError(f"{label} must be a positive decimal string.") from None
    if parsed <= 0:
        raise HyperliquidValidationError(f"{label} must be positive.")
    return _plain(parsed)
