"""Readers for clearinghouse state payloads and spot USD valuation.

The venue nests account data differently across endpoints and versions, so
every reader accepts either the raw state or a ``{"data": state}`` wrapper and
tolerates missing fields, returning 0 or None instead of raising.
"""

import math
from typing import Any, Dict, List, Optional

from .symbols import normalize_spot_token_name, resolve_spot_mid_candidates
from .types import PerpPosition, SpotBalance

USD_QUOTE = "USDC"


def read_number(value: Any) -> Optional[float]:
    """Parse a venue number (JSON number or numeric string), else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def read_context_price(ctx: Optional[Dict[str, Any]]) -> Optional[float]:
    """Price of an asset context: mark, then mid, then oracle."""
    if not isinstance(ctx, dict):
        return None
    for key in ("markPx", "midPx", "oraclePx"):
        if ctx.get(key) is not None:
            return read_number(ctx[key])
    return None


def _unwrap(payload: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict):
        return data
    return payload


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _rows(payload: Any, key: str) -> List[Dict[str, Any]]:
    data = _unwrap(payload)
    rows = data.get(key) if data else None
    if not isinstance(rows, list):
        return []
    return [row for row in rows if isinstance(row, dict)]


def _row_coin(row: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        if isinstance(row.get(key), str):
            return row[key]
    return ""


def read_account_value(payload: Any) -> Optional[float]:
    """Account value from a perp clearinghouse state.

    Tries ``marginSummary.accountValue`` first, then the cross-margin summary
    and a few flat spellings used by older payloads.
    """
    data = _unwrap(payload)
    if not data:
        return None
    margin = data.get("marginSummary") if isinstance(data.get("marginSummary"), dict) else {}
    cross = data.get("crossMarginSummary") if isinstance(data.get("crossMarginSummary"), dict) else {}
    candidates = [
        margin.get("accountValue"),
        cross.get("accountValue"),
        data.get("accountValue"),
        data.get("equity"),
        data.get("totalAccountValue"),
        margin.get("totalAccountValue"),
    ]
    for value in candidates:
        parsed = read_number(value)
        if parsed is not None:
            return parsed
    return None


def _perp_rows(payload: Any, symbol: str, prefix_match: bool):
    target = symbol.split("-")[0].upper()
    for row in _rows(payload, "assetPositions"):
        position = row.get("position") if isinstance(row.get("position"), dict) else row
        coin = (_row_coin(position, "coin") or _row_coin(row, "coin")).upper()
        matched = coin.startswith(target) if prefix_match else coin == target
        if matched:
            yield row, position


def read_perp_position_size(payload: Any, symbol: str, prefix_match: bool = False) -> float:
    """Signed size of the first position whose coin matches ``symbol``, else 0.

    Args:
        payload: Clearinghouse state
        symbol: Coin, optionally with a quote (``ETH-USDC``)
        prefix_match: Match coins that start with the base instead of equal it
    """
    for row, position in _perp_rows(payload, symbol, prefix_match):
        return read_number(_first(position.get("szi"), row.get("szi"))) or 0.0
    return 0.0


def read_perp_position(payload: Any, symbol: str, prefix_match: bool = False) -> PerpPosition:
    for row, position in _perp_rows(payload, symbol, prefix_match):
        value = read_number(_first(position.get("positionValue"), row.get("positionValue")))
        return PerpPosition(
            size=read_number(_first(position.get("szi"), row.get("szi"))) or 0.0,
            position_value=abs(value or 0.0),
            unrealized_pnl=read_number(_first(position.get("unrealizedPnl"), row.get("unrealizedPnl"))),
        )
    return PerpPosition(size=0.0, position_value=0.0)


def _balance_amount(row: Dict[str, Any]) -> Optional[float]:
    return read_number(_first(row.get("total"), row.get("balance"), row.get("szi")))


def read_spot_balances(payload: Any) -> List[Dict[str, Any]]:
    """Balance rows of a spot clearinghouse state, raw or wrapped."""
    return _rows(payload, "balances")


def read_spot_balance_size(payload: Any, symbol: str) -> float:
    """Total balance of the base token of ``symbol`` (``HYPE``, ``HYPE/USDC``), else 0."""
    base = symbol.split("/")[0].split("-")[0].upper()
    for row in _rows(payload, "balances"):
        if _row_coin(row, "coin", "asset").upper() == base:
            return _balance_amount(row) or 0.0
    return 0.0


def read_spot_balance(payload: Any, base: str) -> SpotBalance:
    target = base.upper()
    for row in _rows(payload, "balances"):
        if _row_coin(row, "coin").upper() != target:
            continue
        return SpotBalance(
            total=read_number(row.get("total")) or 0.0,
            entry_ntl=read_number(row.get("entryNtl")),
        )
    return SpotBalance(total=0.0)


def read_spot_account_value(balances: Any, prices_usd: Dict[str, float]) -> Optional[float]:
    """USD value of spot balances.

    Balances without a positive price in ``prices_usd`` are skipped.

    Returns:
        Summed value, or None when no balance could be priced
    """
    if not isinstance(balances, list):
        return None
    total = 0.0
    priced = False
    for row in balances:
        if not isinstance(row, dict):
            continue
        coin = _row_coin(row, "coin", "asset")
        if not coin:
            continue
        amount = _balance_amount(row)
        if not amount:
            continue
        price = prices_usd.get(coin.upper())
        if price is None or not math.isfinite(price) or price <= 0:
            continue
        total += amount * price
        priced = True
    return total if priced else None


def build_spot_usd_price_map(
    meta: Dict[str, Any],
    contexts: List[Dict[str, Any]],
    mids: Optional[Dict[str, Any]] = None,
) -> Dict[str, float]:
    """USD price per spot token, from the USDC-quoted markets.

    Each base token is priced from ``mids`` when present and positive, else
    from its market's asset context. ``USDC`` is always 1.

    Args:
        meta: Spot meta (``universe`` and ``tokens``)
        contexts: Spot asset contexts, indexed like the universe
        mids: All-mids map, optional
    """
    names: Dict[int, str] = {}
    for token in meta.get("tokens") or []:
        if isinstance(token, dict) and isinstance(token.get("index"), int):
            names[token["index"]] = normalize_spot_token_name(token.get("name"))

    prices: Dict[str, float] = {USD_QUOTE: 1.0}
    for position, market in enumerate(meta.get("universe") or []):
        tokens = market.get("tokens") if isinstance(market, dict) else None
        if not isinstance(tokens, list) or len(tokens) < 2:
            continue
        base, quote = names.get(tokens[0]), names.get(tokens[1])
        if not base or quote != USD_QUOTE:
            continue

        index = market.get("index")
        context_index = index if isinstance(index, int) else position
        ctx = contexts[context_index] if 0 <= context_index < len(contexts) else None
        if ctx is None and position < len(contexts):
            ctx = contexts[position]

        price: Optional[float] = None
        for candidate in resolve_spot_mid_candidates(base) if mids else []:
            mid = read_number(mids.get(candidate))
            if mid is not None and mid > 0:
                price = mid
                break
        if not price:
            price = read_context_price(ctx)
        if price and price > 0:
            prices[base] = price
    return prices
