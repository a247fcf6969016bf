"""Read-only ``/info`` queries and market data helpers."""

import asyncio
import logging
import math
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from .cache import CacheEntry, MemoryMetadataCache
from .errors import (
    HyperliquidApiError,
    HyperliquidResolutionError,
    HyperliquidValidationError,
)
from .resolver import SPOT_ASSET_OFFSET
from .state import (
    build_spot_usd_price_map,
    read_account_value,
    read_context_price,
    read_number,
    read_perp_position,
    read_perp_position_size,
    read_spot_account_value,
    read_spot_balance,
    read_spot_balance_size,
    read_spot_balances,
)
from .symbols import (
    is_spot_symbol,
    normalize_meta_symbol,
    normalize_spot_token_name,
    parse_spot_pair_symbol,
    resolve_spot_mid_candidates,
    resolve_spot_token_candidates,
)
from .transport import HyperliquidTransport
from .types import PerpMarketInfo, PerpPosition, SpotBalance, SpotMarketInfo, TickSize
from .utils import (
    BUILDER_CODE,
    CACHE_TTL_SECONDS,
    HyperliquidClientConfig,
    normalize_address,
    resolve_config,
)

logger = logging.getLogger(__name__)


def compute_tick_size(prices: List[str]) -> TickSize:
    """Infer the price tick from a list of book prices.

    Prices are scaled to the largest decimal count among them; the tick is
    the gcd of the gaps between successive distinct values, or one unit when
    every price is the same.

    Raises:
        HyperliquidValidationError: If fewer than two prices are given
    """
    if len(prices) < 2:
        raise HyperliquidValidationError("At least two prices are required to infer a tick size.")
    decimals = max((len(p.split(".", 1)[1]) if "." in p else 0) for p in prices)
    try:
        scaled = sorted({int(Decimal(p.strip()).scaleb(decimals)) for p in prices})
    except InvalidOperation:
        raise HyperliquidValidationError(f"Invalid book price in {prices!r}") from None

    tick = 0
    for previous, current in zip(scaled, scaled[1:]):
        tick = math.gcd(tick, current - previous)
    return TickSize(tick_size_int=tick or 1, tick_decimals=decimals)


def _token_table(tokens: List[Dict[str, Any]]) -> Dict[int, Dict[str, Any]]:
    table: Dict[int, Dict[str, Any]] = {}
    for token in tokens:
        if not isinstance(token, dict):
            continue
        index = token.get("index")
        sz_decimals = read_number(token.get("szDecimals"))
        if not isinstance(index, int) or sz_decimals is None:
            continue
        table[index] = {
            "name": normalize_spot_token_name(token.get("name")),
            "sz_decimals": int(sz_decimals),
        }
    return table


def _market_tokens(market: Dict[str, Any]) -> List[int]:
    tokens = market.get("tokens") if isinstance(market, dict) else None
    return tokens if isinstance(tokens, list) else []


def resolve_spot_size_decimals(spot_meta: Dict[str, Any], symbol: str) -> int:
    """Size decimals of the base token of a spot symbol (``@N`` or ``BASE/QUOTE``)."""
    universe = spot_meta.get("universe") or []
    tokens = spot_meta.get("tokens") or []
    if not universe or not tokens:
        raise HyperliquidResolutionError(f"Spot metadata unavailable for {symbol}.")
    table = _token_table(tokens)

    if symbol.startswith("@"):
        raw = symbol[1:]
        if not (raw.isascii() and raw.isdigit()):
            raise HyperliquidValidationError(f"Invalid spot pair id: {symbol}")
        target = int(raw)
        for position, market in enumerate(universe):
            index = market.get("index")
            if (index if isinstance(index, int) else position) != target:
                continue
            market_tokens = _market_tokens(market)
            base = table.get(market_tokens[0]) if market_tokens else None
            if base is None:
                break
            return base["sz_decimals"]
        raise HyperliquidResolutionError(f"Unknown spot pair id: {symbol}")

    pair = parse_spot_pair_symbol(symbol)
    if pair is None:
        raise HyperliquidValidationError(f"Invalid spot symbol: {symbol}")
    wanted_base = normalize_spot_token_name(pair[0])
    wanted_quote = normalize_spot_token_name(pair[1])
    for market in universe:
        market_tokens = _market_tokens(market)
        if len(market_tokens) < 2:
            continue
        base, quote = table.get(market_tokens[0]), table.get(market_tokens[1])
        if base and quote and base["name"] == wanted_base and quote["name"] == wanted_quote:
            return base["sz_decimals"]
    raise HyperliquidResolutionError(f"No size decimals found for {symbol}.")


class HyperliquidInfoClient:
    """Client for the venue's read-only ``/info`` endpoint.

    Example:
        ```python
        async with HyperliquidInfoClient({"environment": "testnet"}) as info:
            mids = await info.all_mids()
            book = await info.l2_book("BTC")
        ```
    """

    def __init__(
        self,
        config: Optional[HyperliquidClientConfig] = None,
        transport: Optional[HyperliquidTransport] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the info client.

        Args:
            config: Client configuration (environment, base_url, timeout)
            transport: Shared transport. Default: one built from ``config``
            http_client: HTTP client for a newly built transport
            clock: Time source in seconds for the all-mids cache
        """
        self.config = resolve_config(config)
        self.transport = transport or HyperliquidTransport(
            self.config.base_url, self.config.timeout, http_client
        )
        self._cache = MemoryMetadataCache()
        self._clock = clock

    @property
    def environment(self) -> str:
        return self.config.environment

    async def _query(self, query_type: str, **params: Any) -> Any:
        return await self.transport.post_info({"type": query_type, **params})

    async def meta(self, dex: Optional[str] = None) -> Any:
        if dex:
            return await self._query("meta", dex=dex.strip().lower())
        return await self._query("meta")

    async def meta_and_asset_ctxs(self) -> Any:
        return await self._query("metaAndAssetCtxs")

    async def spot_meta(self) -> Any:
        return await self._query("spotMeta")

    async def spot_meta_and_asset_ctxs(self) -> Any:
        return await self._query("spotMetaAndAssetCtxs")

    async def asset_ctxs(self) -> Any:
        return await self._query("assetCtxs")

    async def spot_asset_ctxs(self) -> Any:
        return await self._query("spotAssetCtxs")

    async def perp_dexs(self) -> Any:
        return await self._query("perpDexs")

    async def all_mids(self) -> Dict[str, Union[str, float]]:
        """Mid prices by coin, cached for five minutes."""
        key = ("allMids", self.config.environment, self.transport.base_url)
        entry = self._cache.get(key)
        if entry is not None and entry.is_fresh(self._clock(), CACHE_TTL_SECONDS):
            return entry.value
        mids = await self._query("allMids")
        if not isinstance(mids, dict):
            raise HyperliquidApiError("Failed to load Hyperliquid mid prices.", mids)
        self._cache.set(key, CacheEntry(fetched_at=self._clock(), value=mids))
        return mids

    async def _mids_or_none(self) -> Optional[Dict[str, Any]]:
        try:
            return await self.all_mids()
        except (HyperliquidApiError, httpx.HTTPError) as exc:
            logger.debug("All-mids unavailable, using asset contexts: %s", exc)
            return None

    async def l2_book(self, coin: str) -> Any:
        return await self._query("l2Book", coin=coin)

    async def open_orders(self, user: str) -> Any:
        return await self._query("openOrders", user=normalize_address(user))

    async def frontend_open_orders(self, user: str) -> Any:
        return await self._query("frontendOpenOrders", user=normalize_address(user))

    async def order_status(self, user: str, oid: Union[int, str]) -> Any:
        return await self._query("orderStatus", user=normalize_address(user), oid=oid)

    async def historical_orders(self, user: str) -> Any:
        return await self._query("historicalOrders", user=normalize_address(user))

    async def user_fills(self, user: str) -> Any:
        return await self._query("userFills", user=normalize_address(user))

    async def user_fills_by_time(self, user: str, start_time: int, end_time: int) -> Any:
        return await self._query(
            "userFillsByTime",
            user=normalize_address(user),
            startTime=start_time,
            endTime=end_time,
        )

    async def user_rate_limit(self, user: str) -> Any:
        return await self._query("userRateLimit", user=normalize_address(user))

    async def pre_transfer_check(self, user: str, source: str) -> Any:
        return await self._query(
            "preTransferCheck",
            user=normalize_address(user),
            source=normalize_address(source),
        )

    async def spot_clearinghouse_state(self, user: str) -> Any:
        return await self._query("spotClearinghouseState", user=normalize_address(user))

    async def clearinghouse_state(self, user: str) -> Any:
        return await self._query("clearinghouseState", user=normalize_address(user))

    async def max_builder_fee(self, user: str, builder: str = BUILDER_CODE.address) -> Any:
        """Approved max builder fee (tenths of a basis point) for a user/builder pair."""
        return await self._query(
            "maxBuilderFee", user=normalize_address(user), builder=normalize_address(builder)
        )

    async def tick_size(self, coin: str) -> TickSize:
        """Infer the tick size of a market from its current L2 book.

        Args:
            coin: Perp name or ``@N`` spot id
        """
        book = await self.l2_book(coin)
        levels = book.get("levels") if isinstance(book, dict) else None
        prices: List[str] = []
        for side in levels if isinstance(levels, list) else []:
            for level in side if isinstance(side, list) else []:
                px = level.get("px") if isinstance(level, dict) else None
                if px is not None and str(px):
                    prices.append(str(px))
        if len(prices) < 2:
            raise HyperliquidResolutionError(
                f"Hyperliquid l2Book missing price levels for {coin}", book
            )
        return compute_tick_size(prices)

    async def spot_tick_size(self, market_index: int) -> TickSize:
        if isinstance(market_index, bool) or not isinstance(market_index, int) or market_index < 0:
            raise HyperliquidValidationError("Hyperliquid spot market index is invalid.")
        return await self.tick_size(f"@{market_index}")

    async def perp_market_info(self, symbol: str) -> PerpMarketInfo:
        """Price (mark, then mid, then oracle), funding and size decimals of a perp."""
        data = await self.meta_and_asset_ctxs()
        meta = data[0] if isinstance(data, list) and data else {}
        contexts = data[1] if isinstance(data, list) and len(data) > 1 else []
        universe = meta.get("universe") or [] if isinstance(meta, dict) else []

        target = normalize_meta_symbol(symbol).upper()
        for index, entry in enumerate(universe):
            if normalize_meta_symbol(str(entry.get("name", ""))).upper() != target:
                continue
            ctx = contexts[index] if index < len(contexts) else None
            price = read_context_price(ctx)
            if not price or price <= 0:
                raise HyperliquidResolutionError(f"No perp price available for {symbol}")
            sz_decimals = read_number(entry.get("szDecimals"))
            if sz_decimals is None:
                raise HyperliquidResolutionError(f"No size decimals available for {symbol}")
            return PerpMarketInfo(
                symbol=symbol,
                price=price,
                funding_rate=read_number(ctx.get("funding")) if ctx else None,
                sz_decimals=int(sz_decimals),
            )
        raise HyperliquidResolutionError(f"Unknown Hyperliquid perp asset: {symbol}")

    async def spot_market_info(
        self,
        base: str,
        quote: str,
        mids: Optional[Dict[str, Any]] = None,
    ) -> SpotMarketInfo:
        """Resolve a spot market by token names, accepting ``U``-prefixed aliases.

        The price comes from ``mids`` (fetched when not given) and falls back to
        the market's asset context.
        """
        if mids is None:
            mids = await self._mids_or_none()

        data = await self.spot_meta_and_asset_ctxs()
        meta = data[0] if isinstance(data, list) and data else {}
        contexts = data[1] if isinstance(data, list) and len(data) > 1 else []
        table = _token_table(meta.get("tokens") or [])

        base_candidates = resolve_spot_token_candidates(base)
        quote_candidates = resolve_spot_token_candidates(quote)
        for position, market in enumerate(meta.get("universe") or []):
            market_tokens = _market_tokens(market)
            if len(market_tokens) < 2:
                continue
            base_token, quote_token = table.get(market_tokens[0]), table.get(market_tokens[1])
            if not base_token or not quote_token:
                continue
            base_aliases = resolve_spot_token_candidates(base_token["name"])
            quote_aliases = resolve_spot_token_candidates(quote_token["name"])
            if not any(c in base_aliases for c in base_candidates):
                continue
            if not any(c in quote_aliases for c in quote_candidates):
                continue

            index = market.get("index")
            market_index = index if isinstance(index, int) else position
            ctx = contexts[market_index] if 0 <= market_index < len(contexts) else None
            if ctx is None and position < len(contexts):
                ctx = contexts[position]

            price: Optional[float] = None
            for candidate in resolve_spot_mid_candidates(base_token["name"]) if mids else []:
                mid = read_number(mids.get(candidate))
                if mid is not None and mid > 0:
                    price = mid
                    break
            if not price:
                price = read_context_price(ctx)
            if not price or price <= 0:
                raise HyperliquidResolutionError(f"No spot price available for {base}/{quote}")

            return SpotMarketInfo(
                symbol=f"{base_token['name']}/{quote_token['name']}",
                base=base_token["name"],
                quote=quote_token["name"],
                asset_id=SPOT_ASSET_OFFSET + market_index,
                market_index=market_index,
                price=price,
                sz_decimals=base_token["sz_decimals"],
            )
        raise HyperliquidResolutionError(f"Unknown Hyperliquid spot market: {base}/{quote}")

    async def size_decimals(self, symbol: str) -> int:
        """Size decimals for a perp name, ``@N`` id or ``BASE/QUOTE`` pair."""
        if is_spot_symbol(symbol):
            spot_meta = await self.spot_meta()
            return resolve_spot_size_decimals(spot_meta if isinstance(spot_meta, dict) else {}, symbol)

        meta = await self.meta()
        universe = meta.get("universe") or [] if isinstance(meta, dict) else []
        target = normalize_meta_symbol(symbol).upper()
        for entry in universe:
            if normalize_meta_symbol(str(entry.get("name", ""))).upper() == target:
                if isinstance(entry.get("szDecimals"), int):
                    return entry["szDecimals"]
                break
        raise HyperliquidResolutionError(f"No size decimals found for {symbol}.")

    async def account_value(self, user: str) -> Optional[float]:
        """Perp account value of ``user``, or None when the state carries none."""
        return read_account_value(await self.clearinghouse_state(user))

    async def perp_position_size(self, user: str, symbol: str, prefix_match: bool = False) -> float:
        return read_perp_position_size(await self.clearinghouse_state(user), symbol, prefix_match)

    async def perp_position(self, user: str, symbol: str, prefix_match: bool = False) -> PerpPosition:
        return read_perp_position(await self.clearinghouse_state(user), symbol, prefix_match)

    async def spot_balance_size(self, user: str, symbol: str) -> float:
        return read_spot_balance_size(await self.spot_clearinghouse_state(user), symbol)

    async def spot_balance(self, user: str, base: str) -> SpotBalance:
        return read_spot_balance(await self.spot_clearinghouse_state(user), base)

    async def spot_usd_price_map(self) -> Dict[str, float]:
        """USD price per spot token from USDC-quoted markets.

        Mid prices are preferred; when all-mids cannot be loaded the asset
        contexts alone are used.
        """
        data, mids = await asyncio.gather(self.spot_meta_and_asset_ctxs(), self._mids_or_none())
        meta = data[0] if isinstance(data, list) and data and isinstance(data[0], dict) else {}
        contexts = data[1] if isinstance(data, list) and len(data) > 1 and isinstance(data[1], list) else []
        return build_spot_usd_price_map(meta, contexts, mids)

    async def spot_account_value(self, user: str) -> Optional[float]:
        """USD value of the spot balances of ``user``.

        Returns:
            Summed value, or None when no balance has a USD price
        """
        state, prices = await asyncio.gather(
            self.spot_clearinghouse_state(user), self.spot_usd_price_map()
        )
        return read_spot_account_value(read_spot_balances(state), prices)

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "HyperliquidInfoClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
