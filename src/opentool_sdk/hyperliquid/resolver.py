"""Symbol to asset-index resolution backed by TTL-cached venue metadata.

Asset index ranges used by the venue:

- ``0..9999``: perps on the default dex (position in ``meta.universe``)
- ``10000 + n``: spot market ``n``
- ``100000 + dex * 10000 + n``: perp ``n`` on builder-deployed dex ``dex``
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Hashable, List, Optional

from .cache import CacheEntry, MemoryMetadataCache, MetadataCache
from .errors import (
    HyperliquidApiError,
    HyperliquidResolutionError,
    HyperliquidValidationError,
)
from .symbols import normalize_meta_symbol, normalize_spot_token_name, parse_pair
from .transport import HyperliquidTransport
from .types import Environment, SpotMeta
from .utils import CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)

SPOT_ASSET_OFFSET = 10_000
DEX_ASSET_OFFSET = 100_000
DEX_ASSET_STRIDE = 10_000


def resolve_perp_index(symbol: str, universe: List[Dict[str, Any]]) -> int:
    """Find a perp by exact case-insensitive name, ignoring any ``-QUOTE`` suffix.

    Raises:
        HyperliquidResolutionError: If no universe entry matches
    """
    target = symbol.split("-")[0].strip().upper()
    for index, entry in enumerate(universe):
        if str(entry.get("name", "")).upper() == target:
            return index
    raise HyperliquidResolutionError(f"Unknown Hyperliquid asset symbol: {symbol}")


def build_spot_token_index_map(tokens: List[Dict[str, Any]]) -> Dict[str, int]:
    """Map normalized token names to token indexes.

    When two tokens share a normalized name the canonical one wins.
    """
    mapping: Dict[str, int] = {}
    for token in tokens:
        if not isinstance(token, dict):
            continue
        name = normalize_spot_token_name(token.get("name"))
        index = token.get("index")
        if not name or isinstance(index, bool) or not isinstance(index, int):
            continue
        if name not in mapping or token.get("isCanonical"):
            mapping[name] = index
    return mapping


def resolve_spot_token_index(token_map: Dict[str, int], value: str) -> Optional[int]:
    """Look up a token by name, then by its ``U``-prefixed alias (``BTC`` -> ``UBTC``)."""
    normalized = normalize_spot_token_name(value)
    if not normalized:
        return None
    if normalized in token_map:
        return token_map[normalized]
    if not normalized.startswith("U"):
        return token_map.get(f"U{normalized}")
    return None


def resolve_spot_market_index(
    universe: List[Dict[str, Any]],
    base_token: int,
    quote_token: int,
) -> Optional[int]:
    """Find the spot market trading ``base_token`` against ``quote_token``."""
    for position, entry in enumerate(universe):
        if not isinstance(entry, dict):
            continue
        tokens = entry.get("tokens")
        if isinstance(tokens, list) and len(tokens) >= 2:
            base, quote = tokens[0], tokens[1]
        else:
            base, quote = entry.get("baseToken"), entry.get("quoteToken")
        if base == base_token and quote == quote_token:
            index = entry.get("index")
            if isinstance(index, int) and not isinstance(index, bool):
                return index
            return position
    return None


class AssetResolver:
    """Resolves venue symbols to asset indexes.

    Metadata for the perp universe (per dex), the spot universe and the perp
    dex list is cached for five minutes per ``(environment, base_url)``. A
    stale or missing entry is refetched before returning; a failed fetch
    leaves the cache untouched. Concurrent refreshes of one key are not
    coalesced and the last write wins.

    Example:
        ```python
        resolver = AssetResolver(transport, environment="mainnet")
        btc = await resolver.resolve_asset_index("BTC")
        hype_usdc = await resolver.resolve_asset_index("HYPE/USDC")
        ```
    """

    def __init__(
        self,
        transport: HyperliquidTransport,
        environment: Environment = "mainnet",
        cache: Optional[MetadataCache] = None,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the resolver.

        Args:
            transport: Transport used for ``/info`` queries
            environment: Venue environment (part of every cache key)
            cache: Metadata cache. Default: a private in-memory cache
            ttl: Freshness window in seconds. Default: 300
            clock: Time source in seconds, injectable for tests
        """
        self.transport = transport
        self.environment = environment
        self.cache: MetadataCache = cache if cache is not None else MemoryMetadataCache()
        self.ttl = ttl
        self._clock = clock

    async def _load(
        self,
        key: Hashable,
        payload: Dict[str, Any],
        extract: Callable[[Any], Any],
        failure_message: str,
    ) -> Any:
        entry = self.cache.get(key)
        if entry is not None and entry.is_fresh(self._clock(), self.ttl):
            logger.debug("Metadata cache hit for %s", key)
            return entry.value

        logger.debug("Metadata cache miss for %s", key)
        try:
            data = await self.transport.post_info(payload)
        except HyperliquidApiError as exc:
            raise HyperliquidApiError(failure_message, exc.detail) from exc

        value = extract(data)
        if value is None:
            raise HyperliquidApiError(failure_message, data)
        self.cache.set(key, CacheEntry(fetched_at=self._clock(), value=value))
        return value

    def _key(self, kind: str, *extra: str) -> Hashable:
        return (kind, self.environment, self.transport.base_url, *extra)

    async def get_universe(self, dex: Optional[str] = None) -> List[Dict[str, Any]]:
        """Perp universe of the default dex, or of ``dex`` when given."""
        dex_key = dex.strip().lower() if dex else ""
        payload: Dict[str, Any] = {"type": "meta"}
        if dex_key:
            payload["dex"] = dex_key

        def extract(data: Any) -> Optional[List[Dict[str, Any]]]:
            if isinstance(data, dict) and isinstance(data.get("universe"), list):
                return data["universe"]
            return None

        return await self._load(
            self._key("meta", dex_key),
            payload,
            extract,
            "Unable to load Hyperliquid metadata.",
        )

    async def get_spot_meta(self) -> SpotMeta:
        def extract(data: Any) -> Optional[SpotMeta]:
            if isinstance(data, dict) and isinstance(data.get("universe"), list):
                return SpotMeta(universe=data["universe"], tokens=data.get("tokens") or [])
            return None

        return await self._load(
            self._key("spotMeta"),
            {"type": "spotMeta"},
            extract,
            "Unable to load Hyperliquid spot metadata.",
        )

    async def get_perp_dexs(self) -> List[Optional[Dict[str, Any]]]:
        """Perp dex list. The default dex is listed first as ``null``."""

        def extract(data: Any) -> Optional[List[Any]]:
            return data if isinstance(data, list) else None

        return await self._load(
            self._key("perpDexs"),
            {"type": "perpDexs"},
            extract,
            "Unable to load Hyperliquid perp dex metadata.",
        )

    async def resolve_dex_index(self, dex: str) -> int:
        target = dex.strip().lower()
        for index, entry in enumerate(await self.get_perp_dexs()):
            if isinstance(entry, dict) and str(entry.get("name", "")).lower() == target:
                return index
        raise HyperliquidResolutionError(f"Unknown Hyperliquid perp dex: {dex}")

    async def resolve_asset_index(self, symbol: str) -> int:
        """Resolve a symbol to the venue's integer asset index.

        Precedence: ``@N`` (no network), ``dex:NAME``, ``BASE/QUOTE`` or
        ``BASE-QUOTE`` spot pair, then bare perp name.

        Args:
            symbol: Venue symbol

        Returns:
            Asset index

        Raises:
            HyperliquidValidationError: If the symbol is empty or malformed
            HyperliquidResolutionError: If the dex, pair or asset is unknown
            HyperliquidApiError: If metadata cannot be fetched
        """
        trimmed = symbol.strip() if isinstance(symbol, str) else ""
        if not trimmed:
            raise HyperliquidValidationError("Hyperliquid symbol must be a non-empty string.")

        if trimmed.startswith("@"):
            raw_index = trimmed[1:].strip()
            if not (raw_index.isascii() and raw_index.isdigit()):
                raise HyperliquidValidationError(
                    f"Hyperliquid spot market index is invalid: {trimmed}"
                )
            return SPOT_ASSET_OFFSET + int(raw_index)

        separator = trimmed.find(":")
        if separator > 0:
            return await self._resolve_dex_asset(trimmed, trimmed[:separator].strip())

        pair = parse_pair(trimmed)
        if pair is not None:
            return await self._resolve_spot_pair(trimmed, *pair)

        return resolve_perp_index(trimmed, await self.get_universe())

    async def resolve_asset_indexes(self, symbols: List[str]) -> List[int]:
        """Resolve several symbols concurrently, preserving order."""
        return list(await asyncio.gather(*(self.resolve_asset_index(s) for s in symbols)))

    async def _resolve_dex_asset(self, symbol: str, dex: str) -> int:
        if not dex:
            raise HyperliquidValidationError("Hyperliquid dex name is required.")
        dex_index = await self.resolve_dex_index(dex)
        universe = await self.get_universe(dex)

        # Dex universes list names as "dex:NAME"; accept the bare name too.
        full = symbol.upper()
        bare = normalize_meta_symbol(symbol).upper()
        names = [str(entry.get("name", "")).upper() for entry in universe]
        for target in (full, bare):
            if target in names:
                asset_index = names.index(target)
                return DEX_ASSET_OFFSET + dex_index * DEX_ASSET_STRIDE + asset_index
        raise HyperliquidResolutionError(f"Unknown Hyperliquid asset symbol: {symbol}")

    async def _resolve_spot_pair(self, symbol: str, base: str, quote: str) -> int:
        spot_meta = await self.get_spot_meta()
        token_map = build_spot_token_index_map(spot_meta.tokens)
        base_token = resolve_spot_token_index(token_map, base)
        quote_token = resolve_spot_token_index(token_map, quote)
        if base_token is None or quote_token is None:
            raise HyperliquidResolutionError(f"Unknown Hyperliquid spot symbol: {symbol}")
        market_index = resolve_spot_market_index(spot_meta.universe, base_token, quote_token)
        if market_index is None:
            raise HyperliquidResolutionError(f"Unknown Hyperliquid spot symbol: {symbol}")
        return SPOT_ASSET_OFFSET + market_index
