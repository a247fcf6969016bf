"""Tests for symbol to asset-index resolution."""

import pytest

from opentool_sdk.hyperliquid import (
    AssetResolver,
    HyperliquidApiError,
    HyperliquidResolutionError,
    HyperliquidValidationError,
)
from opentool_sdk.hyperliquid.resolver import (
    build_spot_token_index_map,
    resolve_perp_index,
    resolve_spot_token_index,
)

from conftest import PERP_META, MockVenue, make_transport


class TestPureResolution:
    """Tests for the metadata lookups that need no network."""

    def test_perp_index_ignores_case_and_quote(self):
        universe = PERP_META["universe"]

        assert resolve_perp_index("btc", universe) == 0
        assert resolve_perp_index("SOL-USDC", universe) == 2
        with pytest.raises(HyperliquidResolutionError):
            resolve_perp_index("DOGE", universe)

    def test_canonical_token_wins(self):
        tokens = [
            {"name": "USDT0", "index": 5, "isCanonical": True},
            {"name": "USDT", "index": 9, "isCanonical": False},
        ]

        assert build_spot_token_index_map(tokens) == {"USDT": 5}

    def test_token_u_prefix_alias(self):
        token_map = {"UBTC": 197, "USDC": 0}

        assert resolve_spot_token_index(token_map, "btc") == 197
        assert resolve_spot_token_index(token_map, "USDC") == 0
        assert resolve_spot_token_index(token_map, "ETH") is None


class TestAssetResolver:
    """Tests for AssetResolver against a mocked venue."""

    @pytest.mark.asyncio
    async def test_spot_index_needs_no_network(self, venue):
        resolver = AssetResolver(make_transport(venue))

        assert await resolver.resolve_asset_index("@5") == 10005
        assert venue.requests == []

    @pytest.mark.asyncio
    async def test_invalid_spot_index(self, venue):
        resolver = AssetResolver(make_transport(venue))

        with pytest.raises(HyperliquidValidationError):
            await resolver.resolve_asset_index("@abc")
        with pytest.raises(HyperliquidValidationError):
            await resolver.resolve_asset_index("   ")

    @pytest.mark.asyncio
    async def test_non_ascii_digits_rejected(self, venue):
        resolver = AssetResolver(make_transport(venue))

        for symbol in ("@²", "@٣", "@-1", "@"):
            with pytest.raises(HyperliquidValidationError):
                await resolver.resolve_asset_index(symbol)
        assert venue.requests == []

    @pytest.mark.asyncio
    async def test_perp_symbol(self, venue):
        resolver = AssetResolver(make_transport(venue))

        assert await resolver.resolve_asset_index("ETH") == 1
        assert venue.info_requests == [{"type": "meta"}]

    @pytest.mark.asyncio
    async def test_dex_symbol_issues_two_calls(self, venue):
        resolver = AssetResolver(make_transport(venue))

        index = await resolver.resolve_asset_index("perpdex:BTC")

        assert index == 100_000 + 2 * 10_000 + 1
        assert venue.info_requests == [
            {"type": "perpDexs"},
            {"type": "meta", "dex": "perpdex"},
        ]

    @pytest.mark.asyncio
    async def test_unknown_dex(self, venue):
        resolver = AssetResolver(make_transport(venue))

        with pytest.raises(HyperliquidResolutionError):
            await resolver.resolve_asset_index("nodex:BTC")

    @pytest.mark.asyncio
    async def test_spot_pair(self, venue):
        resolver = AssetResolver(make_transport(venue))

        assert await resolver.resolve_asset_index("HYPE/USDC") == 10_107
        assert await resolver.resolve_asset_index("purr-usdc") == 10_000
        assert await resolver.resolve_asset_index("BTC/USDC") == 10_142

    @pytest.mark.asyncio
    async def test_unknown_spot_pair(self, venue):
        resolver = AssetResolver(make_transport(venue))

        with pytest.raises(HyperliquidResolutionError):
            await resolver.resolve_asset_index("DOGE/USDC")
        with pytest.raises(HyperliquidResolutionError):
            await resolver.resolve_asset_index("PURR/HYPE")

    @pytest.mark.asyncio
    async def test_cache_ttl(self, venue, clock):
        resolver = AssetResolver(make_transport(venue), clock=clock)

        assert await resolver.resolve_asset_index("BTC") == 0
        clock.advance(60)
        assert await resolver.resolve_asset_index("BTC") == 0
        assert len(venue.info_requests) == 1

        clock.advance(5 * 60)
        assert await resolver.resolve_asset_index("BTC") == 0
        assert len(venue.info_requests) == 2

    @pytest.mark.asyncio
    async def test_cache_keyed_by_environment(self, venue, clock):
        transport = make_transport(venue)
        cache = {}

        class DictCache:
            def get(self, key):
                return cache.get(key)

            def set(self, key, entry):
                cache[key] = entry

        mainnet = AssetResolver(transport, "mainnet", cache=DictCache(), clock=clock)
        testnet = AssetResolver(transport, "testnet", cache=DictCache(), clock=clock)

        await mainnet.resolve_asset_index("BTC")
        await testnet.resolve_asset_index("BTC")

        assert len(venue.info_requests) == 2
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_failed_fetch_leaves_cache_untouched(self, clock):
        venue = MockVenue(info={})
        resolver = AssetResolver(make_transport(venue), clock=clock)

        with pytest.raises(HyperliquidApiError):
            await resolver.resolve_asset_index("BTC")
        assert len(resolver.cache) == 0

    @pytest.mark.asyncio
    async def test_batch_resolution_preserves_order(self, venue):
        resolver = AssetResolver(make_transport(venue))

        indexes = await resolver.resolve_asset_indexes(["SOL", "@3", "HYPE/USDC", "BTC"])

        assert indexes == [2, 10_003, 10_107, 0]
