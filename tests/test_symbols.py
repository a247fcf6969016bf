"""Tests for symbol parsing, hex normalization and configuration helpers."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from opentool_sdk.hyperliquid import (
    HyperliquidValidationError,
    build_market_identity,
    create_monotonic_nonce_factory,
    extract_dex,
    get_bridge_address,
    get_signature_chain_id,
    is_spot_symbol,
    normalize_address,
    normalize_base_symbol,
    normalize_cloid,
    normalize_hex,
    normalize_spot_token_name,
    parse_pair,
    resolve_abstraction_from_mode,
    resolve_config,
    resolve_order_symbol,
    resolve_spot_token_candidates,
    resolve_symbol,
)


class TestSymbolParsing:
    """Tests for symbol syntax helpers."""

    def test_normalize_base_symbol(self):
        assert normalize_base_symbol("btc-usdc") == "BTC"
        assert normalize_base_symbol("xyz:sol") == "SOL"
        assert normalize_base_symbol("unknown") is None
        assert normalize_base_symbol("  ") is None

    def test_resolve_order_symbol(self):
        assert resolve_order_symbol("btc-usdc") == "BTC/USDC"
        assert resolve_order_symbol("xyz:sol") == "xyz:SOL"
        assert resolve_order_symbol("@123") == "@123"
        assert resolve_order_symbol("eth") == "ETH"
        assert resolve_order_symbol("") is None

    def test_resolve_symbol_prefers_override(self):
        assert resolve_symbol("BTC", override=" hype/usdc ") == "HYPE/USDC"
        assert resolve_symbol("btc", override="  ") == "BTC"

    def test_parse_pair(self):
        assert parse_pair("hype/usdc") == ("HYPE", "USDC")
        assert parse_pair("BTC-USDC") == ("BTC", "USDC")
        assert parse_pair("BTC") is None
        assert parse_pair("BTC/") is None

    def test_extract_dex(self):
        assert extract_dex("PerpDex:BTC") == "perpdex"
        assert extract_dex("BTC") is None
        assert extract_dex("@12") is None

    def test_is_spot_symbol(self):
        assert is_spot_symbol("@107")
        assert is_spot_symbol("HYPE/USDC")
        assert not is_spot_symbol("BTC")

    def test_spot_token_aliases(self):
        assert normalize_spot_token_name("usdt0") == "USDT"
        assert normalize_spot_token_name("0") == "0"
        assert resolve_spot_token_candidates("ubtc") == ["UBTC", "BTC"]
        assert resolve_spot_token_candidates("HYPE") == ["HYPE"]


class TestMarketIdentity:
    """Tests for canonical market identities."""

    def test_perp_identity(self):
        identity = build_market_identity("btc", "mainnet")

        assert identity.market_type == "perp"
        assert identity.canonical_symbol == "perp:hyperliquid:BTC"
        assert identity.quote is None

    def test_spot_identity(self):
        identity = build_market_identity("HYPE/USDC", "testnet", raw_symbol="@107")

        assert identity.market_type == "spot"
        assert identity.canonical_symbol == "spot:hyperliquid:HYPE-USDC"
        assert identity.raw_symbol == "@107"
        assert identity.environment == "testnet"

    def test_dex_identity(self):
        identity = build_market_identity("perpdex:BTC", "mainnet")

        assert identity.dex == "perpdex"
        assert identity.canonical_symbol == "perp:hyperliquid:BTC"

    def test_spot_without_quote_is_none(self):
        assert build_market_identity("@107", "mainnet") is None


class TestHexNormalization:
    """Tests for hex, address and cloid normalization."""

    def test_lowercases(self):
        assert normalize_hex("0xABCdef") == "0xabcdef"

    def test_rejects_non_hex(self):
        for value in ("abcdef", "0x", "0xzz", ""):
            with pytest.raises(HyperliquidValidationError):
                normalize_hex(value)

    def test_address_length(self):
        address = "0x0000000000000000000000000000000000000001"
        assert normalize_address(address) == address
        with pytest.raises(HyperliquidValidationError):
            normalize_address("0x1")

    def test_cloid_length(self):
        cloid = "0x00000000000000000000000000000001"
        assert normalize_cloid(cloid) == cloid
        with pytest.raises(HyperliquidValidationError):
            normalize_cloid("0x1")


class TestConfiguration:
    """Tests for config resolution and environment overrides."""

    def test_defaults(self):
        config = resolve_config()

        assert config.environment == "mainnet"
        assert config.base_url == "https://api.hyperliquid.xyz"
        assert config.timeout == 10.0
        assert not config.is_testnet

    def test_testnet_and_vault(self):
        config = resolve_config(
            {"environment": "testnet", "vault_address": "0x" + "AB" * 20}
        )

        assert config.base_url == "https://api.hyperliquid-testnet.xyz"
        assert config.vault_address == "0x" + "ab" * 20
        assert config.is_testnet

    def test_unknown_environment(self):
        with pytest.raises(HyperliquidValidationError):
            resolve_config({"environment": "devnet"})

    def test_signature_chain_override(self, monkeypatch):
        assert get_signature_chain_id("testnet") == "0x66eee"
        monkeypatch.setenv("HYPERLIQUID_SIGNATURE_CHAIN_ID", "0xA4B1")
        assert get_signature_chain_id("testnet") == "0xa4b1"

    def test_blank_override_ignored(self, monkeypatch):
        monkeypatch.setenv("HYPERLIQUID_BRIDGE_ADDRESS", "   ")
        assert get_bridge_address("mainnet") == "0x2df1c51e09aecf9cacb7bc98cb1742757f163df7"

    def test_invalid_bridge_override(self, monkeypatch):
        monkeypatch.setenv("HYPERLIQUID_BRIDGE_ADDRESS", "0x1234")
        with pytest.raises(HyperliquidValidationError):
            get_bridge_address("mainnet")

    def test_abstraction_mapping(self):
        assert resolve_abstraction_from_mode("standard") == "disabled"
        assert resolve_abstraction_from_mode("unified") == "unifiedAccount"
        assert resolve_abstraction_from_mode("portfolio") == "portfolioMargin"
        with pytest.raises(HyperliquidValidationError):
            resolve_abstraction_from_mode("margin")


class TestNonceFactory:
    """Tests for the monotonic nonce source."""

    def test_strictly_increasing(self):
        next_nonce = create_monotonic_nonce_factory(start=10**15)
        values = [next_nonce() for _ in range(100)]

        assert values == sorted(set(values))
        assert values[0] == 10**15 + 1

    def test_unique_across_threads(self):
        next_nonce = create_monotonic_nonce_factory()

        def draw(_):
            return [next_nonce() for _ in range(2000)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            batches = list(pool.map(draw, range(8)))

        for batch in batches:
            assert all(a < b for a, b in zip(batch, batch[1:]))
        values = [value for batch in batches for value in batch]
        assert len(set(values)) == len(values) == 16_000
