"""Tests for the exchange client and order builders."""

import pytest

from opentool_sdk.hyperliquid import (
    HyperliquidApiError,
    HyperliquidConfigError,
    HyperliquidExchangeClient,
    HyperliquidValidationError,
    LocalAccountWallet,
    OrderIntent,
    TriggerOptions,
    extract_order_ids,
    order_to_wire,
    recover_l1_action_signer,
    recover_typed_data_signer,
    resolve_nonce,
)
from opentool_sdk.hyperliquid.exchange import normalize_usd_to_int
from opentool_sdk.hyperliquid.signing import build_user_signed_typed_data
from opentool_sdk.hyperliquid.types import SPOT_SEND_TYPES, USER_SET_ABSTRACTION_TYPES

from conftest import TEST_ADDRESS, TEST_PRIVATE_KEY, make_transport

NONCE = 1700000000000
RESTING_42 = {
    "status": "ok",
    "response": {"type": "order", "data": {"statuses": [{"resting": {"oid": 42}}]}},
}


def make_client(venue, config=None, nonce_source=lambda: NONCE):
    wallet = LocalAccountWallet(TEST_PRIVATE_KEY, nonce_source=nonce_source)
    return HyperliquidExchangeClient(wallet, config, transport=make_transport(venue))


def limit_buy(symbol="BTC", **overrides):
    fields = {"symbol": symbol, "side": "buy", "price": "100.25", "size": "1.5", "tif": "Gtc"}
    fields.update(overrides)
    return OrderIntent(**fields)


class TestNonceResolution:
    """Tests for nonce precedence."""

    def test_precedence(self):
        class Wallet:
            address = TEST_ADDRESS

            @staticmethod
            def nonce_source():
                return 3

        assert resolve_nonce(1, lambda: 2, Wallet(), lambda: 4) == 1
        assert resolve_nonce(None, lambda: 2, Wallet(), lambda: 4) == 2
        assert resolve_nonce(None, None, Wallet(), lambda: 4) == 3
        assert resolve_nonce(None, None, None, lambda: 4) == 4

    def test_missing_source(self):
        with pytest.raises(HyperliquidConfigError):
            resolve_nonce()

    def test_timestamp_fallback(self):
        assert resolve_nonce(allow_timestamp=True) > 1_600_000_000_000


class TestOrderWire:
    """Tests for wire order construction."""

    def test_limit_order(self):
        wire = order_to_wire(limit_buy(), 3)

        assert wire == {
            "a": 3,
            "b": True,
            "p": "100.25",
            "s": "1.5",
            "r": False,
            "t": {"limit": {"tif": "Gtc"}},
        }
        assert list(wire) == ["a", "b", "p", "s", "r", "t"]

    def test_default_tif_is_ioc(self):
        wire = order_to_wire(OrderIntent(symbol="BTC", side="sell", price=100, size=0.5), 0)

        assert wire["t"] == {"limit": {"tif": "Ioc"}}
        assert wire["b"] is False
        assert wire["p"] == "100"
        assert wire["s"] == "0.5"

    def test_trigger_order_with_cloid(self):
        intent = limit_buy(
            reduce_only=True,
            client_id="0x" + "AB" * 16,
            trigger=TriggerOptions(trigger_px="95", tpsl="sl", is_market=True),
        )

        wire = order_to_wire(intent, 0)

        assert wire["t"] == {"trigger": {"isMarket": True, "triggerPx": "95", "tpsl": "sl"}}
        assert wire["r"] is True
        assert wire["c"] == "0x" + "ab" * 16

    def test_usd_scaling(self):
        assert normalize_usd_to_int("1.5") == 1_500_000
        assert normalize_usd_to_int(2) == 2_000_000
        assert normalize_usd_to_int(0.0000005) == 1
        with pytest.raises(HyperliquidValidationError):
            normalize_usd_to_int("-1")


class TestPlaceOrder:
    """Tests for order placement against a mocked venue."""

    @pytest.mark.asyncio
    async def test_limit_buy(self, venue):
        venue.exchange = RESTING_42
        client = make_client(venue)

        result = await client.place_order([limit_buy()])

        assert extract_order_ids([result]) == {"cloids": [], "oids": ["42"]}
        body = venue.exchange_requests[0]
        assert body["nonce"] == NONCE
        assert body["action"]["orders"][0] == {
            "a": 0,
            "b": True,
            "p": "100.25",
            "s": "1.5",
            "r": False,
            "t": {"limit": {"tif": "Gtc"}},
        }
        assert body["action"]["grouping"] == "na"
        assert body["action"]["builder"] == {
            "b": "0x4b2aec4f91612849d6e20c9c1881fabb1a48cd12",
            "f": 100,
        }
        assert "vaultAddress" not in body
        assert "expiresAfter" not in body

    @pytest.mark.asyncio
    async def test_signature_recovers_wallet(self, venue):
        venue.exchange = RESTING_42
        client = make_client(venue)

        await client.place_order([limit_buy()])

        body = venue.exchange_requests[0]
        signer = recover_l1_action_signer(body["action"], body["nonce"], body["signature"])
        assert signer == TEST_ADDRESS

    @pytest.mark.asyncio
    async def test_vault_and_expiry_in_envelope(self, venue):
        vault = "0x" + "12" * 20
        client = make_client(
            venue,
            {"environment": "testnet", "vault_address": vault, "expires_after": NONCE + 60_000},
        )

        await client.place_order([limit_buy()])

        body = venue.exchange_requests[0]
        assert body["vaultAddress"] == vault
        assert body["expiresAfter"] == NONCE + 60_000
        signer = recover_l1_action_signer(
            body["action"],
            body["nonce"],
            body["signature"],
            is_testnet=True,
            vault_address=vault,
            expires_after=NONCE + 60_000,
        )
        assert signer == TEST_ADDRESS

    @pytest.mark.asyncio
    async def test_batch_resolves_each_symbol(self, venue):
        client = make_client(venue)

        await client.place_order([limit_buy("SOL"), limit_buy("HYPE/USDC"), limit_buy("@3")])

        orders = venue.exchange_requests[0]["action"]["orders"]
        assert [order["a"] for order in orders] == [2, 10_107, 10_003]

    @pytest.mark.asyncio
    async def test_rejected_order(self, venue):
        venue.exchange = {
            "status": "ok",
            "response": {"type": "order", "data": {"statuses": [{"error": "Insufficient margin"}]}},
        }
        client = make_client(venue)

        with pytest.raises(HyperliquidApiError) as exc_info:
            await client.place_order([limit_buy()])

        assert "Insufficient margin" in str(exc_info.value)
        assert exc_info.value.detail["errors"] == ["status[0]: Insufficient margin"]

    @pytest.mark.asyncio
    async def test_error_status(self, venue):
        venue.exchange = {"status": "err", "response": "Order has invalid size."}
        client = make_client(venue)

        with pytest.raises(HyperliquidApiError, match="invalid size"):
            await client.place_order([limit_buy()])

    @pytest.mark.asyncio
    async def test_http_error(self, venue):
        venue.exchange = {"error": "overloaded"}
        venue.exchange_status = 503
        client = make_client(venue)

        with pytest.raises(HyperliquidApiError) as exc_info:
            await client.place_order([limit_buy()])

        assert exc_info.value.kind == "api"
        assert exc_info.value.detail["status"] == 503
        assert exc_info.value.detail["body"] == {"error": "overloaded"}

    @pytest.mark.asyncio
    async def test_non_json_body(self, venue):
        venue.exchange = "<html>bad gateway</html>"
        client = make_client(venue)

        with pytest.raises(HyperliquidApiError) as exc_info:
            await client.place_order([limit_buy()])

        assert exc_info.value.detail["body"] == "<html>bad gateway</html>"

    @pytest.mark.asyncio
    async def test_invalid_price_rejected_before_network(self, venue):
        client = make_client(venue)

        for bad in (limit_buy(price="-1"), limit_buy(size="0"), limit_buy(symbol="  ")):
            with pytest.raises(HyperliquidValidationError):
                await client.place_order([bad])
        assert venue.requests == []

    @pytest.mark.asyncio
    async def test_invalid_trigger_rejected(self, venue):
        client = make_client(venue)
        intent = limit_buy(trigger=TriggerOptions(trigger_px="abc", tpsl="tp"))

        with pytest.raises(HyperliquidValidationError):
            await client.place_order([intent])
        assert venue.requests == []

    @pytest.mark.asyncio
    async def test_invalid_client_id_rejected_before_network(self, venue):
        client = make_client(venue)

        for bad in ("0x12", "0x" + "zz" * 16, "not-hex"):
            with pytest.raises(HyperliquidValidationError):
                await client.place_order([limit_buy(client_id=bad)])
        assert venue.requests == []

    @pytest.mark.asyncio
    async def test_unsupported_tif_and_tpsl_rejected(self, venue):
        client = make_client(venue)
        bad_intents = [
            limit_buy(tif="Fok"),
            limit_buy(trigger=TriggerOptions(trigger_px="95", tpsl="stop")),
            limit_buy(side="long"),
        ]

        for intent in bad_intents:
            with pytest.raises(HyperliquidValidationError):
                await client.place_order([intent])
        assert venue.requests == []

    @pytest.mark.asyncio
    async def test_every_time_in_force_accepted(self, venue):
        client = make_client(venue)

        for tif in ("Gtc", "Ioc", "Alo", "FrontendMarket", "LiquidationMarket"):
            await client.place_order([limit_buy(tif=tif)])

        tifs = [body["action"]["orders"][0]["t"]["limit"]["tif"] for body in venue.exchange_requests]
        assert tifs == ["Gtc", "Ioc", "Alo", "FrontendMarket", "LiquidationMarket"]

    @pytest.mark.asyncio
    async def test_modify_validated_before_network(self, venue):
        client = make_client(venue)

        with pytest.raises(HyperliquidValidationError):
            await client.modify(99, limit_buy(client_id="0x12"))
        with pytest.raises(HyperliquidValidationError):
            await client.modify(-1, limit_buy())
        with pytest.raises(HyperliquidValidationError):
            await client.batch_modify([{"oid": 1, "order": limit_buy(tif="Day")}])
        with pytest.raises(HyperliquidValidationError):
            await client.batch_modify([])
        assert venue.requests == []

    @pytest.mark.asyncio
    async def test_missing_nonce_source(self, venue):
        client = make_client(venue, nonce_source=None)

        with pytest.raises(HyperliquidConfigError, match="nonce source"):
            await client.place_order([limit_buy()])
        assert venue.exchange_requests == []

    @pytest.mark.asyncio
    async def test_wallet_without_signer(self, venue):
        client = HyperliquidExchangeClient(object(), transport=make_transport(venue))

        with pytest.raises(HyperliquidConfigError):
            await client.place_order([limit_buy()])
        assert venue.requests == []

    @pytest.mark.asyncio
    async def test_explicit_nonce_wins(self, venue):
        client = make_client(venue)

        await client.place_order([limit_buy()], nonce=5)

        assert venue.exchange_requests[0]["nonce"] == 5


class TestOtherL1Actions:
    """Tests for the remaining L1 actions."""

    @pytest.mark.asyncio
    async def test_cancel(self, venue):
        client = make_client(venue)

        await client.cancel([{"symbol": "ETH", "oid": 77}])

        assert venue.exchange_requests[0]["action"] == {
            "type": "cancel",
            "cancels": [{"a": 1, "o": 77}],
        }

    @pytest.mark.asyncio
    async def test_cancel_by_cloid(self, venue):
        client = make_client(venue)

        await client.cancel_by_cloid([{"symbol": "BTC", "cloid": "0x" + "CD" * 16}])

        assert venue.exchange_requests[0]["action"] == {
            "type": "cancelByCloid",
            "cancels": [{"asset": 0, "cloid": "0x" + "cd" * 16}],
        }

    @pytest.mark.asyncio
    async def test_cancel_all_and_schedule(self, venue):
        client = make_client(venue)

        await client.cancel_all()
        await client.schedule_cancel(NONCE + 10_000)
        await client.schedule_cancel(None)

        actions = [body["action"] for body in venue.exchange_requests]
        assert actions == [
            {"type": "cancelAll"},
            {"type": "scheduleCancel", "time": NONCE + 10_000},
            {"type": "scheduleCancel"},
        ]

    @pytest.mark.asyncio
    async def test_modify_and_batch_modify(self, venue):
        client = make_client(venue)

        await client.modify(99, limit_buy("ETH"))
        await client.batch_modify([{"oid": 1, "order": limit_buy("BTC")}, {"oid": 2, "order": limit_buy("SOL")}])

        single, batch = (body["action"] for body in venue.exchange_requests)
        assert single["type"] == "modify"
        assert single["oid"] == 99
        assert single["order"]["a"] == 1
        assert batch["type"] == "batchModify"
        assert [(m["oid"], m["order"]["a"]) for m in batch["modifies"]] == [(1, 0), (2, 2)]

    @pytest.mark.asyncio
    async def test_twap(self, venue):
        client = make_client(venue)

        await client.twap_order("SOL", "sell", "10", 30, randomize=True)
        await client.twap_cancel("SOL", 8)

        twap, cancel = (body["action"] for body in venue.exchange_requests)
        assert twap == {
            "type": "twapOrder",
            "twap": {"a": 2, "b": False, "s": "10", "r": False, "m": 30, "t": True},
        }
        assert cancel == {"type": "twapCancel", "a": 2, "t": 8}

    @pytest.mark.asyncio
    async def test_leverage_and_margin(self, venue):
        client = make_client(venue)

        await client.update_leverage("BTC", 10, "isolated")
        await client.update_isolated_margin("ETH", True, 1_000_000)

        leverage, margin = (body["action"] for body in venue.exchange_requests)
        assert leverage == {"type": "updateLeverage", "asset": 0, "isCross": False, "leverage": 10}
        assert margin == {"type": "updateIsolatedMargin", "asset": 1, "isBuy": True, "ntli": 1_000_000}

    @pytest.mark.asyncio
    async def test_cancel_validated_before_network(self, venue):
        client = make_client(venue)

        with pytest.raises(HyperliquidValidationError):
            await client.cancel([])
        with pytest.raises(HyperliquidValidationError):
            await client.cancel_by_cloid([])
        for bad_oid in (-1, "abc", "", True, None, 1.5):
            with pytest.raises(HyperliquidValidationError):
                await client.cancel([{"symbol": "ETH", "oid": bad_oid}])
        assert venue.requests == []

    @pytest.mark.asyncio
    async def test_cancel_accepts_digit_string_oid(self, venue):
        client = make_client(venue)

        await client.cancel([{"symbol": "ETH", "oid": "77"}])

        assert venue.exchange_requests[0]["action"]["cancels"] == [{"a": 1, "o": "77"}]

    @pytest.mark.asyncio
    async def test_twap_side_validated(self, venue):
        client = make_client(venue)

        with pytest.raises(HyperliquidValidationError):
            await client.twap_order("SOL", "short", "10", 30)
        assert venue.requests == []

    @pytest.mark.asyncio
    async def test_invalid_leverage_mode(self, venue):
        client = make_client(venue)

        with pytest.raises(HyperliquidValidationError):
            await client.update_leverage("BTC", 10, "hedged")
        assert venue.requests == []

    @pytest.mark.asyncio
    async def test_sub_accounts_and_weight(self, venue):
        client = make_client(venue)
        sub_account = "0x" + "AA" * 20

        await client.reserve_request_weight(10)
        await client.create_sub_account("trading")
        await client.sub_account_transfer(sub_account, True, "12.5")

        weight, create, transfer = (body["action"] for body in venue.exchange_requests)
        assert weight == {"type": "reserveRequestWeight", "weight": 10}
        assert create == {"type": "createSubAccount", "name": "trading"}
        assert transfer == {
            "type": "subAccountTransfer",
            "subAccountUser": "0x" + "aa" * 20,
            "isDeposit": True,
            "usd": 12_500_000,
        }


class TestUserSignedActions:
    """Tests for user-signed actions."""

    @pytest.mark.asyncio
    async def test_spot_send(self, venue):
        client = make_client(venue, {"environment": "testnet"})
        destination = "0x" + "34" * 20

        await client.spot_send(destination, "USDC:0xeb62eee3685fc4c43992febcd9e75443", "2.5")

        body = venue.exchange_requests[0]
        action = body["action"]
        assert action["type"] == "spotSend"
        assert action["hyperliquidChain"] == "Testnet"
        assert action["time"] == body["nonce"] == NONCE
        typed_data = build_user_signed_typed_data(SPOT_SEND_TYPES, action, action["signatureChainId"])
        assert recover_typed_data_signer(typed_data, body["signature"]) == TEST_ADDRESS

    @pytest.mark.asyncio
    async def test_user_signed_envelope_has_no_vault_or_expiry(self, venue):
        config = {
            "environment": "testnet",
            "vault_address": "0x" + "12" * 20,
            "expires_after": NONCE + 60_000,
        }
        client = make_client(venue, config)

        await client.spot_send("0x" + "34" * 20, "PURR:0x01", "1")
        await client.set_portfolio_margin(True)

        for body in venue.exchange_requests:
            assert set(body) == {"action", "nonce", "signature"}

    @pytest.mark.asyncio
    async def test_spot_send_falls_back_to_timestamp(self, venue):
        client = make_client(venue, nonce_source=None)

        await client.spot_send("0x" + "34" * 20, "PURR:0x01", 1)

        assert venue.exchange_requests[0]["nonce"] > 1_600_000_000_000

    @pytest.mark.asyncio
    async def test_account_abstraction_mode(self, venue):
        client = make_client(venue)

        await client.set_account_abstraction_mode("portfolio")

        body = venue.exchange_requests[0]
        action = body["action"]
        assert action["type"] == "userSetAbstraction"
        assert action["abstraction"] == "portfolioMargin"
        assert action["user"] == TEST_ADDRESS.lower()
        assert action["nonce"] == NONCE
        typed_data = build_user_signed_typed_data(
            USER_SET_ABSTRACTION_TYPES, action, action["signatureChainId"]
        )
        assert recover_typed_data_signer(typed_data, body["signature"]) == TEST_ADDRESS

    @pytest.mark.asyncio
    async def test_portfolio_margin_and_dex_abstraction(self, venue):
        client = make_client(venue)
        other = "0x" + "77" * 20

        await client.set_portfolio_margin(True)
        await client.set_dex_abstraction(False, user=other)

        margin, dex = (body["action"] for body in venue.exchange_requests)
        assert margin["type"] == "userPortfolioMargin"
        assert margin["enabled"] is True
        assert margin["user"] == TEST_ADDRESS.lower()
        assert dex["type"] == "userDexAbstraction"
        assert dex["enabled"] is False
        assert dex["user"] == other
