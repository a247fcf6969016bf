"""Shared fixtures for the Hyperliquid tests."""

import json

import httpx
import pytest
from eth_account import Account

from opentool_sdk.hyperliquid import HyperliquidTransport, LocalAccountWallet


# Test wallet (DO NOT use in production)
TEST_PRIVATE_KEY = "0x" + "ab" * 32  # Deterministic test key
TEST_ACCOUNT = Account.from_key(TEST_PRIVATE_KEY)
TEST_ADDRESS = TEST_ACCOUNT.address

BASE_URL = "https://api.test.invalid"

PERP_META = {
    "universe": [
        {"name": "BTC", "szDecimals": 5},
        {"name": "ETH", "szDecimals": 4},
        {"name": "SOL", "szDecimals": 2},
    ]
}

SPOT_META = {
    "tokens": [
        {"name": "USDC", "index": 0, "szDecimals": 8, "isCanonical": True},
        {"name": "PURR", "index": 1, "szDecimals": 0, "isCanonical": True},
        {"name": "HYPE", "index": 150, "szDecimals": 2, "isCanonical": True},
        {"name": "UBTC", "index": 197, "szDecimals": 5, "isCanonical": True},
    ],
    "universe": [
        {"name": "PURR/USDC", "tokens": [1, 0], "index": 0},
        {"name": "@107", "tokens": [150, 0], "index": 107},
        {"name": "@142", "tokens": [197, 0], "index": 142},
    ],
}

PERP_DEXS = [None, {"name": "test"}, {"name": "perpdex"}]

PERPDEX_META = {
    "universe": [
        {"name": "perpdex:ETH", "szDecimals": 3},
        {"name": "perpdex:BTC", "szDecimals": 4},
    ]
}


class MockVenue:
    """Routes ``/info`` and ``/exchange`` requests to canned responses.

    ``info`` maps a query type (or ``(type, dex)``) to a body; ``exchange`` is the
    body returned for every ``/exchange`` POST. Every request is recorded.
    """

    def __init__(self, info=None, exchange=None, exchange_status=200):
        self.info = dict(info or {})
        self.exchange = exchange
        self.exchange_status = exchange_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request.url.path, body))
        if request.url.path == "/exchange":
            payload = self.exchange if self.exchange is not None else {"status": "ok"}
            if isinstance(payload, str):
                return httpx.Response(self.exchange_status, text=payload)
            return httpx.Response(self.exchange_status, json=payload)

        key = (body["type"], body["dex"]) if "dex" in body else body["type"]
        if key not in self.info:
            return httpx.Response(500, json={"error": f"unexpected query {key}"})
        return httpx.Response(200, json=self.info[key])

    @property
    def info_requests(self):
        return [body for path, body in self.requests if path == "/info"]

    @property
    def exchange_requests(self):
        return [body for path, body in self.requests if path == "/exchange"]


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_transport(venue: MockVenue) -> HyperliquidTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(venue))
    return HyperliquidTransport(BASE_URL, http_client=client)


@pytest.fixture
def wallet():
    return LocalAccountWallet(TEST_PRIVATE_KEY)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def venue():
    return MockVenue(
        info={
            "meta": PERP_META,
            "spotMeta": SPOT_META,
            "perpDexs": PERP_DEXS,
            ("meta", "perpdex"): PERPDEX_META,
        }
    )
