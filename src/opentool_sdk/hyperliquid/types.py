"""Hyperliquid Types.

Wire-level and user-facing types for the Hyperliquid adapter.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional, TypedDict, Union

Environment = Literal["mainnet", "testnet"]
Side = Literal["buy", "sell"]
MarketType = Literal["perp", "spot"]
TimeInForce = Literal["Gtc", "Ioc", "Alo", "FrontendMarket", "LiquidationMarket"]
Grouping = Literal["na", "normalTpsl", "positionTpsl"]
TriggerType = Literal["tp", "sl"]
Abstraction = Literal["disabled", "unifiedAccount", "portfolioMargin"]
AccountMode = Literal["standard", "unified", "portfolio"]

DecimalInput = Union[str, int, float]
"""Price/size input: decimal string, integer or finite float."""

NonceSource = Callable[[], int]


@dataclass(frozen=True)
class TriggerOptions:
    """Stop-loss / take-profit trigger for an order."""

    trigger_px: DecimalInput
    tpsl: TriggerType
    is_market: bool = False


@dataclass
class OrderIntent:
    """High-level order request before asset resolution."""

    symbol: str
    """Venue symbol: ``BTC``, ``HYPE/USDC``, ``@107`` or ``dex:NAME``."""

    side: Side
    price: DecimalInput
    size: DecimalInput
    tif: Optional[TimeInForce] = None
    """Time in force for limit orders. Default: ``Ioc``."""

    reduce_only: bool = False
    client_id: Optional[str] = None
    """128-bit client order id (``0x`` + 32 hex chars)."""

    trigger: Optional[TriggerOptions] = None


@dataclass(frozen=True)
class BuilderFee:
    """Builder code attached to order actions."""

    address: str
    fee: int
    """Fee in tenths of basis points (10 = 1bp)."""


@dataclass(frozen=True)
class TickSize:
    """Price tick expressed as ``tick_size_int / 10**tick_decimals``."""

    tick_size_int: int
    tick_decimals: int


class ExchangeSignature(TypedDict):
    """ECDSA signature split into its components."""

    r: str
    s: str
    v: int


@dataclass
class SignedActionEnvelope:
    """Body POSTed to ``/exchange``."""

    action: Dict[str, Any]
    nonce: int
    signature: ExchangeSignature
    vault_address: Optional[str] = None
    expires_after: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "action": self.action,
            "nonce": self.nonce,
            "signature": self.signature,
        }
        if self.vault_address:
            payload["vaultAddress"] = self.vault_address
        if self.expires_after is not None:
            payload["expiresAfter"] = self.expires_after
        return payload


@dataclass(frozen=True)
class MarketIdentity:
    """Stable identity of a market derived from a raw venue symbol."""

    market_type: MarketType
    venue: str
    environment: Environment
    base: str
    canonical_symbol: str
    raw_symbol: Optional[str] = None
    quote: Optional[str] = None
    dex: Optional[str] = None


@dataclass
class PerpPosition:
    """Open perp position read from a clearinghouse state."""

    size: float
    """Signed size (``szi``); negative for shorts, 0 when flat."""

    position_value: float
    unrealized_pnl: Optional[float] = None


@dataclass
class SpotBalance:
    total: float
    entry_ntl: Optional[float] = None


@dataclass
class SpotMeta:
    """Spot universe plus token table."""

    universe: List[Dict[str, Any]] = field(default_factory=list)
    tokens: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class PerpMarketInfo:
    symbol: str
    price: float
    funding_rate: Optional[float]
    sz_decimals: int


@dataclass
class SpotMarketInfo:
    symbol: str
    base: str
    quote: str
    asset_id: int
    market_index: int
    price: float
    sz_decimals: int


@dataclass
class DepositResult:
    tx_hash: str
    amount: float
    amount_units: str
    environment: Environment
    bridge_address: str


@dataclass
class WithdrawResult:
    amount: float
    destination: str
    environment: Environment
    nonce: int
    status: str


# EIP-712 schemas. Field order is part of the signed hash.
AGENT_TYPES = {
    "Agent": [
        {"name": "source", "type": "string"},
        {"name": "connectionId", "type": "bytes32"},
    ],
}

SPOT_SEND_TYPES = {
    "HyperliquidTransaction:SpotSend": [
        {"name": "hyperliquidChain", "type": "string"},
        {"name": "destination", "type": "string"},
        {"name": "token", "type": "string"},
        {"name": "amount", "type": "string"},
        {"name": "time", "type": "uint64"},
    ],
}

WITHDRAW_TYPES = {
    "HyperliquidTransaction:Withdraw": [
        {"name": "hyperliquidChain", "type": "string"},
        {"name": "destination", "type": "string"},
        {"name": "amount", "type": "string"},
        {"name": "time", "type": "uint64"},
    ],
}

APPROVE_BUILDER_FEE_TYPES = {
    "HyperliquidTransaction:ApproveBuilderFee": [
        {"name": "hyperliquidChain", "type": "string"},
        {"name": "maxFeeRate", "type": "string"},
        {"name": "builder", "type": "address"},
        {"name": "nonce", "type": "uint64"},
    ],
}

USER_PORTFOLIO_MARGIN_TYPES = {
    "HyperliquidTransaction:UserPortfolioMargin": [
        {"name": "enabled", "type": "bool"},
        {"name": "hyperliquidChain", "type": "string"},
        {"name": "user", "type": "address"},
        {"name": "nonce", "type": "uint64"},
    ],
}

USER_DEX_ABSTRACTION_TYPES = {
    "HyperliquidTransaction:UserDexAbstraction": [
        {"name": "hyperliquidChain", "type": "string"},
        {"name": "user", "type": "address"},
        {"name": "enabled", "type": "bool"},
        {"name": "nonce", "type": "uint64"},
    ],
}

USER_SET_ABSTRACTION_TYPES = {
    "HyperliquidTransaction:UserSetAbstraction": [
        {"name": "hyperliquidChain", "type": "string"},
        {"name": "user", "type": "address"},
        {"name": "abstraction", "type": "string"},
        {"name": "nonce", "type": "uint64"},
    ],
}

EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]
