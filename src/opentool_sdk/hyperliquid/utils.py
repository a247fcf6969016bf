"""Constants, configuration and small helpers for the Hyperliquid adapter."""

import os
import re
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional, TypedDict

from .errors import HyperliquidValidationError
from .types import AccountMode, Abstraction, BuilderFee, Environment, NonceSource

API_BASES: Dict[str, str] = {
    "mainnet": "https://api.hyperliquid.xyz",
    "testnet": "https://api.hyperliquid-testnet.xyz",
}

HL_CHAIN_LABEL: Dict[str, str] = {
    "mainnet": "Mainnet",
    "testnet": "Testnet",
}

# Arbitrum bridge contracts
HL_BRIDGE_ADDRESSES: Dict[str, str] = {
    "mainnet": "0x2df1c51e09aecf9cacb7bc98cb1742757f163df7",
    "testnet": "0x08cfc1b6b2dcf36a1480b99353a354aa8ac56f89",
}

HL_USDC_ADDRESSES: Dict[str, str] = {
    "mainnet": "0xaf88d065e77c8cc2239327c5edb3a432268e5831",
    "testnet": "0x1baAbB04529D43a73232B713C0FE471f7c7334d5",
}

HL_SIGNATURE_CHAIN_ID: Dict[str, str] = {
    "mainnet": "0xa4b1",
    "testnet": "0x66eee",
}

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# L1 actions are signed against this fixed domain regardless of environment.
EXCHANGE_TYPED_DATA_DOMAIN = {
    "name": "Exchange",
    "version": "1",
    "chainId": 1337,
    "verifyingContract": ZERO_ADDRESS,
}

MIN_DEPOSIT_USDC = 5
USDC_DECIMALS = 6
CACHE_TTL_SECONDS = 5 * 60
DEFAULT_TIMEOUT_SECONDS = 10.0

BUILDER_CODE = BuilderFee(
    address="0x4b2aec4F91612849d6e20C9c1881FabB1A48cd12",
    fee=100,
)

_HEX_PATTERN = re.compile(r"^0x[0-9a-f]+$")
ADDRESS_HEX_LENGTH = 42
CLOID_HEX_LENGTH = 34


class HyperliquidClientConfig(TypedDict, total=False):
    """Client configuration for the Hyperliquid adapter."""

    environment: Environment
    """Venue environment. Default: mainnet"""

    base_url: str
    """API base URL. Default: derived from environment"""

    vault_address: str
    """Vault or sub-account to act on behalf of (optional)"""

    expires_after: int
    """Millisecond timestamp after which signed actions are rejected (optional)"""

    timeout: float
    """HTTP timeout in seconds. Default: 10"""

    nonce_source: NonceSource
    """Fallback nonce source when the wallet has none (optional)"""


@dataclass(frozen=True)
class ResolvedHyperliquidConfig:
    """Client configuration with all defaults applied."""

    environment: Environment
    base_url: str
    vault_address: Optional[str]
    expires_after: Optional[int]
    timeout: float
    nonce_source: Optional[NonceSource]

    @property
    def is_testnet(self) -> bool:
        return self.environment == "testnet"


def resolve_config(config: Optional[HyperliquidClientConfig] = None) -> ResolvedHyperliquidConfig:
    """Apply defaults to a client configuration.

    Raises:
        HyperliquidValidationError: If the environment or vault address is invalid
    """
    config = config or {}
    environment = config.get("environment", "mainnet")
    if environment not in API_BASES:
        raise HyperliquidValidationError(f"Unknown Hyperliquid environment: {environment}")
    vault = config.get("vault_address")
    return ResolvedHyperliquidConfig(
        environment=environment,
        base_url=config.get("base_url", API_BASES[environment]).rstrip("/"),
        vault_address=normalize_address(vault) if vault else None,
        expires_after=config.get("expires_after"),
        timeout=config.get("timeout", DEFAULT_TIMEOUT_SECONDS),
        nonce_source=config.get("nonce_source"),
    )


def get_base_url(environment: Environment) -> str:
    return API_BASES[environment]


def get_bridge_address(environment: Environment) -> str:
    override = os.environ.get("HYPERLIQUID_BRIDGE_ADDRESS", "").strip()
    if override:
        return normalize_address(override)
    return HL_BRIDGE_ADDRESSES[environment]


def get_usdc_address(environment: Environment) -> str:
    override = os.environ.get("HYPERLIQUID_USDC_ADDRESS", "").strip()
    if override:
        return normalize_address(override)
    return HL_USDC_ADDRESSES[environment]


def get_signature_chain_id(environment: Environment) -> str:
    override = os.environ.get("HYPERLIQUID_SIGNATURE_CHAIN_ID", "").strip()
    return normalize_hex(override or HL_SIGNATURE_CHAIN_ID[environment])


def normalize_hex(value: str) -> str:
    """Lowercase a 0x-prefixed hex string and check its alphabet.

    Raises:
        HyperliquidValidationError: If the value is not 0x-prefixed hex
    """
    lower = value.strip().lower() if isinstance(value, str) else ""
    if not _HEX_PATTERN.match(lower):
        raise HyperliquidValidationError(f"Invalid hex value: {value}")
    return lower


def normalize_address(value: str) -> str:
    normalized = normalize_hex(value)
    if len(normalized) != ADDRESS_HEX_LENGTH:
        raise HyperliquidValidationError(f"Invalid address length: {normalized}")
    return normalized


def normalize_cloid(value: str) -> str:
    normalized = normalize_hex(value)
    if len(normalized) != CLOID_HEX_LENGTH:
        raise HyperliquidValidationError(f"Invalid cloid length: {normalized}")
    return normalized


def resolve_abstraction_from_mode(mode: AccountMode) -> Abstraction:
    """Map a product-level account mode to the venue's abstraction value."""
    mapping: Dict[str, Abstraction] = {
        "standard": "disabled",
        "unified": "unifiedAccount",
        "portfolio": "portfolioMargin",
    }
    try:
        return mapping[mode]
    except KeyError:
        raise HyperliquidValidationError(f"Unknown account mode: {mode}") from None


def now_ms() -> int:
    return int(time.time() * 1000)


def create_monotonic_nonce_factory(start: Optional[int] = None) -> NonceSource:
    """Create a nonce source that follows wall-clock milliseconds.

    Each call returns the current time in milliseconds, or the previous value
    plus one when the clock has not advanced. Calls from several threads never
    return the same value.

    Args:
        start: Initial value (default: current time in milliseconds)

    Returns:
        Callable returning strictly increasing integers
    """
    lock = threading.Lock()
    last = start if start is not None else now_ms()

    def next_nonce() -> int:
        nonlocal last
        with lock:
            current = now_ms()
            last = current if current > last else last + 1
            return last

    return next_nonce
