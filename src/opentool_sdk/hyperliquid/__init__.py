"""Hyperliquid Adapter Module.

This module signs and submits actions to the Hyperliquid exchange and queries
its market data.

Key components:
- Decimal formatting for prices and sizes (significant figures, ticks, IOC limits)
- Symbol to asset-index resolution with TTL-cached metadata
- L1 action hashing and EIP-712 signing (Agent and user-signed actions)
- Exchange client for orders, cancels, leverage, transfers and account toggles
- Info client for metadata, books, orders and account state
- Readers for positions, balances and spot USD valuation

Example usage:
    ```python
    from opentool_sdk.hyperliquid import (
        HyperliquidExchangeClient,
        LocalAccountWallet,
        OrderIntent,
        create_monotonic_nonce_factory,
        extract_order_ids,
    )

    wallet = LocalAccountWallet(
        "0x...",
        nonce_source=create_monotonic_nonce_factory(),
    )

    async with HyperliquidExchangeClient(wallet, {"environment": "testnet"}) as client:
        response = await client.place_order([
            OrderIntent(
                symbol="BTC",
                side="buy",
                price="100.25",
                size="1.5",
                tif="Gtc",
            )
        ])

    ids = extract_order_ids([response])
    ```
"""

from .types import (
    Abstraction,
    AccountMode,
    BuilderFee,
    DecimalInput,
    DepositResult,
    Environment,
    ExchangeSignature,
    Grouping,
    MarketIdentity,
    MarketType,
    NonceSource,
    OrderIntent,
    PerpMarketInfo,
    PerpPosition,
    Side,
    SignedActionEnvelope,
    SpotBalance,
    SpotMarketInfo,
    SpotMeta,
    TickSize,
    TimeInForce,
    TriggerOptions,
    TriggerType,
    WithdrawResult,
)
from .errors import (
    HyperliquidApiError,
    HyperliquidConfigError,
    HyperliquidError,
    HyperliquidGuardError,
    HyperliquidResolutionError,
    HyperliquidSigningError,
    HyperliquidValidationError,
    resolve_error_detail,
)
from .utils import (
    API_BASES,
    BUILDER_CODE,
    HL_BRIDGE_ADDRESSES,
    HL_CHAIN_LABEL,
    HL_SIGNATURE_CHAIN_ID,
    HL_USDC_ADDRESSES,
    MIN_DEPOSIT_USDC,
    ZERO_ADDRESS,
    HyperliquidClientConfig,
    ResolvedHyperliquidConfig,
    create_monotonic_nonce_factory,
    get_bridge_address,
    get_signature_chain_id,
    get_usdc_address,
    normalize_address,
    normalize_cloid,
    normalize_hex,
    resolve_abstraction_from_mode,
    resolve_config,
)
from .numeric import (
    DEFAULT_MARKET_SLIPPAGE_BPS,
    assert_positive_decimal,
    compute_market_ioc_limit_price,
    format_marketable_price,
    format_order_size,
    format_price,
    format_size,
    normalize_positive_decimal_string,
    round_price_to_tick,
    to_api_decimal,
)
from .symbols import (
    build_market_identity,
    extract_dex,
    is_spot_symbol,
    normalize_base_symbol,
    normalize_meta_symbol,
    normalize_spot_token_name,
    parse_pair,
    parse_spot_pair_symbol,
    resolve_order_symbol,
    resolve_pair,
    resolve_spot_mid_candidates,
    resolve_spot_token_candidates,
    resolve_symbol,
)
from .cache import CacheEntry, MemoryMetadataCache, MetadataCache
from .transport import HyperliquidTransport
from .resolver import AssetResolver
from .signing import (
    HyperliquidWallet,
    LocalAccountWallet,
    create_l1_action_hash,
    recover_l1_action_signer,
    recover_typed_data_signer,
    sign_approve_builder_fee,
    sign_l1_action,
    sign_spot_send,
    sign_user_dex_abstraction,
    sign_user_portfolio_margin,
    sign_user_set_abstraction,
    sign_withdraw,
    split_signature,
)
from .state import (
    build_spot_usd_price_map,
    read_account_value,
    read_number,
    read_perp_position,
    read_perp_position_size,
    read_spot_account_value,
    read_spot_balance,
    read_spot_balance_size,
    read_spot_balances,
)
from .info import HyperliquidInfoClient, compute_tick_size
from .exchange import (
    CancelByCloidInput,
    CancelInput,
    HyperliquidExchangeClient,
    ModifyOrderInput,
    build_order_action,
    order_to_wire,
    resolve_nonce,
)
from .account import (
    DepositWallet,
    approve_builder_fee,
    deposit_to_bridge,
    ensure_builder_approved,
    extract_order_ids,
    require_terms_accepted,
    resolve_order_ref,
    withdraw,
)

__all__ = [
    # Types
    "Abstraction",
    "AccountMode",
    "BuilderFee",
    "DecimalInput",
    "DepositResult",
    "Environment",
    "ExchangeSignature",
    "Grouping",
    "MarketIdentity",
    "MarketType",
    "NonceSource",
    "OrderIntent",
    "PerpMarketInfo",
    "PerpPosition",
    "Side",
    "SignedActionEnvelope",
    "SpotBalance",
    "SpotMarketInfo",
    "SpotMeta",
    "TickSize",
    "TimeInForce",
    "TriggerOptions",
    "TriggerType",
    "WithdrawResult",
    # Errors
    "HyperliquidApiError",
    "HyperliquidConfigError",
    "HyperliquidError",
    "HyperliquidGuardError",
    "HyperliquidResolutionError",
    "HyperliquidSigningError",
    "HyperliquidValidationError",
    "resolve_error_detail",
    # Configuration
    "API_BASES",
    "BUILDER_CODE",
    "HL_BRIDGE_ADDRESSES",
    "HL_CHAIN_LABEL",
    "HL_SIGNATURE_CHAIN_ID",
    "HL_USDC_ADDRESSES",
    "MIN_DEPOSIT_USDC",
    "ZERO_ADDRESS",
    "HyperliquidClientConfig",
    "ResolvedHyperliquidConfig",
    "create_monotonic_nonce_factory",
    "get_bridge_address",
    "get_signature_chain_id",
    "get_usdc_address",
    "normalize_address",
    "normalize_cloid",
    "normalize_hex",
    "resolve_abstraction_from_mode",
    "resolve_config",
    # Numeric
    "DEFAULT_MARKET_SLIPPAGE_BPS",
    "assert_positive_decimal",
    "compute_market_ioc_limit_price",
    "format_marketable_price",
    "format_order_size",
    "format_price",
    "format_size",
    "normalize_positive_decimal_string",
    "round_price_to_tick",
    "to_api_decimal",
    # Symbols
    "build_market_identity",
    "extract_dex",
    "is_spot_symbol",
    "normalize_base_symbol",
    "normalize_meta_symbol",
    "normalize_spot_token_name",
    "parse_pair",
    "parse_spot_pair_symbol",
    "resolve_order_symbol",
    "resolve_pair",
    "resolve_spot_mid_candidates",
    "resolve_spot_token_candidates",
    "resolve_symbol",
    # Resolution
    "AssetResolver",
    "CacheEntry",
    "HyperliquidTransport",
    "MemoryMetadataCache",
    "MetadataCache",
    # Signing
    "HyperliquidWallet",
    "LocalAccountWallet",
    "create_l1_action_hash",
    "recover_l1_action_signer",
    "recover_typed_data_signer",
    "sign_approve_builder_fee",
    "sign_l1_action",
    "sign_spot_send",
    "sign_user_dex_abstraction",
    "sign_user_portfolio_margin",
    "sign_user_set_abstraction",
    "sign_withdraw",
    "split_signature",
    # Clients
    "CancelByCloidInput",
    "CancelInput",
    "HyperliquidExchangeClient",
    "HyperliquidInfoClient",
    "ModifyOrderInput",
    "build_order_action",
    "compute_tick_size",
    "order_to_wire",
    "resolve_nonce",
    # Account state
    "build_spot_usd_price_map",
    "read_account_value",
    "read_number",
    "read_perp_position",
    "read_perp_position_size",
    "read_spot_account_value",
    "read_spot_balance",
    "read_spot_balance_size",
    "read_spot_balances",
    # Account
    "DepositWallet",
    "approve_builder_fee",
    "deposit_to_bridge",
    "ensure_builder_approved",
    "extract_order_ids",
    "require_terms_accepted",
    "resolve_order_ref",
    "withdraw",
]
