"""Order and action builders plus the signing ``/exchange`` client.

Every method validates its input before any network or signing call, then
resolves symbols, builds the wire action, signs it with the wallet and posts
the envelope. Nothing is retried.
"""

import logging
import time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Sequence, TypedDict, Union, get_args

import httpx

from .errors import HyperliquidConfigError, HyperliquidValidationError
from .numeric import (
    assert_non_empty_string,
    assert_positive_decimal,
    assert_positive_number,
    to_api_decimal,
)
from .resolver import AssetResolver
from .signing import (
    HyperliquidWallet,
    sign_l1_action,
    sign_spot_send,
    sign_user_dex_abstraction,
    sign_user_portfolio_margin,
    sign_user_set_abstraction,
)
from .transport import HyperliquidTransport
from .types import (
    AccountMode,
    BuilderFee,
    DecimalInput,
    Grouping,
    NonceSource,
    OrderIntent,
    Side,
    SignedActionEnvelope,
    TimeInForce,
    TriggerOptions,
    TriggerType,
)
from .utils import (
    BUILDER_CODE,
    HL_CHAIN_LABEL,
    HyperliquidClientConfig,
    get_signature_chain_id,
    normalize_address,
    normalize_cloid,
    now_ms,
    resolve_abstraction_from_mode,
    resolve_config,
)

logger = logging.getLogger(__name__)

USD_SCALE = Decimal(1_000_000)


class CancelInput(TypedDict):
    symbol: str
    oid: Union[int, str]


class CancelByCloidInput(TypedDict):
    symbol: str
    cloid: str


class ModifyOrderInput(TypedDict):
    oid: Union[int, str]
    order: OrderIntent


def resolve_nonce(
    nonce: Optional[int] = None,
    nonce_provider: Optional[NonceSource] = None,
    wallet: Optional[HyperliquidWallet] = None,
    nonce_source: Optional[NonceSource] = None,
    allow_timestamp: bool = False,
) -> int:
    """Pick the nonce for a signed call.

    Candidates are tried in order: explicit ``nonce``, ``nonce_provider``, the
    wallet's own ``nonce_source``, the fallback ``nonce_source`` and, only when
    ``allow_timestamp`` is set, the current time in milliseconds.

    Raises:
        HyperliquidConfigError: If no candidate yields a nonce
    """
    wallet_source: Optional[NonceSource] = getattr(wallet, "nonce_source", None)
    resolvers: List[Callable[[], Optional[int]]] = [
        lambda: nonce,
        lambda: nonce_provider() if nonce_provider else None,
        lambda: wallet_source() if wallet_source else None,
        lambda: nonce_source() if nonce_source else None,
    ]
    if allow_timestamp:
        resolvers.append(now_ms)

    for resolver in resolvers:
        value = resolver()
        if value is not None:
            return value
    raise HyperliquidConfigError("Wallet nonce source is required for Hyperliquid exchange actions.")


def validate_side(side: Any) -> None:
    if side not in ("buy", "sell"):
        raise HyperliquidValidationError(f"side must be 'buy' or 'sell', got {side!r}")


def validate_oid(oid: Any) -> None:
    """Order ids are non-negative integers, optionally as a digit string."""
    if isinstance(oid, bool):
        raise HyperliquidValidationError(f"Invalid oid: {oid!r}")
    if isinstance(oid, int) and oid >= 0:
        return
    if isinstance(oid, str) and oid.isascii() and oid.isdigit():
        return
    raise HyperliquidValidationError(f"Invalid oid: {oid!r}")


def validate_order_intent(intent: OrderIntent) -> None:
    """Check an order intent before any symbol resolution.

    Every field that ends up in the wire order is checked here, before any
    metadata request.

    Raises:
        HyperliquidValidationError: If any field of the intent is invalid
    """
    assert_non_empty_string(intent.symbol, "symbol")
    validate_side(intent.side)
    assert_positive_decimal(intent.price, "price")
    assert_positive_decimal(intent.size, "size")
    if intent.tif is not None and intent.tif not in get_args(TimeInForce):
        raise HyperliquidValidationError(f"Unsupported tif: {intent.tif!r}")
    if intent.trigger is not None:
        assert_positive_decimal(intent.trigger.trigger_px, "triggerPx")
        if intent.trigger.tpsl not in get_args(TriggerType):
            raise HyperliquidValidationError(f"tpsl must be 'tp' or 'sl', got {intent.trigger.tpsl!r}")
    if intent.client_id:
        normalize_cloid(intent.client_id)


def _order_type(intent: OrderIntent) -> Dict[str, Any]:
    trigger: Optional[TriggerOptions] = intent.trigger
    if trigger is not None:
        return {
            "trigger": {
                "isMarket": bool(trigger.is_market),
                "triggerPx": to_api_decimal(trigger.trigger_px),
                "tpsl": trigger.tpsl,
            }
        }
    return {"limit": {"tif": intent.tif or "Ioc"}}


def order_to_wire(intent: OrderIntent, asset_index: int) -> Dict[str, Any]:
    """Build the wire order for an already validated intent.

    Key order (``a b p s r t c``) is part of the signed hash.
    """
    order: Dict[str, Any] = {
        "a": asset_index,
        "b": intent.side == "buy",
        "p": to_api_decimal(intent.price),
        "s": to_api_decimal(intent.size),
        "r": bool(intent.reduce_only),
        "t": _order_type(intent),
    }
    if intent.client_id:
        order["c"] = normalize_cloid(intent.client_id)
    return order


def build_order_action(
    orders: List[Dict[str, Any]],
    grouping: Grouping = "na",
    builder: Optional[BuilderFee] = BUILDER_CODE,
) -> Dict[str, Any]:
    action: Dict[str, Any] = {"type": "order", "orders": orders, "grouping": grouping}
    if builder is not None:
        action["builder"] = {"b": normalize_address(builder.address), "f": builder.fee}
    return action


def normalize_usd_to_int(value: DecimalInput) -> int:
    """Scale a USD amount to integer micro-USD, rounding half up.

    Raises:
        HyperliquidValidationError: If the amount is negative or not numeric
    """
    if isinstance(value, bool):
        raise HyperliquidValidationError("usd must be a non-negative number.")
    try:
        amount = Decimal(value.strip() if isinstance(value, str) else to_api_decimal(value))
    except InvalidOperation:
        raise HyperliquidValidationError("usd must be a non-negative number.") from None
    if not amount.is_finite() or amount < 0:
        raise HyperliquidValidationError("usd must be a non-negative number.")
    return int((amount * USD_SCALE).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def require_signing_wallet(wallet: Any, purpose: str) -> None:
    if wallet is None or not callable(getattr(wallet, "sign_typed_data", None)):
        raise HyperliquidConfigError(f"Wallet with signing capability is required for {purpose}.")
    if not getattr(wallet, "address", None):
        raise HyperliquidConfigError(f"Wallet address is required for {purpose}.")


class HyperliquidExchangeClient:
    """Signs and submits actions to the venue's ``/exchange`` endpoint.

    Example:
        ```python
        wallet = LocalAccountWallet(key, nonce_source=create_monotonic_nonce_factory())
        async with HyperliquidExchangeClient(wallet, {"environment": "testnet"}) as client:
            result = await client.place_order(
                [OrderIntent(symbol="BTC", side="buy", price="100.25", size="1.5", tif="Gtc")]
            )
        ```
    """

    def __init__(
        self,
        wallet: HyperliquidWallet,
        config: Optional[HyperliquidClientConfig] = None,
        transport: Optional[HyperliquidTransport] = None,
        resolver: Optional[AssetResolver] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        nonce_provider: Optional[NonceSource] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the exchange client.

        Args:
            wallet: Signing wallet
            config: Client configuration; see :class:`HyperliquidClientConfig`
            transport: Shared transport. Default: one built from ``config``
            resolver: Asset resolver. Default: one with a private cache
            http_client: HTTP client for a newly built transport
            nonce_provider: Per-wallet nonce provider, preferred over
                ``wallet.nonce_source`` and ``config["nonce_source"]``
            clock: Time source for the resolver's metadata cache
        """
        self.wallet = wallet
        self.config = resolve_config(config)
        self.transport = transport or HyperliquidTransport(
            self.config.base_url, self.config.timeout, http_client
        )
        self.resolver = resolver or AssetResolver(
            self.transport, self.config.environment, clock=clock
        )
        self.nonce_provider = nonce_provider

    @property
    def environment(self) -> str:
        return self.config.environment

    @property
    def signature_chain_id(self) -> str:
        return get_signature_chain_id(self.config.environment)

    @property
    def hyperliquid_chain(self) -> str:
        return HL_CHAIN_LABEL[self.config.environment]

    def next_nonce(self, nonce: Optional[int] = None, allow_timestamp: bool = False) -> int:
        return resolve_nonce(
            nonce=nonce,
            nonce_provider=self.nonce_provider,
            wallet=self.wallet,
            nonce_source=self.config.nonce_source,
            allow_timestamp=allow_timestamp,
        )

    def _envelope(self, action: Dict[str, Any], nonce: int, signature: Any) -> SignedActionEnvelope:
        return SignedActionEnvelope(
            action=action,
            nonce=nonce,
            signature=signature,
            vault_address=self.config.vault_address,
            expires_after=self.config.expires_after,
        )

    async def submit_l1_action(
        self, action: Dict[str, Any], nonce: Optional[int] = None
    ) -> Dict[str, Any]:
        """Sign an L1 action with the client's vault/expiry settings and post it.

        Raises:
            HyperliquidConfigError: If the wallet cannot sign or no nonce resolves
            HyperliquidApiError: If the venue rejects the action
        """
        require_signing_wallet(self.wallet, "Hyperliquid exchange actions")
        effective_nonce = self.next_nonce(nonce)
        signature = await sign_l1_action(
            self.wallet,
            action,
            effective_nonce,
            vault_address=self.config.vault_address,
            expires_after=self.config.expires_after,
            is_testnet=self.config.is_testnet,
        )
        envelope = self._envelope(action, effective_nonce, signature)
        logger.debug("Submitting %s action with nonce %s", action.get("type"), effective_nonce)
        return await self.transport.post_exchange(envelope.to_payload())

    async def place_order(
        self,
        orders: Sequence[OrderIntent],
        grouping: Grouping = "na",
        nonce: Optional[int] = None,
        builder: Optional[BuilderFee] = BUILDER_CODE,
    ) -> Dict[str, Any]:
        """Place one or more orders in a single signed action.

        Args:
            orders: Order intents; symbols are resolved concurrently
            grouping: TP/SL grouping. Default: ``na``
            nonce: Explicit nonce
            builder: Builder code attached to the action

        Returns:
            Venue response; ``response.data.statuses`` holds one entry per order

        Raises:
            HyperliquidValidationError: If any intent is invalid
            HyperliquidResolutionError: If a symbol cannot be resolved
            HyperliquidApiError: If the venue rejects any order
        """
        if not orders:
            raise HyperliquidValidationError("At least one order is required.")
        require_signing_wallet(self.wallet, "Hyperliquid order signing")
        for intent in orders:
            validate_order_intent(intent)

        indexes = await self.resolver.resolve_asset_indexes([o.symbol for o in orders])
        wire = [order_to_wire(intent, index) for intent, index in zip(orders, indexes)]
        return await self.submit_l1_action(build_order_action(wire, grouping, builder), nonce)

    async def cancel(self, cancels: Sequence[CancelInput], nonce: Optional[int] = None) -> Dict[str, Any]:
        if not cancels:
            raise HyperliquidValidationError("At least one cancel is required.")
        for entry in cancels:
            assert_non_empty_string(entry["symbol"], "symbol")
            validate_oid(entry["oid"])
        indexes = await self.resolver.resolve_asset_indexes([c["symbol"] for c in cancels])
        action = {
            "type": "cancel",
            "cancels": [{"a": index, "o": entry["oid"]} for entry, index in zip(cancels, indexes)],
        }
        return await self.submit_l1_action(action, nonce)

    async def cancel_by_cloid(
        self, cancels: Sequence[CancelByCloidInput], nonce: Optional[int] = None
    ) -> Dict[str, Any]:
        if not cancels:
            raise HyperliquidValidationError("At least one cancel is required.")
        for entry in cancels:
            assert_non_empty_string(entry["symbol"], "symbol")
        cloids = [normalize_cloid(entry["cloid"]) for entry in cancels]
        indexes = await self.resolver.resolve_asset_indexes([c["symbol"] for c in cancels])
        action = {
            "type": "cancelByCloid",
            "cancels": [{"asset": index, "cloid": cloid} for cloid, index in zip(cloids, indexes)],
        }
        return await self.submit_l1_action(action, nonce)

    async def cancel_all(self, nonce: Optional[int] = None) -> Dict[str, Any]:
        return await self.submit_l1_action({"type": "cancelAll"}, nonce)

    async def schedule_cancel(self, time_ms: Optional[int], nonce: Optional[int] = None) -> Dict[str, Any]:
        """Schedule a cancel-all at ``time_ms``; ``None`` clears the schedule."""
        action: Dict[str, Any] = {"type": "scheduleCancel"}
        if time_ms is not None:
            assert_positive_number(time_ms, "time")
            action["time"] = time_ms
        return await self.submit_l1_action(action, nonce)

    async def _modify_entry(self, oid: Union[int, str], order: OrderIntent) -> Dict[str, Any]:
        index = await self.resolver.resolve_asset_index(order.symbol)
        return {"oid": oid, "order": order_to_wire(order, index)}

    async def modify(
        self, oid: Union[int, str], order: OrderIntent, nonce: Optional[int] = None
    ) -> Dict[str, Any]:
        validate_oid(oid)
        validate_order_intent(order)
        entry = await self._modify_entry(oid, order)
        return await self.submit_l1_action({"type": "modify", **entry}, nonce)

    async def batch_modify(
        self, modifications: Sequence[ModifyOrderInput], nonce: Optional[int] = None
    ) -> Dict[str, Any]:
        if not modifications:
            raise HyperliquidValidationError("At least one modification is required.")
        for modification in modifications:
            validate_oid(modification["oid"])
            validate_order_intent(modification["order"])
        indexes = await self.resolver.resolve_asset_indexes(
            [m["order"].symbol for m in modifications]
        )
        modifies = [
            {"oid": m["oid"], "order": order_to_wire(m["order"], index)}
            for m, index in zip(modifications, indexes)
        ]
        return await self.submit_l1_action({"type": "batchModify", "modifies": modifies}, nonce)

    async def twap_order(
        self,
        symbol: str,
        side: Side,
        size: DecimalInput,
        minutes: int,
        reduce_only: bool = False,
        randomize: bool = False,
        nonce: Optional[int] = None,
    ) -> Dict[str, Any]:
        assert_non_empty_string(symbol, "symbol")
        validate_side(side)
        assert_positive_decimal(size, "size")
        assert_positive_number(minutes, "minutes")
        asset = await self.resolver.resolve_asset_index(symbol)
        action = {
            "type": "twapOrder",
            "twap": {
                "a": asset,
                "b": side == "buy",
                "s": to_api_decimal(size),
                "r": bool(reduce_only),
                "m": minutes,
                "t": bool(randomize),
            },
        }
        return await self.submit_l1_action(action, nonce)

    async def twap_cancel(self, symbol: str, twap_id: int, nonce: Optional[int] = None) -> Dict[str, Any]:
        assert_non_empty_string(symbol, "symbol")
        asset = await self.resolver.resolve_asset_index(symbol)
        return await self.submit_l1_action({"type": "twapCancel", "a": asset, "t": twap_id}, nonce)

    async def update_leverage(
        self,
        symbol: str,
        leverage: int,
        leverage_mode: str = "cross",
        nonce: Optional[int] = None,
    ) -> Dict[str, Any]:
        assert_non_empty_string(symbol, "symbol")
        assert_positive_number(leverage, "leverage")
        if leverage_mode not in ("cross", "isolated"):
            raise HyperliquidValidationError("leverage_mode must be 'cross' or 'isolated'.")
        asset = await self.resolver.resolve_asset_index(symbol)
        action = {
            "type": "updateLeverage",
            "asset": asset,
            "isCross": leverage_mode == "cross",
            "leverage": leverage,
        }
        return await self.submit_l1_action(action, nonce)

    async def update_isolated_margin(
        self, symbol: str, is_buy: bool, ntli: int, nonce: Optional[int] = None
    ) -> Dict[str, Any]:
        assert_non_empty_string(symbol, "symbol")
        assert_positive_number(ntli, "ntli")
        asset = await self.resolver.resolve_asset_index(symbol)
        action = {"type": "updateIsolatedMargin", "asset": asset, "isBuy": is_buy, "ntli": ntli}
        return await self.submit_l1_action(action, nonce)

    async def reserve_request_weight(self, weight: int, nonce: Optional[int] = None) -> Dict[str, Any]:
        assert_positive_number(weight, "weight")
        return await self.submit_l1_action({"type": "reserveRequestWeight", "weight": weight}, nonce)

    async def create_sub_account(self, name: str, nonce: Optional[int] = None) -> Dict[str, Any]:
        assert_non_empty_string(name, "name")
        return await self.submit_l1_action({"type": "createSubAccount", "name": name}, nonce)

    async def sub_account_transfer(
        self,
        sub_account_user: str,
        is_deposit: bool,
        usd: DecimalInput,
        nonce: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Move USD between the master account and a sub-account.

        ``usd`` is in dollars and sent as integer micro-USD.
        """
        assert_non_empty_string(sub_account_user, "subAccountUser")
        action = {
            "type": "subAccountTransfer",
            "subAccountUser": normalize_address(sub_account_user),
            "isDeposit": bool(is_deposit),
            "usd": normalize_usd_to_int(usd),
        }
        return await self.submit_l1_action(action, nonce)

    async def submit_user_signed_action(
        self,
        action: Dict[str, Any],
        signature: Any,
        nonce: int,
    ) -> Dict[str, Any]:
        envelope = SignedActionEnvelope(action=action, nonce=nonce, signature=signature)
        logger.debug("Submitting %s action with nonce %s", action.get("type"), nonce)
        return await self.transport.post_exchange(envelope.to_payload())

    async def spot_send(
        self,
        destination: str,
        token: str,
        amount: DecimalInput,
        nonce: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Transfer a spot token to another address (user-signed).

        Args:
            destination: Recipient address
            token: Token identifier, e.g. ``"USDC:0x..."``
            amount: Amount as decimal
            nonce: Explicit nonce. Default: resolved source, then current time
        """
        require_signing_wallet(self.wallet, "spotSend")
        assert_non_empty_string(token, "token")
        assert_positive_decimal(amount, "amount")
        normalized_destination = normalize_address(destination)
        effective_nonce = self.next_nonce(nonce, allow_timestamp=True)
        amount_text = to_api_decimal(amount)

        signature = await sign_spot_send(
            self.wallet,
            hyperliquid_chain=self.hyperliquid_chain,
            signature_chain_id=self.signature_chain_id,
            destination=normalized_destination,
            token=token,
            amount=amount_text,
            time=effective_nonce,
        )
        action = {
            "type": "spotSend",
            "hyperliquidChain": self.hyperliquid_chain,
            "signatureChainId": self.signature_chain_id,
            "destination": normalized_destination,
            "token": token,
            "amount": amount_text,
            "time": effective_nonce,
        }
        return await self.submit_user_signed_action(action, signature, effective_nonce)

    def _user_action(self, action_type: str, nonce: int, user: Optional[str], **fields: Any) -> Dict[str, Any]:
        return {
            "type": action_type,
            **fields,
            "hyperliquidChain": self.hyperliquid_chain,
            "signatureChainId": self.signature_chain_id,
            "user": normalize_address(user or self.wallet.address),
            "nonce": nonce,
        }

    async def set_portfolio_margin(
        self, enabled: bool, user: Optional[str] = None, nonce: Optional[int] = None
    ) -> Dict[str, Any]:
        require_signing_wallet(self.wallet, "portfolio margin")
        effective_nonce = self.next_nonce(nonce, allow_timestamp=True)
        action = self._user_action(
            "userPortfolioMargin", effective_nonce, user, enabled=bool(enabled)
        )
        signature = await sign_user_portfolio_margin(self.wallet, action)
        return await self.submit_user_signed_action(action, signature, effective_nonce)

    async def set_dex_abstraction(
        self, enabled: bool, user: Optional[str] = None, nonce: Optional[int] = None
    ) -> Dict[str, Any]:
        require_signing_wallet(self.wallet, "dex abstraction")
        effective_nonce = self.next_nonce(nonce, allow_timestamp=True)
        action = self._user_action(
            "userDexAbstraction", effective_nonce, user, enabled=bool(enabled)
        )
        signature = await sign_user_dex_abstraction(self.wallet, action)
        return await self.submit_user_signed_action(action, signature, effective_nonce)

    async def set_account_abstraction_mode(
        self, mode: AccountMode, user: Optional[str] = None, nonce: Optional[int] = None
    ) -> Dict[str, Any]:
        """Switch between standard, unified and portfolio-margin accounts."""
        require_signing_wallet(self.wallet, "account abstraction mode")
        abstraction = resolve_abstraction_from_mode(mode)
        effective_nonce = self.next_nonce(nonce, allow_timestamp=True)
        action = self._user_action(
            "userSetAbstraction", effective_nonce, user, abstraction=abstraction
        )
        signature = await sign_user_set_abstraction(self.wallet, action)
        return await self.submit_user_signed_action(action, signature, effective_nonce)

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "HyperliquidExchangeClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
