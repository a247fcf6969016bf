"""Account funding, builder approval and order-response helpers."""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol

from eth_abi import encode
from eth_utils import keccak

from .errors import HyperliquidConfigError, HyperliquidGuardError, HyperliquidValidationError
from .exchange import HyperliquidExchangeClient, require_signing_wallet
from .info import HyperliquidInfoClient
from .numeric import (
    assert_positive_decimal,
    normalize_positive_decimal_string,
    to_api_decimal,
)
from .signing import sign_approve_builder_fee, sign_withdraw
from .state import read_number
from .types import BuilderFee, DecimalInput, DepositResult, Environment, WithdrawResult
from .utils import (
    BUILDER_CODE,
    HL_CHAIN_LABEL,
    MIN_DEPOSIT_USDC,
    USDC_DECIMALS,
    get_bridge_address,
    get_signature_chain_id,
    get_usdc_address,
    normalize_address,
    now_ms,
)

logger = logging.getLogger(__name__)

ERC20_TRANSFER_SELECTOR = keccak(text="transfer(address,uint256)")[:4]


class DepositWallet(Protocol):
    """Wallet able to submit and confirm an on-chain transaction."""

    address: str

    async def send_transaction(self, transaction: Dict[str, Any]) -> str:
        """Send ``{"to": ..., "data": ...}`` and return the transaction hash."""
        ...

    async def wait_for_transaction_receipt(self, tx_hash: str) -> Any:
        ...


def _amount_text(amount: DecimalInput, label: str) -> str:
    if isinstance(amount, str):
        return normalize_positive_decimal_string(amount, label)
    return to_api_decimal(amount)


def build_bridge_transfer_data(bridge_address: str, amount_units: int) -> str:
    """ERC-20 ``transfer(bridge, amount)`` calldata as 0x-prefixed hex."""
    arguments = encode(["address", "uint256"], [bridge_address, amount_units])
    return "0x" + (ERC20_TRANSFER_SELECTOR + arguments).hex()


async def deposit_to_bridge(
    wallet: DepositWallet,
    amount: DecimalInput,
    environment: Environment = "mainnet",
) -> DepositResult:
    """Deposit USDC into the venue by transferring it to the Arbitrum bridge.

    Args:
        wallet: Wallet with ``send_transaction`` and ``wait_for_transaction_receipt``
        amount: USDC amount as decimal; at least 5
        environment: Venue environment selecting bridge and USDC contracts

    Returns:
        DepositResult with the transaction hash and amount in USDC base units

    Raises:
        HyperliquidValidationError: If the amount is not positive, is below the
            minimum or has more than 6 decimals
        HyperliquidConfigError: If the wallet cannot send transactions
    """
    assert_positive_decimal(amount, "amount")
    amount_text = _amount_text(amount, "amount")
    parsed = Decimal(amount_text)
    if parsed < MIN_DEPOSIT_USDC:
        raise HyperliquidValidationError(f"Minimum deposit is {MIN_DEPOSIT_USDC} USDC.")
    if -parsed.normalize().as_tuple().exponent > USDC_DECIMALS:
        raise HyperliquidValidationError(f"amount supports at most {USDC_DECIMALS} decimals.")

    if not callable(getattr(wallet, "send_transaction", None)) or not callable(
        getattr(wallet, "wait_for_transaction_receipt", None)
    ):
        raise HyperliquidConfigError("Wallet with signing capability is required for deposit.")

    bridge_address = get_bridge_address(environment)
    usdc_address = get_usdc_address(environment)
    amount_units = int(parsed.scaleb(USDC_DECIMALS))
    data = build_bridge_transfer_data(bridge_address, amount_units)

    logger.info("Depositing %s USDC to the %s bridge", amount_text, environment)
    tx_hash = await wallet.send_transaction({"to": usdc_address, "data": data})
    await wallet.wait_for_transaction_receipt(tx_hash)

    return DepositResult(
        tx_hash=tx_hash,
        amount=float(parsed),
        amount_units=str(amount_units),
        environment=environment,
        bridge_address=bridge_address,
    )


async def withdraw(
    client: HyperliquidExchangeClient,
    amount: DecimalInput,
    destination: str,
    nonce: Optional[int] = None,
) -> WithdrawResult:
    """Withdraw USDC from the venue to ``destination`` on Arbitrum.

    The nonce doubles as the signed ``time`` field; without an explicit or
    configured source the current time in milliseconds is used.

    Raises:
        HyperliquidConfigError: If the wallet cannot sign
        HyperliquidValidationError: If the amount or destination is invalid
        HyperliquidApiError: If the venue rejects the withdrawal
    """
    require_signing_wallet(client.wallet, "withdraw")
    assert_positive_decimal(amount, "amount")
    amount_text = _amount_text(amount, "amount")
    normalized_destination = normalize_address(destination)
    effective_nonce = client.next_nonce(nonce, allow_timestamp=True)

    signature = await sign_withdraw(
        client.wallet,
        hyperliquid_chain=client.hyperliquid_chain,
        signature_chain_id=client.signature_chain_id,
        destination=normalized_destination,
        amount=amount_text,
        time=effective_nonce,
    )
    action = {
        "type": "withdraw3",
        "signatureChainId": client.signature_chain_id,
        "hyperliquidChain": client.hyperliquid_chain,
        "destination": normalized_destination,
        "amount": amount_text,
        "time": effective_nonce,
    }
    response = await client.submit_user_signed_action(action, signature, effective_nonce)
    return WithdrawResult(
        amount=float(amount_text),
        destination=normalized_destination,
        environment=client.environment,
        nonce=effective_nonce,
        status=response.get("status", "ok"),
    )


def format_max_fee_rate(fee: int) -> str:
    """Builder fee in tenths of a basis point as a percent string (100 -> ``"0.1%"``)."""
    return f"{to_api_decimal(Decimal(fee) / 1000)}%"


async def approve_builder_fee(
    client: HyperliquidExchangeClient,
    nonce: Optional[int] = None,
    signature_chain_id: Optional[str] = None,
    builder: BuilderFee = BUILDER_CODE,
) -> Dict[str, Any]:
    """Approve the builder's fee rate for the wallet (user-signed).

    Args:
        client: Exchange client holding the wallet and environment
        nonce: Explicit nonce. Default: resolved source, then current time
        signature_chain_id: Override of the environment's signature chain
        builder: Builder code to approve

    Returns:
        Venue response
    """
    require_signing_wallet(client.wallet, "builder fee approval")
    max_fee_rate = format_max_fee_rate(builder.fee)
    effective_nonce = client.next_nonce(nonce, allow_timestamp=True)
    chain_id = signature_chain_id or get_signature_chain_id(client.environment)
    normalized_builder = normalize_address(builder.address)

    signature = await sign_approve_builder_fee(
        client.wallet,
        max_fee_rate=max_fee_rate,
        nonce=effective_nonce,
        signature_chain_id=chain_id,
        is_testnet=client.config.is_testnet,
        builder=normalized_builder,
    )
    action = {
        "type": "approveBuilderFee",
        "maxFeeRate": max_fee_rate,
        "builder": normalized_builder,
        "hyperliquidChain": HL_CHAIN_LABEL[client.environment],
        "signatureChainId": chain_id,
        "nonce": effective_nonce,
    }
    return await client.submit_user_signed_action(action, signature, effective_nonce)


async def ensure_builder_approved(
    info: HyperliquidInfoClient,
    user: str,
    builder: BuilderFee = BUILDER_CODE,
) -> int:
    """Check that ``user`` has approved at least the builder's fee.

    Returns:
        The approved max fee in tenths of a basis point

    Raises:
        HyperliquidGuardError: ``builder_approval`` kind when the approval is missing or too low
    """
    approved = read_number(await info.max_builder_fee(user, builder.address))
    if approved is None or approved < builder.fee:
        logger.warning("Builder %s is not approved for %s", builder.address, user)
        raise HyperliquidGuardError.builder_approval(
            detail={
                "user": normalize_address(user),
                "builder": normalize_address(builder.address),
                "approved": approved,
                "required": builder.fee,
            }
        )
    return int(approved)


def require_terms_accepted(accepted: bool) -> None:
    if not accepted:
        raise HyperliquidGuardError.terms()


def _statuses(response: Any) -> List[Any]:
    if not isinstance(response, dict):
        return []
    inner = response.get("response")
    data = inner.get("data") if isinstance(inner, dict) else None
    statuses = data.get("statuses") if isinstance(data, dict) else None
    return statuses if isinstance(statuses, list) else []


def extract_order_ids(responses: Iterable[Any]) -> Dict[str, List[str]]:
    """Collect unique client and venue order ids from order responses.

    Returns:
        ``{"cloids": [...], "oids": [...]}`` as strings in first-seen order
    """
    cloids: Dict[str, None] = {}
    oids: Dict[str, None] = {}
    for response in responses:
        for status in _statuses(response):
            if not isinstance(status, dict):
                continue
            for key in ("resting", "filled"):
                entry = status.get(key)
                if not isinstance(entry, dict):
                    continue
                for field, target in (("cloid", cloids), ("oid", oids)):
                    value = entry.get(field)
                    if value is not None and str(value):
                        target[str(value)] = None
    return {"cloids": list(cloids), "oids": list(oids)}


def _order_ref(entry: Any) -> Optional[str]:
    if not isinstance(entry, dict):
        return None
    cloid = entry.get("cloid")
    if isinstance(cloid, str) and cloid.strip():
        return cloid
    oid = entry.get("oid")
    if isinstance(oid, int) and not isinstance(oid, bool):
        return str(oid)
    if isinstance(oid, str) and oid.strip():
        return oid
    return None


def resolve_order_ref(
    response: Any = None,
    fallback_cloid: Optional[str] = None,
    fallback_oid: Optional[str] = None,
    prefix: str = "hl-order",
    index: int = 0,
) -> str:
    """Pick a stable reference for a placed order.

    Each status is checked filled-first, then resting, preferring the cloid
    over the oid. Fallbacks are used next, and finally a synthetic
    ``{prefix}-{now_ms}-{index}``.
    """
    for status in _statuses(response):
        if not isinstance(status, dict):
            continue
        ref = _order_ref(status.get("filled")) or _order_ref(status.get("resting"))
        if ref:
            return ref
    if fallback_cloid and fallback_cloid.strip():
        return fallback_cloid
    if fallback_oid and fallback_oid.strip():
        return fallback_oid
    return f"{prefix}-{now_ms()}-{index}"
