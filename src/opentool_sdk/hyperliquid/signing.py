"""Action hashing and EIP-712 signing for Hyperliquid.

Two signing schemes are used by the venue:

- **L1 actions** (orders, cancels, leverage, ...): the action is msgpack
  encoded, framed with nonce, vault and expiry, keccak-hashed and signed as
  the ``connectionId`` of an ``Agent`` message on a fixed domain.
- **User-signed actions** (spot send, withdraw, builder approval, account
  toggles): the action fields are signed directly as typed data on the
  ``HyperliquidSignTransaction`` domain of the signature chain.

Signing goes through any object implementing :class:`HyperliquidWallet`.
:class:`LocalAccountWallet` wraps an ``eth_account`` key.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Protocol

import msgpack
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import keccak

from .errors import HyperliquidSigningError, HyperliquidValidationError
from .types import (
    AGENT_TYPES,
    APPROVE_BUILDER_FEE_TYPES,
    EIP712_DOMAIN_TYPE,
    SPOT_SEND_TYPES,
    USER_DEX_ABSTRACTION_TYPES,
    USER_PORTFOLIO_MARGIN_TYPES,
    USER_SET_ABSTRACTION_TYPES,
    WITHDRAW_TYPES,
    ExchangeSignature,
    NonceSource,
)
from .utils import (
    BUILDER_CODE,
    EXCHANGE_TYPED_DATA_DOMAIN,
    ZERO_ADDRESS,
    normalize_address,
)

logger = logging.getLogger(__name__)

_SIGNATURE_PATTERN = re.compile(r"^[0-9a-fA-F]{130}")
_UINT64_MAX = 2**64 - 1


class HyperliquidWallet(Protocol):
    """Protocol for wallets that can sign Hyperliquid actions.

    Implementations may also expose ``nonce_source: Callable[[], int]``; when
    present it is preferred over client-level nonce sources.
    """

    address: str

    async def sign_typed_data(self, params: Dict[str, Any]) -> str:
        """Sign EIP-712 typed data.

        Args:
            params: Dict with domain, types, primaryType, and message. ``types``
                does not include ``EIP712Domain``.

        Returns:
            65-byte signature as 0x-prefixed hex string
        """
        ...


class LocalAccountWallet:
    """:class:`HyperliquidWallet` backed by a local private key.

    Example:
        ```python
        wallet = LocalAccountWallet(os.environ["PRIVATE_KEY"])
        signature = await sign_l1_action(wallet, action, nonce=1700000000000)
        ```
    """

    def __init__(self, private_key: str, nonce_source: Optional[NonceSource] = None):
        """Initialize the wallet.

        Args:
            private_key: Private key (hex string with or without 0x prefix)
            nonce_source: Optional nonce source owned by this wallet
        """
        self._account = Account.from_key(private_key)
        self.nonce_source = nonce_source

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_typed_data(self, params: Dict[str, Any]) -> str:
        signable = encode_typed_data(full_message=_full_message(params))
        signed = self._account.sign_message(signable)
        signature = signed.signature.hex()
        return signature if signature.startswith("0x") else f"0x{signature}"


def _full_message(params: Dict[str, Any]) -> Dict[str, Any]:
    """Build the ``full_message`` form expected by ``encode_typed_data``."""
    primary_type = params["primaryType"]
    types = {"EIP712Domain": EIP712_DOMAIN_TYPE, **params["types"]}
    message = dict(params["message"])
    for field in types[primary_type]:
        value = message.get(field["name"])
        if field["type"].startswith("bytes") and isinstance(value, str):
            message[field["name"]] = bytes.fromhex(value[2:] if value.startswith("0x") else value)
    return {
        "types": types,
        "primaryType": primary_type,
        "domain": params["domain"],
        "message": message,
    }


def _strip_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _strip_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_strip_none(v) for v in value]
    return value


def encode_action(action: Dict[str, Any]) -> bytes:
    """Msgpack-encode an action, dropping ``None`` values at any depth.

    Key order follows dict insertion order, which is part of the hash.
    """
    return msgpack.packb(_strip_none(action), use_bin_type=True)


def to_uint64_bytes(value: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _UINT64_MAX:
        raise HyperliquidValidationError(f"Value does not fit in uint64: {value!r}")
    return value.to_bytes(8, "big")


def create_l1_action_hash(
    action: Dict[str, Any],
    nonce: int,
    vault_address: Optional[str] = None,
    expires_after: Optional[int] = None,
) -> str:
    """Compute the connection id signed for an L1 action.

    Byte layout::

        msgpack(action) | nonce (u64 BE) | 0x01 + vault (20 bytes) or 0x00
                        | 0x00 + expires_after (u64 BE), only when set

    The expiry marker is ``0x00`` when an expiry *is* present; the venue
    verifier expects exactly this.

    Args:
        action: Wire action object
        nonce: Action nonce (milliseconds)
        vault_address: Vault or sub-account acting on behalf of
        expires_after: Millisecond expiry timestamp

    Returns:
        0x-prefixed keccak256 hash
    """
    data = bytearray(encode_action(action))
    data += to_uint64_bytes(nonce)
    if vault_address:
        data += b"\x01" + bytes.fromhex(normalize_address(vault_address)[2:])
    else:
        data += b"\x00"
    if expires_after is not None:
        data += b"\x00" + to_uint64_bytes(expires_after)
    return "0x" + keccak(bytes(data)).hex()


def split_signature(signature: str) -> ExchangeSignature:
    """Split a 65-byte signature into ``r``, ``s`` and ``v``.

    ``v`` values below 27 are shifted by 27; anything still outside
    ``{27, 28}`` is mapped by parity (odd to 27, even to 28).

    Raises:
        HyperliquidSigningError: If the signature is not 65 bytes of hex
    """
    cleaned = signature[2:] if isinstance(signature, str) and signature.startswith("0x") else signature
    if not isinstance(cleaned, str) or not _SIGNATURE_PATTERN.match(cleaned):
        raise HyperliquidSigningError("Invalid signature returned by wallet client.")

    v = int(cleaned[128:130], 16)
    if v < 27:
        v += 27
    if v not in (27, 28):
        v = 27 if v % 2 else 28
    return {
        "r": f"0x{cleaned[0:64].lower()}",
        "s": f"0x{cleaned[64:128].lower()}",
        "v": v,
    }


def build_agent_typed_data(connection_id: str, is_testnet: bool) -> Dict[str, Any]:
    return {
        "domain": dict(EXCHANGE_TYPED_DATA_DOMAIN),
        "types": AGENT_TYPES,
        "primaryType": "Agent",
        "message": {
            "source": "b" if is_testnet else "a",
            "connectionId": connection_id,
        },
    }


def build_user_signed_typed_data(
    types: Dict[str, List[Dict[str, str]]],
    values: Dict[str, Any],
    signature_chain_id: str,
) -> Dict[str, Any]:
    """Typed data for a user-signed action.

    The message takes exactly the fields named by the schema, in schema order,
    from ``values``.
    """
    primary_type = next(iter(types))
    return {
        "domain": {
            "name": "HyperliquidSignTransaction",
            "version": "1",
            "chainId": int(signature_chain_id, 16),
            "verifyingContract": ZERO_ADDRESS,
        },
        "types": types,
        "primaryType": primary_type,
        "message": {field["name"]: values[field["name"]] for field in types[primary_type]},
    }


async def _sign(wallet: HyperliquidWallet, params: Dict[str, Any]) -> ExchangeSignature:
    logger.debug("Requesting %s signature from %s", params["primaryType"], wallet.address)
    signature_hex = await wallet.sign_typed_data(params)
    return split_signature(signature_hex)


async def sign_l1_action(
    wallet: HyperliquidWallet,
    action: Dict[str, Any],
    nonce: int,
    vault_address: Optional[str] = None,
    expires_after: Optional[int] = None,
    is_testnet: bool = False,
) -> ExchangeSignature:
    """Hash an L1 action and sign it as an ``Agent`` message."""
    connection_id = create_l1_action_hash(action, nonce, vault_address, expires_after)
    return await _sign(wallet, build_agent_typed_data(connection_id, is_testnet))


async def sign_user_signed_action(
    wallet: HyperliquidWallet,
    types: Dict[str, List[Dict[str, str]]],
    values: Dict[str, Any],
    signature_chain_id: str,
) -> ExchangeSignature:
    return await _sign(wallet, build_user_signed_typed_data(types, values, signature_chain_id))


async def sign_spot_send(
    wallet: HyperliquidWallet,
    hyperliquid_chain: str,
    signature_chain_id: str,
    destination: str,
    token: str,
    amount: str,
    time: int,
) -> ExchangeSignature:
    values = {
        "hyperliquidChain": hyperliquid_chain,
        "destination": destination,
        "token": token,
        "amount": amount,
        "time": time,
    }
    return await sign_user_signed_action(wallet, SPOT_SEND_TYPES, values, signature_chain_id)


async def sign_withdraw(
    wallet: HyperliquidWallet,
    hyperliquid_chain: str,
    signature_chain_id: str,
    destination: str,
    amount: str,
    time: int,
) -> ExchangeSignature:
    values = {
        "hyperliquidChain": hyperliquid_chain,
        "destination": destination,
        "amount": amount,
        "time": time,
    }
    return await sign_user_signed_action(wallet, WITHDRAW_TYPES, values, signature_chain_id)


async def sign_approve_builder_fee(
    wallet: HyperliquidWallet,
    max_fee_rate: str,
    nonce: int,
    signature_chain_id: str,
    is_testnet: bool = False,
    builder: str = BUILDER_CODE.address,
) -> ExchangeSignature:
    values = {
        "hyperliquidChain": "Testnet" if is_testnet else "Mainnet",
        "maxFeeRate": max_fee_rate,
        "builder": normalize_address(builder),
        "nonce": nonce,
    }
    return await sign_user_signed_action(
        wallet, APPROVE_BUILDER_FEE_TYPES, values, signature_chain_id
    )


async def sign_user_portfolio_margin(
    wallet: HyperliquidWallet, action: Dict[str, Any]
) -> ExchangeSignature:
    return await sign_user_signed_action(
        wallet, USER_PORTFOLIO_MARGIN_TYPES, action, action["signatureChainId"]
    )


async def sign_user_dex_abstraction(
    wallet: HyperliquidWallet, action: Dict[str, Any]
) -> ExchangeSignature:
    return await sign_user_signed_action(
        wallet, USER_DEX_ABSTRACTION_TYPES, action, action["signatureChainId"]
    )


async def sign_user_set_abstraction(
    wallet: HyperliquidWallet, action: Dict[str, Any]
) -> ExchangeSignature:
    return await sign_user_signed_action(
        wallet, USER_SET_ABSTRACTION_TYPES, action, action["signatureChainId"]
    )


def recover_typed_data_signer(params: Dict[str, Any], signature: ExchangeSignature) -> str:
    """Recover the address that produced ``signature`` over ``params``.

    Note: This only works for EOA signatures.

    Returns:
        Checksummed signer address
    """
    signable = encode_typed_data(full_message=_full_message(params))
    raw = bytes.fromhex(signature["r"][2:] + signature["s"][2:]) + bytes([signature["v"]])
    return Account.recover_message(signable, signature=raw)


def recover_l1_action_signer(
    action: Dict[str, Any],
    nonce: int,
    signature: ExchangeSignature,
    is_testnet: bool = False,
    vault_address: Optional[str] = None,
    expires_after: Optional[int] = None,
) -> str:
    """Recover the signer of an L1 action, e.g. to check a payload before sending."""
    connection_id = create_l1_action_hash(action, nonce, vault_address, expires_after)
    return recover_typed_data_signer(build_agent_typed_data(connection_id, is_testnet), signature)
