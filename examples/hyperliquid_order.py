"""Hyperliquid Market Order Example.

This example places an IOC order that behaves like a market order on the
Hyperliquid testnet:
- Looks up the mark price and size decimals of the market
- Computes a slippage-bounded limit price
- Signs and submits the order, then prints the resulting order reference

Prerequisites:
1. pip install "opentool-sdk[examples]"
2. Set HYPERLIQUID_PRIVATE_KEY (and optionally HYPERLIQUID_SYMBOL, HYPERLIQUID_SIZE)
3. Fund the wallet on the Hyperliquid testnet and approve the builder fee

Usage:
    python hyperliquid_order.py
"""

import asyncio
import logging
import os

from dotenv import load_dotenv

load_dotenv()


async def main():
    from opentool_sdk.hyperliquid import (
        HyperliquidExchangeClient,
        HyperliquidInfoClient,
        HyperliquidTransport,
        LocalAccountWallet,
        OrderIntent,
        compute_market_ioc_limit_price,
        create_monotonic_nonce_factory,
        ensure_builder_approved,
        format_price,
        format_size,
        resolve_config,
        resolve_order_ref,
    )

    PRIVATE_KEY = os.environ.get("HYPERLIQUID_PRIVATE_KEY")
    SYMBOL = os.environ.get("HYPERLIQUID_SYMBOL", "BTC")
    SIZE = os.environ.get("HYPERLIQUID_SIZE", "0.001")

    if not PRIVATE_KEY:
        print("Missing required environment variable: HYPERLIQUID_PRIVATE_KEY")
        return

    print("=" * 60)
    print("  HYPERLIQUID TESTNET MARKET ORDER")
    print("=" * 60)

    config = {"environment": "testnet"}
    transport = HyperliquidTransport(resolve_config(config).base_url)
    wallet = LocalAccountWallet(PRIVATE_KEY, nonce_source=create_monotonic_nonce_factory())
    info = HyperliquidInfoClient(config, transport=transport)
    client = HyperliquidExchangeClient(wallet, config, transport=transport)

    try:
        print(f"\n[1] Wallet: {wallet.address}")

        print("\n[2] Checking builder approval...")
        approved = await ensure_builder_approved(info, wallet.address)
        print(f"    Approved max fee: {approved / 10} bps")

        print(f"\n[3] Loading {SYMBOL} market...")
        market = await info.perp_market_info(SYMBOL)
        price = format_price(
            compute_market_ioc_limit_price(market.price, "buy"), market.sz_decimals
        )
        size = format_size(SIZE, market.sz_decimals)
        print(f"    Mark: {market.price}  Limit: {price}  Size: {size}")

        print("\n[4] Placing IOC order...")
        result = await client.place_order([
            OrderIntent(symbol=SYMBOL, side="buy", price=price, size=size, tif="Ioc"),
        ])

        print("\n[5] Order accepted!")
        print(f"    Order ref: {resolve_order_ref(result)}")

    except Exception as e:
        print(f"\nError: {e}")
        raise

    finally:
        await transport.aclose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
