"""
examples/quickstart.py – End-to-end demo of the Hyperliquid SDK.

Walks through the full pipeline:
  1. Fetch public market data over REST (mids, meta, L2 book)
  2. Read the account's open orders and margin summary
  3. Place a far-from-market limit order, then cancel it
  4. Stream the BTC book and trades over WebSocket

HOW TO RUN
----------
    export HL_PRIVATE_KEY="0x..."        # API wallet or account key
    python examples/quickstart.py

    Everything targets TESTNET by default.  Set HL_ENV=mainnet to go live.
"""

from __future__ import annotations

import asyncio
import logging
import os

from hl_sdk import (
    ApiRequestError,
    HyperliquidClient,
    InfoClient,
    L2Book,
    WsTrade,
    private_key_to_address,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s – %(message)s",
)
logger = logging.getLogger("quickstart")

# ---------------------------------------------------------------------------
# Config – read from environment variables
# ---------------------------------------------------------------------------

PRIVATE_KEY = os.environ.get("HL_PRIVATE_KEY", "0x" + "aa" * 32)
ENV         = os.environ.get("HL_ENV",         "testnet")   # or "mainnet"
COIN        = "BTC"


# ---------------------------------------------------------------------------
# Part 1 – REST: public market data (sync client)
# ---------------------------------------------------------------------------

def info_demo() -> None:
    logger.info("=== Info demo ===")
    info = InfoClient(env=ENV)

    mids = info.all_mids()
    logger.info("%s mid: %s", COIN, mids.get(COIN, "–"))

    book = info.l2_book(COIN)
    if book.bids and book.asks:
        logger.info("Best bid %s @ %s  |  best ask %s @ %s",
                    book.bids[0].sz, book.bids[0].px, book.asks[0].sz, book.asks[0].px)

    user = private_key_to_address(PRIVATE_KEY)
    state = info.clearinghouse_state(user)
    logger.info("Account value=%s  withdrawable=%s  positions=%d",
                state.margin_summary.account_value, state.withdrawable, len(state.asset_positions))
    info.close()


# ---------------------------------------------------------------------------
# Part 2 – Exchange: place and cancel an order
# ---------------------------------------------------------------------------

async def exchange_demo() -> None:
    logger.info("=== Exchange demo ===")

    async with HyperliquidClient(wallet=PRIVATE_KEY, env=ENV) as client:
        assert client.exchange is not None
        meta  = await client.info.meta()
        asset = meta.asset_index(COIN)

        # Limit buy far below market so it rests
        try:
            resp = await client.exchange.order([{
                "a": asset, "b": True, "p": "10000", "s": "0.001", "r": False,
                "t": {"limit": {"tif": "Gtc"}},
            }])
        except ApiRequestError as exc:
            logger.warning("order rejected (expected with a placeholder key): %s", exc)
            return

        status = resp["response"]["data"]["statuses"][0]
        logger.info("Order status: %s", status)
        if "resting" in status:
            await client.exchange.cancel([{"a": asset, "o": status["resting"]["oid"]}])
            logger.info("Cancelled oid=%s", status["resting"]["oid"])


# ---------------------------------------------------------------------------
# Part 3 – WebSocket: live book and trades
# ---------------------------------------------------------------------------

async def ws_demo() -> None:
    logger.info("=== WebSocket demo (runs for 15 s) ===")

    async def on_book(book: L2Book) -> None:
        if book.bids and book.asks:
            logger.info("[book ]  bid=%s  ask=%s", book.bids[0].px, book.asks[0].px)

    async def on_trades(trades: list[WsTrade]) -> None:
        for trade in trades:
            logger.info("[trade]  %s  %s @ %s", trade.side, trade.sz, trade.px)

    async with HyperliquidClient(env=ENV) as client:
        await client.ws.subscribe({"type": "l2Book", "coin": COIN}, on_book, msg_type=L2Book)
        await client.ws.subscribe({"type": "trades", "coin": COIN}, on_trades, msg_type=WsTrade)
        try:
            await asyncio.wait_for(client.ws.run_forever(), timeout=15)
        except asyncio.TimeoutError:
            pass

    logger.info("WebSocket demo complete")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    info_demo()
    asyncio.run(exchange_demo())
    asyncio.run(ws_demo())


if __name__ == "__main__":
    main()
