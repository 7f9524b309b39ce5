"""
client.py – Unified HyperliquidClient façade.

Single entry point that owns the async Info client, the Exchange client
(when a wallet is given) and the WebSocket client.  The Info and Exchange
clients share one aiohttp session.

Usage
-----
    import asyncio
    from hl_sdk import HyperliquidClient, HyperliquidEnv, L2Book

    async def main() -> None:
        async with HyperliquidClient(wallet=private_key, env=HyperliquidEnv.TESTNET) as client:

            # Market data via REST
            meta = await client.info.meta()

            # Trading
            await client.exchange.order([{
                "a": meta.asset_index("BTC"), "b": True, "p": "30000", "s": "0.001",
                "r": False, "t": {"limit": {"tif": "Gtc"}},
            }])

            # Real-time market data via WebSocket
            async def on_book(b: L2Book) -> None:
                print(b.bids[0])

            await client.ws.subscribe({"type": "l2Book", "coin": "BTC"}, on_book, msg_type=L2Book)
            await client.ws.run_forever()

    asyncio.run(main())
"""

from __future__ import annotations

from typing import Any, Optional, Union

from .exchange import ExchangeClient, NonceProvider
from .rest import AsyncHttpTransport, AsyncInfoClient
from .types import HyperliquidEnv, resolve_env
from .ws import HyperliquidWebSocketClient


class HyperliquidClient:
    """
    Unified façade for the Hyperliquid SDK.

    Parameters
    ----------
    wallet             : Signing wallet (private key, LocalAccount, account
                         or signer object).  Without it ``exchange`` is None
                         and only public data is available.
    env                : HyperliquidEnv.MAINNET / HyperliquidEnv.TESTNET
    rest_timeout       : HTTP timeout in seconds for REST requests
    signature_chain_id : Passed to ExchangeClient
    nonce_provider     : Passed to ExchangeClient
    vault_address      : Default vault for trading actions
    multi_sig_user     : Multi-sig account to act for; ``wallet`` is then a
                         list of signer wallets, leader first
    """

    def __init__(
        self,
        wallet: Any = None,
        env: Union[HyperliquidEnv, str] = HyperliquidEnv.MAINNET,
        *,
        rest_timeout: float = 10.0,
        signature_chain_id: Optional[str] = None,
        nonce_provider: Optional[NonceProvider] = None,
        vault_address: Optional[str] = None,
        multi_sig_user: Optional[str] = None,
    ) -> None:
        self._env       = resolve_env(env)
        self._transport = AsyncHttpTransport(env=self._env, timeout=rest_timeout)
        self.info       = AsyncInfoClient(transport=self._transport)
        self.ws         = HyperliquidWebSocketClient(env=self._env)
        self.exchange: Optional[ExchangeClient] = None
        if wallet is not None:
            self.exchange = ExchangeClient(
                wallet,
                transport=self._transport,
                signature_chain_id=signature_chain_id,
                nonce_provider=nonce_provider,
                vault_address=vault_address,
                multi_sig_user=multi_sig_user,
            )

    # ------------------------------------------------------------------
    # Async context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "HyperliquidClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Cleanly close the HTTP session and the WebSocket connection."""
        await self._transport.close()
        await self.ws.close()

    @property
    def env(self) -> HyperliquidEnv:
        return self._env
