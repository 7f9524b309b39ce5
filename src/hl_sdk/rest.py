"""
rest.py – HTTP transports and Info clients (sync and async) for Hyperliquid.

Hyperliquid exposes two POST endpoints:

  /info      public queries (mids, books, account state) – no signature
  /exchange  signed actions – see exchange.py

Both transports raise HyperliquidAPIError on non-2xx responses.

Usage – sync
------------
    from hl_sdk import InfoClient, HyperliquidEnv

    info = InfoClient(env=HyperliquidEnv.TESTNET)
    book = info.l2_book("BTC")
    print(book.bids[0].px)

Usage – async
-------------
    async with AsyncInfoClient(env="testnet") as info:
        mids = await info.all_mids()
        meta = await info.meta()
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from .types import (
    ClearinghouseState,
    HyperliquidEnv,
    L2Book,
    Meta,
    OpenOrder,
    UserFill,
    resolve_env,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class HyperliquidAPIError(Exception):
    """Raised when Hyperliquid's HTTP API returns an error response."""

    def __init__(self, status_code: int, body: str, method: str = "", path: str = "") -> None:
        self.status_code = status_code
        self.body        = body
        self.method      = method.upper()
        self.path        = path
        location = f" {self.method} {self.path}" if path else ""
        super().__init__(f"Hyperliquid API error [{status_code}]{location}: {body}")


# ---------------------------------------------------------------------------
# Request bodies / parsers (shared by sync and async clients)
# ---------------------------------------------------------------------------

def _info_body(info_type: str, **fields: Any) -> dict[str, Any]:
    return {"type": info_type, **{k: v for k, v in fields.items() if v is not None}}


def _parse_open_orders(raw: list[dict]) -> list[OpenOrder]:
    return [OpenOrder.model_validate(o) for o in raw]


def _parse_fills(raw: list[dict]) -> list[UserFill]:
    return [UserFill.model_validate(f) for f in raw]


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------

class HttpTransport:
    """
    Synchronous JSON-over-POST transport (requests-based).

    Parameters
    ----------
    env     : HyperliquidEnv or "mainnet" / "testnet"
    timeout : Default HTTP timeout in seconds
    api_url : Override the environment's base URL (local proxies, mocks)
    """

    def __init__(
        self,
        env: "HyperliquidEnv | str" = HyperliquidEnv.MAINNET,
        timeout: float = 10.0,
        api_url: Optional[str] = None,
    ) -> None:
        self._env     = resolve_env(env)
        self._timeout = timeout
        self._base    = api_url or self._env.api_url
        self._session = requests.Session()

    @property
    def env(self) -> HyperliquidEnv:
        return self._env

    def close(self) -> None:
        self._session.close()

    def request(self, path: str, body: dict[str, Any]) -> Any:
        url = self._base + path
        logger.debug("POST %s  body=%s", url, body)
        resp = self._session.post(url, json=body, timeout=self._timeout)
        if resp.status_code >= 400:
            raise HyperliquidAPIError(resp.status_code, resp.text, method="POST", path=path)
        return resp.json()


class AsyncHttpTransport:
    """
    Async JSON-over-POST transport (aiohttp-based).

    The aiohttp session is created on first use and shared by every client
    built on this transport, so the Info and Exchange clients can run on a
    single event loop.
    """

    def __init__(
        self,
        env: "HyperliquidEnv | str" = HyperliquidEnv.MAINNET,
        timeout: float = 10.0,
        api_url: Optional[str] = None,
    ) -> None:
        self._env     = resolve_env(env)
        self._timeout = timeout
        self._base    = api_url or self._env.api_url
        self._session: Any = None   # aiohttp.ClientSession, created on first use

    @property
    def env(self) -> HyperliquidEnv:
        return self._env

    async def __aenter__(self) -> "AsyncHttpTransport":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def request(self, path: str, body: dict[str, Any]) -> Any:
        import aiohttp

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()

        url = self._base + path
        logger.debug("POST %s  body=%s", url, body)
        async with self._session.post(
            url,
            json=body,
            timeout=aiohttp.ClientTimeout(total=self._timeout),
        ) as resp:
            if resp.status >= 400:
                text = await resp.text()
                raise HyperliquidAPIError(resp.status, text, method="POST", path=path)
            return await resp.json(content_type=None)


# ---------------------------------------------------------------------------
# Synchronous Info client
# ---------------------------------------------------------------------------

class InfoClient:
    """
    Synchronous client for the public ``/info`` endpoint.

    Parameters
    ----------
    env       : HyperliquidEnv or "mainnet" / "testnet"
    timeout   : Default HTTP timeout in seconds
    transport : Existing HttpTransport to reuse (env/timeout then ignored)
    """

    def __init__(
        self,
        env: "HyperliquidEnv | str" = HyperliquidEnv.MAINNET,
        timeout: float = 10.0,
        transport: Optional[HttpTransport] = None,
    ) -> None:
        self._transport = transport or HttpTransport(env=env, timeout=timeout)

    def close(self) -> None:
        self._transport.close()

    def request(self, body: dict[str, Any]) -> Any:
        """Send a raw ``/info`` request and return the decoded JSON."""
        return self._transport.request("/info", body)

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    def all_mids(self, dex: Optional[str] = None) -> dict[str, str]:
        """Mid price for every coin, keyed by coin name."""
        return self.request(_info_body("allMids", dex=dex))

    def l2_book(self, coin: str) -> L2Book:
        """Current L2 order book snapshot for ``coin``."""
        return L2Book.model_validate(self.request(_info_body("l2Book", coin=coin)))

    def meta(self, dex: Optional[str] = None) -> Meta:
        """Perpetuals universe (asset index = list position)."""
        return Meta.model_validate(self.request(_info_body("meta", dex=dex)))

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    def open_orders(self, user: str) -> list[OpenOrder]:
        return _parse_open_orders(self.request(_info_body("openOrders", user=user.lower())))

    def clearinghouse_state(self, user: str) -> ClearinghouseState:
        raw = self.request(_info_body("clearinghouseState", user=user.lower()))
        return ClearinghouseState.model_validate(raw)

    def user_fills(self, user: str) -> list[UserFill]:
        return _parse_fills(self.request(_info_body("userFills", user=user.lower())))


# ---------------------------------------------------------------------------
# Async Info client
# ---------------------------------------------------------------------------

class AsyncInfoClient:
    """
    Async client for the public ``/info`` endpoint (aiohttp-based).

    Usage
    -----
        async with AsyncInfoClient(env="testnet") as info:
            book = await info.l2_book("ETH")
    """

    def __init__(
        self,
        env: "HyperliquidEnv | str" = HyperliquidEnv.MAINNET,
        timeout: float = 10.0,
        transport: Optional[AsyncHttpTransport] = None,
    ) -> None:
        self._transport = transport or AsyncHttpTransport(env=env, timeout=timeout)

    async def __aenter__(self) -> "AsyncInfoClient":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._transport.close()

    async def request(self, body: dict[str, Any]) -> Any:
        return await self._transport.request("/info", body)

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    async def all_mids(self, dex: Optional[str] = None) -> dict[str, str]:
        return await self.request(_info_body("allMids", dex=dex))

    async def l2_book(self, coin: str) -> L2Book:
        return L2Book.model_validate(await self.request(_info_body("l2Book", coin=coin)))

    async def meta(self, dex: Optional[str] = None) -> Meta:
        return Meta.model_validate(await self.request(_info_body("meta", dex=dex)))

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def open_orders(self, user: str) -> list[OpenOrder]:
        raw = await self.request(_info_body("openOrders", user=user.lower()))
        return _parse_open_orders(raw)

    async def clearinghouse_state(self, user: str) -> ClearinghouseState:
        raw = await self.request(_info_body("clearinghouseState", user=user.lower()))
        return ClearinghouseState.model_validate(raw)

    async def user_fills(self, user: str) -> list[UserFill]:
        raw = await self.request(_info_body("userFills", user=user.lower()))
        return _parse_fills(raw)
