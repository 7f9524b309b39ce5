"""
ws.py – Async WebSocket client for Hyperliquid with reconnect logic.

Hyperliquid's WebSocket API frames requests as:
  {"method": "subscribe",   "subscription": {"type": "l2Book", "coin": "BTC"}}
  {"method": "unsubscribe", "subscription": {...}}
  {"method": "ping"}

The server pushes:
  {"channel": "l2Book", "data": {...}}
  {"channel": "subscriptionResponse", "data": {...}}   (ack, ignored)
  {"channel": "pong"}

This client:
1. Subscribes to the requested feeds on connect.
2. On any disconnect it backs off exponentially and reconnects,
   then re-subscribes all active feeds.
3. Dispatches pushes to registered async callback handlers, routing on
   the channel name and, where the subscription names one, the coin.
4. Supports optional per-subscription typed deserialization.
5. Sends an application-level ping so idle connections stay open.

Usage
-----
    from hl_sdk import HyperliquidWebSocketClient, L2Book

    async def on_book(book: L2Book) -> None:
        print(book.bids[0])

    async with HyperliquidWebSocketClient(env="testnet") as ws:
        await ws.subscribe({"type": "l2Book", "coin": "BTC"}, on_book, msg_type=L2Book)
        await ws.run_forever()
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from .types import HyperliquidEnv, resolve_env

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

# Handler: receives the deserialized value, or the full decoded dict
TypedHandler = Callable[[Any], Coroutine[Any, Any, None]]


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_PING_INTERVAL_S     = 20
_PONG_TIMEOUT_S      = 10
_APP_PING_INTERVAL_S = 50    # server drops connections idle for 60 s
_RECONNECT_BASE      = 1.0
_RECONNECT_MAX       = 60.0
_RECONNECT_EXP       = 2.0

_IGNORED_CHANNELS = {"subscriptionResponse", "pong"}


# ---------------------------------------------------------------------------
# Subscription registry
# ---------------------------------------------------------------------------

@dataclass
class _Subscription:
    subscription: dict[str, Any]
    handler:      TypedHandler
    msg_type:     Optional[type[Any]]           # if set, msg["data"] is deserialized to this type

    @property
    def channel(self) -> str:
        return self.subscription["type"]


def _deserialize(msg: dict[str, Any], msg_type: Optional[type[Any]]) -> Any:
    """
    Attempt to deserialize msg["data"] into msg_type.

    List payloads (e.g. trades) are deserialized element-wise.  Falls back
    to the raw data if deserialization fails, or returns the full message
    when msg_type is None.
    """
    if msg_type is None:
        return msg

    data = msg.get("data", msg)
    try:
        if isinstance(data, list):
            return [msg_type.model_validate(item) for item in data]
        return msg_type.model_validate(data)
    except Exception:
        logger.debug("Failed to deserialize %s into %s – passing raw data", data, msg_type)
        return data


def _payload_coin(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        return data.get("coin")
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return data[0].get("coin")
    return None


def _matches(sub: _Subscription, channel: str, msg: dict[str, Any]) -> bool:
    if channel != sub.channel:
        return False
    coin = sub.subscription.get("coin")
    if coin is None:
        return True
    payload_coin = _payload_coin(msg.get("data"))
    return payload_coin is None or payload_coin == coin


# ---------------------------------------------------------------------------
# WebSocket client
# ---------------------------------------------------------------------------

class HyperliquidWebSocketClient:
    """
    Async WebSocket client for Hyperliquid.

    Parameters
    ----------
    env    : HyperliquidEnv or "mainnet" / "testnet"
    ws_url : Override the environment's WebSocket URL
    """

    def __init__(
        self,
        env:    "HyperliquidEnv | str" = HyperliquidEnv.MAINNET,
        ws_url: Optional[str] = None,
    ) -> None:
        self._env           = resolve_env(env)
        self._url           = ws_url or self._env.ws_url
        self._subscriptions: list[_Subscription] = []
        self._ws:           Optional[Any]        = None
        self._connected     = False
        self._running       = False
        self._send_queue:   asyncio.Queue[str]   = asyncio.Queue()

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "HyperliquidWebSocketClient":
        self._running = True
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    @property
    def connected(self) -> bool:
        return self._connected

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        subscription: dict[str, Any],
        handler:      TypedHandler,
        msg_type:     Optional[type[Any]] = None,
    ) -> None:
        """
        Subscribe to a Hyperliquid feed.

        Parameters
        ----------
        subscription : Subscription object, e.g. ``{"type": "allMids"}``,
                       ``{"type": "trades", "coin": "ETH"}`` or
                       ``{"type": "userFills", "user": "0x..."}``
        handler      : Async callback.
                       - If msg_type is None: receives the full decoded JSON dict.
                       - If msg_type is set:  receives msg_type built from
                         msg["data"] (a list of them for list payloads),
                         falling back to the raw data if that fails.
        msg_type     : Optional Pydantic model, e.g. ``msg_type=L2Book``
        """
        sub = _Subscription(subscription=dict(subscription), handler=handler, msg_type=msg_type)
        self._subscriptions.append(sub)

        if self._connected:
            await self._send_subscribe(sub)

    async def unsubscribe(self, subscription: dict[str, Any]) -> None:
        """Remove every handler registered for ``subscription`` and notify the server."""
        self._subscriptions = [s for s in self._subscriptions if s.subscription != subscription]

        if self._connected and self._ws is not None:
            await self._ws.send(json.dumps({"method": "unsubscribe", "subscription": subscription}))

    async def send_raw(self, payload: dict[str, Any]) -> None:
        """Enqueue a raw JSON message to be sent to the server."""
        self._send_queue.put_nowait(json.dumps(payload))

    async def run_forever(self) -> None:
        """
        Connect (or reconnect) and process messages until close() is called.

        Reconnection uses exponential back-off capped at _RECONNECT_MAX seconds.
        """
        self._running = True
        back_off      = _RECONNECT_BASE

        while self._running:
            try:
                await self._connect_and_run()
                back_off = _RECONNECT_BASE   # successful run resets back-off
            except asyncio.CancelledError:
                break
            except Exception as exc:
                if not self._running:
                    break
                logger.warning(
                    "WebSocket error – reconnecting in %.1f s: %s",
                    back_off, exc,
                )
                await asyncio.sleep(back_off)
                back_off = min(back_off * _RECONNECT_EXP, _RECONNECT_MAX)

    async def close(self) -> None:
        """Gracefully close the WebSocket connection."""
        self._running = False
        if self._connected and self._ws is not None:
            self._connected = False
            await self._ws.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _connect_and_run(self) -> None:
        logger.info("Connecting to Hyperliquid WebSocket at %s", self._url)

        async with websockets.connect(
            self._url,
            ping_interval=_PING_INTERVAL_S,
            ping_timeout=_PONG_TIMEOUT_S,
        ) as ws:
            self._ws        = ws
            self._connected = True
            logger.info("WebSocket connected")

            tasks: list[asyncio.Task[None]] = []
            try:
                for sub in self._subscriptions:
                    await self._send_subscribe(sub)

                tasks = [
                    asyncio.ensure_future(self._recv_loop(ws)),
                    asyncio.ensure_future(self._send_loop(ws)),
                    asyncio.ensure_future(self._ping_loop()),
                ]
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
                for task in done:
                    task.result()
            finally:
                self._connected = False
                # the loops live for one connection only
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

    async def _recv_loop(self, ws: Any) -> None:
        """Receive messages and dispatch to handlers."""
        async for raw in ws:
            try:
                msg: dict[str, Any] = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Received non-JSON WebSocket message: %r", raw)
                continue

            channel = msg.get("channel", "")
            if channel in _IGNORED_CHANNELS:
                continue
            await self._dispatch(channel, msg)

        # Server closed the stream cleanly; let run_forever reconnect
        raise ConnectionError("WebSocket closed by server")

    async def _send_loop(self, ws: Any) -> None:
        """Drain the outbound queue and send messages."""
        while True:
            payload = await self._send_queue.get()
            try:
                await ws.send(payload)
            except ConnectionClosed:
                self._send_queue.put_nowait(payload)
                raise

    async def _ping_loop(self) -> None:
        while True:
            await asyncio.sleep(_APP_PING_INTERVAL_S)
            await self.send_raw({"method": "ping"})

    async def _send_subscribe(self, sub: _Subscription) -> None:
        """Send a subscribe frame for a single subscription."""
        msg = json.dumps({"method": "subscribe", "subscription": sub.subscription})
        if self._connected and self._ws is not None:
            await self._ws.send(msg)

    async def _dispatch(self, channel: str, msg: dict[str, Any]) -> None:
        """Find and call the handler(s) for the given channel."""
        for sub in self._subscriptions:
            if not _matches(sub, channel, msg):
                continue
            try:
                value = _deserialize(msg, sub.msg_type)
                await sub.handler(value)
            except Exception:
                logger.exception(
                    "Unhandled exception in WebSocket handler for %s", channel
                )


# ---------------------------------------------------------------------------
# Convenience factory
# ---------------------------------------------------------------------------

def make_ws_client(
    env: "HyperliquidEnv | str" = HyperliquidEnv.MAINNET,
    *,
    ws_url: Optional[str] = None,
) -> HyperliquidWebSocketClient:
    """Factory function to create a HyperliquidWebSocketClient."""
    return HyperliquidWebSocketClient(env, ws_url=ws_url)
