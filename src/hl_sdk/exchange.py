"""
exchange.py – Signed actions against Hyperliquid's ``/exchange`` endpoint.

Every method builds the action, puts it in canonical field order
(sorter.py), signs it with the configured wallet (signing.py) and posts
``{"action", "nonce", "signature"[, "vaultAddress", "expiresAfter"]}``.

Responses are checked before they are returned: a top-level
``"status": "err"``, a per-order ``error`` status (order / cancel) or a TWAP
``error`` status raises ApiRequestError.

Nonces
------
Hyperliquid wants a millisecond timestamp per request, unique per signer.
NonceManager hands out ``max(now_ms, last + 1)``; pass ``nonce_provider=``
to plug in your own.  Signing and submission are serialised per wallet
address with an asyncio.Lock so nonces reach the server in order even
when several coroutines share one wallet.

Multi-sig
---------
Pass a list of wallets (leader first) and ``multi_sig_user=``.  Every
signer signs the action on behalf of the multi-sig account, the
signatures are wrapped in a ``multiSig`` action and the leader signs the
wrapper.  The leader's address is the ``outerSigner`` and its nonce is
used.

Usage
-----
    async with ExchangeClient(wallet=private_key, env="testnet") as exchange:
        resp = await exchange.order([{
            "a": 0, "b": True, "p": "30000", "s": "0.1", "r": False,
            "t": {"limit": {"tif": "Gtc"}},
        }])
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import weakref
from typing import Any, Callable, Optional

from .rest import AsyncHttpTransport, HyperliquidAPIError
from .signing import sign_l1_action, sign_multi_sig_action, sign_user_signed_action
from .sorter import USER_SIGNED_ACTION_TYPES, sort_action
from .types import DEFAULT_SIGNATURE_CHAIN_ID, HyperliquidEnv, Signature
from .wallet import (
    LocalAccountWallet,
    PrivateKeyWallet,
    classify_wallet,
    get_wallet_address,
    get_wallet_chain_id,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Type alias
# ---------------------------------------------------------------------------

# Callable with no args that returns a millisecond nonce
NonceProvider = Callable[[], int]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ApiRequestError(HyperliquidAPIError):
    """
    The exchange accepted the HTTP request but rejected the action.

    ``response`` holds the decoded body for inspection.
    """

    def __init__(self, response: dict[str, Any]) -> None:
        self.response = response
        message = _error_message(response) or (
            "An unknown error occurred while processing an API request. "
            "See `response` for more details."
        )
        super().__init__(200, message, method="POST", path="/exchange")


def _error_message(response: dict[str, Any]) -> Optional[str]:
    if response.get("status") == "err":
        return str(response.get("response"))

    data = (response.get("response") or {}).get("data") or {}
    if "statuses" in data:
        errors = [
            f"Order {index}: {status['error']}"
            for index, status in enumerate(data["statuses"])
            if isinstance(status, dict) and "error" in status
        ]
        return ", ".join(errors) or None

    status = data.get("status")
    if isinstance(status, dict) and "error" in status:
        return str(status["error"])
    return None


def validate_response(response: dict[str, Any]) -> dict[str, Any]:
    """Return ``response`` unchanged, or raise ApiRequestError if it reports a failure."""
    if response.get("status") == "err":
        raise ApiRequestError(response)

    inner = response.get("response")
    if not isinstance(inner, dict):
        return response

    data = inner.get("data") or {}
    if inner.get("type") in ("order", "cancel"):
        if any(isinstance(s, dict) and "error" in s for s in data.get("statuses", [])):
            raise ApiRequestError(response)
    elif inner.get("type") in ("twapOrder", "twapCancel"):
        status = data.get("status")
        if isinstance(status, dict) and "error" in status:
            raise ApiRequestError(response)
    return response


# ---------------------------------------------------------------------------
# Nonces
# ---------------------------------------------------------------------------

class NonceManager:
    """Strictly increasing millisecond nonces: ``max(now_ms, last + 1)``."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            nonce = int(time.time() * 1000)
            if nonce <= self._last:
                nonce = self._last + 1
            self._last = nonce
            return nonce


_global_nonce_manager = NonceManager()

# One lock per (address, network) per event loop; see module docstring
_wallet_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[str, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def _wallet_lock(key: str) -> asyncio.Lock:
    locks = _wallet_locks.setdefault(asyncio.get_running_loop(), {})
    lock = locks.get(key)
    if lock is None:
        lock = locks[key] = asyncio.Lock()
    return lock


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class ExchangeClient:
    """
    Async client for signed exchange actions.

    Parameters
    ----------
    wallet             : private key, eth_account LocalAccount, or any
                         supported account / signer object (see wallet.py)
    env                : HyperliquidEnv or "mainnet" / "testnet"
    timeout            : HTTP timeout in seconds
    transport          : Existing AsyncHttpTransport to share (env/timeout
                         then come from it)
    signature_chain_id : Hex chain id for user-signed and multi-sig actions.
                         Defaults to the wallet's chain for connected
                         wallets.  Local keys have no chain of their own
                         (get_wallet_chain_id reports ``0x1``) and use
                         ``0x66eee`` instead.
    nonce_provider     : Callable[[], int] returning ms nonces
    vault_address      : Default vault / sub-account for trading actions
    expires_after      : Default expiry (ms timestamp) for trading actions
    multi_sig_user     : Multi-sig account to act for; ``wallet`` is then a
                         list of signer wallets, leader first
    """

    def __init__(
        self,
        wallet: Any,
        env: "HyperliquidEnv | str" = HyperliquidEnv.MAINNET,
        timeout: float = 10.0,
        transport: Optional[AsyncHttpTransport] = None,
        signature_chain_id: Optional[str] = None,
        nonce_provider: Optional[NonceProvider] = None,
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
        multi_sig_user: Optional[str] = None,
    ) -> None:
        if isinstance(wallet, (list, tuple)):
            if not wallet:
                raise ValueError("Multi-sig needs at least one signer wallet")
            if multi_sig_user is None:
                raise ValueError("A list of wallets requires multi_sig_user")
            signers = list(wallet)
        else:
            signers = [wallet]
        for signer in signers:
            classify_wallet(signer)   # fail fast on unsupported wallets

        self._wallet             = signers[0]
        self._signers            = signers
        self._multi_sig_user     = multi_sig_user.lower() if multi_sig_user else None
        self._transport          = transport or AsyncHttpTransport(env=env, timeout=timeout)
        self._signature_chain_id = signature_chain_id
        self._nonce_provider     = nonce_provider or _global_nonce_manager
        self._vault_address      = vault_address
        self._expires_after      = expires_after
        self._address: Optional[str] = None

    @property
    def env(self) -> HyperliquidEnv:
        return self._transport.env

    async def __aenter__(self) -> "ExchangeClient":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._transport.close()

    async def address(self) -> str:
        """Lower-case address of the signing (leader) wallet."""
        if self._address is None:
            self._address = await get_wallet_address(self._wallet)
        return self._address

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _lock(self) -> asyncio.Lock:
        return _wallet_lock(f"{await self.address()}:{self.env.is_testnet}")

    @property
    def is_multi_sig(self) -> bool:
        return self._multi_sig_user is not None

    async def _resolve_signature_chain_id(self) -> str:
        """
        Explicit ``signature_chain_id``, else ``0x66eee`` for local keys, else
        the connected wallet's chain.

        The local-key default differs from get_wallet_chain_id, which reports
        ``0x1`` for keys and accounts.
        """
        if self._signature_chain_id:
            return self._signature_chain_id
        if isinstance(classify_wallet(self._wallet), (PrivateKeyWallet, LocalAccountWallet)):
            return DEFAULT_SIGNATURE_CHAIN_ID
        return await get_wallet_chain_id(self._wallet)

    def _vault(self, vault_address: Optional[str]) -> Optional[str]:
        vault = vault_address if vault_address is not None else self._vault_address
        return vault.lower() if vault else None

    def _expiry(self, expires_after: Optional[int]) -> Optional[int]:
        return expires_after if expires_after is not None else self._expires_after

    async def _execute_l1(
        self,
        action: dict[str, Any],
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
    ) -> dict[str, Any]:
        action = sort_action(action)

        async with await self._lock():
            nonce = self._nonce_provider()
            logger.debug("Submitting %s nonce=%d", action["type"], nonce)
            if self.is_multi_sig:
                action, signature = await self._sign_multi_sig_l1(
                    action, nonce, vault_address, expires_after,
                )
            else:
                signature = await sign_l1_action(
                    self._wallet,
                    action,
                    nonce,
                    is_testnet=self.env.is_testnet,
                    vault_address=vault_address,
                    expires_after=expires_after,
                )
            body: dict[str, Any] = {
                "action":    action,
                "nonce":     nonce,
                "signature": signature.model_dump(),
            }
            if vault_address:
                body["vaultAddress"] = vault_address
            if expires_after is not None:
                body["expiresAfter"] = expires_after
            response = await self._transport.request("/exchange", body)

        return validate_response(response)

    async def _execute_user_signed(self, action: dict[str, Any]) -> dict[str, Any]:
        types = USER_SIGNED_ACTION_TYPES[action["type"]]
        fields = next(iter(types.values()))
        nonce_field = "time" if any(f["name"] == "time" for f in fields) else "nonce"

        signature_chain_id = await self._resolve_signature_chain_id()

        async with await self._lock():
            nonce = self._nonce_provider()
            logger.debug("Submitting %s nonce=%d", action["type"], nonce)
            full_action = sort_action({
                **action,
                "signatureChainId": signature_chain_id,
                "hyperliquidChain": self.env.hyperliquid_chain,
                nonce_field:        nonce,
            })
            if self.is_multi_sig:
                full_action, signature = await self._sign_multi_sig_user_signed(
                    full_action, types, nonce,
                )
            else:
                signature = await sign_user_signed_action(self._wallet, full_action, types)
            body = {
                "action":    full_action,
                "nonce":     nonce,
                "signature": signature.model_dump(),
            }
            response = await self._transport.request("/exchange", body)

        return validate_response(response)

    # ------------------------------------------------------------------
    # Multi-sig
    # ------------------------------------------------------------------

    async def _multi_sig_envelope(
        self,
        action: dict[str, Any],
        signatures: list[Signature],
    ) -> dict[str, Any]:
        """Wrap ``action`` and the signers' signatures in a ``multiSig`` action."""
        return sort_action({
            "type":             "multiSig",
            "signatureChainId": await self._resolve_signature_chain_id(),
            "signatures":       [sig.model_dump() for sig in signatures],
            "payload": {
                "multiSigUser": self._multi_sig_user,
                "outerSigner":  await self.address(),
                "action":       action,
            },
        })

    async def _sign_multi_sig_l1(
        self,
        action: dict[str, Any],
        nonce: int,
        vault_address: Optional[str],
        expires_after: Optional[int],
    ) -> tuple[dict[str, Any], Signature]:
        is_testnet = self.env.is_testnet
        inner = [self._multi_sig_user, await self.address(), action]
        signatures = await asyncio.gather(*(
            sign_l1_action(
                signer,
                inner,
                nonce,
                is_testnet=is_testnet,
                vault_address=vault_address,
                expires_after=expires_after,
            )
            for signer in self._signers
        ))
        envelope = await self._multi_sig_envelope(action, list(signatures))
        signature = await sign_multi_sig_action(
            self._wallet,
            envelope,
            nonce,
            is_testnet=is_testnet,
            vault_address=vault_address,
            expires_after=expires_after,
        )
        return envelope, signature

    async def _sign_multi_sig_user_signed(
        self,
        action: dict[str, Any],
        types: dict[str, list[dict[str, str]]],
        nonce: int,
    ) -> tuple[dict[str, Any], Signature]:
        inner = {
            "payloadMultiSigUser": self._multi_sig_user,
            "outerSigner":         await self.address(),
            **action,
        }
        signatures = await asyncio.gather(*(
            sign_user_signed_action(signer, inner, types) for signer in self._signers
        ))
        envelope = await self._multi_sig_envelope(action, list(signatures))
        signature = await sign_multi_sig_action(
            self._wallet, envelope, nonce, is_testnet=self.env.is_testnet,
        )
        return envelope, signature

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def order(
        self,
        orders: list[dict[str, Any]],
        grouping: str = "na",
        builder: Optional[dict[str, Any]] = None,
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
    ) -> dict[str, Any]:
        """
        Place one or more orders.

        Each order is in wire form: ``a`` asset index, ``b`` is-buy, ``p``
        price, ``s`` size, ``r`` reduce-only, ``t`` order type
        (``{"limit": {"tif": "Gtc"}}`` or ``{"trigger": {...}}``), optional
        ``c`` client order id.
        """
        action: dict[str, Any] = {"type": "order", "orders": orders, "grouping": grouping}
        if builder:
            action["builder"] = builder
        return await self._execute_l1(action, self._vault(vault_address), self._expiry(expires_after))

    async def modify(
        self,
        oid: "int | str",
        order: dict[str, Any],
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
    ) -> dict[str, Any]:
        """Replace an open order (by oid or cloid)."""
        action = {"type": "modify", "oid": oid, "order": order}
        return await self._execute_l1(action, self._vault(vault_address), self._expiry(expires_after))

    async def batch_modify(
        self,
        modifies: list[dict[str, Any]],
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
    ) -> dict[str, Any]:
        """Replace several orders; each entry is ``{"oid": ..., "order": {...}}``."""
        action = {"type": "batchModify", "modifies": modifies}
        return await self._execute_l1(action, self._vault(vault_address), self._expiry(expires_after))

    async def cancel(
        self,
        cancels: list[dict[str, Any]],
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
    ) -> dict[str, Any]:
        """Cancel orders by id; each entry is ``{"a": asset, "o": oid}``."""
        action = {"type": "cancel", "cancels": cancels}
        return await self._execute_l1(action, self._vault(vault_address), self._expiry(expires_after))

    async def cancel_by_cloid(
        self,
        cancels: list[dict[str, Any]],
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
    ) -> dict[str, Any]:
        """Cancel orders by client id; each entry is ``{"asset": ..., "cloid": ...}``."""
        action = {"type": "cancelByCloid", "cancels": cancels}
        return await self._execute_l1(action, self._vault(vault_address), self._expiry(expires_after))

    async def schedule_cancel(
        self,
        time: Optional[int] = None,
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
    ) -> dict[str, Any]:
        """Dead man's switch: cancel all orders at ``time`` (ms); None clears it."""
        action: dict[str, Any] = {"type": "scheduleCancel"}
        if time is not None:
            action["time"] = time
        return await self._execute_l1(action, self._vault(vault_address), self._expiry(expires_after))

    async def twap_order(
        self,
        asset: int,
        is_buy: bool,
        sz: str,
        reduce_only: bool,
        minutes: int,
        randomize: bool,
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
    ) -> dict[str, Any]:
        action = {
            "type": "twapOrder",
            "twap": {"a": asset, "b": is_buy, "s": sz, "r": reduce_only, "m": minutes, "t": randomize},
        }
        return await self._execute_l1(action, self._vault(vault_address), self._expiry(expires_after))

    async def twap_cancel(
        self,
        asset: int,
        twap_id: int,
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
    ) -> dict[str, Any]:
        action = {"type": "twapCancel", "a": asset, "t": twap_id}
        return await self._execute_l1(action, self._vault(vault_address), self._expiry(expires_after))

    # ------------------------------------------------------------------
    # Margin
    # ------------------------------------------------------------------

    async def update_leverage(
        self,
        asset: int,
        leverage: int,
        is_cross: bool = True,
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
    ) -> dict[str, Any]:
        action = {"type": "updateLeverage", "asset": asset, "isCross": is_cross, "leverage": leverage}
        return await self._execute_l1(action, self._vault(vault_address), self._expiry(expires_after))

    async def update_isolated_margin(
        self,
        asset: int,
        is_buy: bool,
        ntli: int,
        vault_address: Optional[str] = None,
        expires_after: Optional[int] = None,
    ) -> dict[str, Any]:
        """Add (positive ``ntli``) or remove isolated margin, in micro-USD."""
        action = {"type": "updateIsolatedMargin", "asset": asset, "isBuy": is_buy, "ntli": ntli}
        return await self._execute_l1(action, self._vault(vault_address), self._expiry(expires_after))

    # ------------------------------------------------------------------
    # Transfers (user-signed)
    # ------------------------------------------------------------------

    async def usd_send(self, destination: str, amount: str) -> dict[str, Any]:
        """Send USDC to another address on the perp side."""
        return await self._execute_user_signed(
            {"type": "usdSend", "destination": destination, "amount": amount}
        )

    async def spot_send(self, destination: str, token: str, amount: str) -> dict[str, Any]:
        """Send a spot token; ``token`` is ``"NAME:0x<token id>"``."""
        return await self._execute_user_signed(
            {"type": "spotSend", "destination": destination, "token": token, "amount": amount}
        )

    async def withdraw3(self, destination: str, amount: str) -> dict[str, Any]:
        """Withdraw USDC through the bridge to ``destination``."""
        return await self._execute_user_signed(
            {"type": "withdraw3", "destination": destination, "amount": amount}
        )

    async def usd_class_transfer(self, amount: str, to_perp: bool) -> dict[str, Any]:
        """Move USDC between the spot and perp balances."""
        return await self._execute_user_signed(
            {"type": "usdClassTransfer", "amount": amount, "toPerp": to_perp}
        )

    async def approve_agent(self, agent_address: str, agent_name: Optional[str] = None) -> dict[str, Any]:
        """Authorise an API wallet to sign L1 actions for this account."""
        action: dict[str, Any] = {"type": "approveAgent", "agentAddress": agent_address}
        if agent_name:
            action["agentName"] = agent_name
        return await self._execute_user_signed(action)

    async def approve_builder_fee(self, builder: str, max_fee_rate: str) -> dict[str, Any]:
        """Allow ``builder`` to charge up to ``max_fee_rate`` (e.g. ``"0.001%"``)."""
        return await self._execute_user_signed(
            {"type": "approveBuilderFee", "maxFeeRate": max_fee_rate, "builder": builder}
        )

    # ------------------------------------------------------------------
    # Vaults and account
    # ------------------------------------------------------------------

    async def vault_transfer(
        self,
        vault_address: str,
        is_deposit: bool,
        usd: int,
        expires_after: Optional[int] = None,
    ) -> dict[str, Any]:
        """Deposit into or withdraw from a vault; ``usd`` is in micro-USD."""
        action = {
            "type":         "vaultTransfer",
            "vaultAddress": vault_address.lower(),
            "isDeposit":    is_deposit,
            "usd":          usd,
        }
        return await self._execute_l1(action, None, self._expiry(expires_after))

    async def set_referrer(self, code: str) -> dict[str, Any]:
        return await self._execute_l1({"type": "setReferrer", "code": code})

    async def create_sub_account(self, name: str) -> dict[str, Any]:
        return await self._execute_l1({"type": "createSubAccount", "name": name})
