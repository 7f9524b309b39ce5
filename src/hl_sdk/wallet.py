"""
wallet.py – Adapters for the wallet shapes that can sign typed data.

A "wallet" handed to the SDK may be any of:

  PrivateKeyWallet             raw secp256k1 key (hex str / bytes) or an
                               eth_account ``LocalAccount``
  JsonRpcAccountWallet         ``sign_typed_data(params)`` plus
                               ``get_addresses()`` / ``get_chain_id()``
  LocalAccountWallet           ``sign_typed_data(params)`` plus ``address``
  TypedDataSignerWallet        ``sign_typed_data(domain, types, message)``
                               plus ``get_address()``
  LegacyTypedDataSignerWallet  ``_sign_typed_data(domain, types, message)``
                               plus ``get_address()``

``classify_wallet`` checks the shapes in that order and returns the first
match wrapped in its dataclass; every other function dispatches on that
variant.  Methods may be sync or async – awaitables are awaited.

Usage
-----
    sig = await sign_typed_data(wallet, domain, types, "Agent", message)
    addr = await get_wallet_address(wallet)
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional, Union

from eth_account.signers.local import LocalAccount

from .eip712 import (
    TypedDataTypes,
    private_key_to_address,
    recovery_id_to_v,
    sign_typed_data_with_private_key,
    split_signature,
)
from .types import Signature

logger = logging.getLogger(__name__)

__all__ = [
    "AbstractWalletError",
    "PrivateKeyWallet",
    "JsonRpcAccountWallet",
    "LocalAccountWallet",
    "TypedDataSignerWallet",
    "LegacyTypedDataSignerWallet",
    "WalletVariant",
    "classify_wallet",
    "sign_typed_data",
    "get_wallet_address",
    "get_wallet_chain_id",
    "split_signature",
    "recovery_id_to_v",
]

# EIP712Domain declaration handed to account-style wallets
_FULL_DOMAIN_TYPE = [
    {"name": "name",              "type": "string"},
    {"name": "version",           "type": "string"},
    {"name": "chainId",           "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


class AbstractWalletError(Exception):
    """The wallet does not match any supported shape, or a lookup on it failed."""


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PrivateKeyWallet:
    private_key: Union[str, bytes]


@dataclass(frozen=True)
class JsonRpcAccountWallet:
    account: Any


@dataclass(frozen=True)
class LocalAccountWallet:
    account: Any


@dataclass(frozen=True)
class TypedDataSignerWallet:
    signer: Any


@dataclass(frozen=True)
class LegacyTypedDataSignerWallet:
    signer: Any


WalletVariant = Union[
    PrivateKeyWallet,
    JsonRpcAccountWallet,
    LocalAccountWallet,
    TypedDataSignerWallet,
    LegacyTypedDataSignerWallet,
]


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _positional_arity(fn: Any) -> Optional[int]:
    """Number of positional parameters of ``fn``; None if not introspectable."""
    if not callable(fn):
        return None
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return None
    return sum(1 for p in params if p.kind in _POSITIONAL)


def _match_wallet(wallet: Any) -> Optional[WalletVariant]:
    if isinstance(wallet, str):
        return PrivateKeyWallet(wallet)
    if isinstance(wallet, (bytes, bytearray)):
        return PrivateKeyWallet(bytes(wallet))
    if isinstance(wallet, LocalAccount):
        return PrivateKeyWallet(bytes(wallet.key))

    arity = _positional_arity(getattr(wallet, "sign_typed_data", None))
    if arity in (1, 2):
        if callable(getattr(wallet, "get_addresses", None)) and callable(
            getattr(wallet, "get_chain_id", None)
        ):
            return JsonRpcAccountWallet(wallet)
        if isinstance(getattr(wallet, "address", None), str):
            return LocalAccountWallet(wallet)
    has_get_address = callable(getattr(wallet, "get_address", None))
    if arity == 3 and has_get_address:
        return TypedDataSignerWallet(wallet)
    if _positional_arity(getattr(wallet, "_sign_typed_data", None)) == 3 and has_get_address:
        return LegacyTypedDataSignerWallet(wallet)
    return None


def classify_wallet(wallet: Any) -> WalletVariant:
    """Return the variant ``wallet`` belongs to, checking shapes in priority order."""
    variant = _match_wallet(wallet)
    if variant is None:
        raise AbstractWalletError("Unsupported wallet for signing typed data")
    return variant


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------

async def sign_typed_data(
    wallet: Any,
    domain: Mapping[str, Any],
    types: TypedDataTypes,
    primary_type: str,
    message: Mapping[str, Any],
) -> Signature:
    """
    Sign EIP-712 typed data with any supported wallet.

    Parameters
    ----------
    wallet       : private key, eth_account LocalAccount, or a duck-typed
                   account / signer object (see module docstring)
    domain       : EIP-712 domain (name, version, chainId, verifyingContract)
    types        : struct definitions, without ``EIP712Domain``
    primary_type : struct the message is an instance of
    message      : the values to sign

    Errors raised by the wallet itself propagate unchanged.
    """
    variant = classify_wallet(wallet)
    logger.debug("Signing %s with %s", primary_type, type(variant).__name__)

    if isinstance(variant, PrivateKeyWallet):
        return sign_typed_data_with_private_key(
            variant.private_key, domain, types, primary_type, message
        )

    if isinstance(variant, (JsonRpcAccountWallet, LocalAccountWallet)):
        params = {
            "domain":      dict(domain),
            "types":       {"EIP712Domain": _FULL_DOMAIN_TYPE, **types},
            "primaryType": primary_type,
            "message":     dict(message),
        }
        raw = await _resolve(variant.account.sign_typed_data(params))
    elif isinstance(variant, TypedDataSignerWallet):
        raw = await _resolve(variant.signer.sign_typed_data(dict(domain), types, dict(message)))
    else:
        raw = await _resolve(variant.signer._sign_typed_data(dict(domain), types, dict(message)))

    return split_signature(raw)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_wallet_address(wallet: Any) -> str:
    """Lower-case address of the wallet."""
    variant = _match_wallet(wallet)
    if variant is None:
        raise AbstractWalletError("Unsupported wallet for getting address")

    try:
        if isinstance(variant, PrivateKeyWallet):
            address = private_key_to_address(variant.private_key)
        elif isinstance(variant, JsonRpcAccountWallet):
            address = (await _resolve(variant.account.get_addresses()))[0]
        elif isinstance(variant, LocalAccountWallet):
            address = variant.account.address
        else:
            address = await _resolve(variant.signer.get_address())
    except Exception as exc:
        raise AbstractWalletError("Failed to get address from wallet") from exc

    return address.lower()


async def get_wallet_chain_id(wallet: Any) -> str:
    """
    Chain id the wallet is connected to, as ``0x``-prefixed hex.

    JSON-RPC accounts report it through ``get_chain_id()``, signers through
    ``provider.get_network().chain_id``.  Anything else gets ``"0x1"``.
    """
    variant = _match_wallet(wallet)

    try:
        if isinstance(variant, JsonRpcAccountWallet):
            chain_id = await _resolve(variant.account.get_chain_id())
        elif isinstance(variant, (TypedDataSignerWallet, LegacyTypedDataSignerWallet)) and (
            getattr(variant.signer, "provider", None) is not None
        ):
            network = await _resolve(variant.signer.provider.get_network())
            chain_id = network.chain_id
        else:
            return "0x1"
    except Exception as exc:
        raise AbstractWalletError("Failed to get chain ID from wallet") from exc

    return hex(int(chain_id))
