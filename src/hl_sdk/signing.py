"""
signing.py – Action hashing and signing for the Hyperliquid exchange.

Every request to ``/exchange`` carries an EIP-712 signature.  There are
three schemes:

L1 actions (orders, cancels, leverage, ...)
    The action is MessagePack-encoded, followed by the nonce, the optional
    vault address and the optional expiry, and hashed with Keccak-256.
    That hash (the "connection id") is signed as the ``Agent`` struct under
    the fixed ``Exchange`` domain (chain id 1337).

User-signed actions (transfers, withdrawals, agent approval, ...)
    The action fields themselves are signed under the
    ``HyperliquidSignTransaction`` domain, whose chain id is the action's
    ``signatureChainId``.

Multi-sig actions
    The inner action is hashed as an L1 action and the hash is signed as
    ``HyperliquidTransaction:SendMultiSig``.

Usage
-----
    action = sort_action({"type": "order", "orders": [...], "grouping": "na"})
    nonce  = int(time.time() * 1000)
    sig    = await sign_l1_action(private_key, action, nonce)
    payload = {"action": action, "nonce": nonce, "signature": sig.model_dump()}

References
----------
- EIP-712 spec       : https://eips.ethereum.org/EIPS/eip-712
- Hyperliquid signing: https://hyperliquid.gitbook.io/hyperliquid-docs/for-developers/api/signing
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import msgpack
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import keccak

from .eip712 import TypedDataTypes, bytes_to_hex, hex_to_bytes
from .types import Signature
from .wallet import sign_typed_data

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Domains and types
# ---------------------------------------------------------------------------

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Hyperliquid requires chain id 1337 for L1 actions regardless of network
L1_DOMAIN: dict[str, Any] = {
    "name":              "Exchange",
    "version":           "1",
    "chainId":           1337,
    "verifyingContract": ZERO_ADDRESS,
}

AGENT_TYPES: TypedDataTypes = {
    "Agent": [
        {"name": "source",       "type": "string"},
        {"name": "connectionId", "type": "bytes32"},
    ],
}

MULTI_SIG_TYPES: TypedDataTypes = {
    "HyperliquidTransaction:SendMultiSig": [
        {"name": "hyperliquidChain",   "type": "string"},
        {"name": "multiSigActionHash", "type": "bytes32"},
        {"name": "nonce",              "type": "uint64"},
    ],
}

_EIP712_DOMAIN_TYPE = [
    {"name": "name",              "type": "string"},
    {"name": "version",           "type": "string"},
    {"name": "chainId",           "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]


def user_signed_domain(signature_chain_id: str) -> dict[str, Any]:
    """Domain for user-signed actions; ``signature_chain_id`` is hex (``"0x66eee"``)."""
    return {
        "name":              "HyperliquidSignTransaction",
        "version":           "1",
        "chainId":           int(signature_chain_id, 16),
        "verifyingContract": ZERO_ADDRESS,
    }


# ---------------------------------------------------------------------------
# Action hash
# ---------------------------------------------------------------------------

def _normalize_numbers(value: Any) -> Any:
    """
    Turn integral floats into ints, recursively.

    msgpack packs Python ints in their smallest integer encoding but floats
    always as float64, so ``1.0`` and ``1`` would hash differently.  Applies
    at any magnitude (``2.0**60`` packs as uint64); integral values beyond
    the 64-bit range make msgpack raise.
    """
    if isinstance(value, float):
        return int(value) if value.is_integer() else value
    if isinstance(value, dict):
        return {key: _normalize_numbers(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_numbers(item) for item in value]
    return value


def create_l1_action_hash(
    action: Any,
    nonce: int,
    vault_address: Optional[str] = None,
    expires_after: Optional[int] = None,
) -> str:
    """
    Keccak-256 over msgpack(action) ++ nonce ++ vault marker ++ expiry.

    Parameters
    ----------
    action        : action dict, already in canonical field order
    nonce         : millisecond timestamp nonce (uint64)
    vault_address : optional vault / sub-account the action is made for
    expires_after : optional expiry timestamp in ms

    Returns
    -------
    ``0x``-prefixed 32-byte hex "connection id".
    """
    data = bytearray(msgpack.packb(_normalize_numbers(action)))
    data += nonce.to_bytes(8, "big")

    if vault_address:
        data += b"\x01" + hex_to_bytes(vault_address)
    else:
        data += b"\x00"

    if expires_after is not None:
        data += b"\x00" + expires_after.to_bytes(8, "big")

    return bytes_to_hex(keccak(bytes(data)))


# ---------------------------------------------------------------------------
# Signing entry points
# ---------------------------------------------------------------------------

async def sign_l1_action(
    wallet: Any,
    action: Any,
    nonce: int,
    is_testnet: bool = False,
    vault_address: Optional[str] = None,
    expires_after: Optional[int] = None,
) -> Signature:
    """
    Sign an L1 action (orders, cancels, leverage updates, ...).

    ``action`` must already be in canonical field order
    (see ``sorter.sort_action``); the hash depends on key order.
    """
    connection_id = create_l1_action_hash(action, nonce, vault_address, expires_after)
    logger.debug("L1 action nonce=%d connection_id=%s", nonce, connection_id)

    message = {
        "source":       "b" if is_testnet else "a",
        "connectionId": connection_id,
    }
    return await sign_typed_data(wallet, L1_DOMAIN, AGENT_TYPES, "Agent", message)


async def sign_user_signed_action(
    wallet: Any,
    action: dict[str, Any],
    types: TypedDataTypes,
) -> Signature:
    """
    Sign a user-signed action (transfers, withdrawals, approvals, ...).

    Parameters
    ----------
    wallet : any supported wallet
    action : action dict including ``signatureChainId``; hex strings
             should be lower-case
    types  : ``{primary_type: fields}``, e.g. an entry of
             ``USER_SIGNED_ACTION_TYPES``; the first key is the primary type

    Notes
    -----
    - ``approveAgent`` without ``agentName`` signs an empty name.
    - When the action carries ``payloadMultiSigUser`` and ``outerSigner``
      (an inner multi-sig signature), both are signed as addresses right
      after ``hyperliquidChain``.
    - Action keys the primary type does not declare are not signed.
    """
    primary_type = next(iter(types))

    if action.get("type") == "approveAgent" and not action.get("agentName"):
        action = {**action, "agentName": ""}

    if "payloadMultiSigUser" in action and "outerSigner" in action:
        fields = types[primary_type]
        types = {
            **types,
            primary_type: [
                fields[0],
                {"name": "payloadMultiSigUser", "type": "address"},
                {"name": "outerSigner",         "type": "address"},
                *fields[1:],
            ],
        }

    known   = {field["name"] for field in types[primary_type]}
    message = {key: value for key, value in action.items() if key in known}

    logger.debug("User-signed action %s", primary_type)
    return await sign_typed_data(
        wallet,
        user_signed_domain(action["signatureChainId"]),
        types,
        primary_type,
        message,
    )


async def sign_multi_sig_action(
    wallet: Any,
    action: dict[str, Any],
    nonce: int,
    is_testnet: bool = False,
    vault_address: Optional[str] = None,
    expires_after: Optional[int] = None,
) -> Signature:
    """
    Sign the outer envelope of a multi-sig action.

    The ``type`` key is dropped and the rest of ``action`` (which must hold
    ``signatureChainId``) is hashed as an L1 action.
    """
    action = {key: value for key, value in action.items() if key != "type"}

    message = {
        "hyperliquidChain":   "Testnet" if is_testnet else "Mainnet",
        "multiSigActionHash": create_l1_action_hash(action, nonce, vault_address, expires_after),
        "nonce":              nonce,
    }
    return await sign_typed_data(
        wallet,
        user_signed_domain(action["signatureChainId"]),
        MULTI_SIG_TYPES,
        "HyperliquidTransaction:SendMultiSig",
        message,
    )


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

def recover_signer(
    domain: dict[str, Any],
    types: TypedDataTypes,
    primary_type: str,
    message: dict[str, Any],
    signature: Signature,
) -> str:
    """
    Recover the address that produced ``signature`` over the typed data.

    Useful for verification / testing without submitting to the exchange.

    Returns
    -------
    Checksummed Ethereum address string.
    """
    signable = encode_typed_data(
        full_message={
            "types":       {"EIP712Domain": _EIP712_DOMAIN_TYPE, **types},
            "primaryType": primary_type,
            "domain":      domain,
            "message":     message,
        }
    )
    address: str = Account.recover_message(
        signable,
        signature=hex_to_bytes(signature.to_hex()),
    )
    return address
