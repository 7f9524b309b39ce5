"""
eip712.py – EIP-712 typed-data hashing and private-key signing.

Hyperliquid authenticates every exchange request with an EIP-712
signature.  This module is a self-contained implementation of the
hashing half of the standard so that the digest a wallet signs can be
reproduced byte-for-byte without a wallet.

How it works
------------
1. ``find_type_dependencies`` collects the struct types reachable from
   the primary type (primary first, the rest sorted by name).
2. ``encode_type`` renders them as ``Name(type1 field1,...)`` strings;
   its Keccak-256 is the type hash.
3. ``encode_value`` turns each field into a 32-byte word (strings,
   dynamic bytes, arrays and nested structs are hashed).
4. ``hash_struct`` = keccak(type hash ++ encoded fields).
5. ``hash_typed_data`` = keccak(0x1901 ++ domain hash ++ message hash).

Recursive struct types are resolved through the visited set in
``find_type_dependencies``: every type appears once in the type string,
which is what EIP-712 prescribes for self-referencing schemas.  The
exchange only uses acyclic schemas.

References
----------
- EIP-712 spec : https://eips.ethereum.org/EIPS/eip-712
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Optional, Union

from eth_keys import keys
from eth_utils import decode_hex, encode_hex, keccak

from .types import Signature

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

# {"TypeName": [{"name": "field", "type": "uint64"}, ...]}
TypedDataTypes = dict[str, list[dict[str, str]]]

HexLike = Union[str, bytes, bytearray]


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_ARRAY_RE        = re.compile(r"^(.*)\[(\d*)\]$")
_ARRAY_SUFFIX_RE = re.compile(r"(\[\d*\])+$")
_INT_RE          = re.compile(r"^(u?)int(\d*)$")
_BYTES_RE        = re.compile(r"^bytes(\d+)$")

# Solidity spells these out in canonical type strings
_TYPE_ALIASES: dict[str, str] = {"uint": "uint256", "int": "int256"}

# EIP712Domain fields in the order the standard fixes
_DOMAIN_FIELDS: tuple[tuple[str, str], ...] = (
    ("name",              "string"),
    ("version",           "string"),
    ("chainId",           "uint256"),
    ("verifyingContract", "address"),
    ("salt",              "bytes32"),
)

_SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_UINT256_MOD = 1 << 256


# ---------------------------------------------------------------------------
# Hex / byte codec
# ---------------------------------------------------------------------------

def clean_hex(value: str) -> str:
    """Strip a leading ``0x``."""
    return value[2:] if value.startswith("0x") else value


def hex_to_bytes(value: str) -> bytes:
    """Decode hex with or without ``0x``; malformed input raises ValueError."""
    return decode_hex(value)


def bytes_to_hex(value: bytes) -> str:
    """Encode bytes as ``0x``-prefixed lowercase hex."""
    return encode_hex(value)


def _to_bytes(value: HexLike) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return hex_to_bytes(value)


def _keccak(*chunks: bytes) -> bytes:
    return keccak(b"".join(chunks))


# ---------------------------------------------------------------------------
# Type encoding
# ---------------------------------------------------------------------------

def canonical_type(type_: str) -> str:
    """Resolve ``uint``/``int`` aliases, keeping any array suffix."""
    match = _ARRAY_SUFFIX_RE.search(type_)
    base, suffix = (type_[: match.start()], match.group(0)) if match else (type_, "")
    return _TYPE_ALIASES.get(base, base) + suffix


def _collect_dependencies(type_name: str, types: TypedDataTypes, found: set[str]) -> None:
    if type_name in found or type_name not in types:
        return
    found.add(type_name)
    for field in types[type_name]:
        base = _ARRAY_SUFFIX_RE.sub("", field["type"])
        if base in types:
            _collect_dependencies(base, types, found)


def find_type_dependencies(primary_type: str, types: TypedDataTypes) -> list[str]:
    """
    Return ``primary_type`` followed by every struct type it references
    (directly, through arrays, or transitively) in ascending name order.
    """
    if primary_type not in types:
        raise ValueError(f"Unknown struct type: {primary_type}")
    found: set[str] = set()
    _collect_dependencies(primary_type, types, found)
    found.discard(primary_type)
    return [primary_type, *sorted(found)]


def encode_type(primary_type: str, types: TypedDataTypes) -> str:
    """
    Canonical EIP-712 type string, e.g.
    ``Mail(Person from,Person to,string contents)Person(string name,address wallet)``.
    """
    return "".join(
        f"{name}("
        + ",".join(f"{canonical_type(field['type'])} {field['name']}" for field in types[name])
        + ")"
        for name in find_type_dependencies(primary_type, types)
    )


def hash_type(primary_type: str, types: TypedDataTypes) -> bytes:
    return keccak(text=encode_type(primary_type, types))


# ---------------------------------------------------------------------------
# Value encoding
# ---------------------------------------------------------------------------

def _to_int(value: Any) -> int:
    """Coerce ints, bools, integral floats/Decimals and decimal/0x strings."""
    if isinstance(value, int):
        return int(value)
    if isinstance(value, (float, Decimal)):
        if value != int(value):
            raise ValueError(f"Expected an integer, got {value!r}")
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith(("0x", "-0x")):
            return int(text, 16)
        return int(text, 10)
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big")
    raise ValueError(f"Expected an integer, got {type(value).__name__}")


def _encode_integer(type_: str, unsigned: bool, width: str, value: Any) -> bytes:
    bits = int(width) if width else 256
    if bits == 0 or bits > 256 or bits % 8:
        raise ValueError(f"Unsupported bit size for {type_}: {bits}")

    # Truncate to the declared width: unsigned wrap or two's complement
    resized = _to_int(value) & ((1 << bits) - 1)
    if not unsigned and resized >> (bits - 1):
        resized -= 1 << bits

    return (resized % _UINT256_MOD).to_bytes(32, "big")


def encode_value(type_: str, value: Any, types: TypedDataTypes) -> bytes:
    """Encode one value of the declared type into its 32-byte EIP-712 word."""
    array = _ARRAY_RE.match(type_)
    if array:
        base, length = array.groups()
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"Expected array for {type_}, got {type(value).__name__}")
        if length and len(value) != int(length):
            raise ValueError(f"Invalid length for {type_}: expected {length}, got {len(value)}")
        return _keccak(*(encode_value(base, item, types) for item in value))

    if type_ in types:
        if value is None:
            return bytes(32)
        return hash_struct(type_, value, types)

    if value is None:
        raise ValueError(f"Missing value for {type_}")

    if type_ == "string":
        return keccak(text=value)

    if type_ == "address":
        raw = _to_bytes(value)
        if len(raw) != 20:
            raise ValueError("Address must be 20 bytes")
        return raw.rjust(32, b"\x00")

    integer = _INT_RE.match(type_)
    if integer:
        unsigned, width = integer.groups()
        return _encode_integer(type_, unsigned == "u", width, value)

    if type_ == "bool":
        return bytes(31) + (b"\x01" if value else b"\x00")

    if type_ == "bytes":
        return keccak(_to_bytes(value))

    fixed = _BYTES_RE.match(type_)
    if fixed:
        size = int(fixed.group(1))
        if size == 0 or size > 32:
            raise ValueError(f"Unsupported bytes size: {size}")
        raw = _to_bytes(value)
        if len(raw) != size:
            raise ValueError(f"Invalid length for {type_}: expected {size}, got {len(raw)}")
        return raw.ljust(32, b"\x00")

    raise ValueError(f"Unsupported type: {type_}")


# ---------------------------------------------------------------------------
# Struct / typed-data hashing
# ---------------------------------------------------------------------------

def hash_struct(primary_type: str, data: Mapping[str, Any], types: TypedDataTypes) -> bytes:
    """keccak(type hash ++ encoded fields) in the declared field order."""
    encoded = [
        encode_value(field["type"], data.get(field["name"]), types)
        for field in types[primary_type]
    ]
    return _keccak(hash_type(primary_type, types), *encoded)


def domain_type(domain: Mapping[str, Any]) -> list[dict[str, str]]:
    """EIP712Domain fields for the keys present in ``domain``."""
    return [
        {"name": name, "type": type_}
        for name, type_ in _DOMAIN_FIELDS
        if domain.get(name) is not None
    ]


def hash_typed_data(
    domain: Optional[Mapping[str, Any]],
    types: TypedDataTypes,
    primary_type: str,
    message: Mapping[str, Any],
) -> bytes:
    """
    Return the 32-byte digest a wallet signs for this typed data.

    ``types`` need not contain ``EIP712Domain``; it is derived from the
    domain keys present.  An explicit ``EIP712Domain`` entry wins.
    """
    domain = domain or {}
    full_types: TypedDataTypes = {"EIP712Domain": domain_type(domain), **types}

    parts = [b"\x19\x01", hash_struct("EIP712Domain", domain, full_types)]
    if primary_type != "EIP712Domain":
        parts.append(hash_struct(primary_type, message, full_types))
    return _keccak(*parts)


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

def recovery_id_to_v(value: int) -> int:
    """
    Map a recovery id to the 27/28 ``v`` the exchange expects.

    Raw secp256k1 recovery ids (0/1) gain 27; 27/28 pass through.  This is
    the only place the conversion happens.
    """
    if value in (0, 1):
        return value + 27
    if value in (27, 28):
        return value
    raise ValueError(f"Unsupported recovery id: {value}")


def split_signature(signature: HexLike) -> Signature:
    """Split a 65-byte ``r ∥ s ∥ v`` signature (hex or bytes) into its parts."""
    body = clean_hex(signature) if isinstance(signature, str) else bytes(signature).hex()
    if len(body) != 130:
        raise ValueError(
            f"Invalid signature length: expected 130 hex characters, got {len(body)}"
        )
    return Signature(
        r="0x" + body[:64],
        s="0x" + body[64:128],
        v=recovery_id_to_v(int(body[128:], 16)),
    )


def _private_key_bytes(private_key: HexLike) -> bytes:
    raw = _to_bytes(private_key)
    if len(raw) != 32:
        raise ValueError(f"Private key must be 32 bytes, got {len(raw)}")
    return raw


def is_valid_private_key(private_key: Any) -> bool:
    """True for a 32-byte hex string (``0x`` optional) inside the curve order."""
    if not isinstance(private_key, str):
        return False
    body = clean_hex(private_key)
    if len(body) != 64 or not re.fullmatch(r"[0-9a-fA-F]+", body):
        return False
    return 0 < int(body, 16) < _SECP256K1_N


def private_key_to_address(private_key: HexLike) -> str:
    """Checksummed address controlled by ``private_key``."""
    return keys.PrivateKey(_private_key_bytes(private_key)).public_key.to_checksum_address()


def sign_typed_data_with_private_key(
    private_key: HexLike,
    domain: Optional[Mapping[str, Any]],
    types: TypedDataTypes,
    primary_type: str,
    message: Mapping[str, Any],
) -> Signature:
    """
    Hash typed data and sign the digest with a raw secp256k1 key.

    Signing is deterministic (RFC 6979) with low-s normalisation, so the
    same inputs always give the same ``r``, ``s`` and ``v``.
    """
    digest = hash_typed_data(domain, types, primary_type, message)
    signed = keys.PrivateKey(_private_key_bytes(private_key)).sign_msg_hash(digest)
    # eth_keys emits r ∥ s ∥ recovery id (0/1)
    return split_signature(signed.to_bytes())
