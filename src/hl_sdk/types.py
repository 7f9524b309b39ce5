"""
types.py – Environment config and Pydantic v2 models for the Hyperliquid API.

Monetary values (px, sz, fees, balances) are decimal strings in
Hyperliquid's API; this SDK keeps that convention and stores them as
str – convert with Decimal for arithmetic.

Hyperliquid's JSON is camelCase.  Models expose snake_case attributes
and accept the wire names through aliases:

    book  = L2Book.model_validate(raw)
    fills = [UserFill.model_validate(f) for f in raw]

Signature is the wire shape submitted in the ``signature`` field of every
exchange request.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from enum import Enum, unique
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Environment  (plain Enum – not a Pydantic model)
# ---------------------------------------------------------------------------

_ENDPOINTS: dict[str, dict[str, str]] = {
    "mainnet": {
        "api": "https://api.hyperliquid.xyz",
        "ws":  "wss://api.hyperliquid.xyz/ws",
    },
    "testnet": {
        "api": "https://api.hyperliquid-testnet.xyz",
        "ws":  "wss://api.hyperliquid-testnet.xyz/ws",
    },
}

# Chain ID placed in user-signed actions when the wallet does not report one
DEFAULT_SIGNATURE_CHAIN_ID = "0x66eee"


@unique
class HyperliquidEnv(Enum):
    """Hyperliquid deployment environment."""
    MAINNET = "mainnet"
    TESTNET = "testnet"

    @property
    def label(self) -> str:
        return self.value

    @property
    def is_testnet(self) -> bool:
        return self is HyperliquidEnv.TESTNET

    @property
    def api_url(self) -> str:
        return _ENDPOINTS[self.value]["api"]

    @property
    def ws_url(self) -> str:
        return _ENDPOINTS[self.value]["ws"]

    @property
    def hyperliquid_chain(self) -> str:
        """Value of the ``hyperliquidChain`` field in user-signed actions."""
        return "Testnet" if self.is_testnet else "Mainnet"

    @property
    def source(self) -> str:
        """Value of the ``source`` field of the L1 ``Agent`` struct."""
        return "b" if self.is_testnet else "a"


def resolve_env(env: "HyperliquidEnv | str") -> HyperliquidEnv:
    """Normalise a HyperliquidEnv enum or string to the enum."""
    if isinstance(env, HyperliquidEnv):
        return env
    return HyperliquidEnv(env.lower())


# ---------------------------------------------------------------------------
# Shared validator helpers
# ---------------------------------------------------------------------------

_HEX32_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def _validate_decimal_string(v: str, field: str = "value") -> str:
    """Reject empty strings and non-parseable decimals."""
    if not v or not v.strip():
        raise ValueError(f"{field} must be a non-empty decimal string")
    try:
        Decimal(v)
    except InvalidOperation:
        raise ValueError(f"{field} '{v}' is not a valid decimal string")
    return v


# ---------------------------------------------------------------------------
# Signature
# ---------------------------------------------------------------------------

class Signature(BaseModel):
    """
    ECDSA signature components as submitted to the exchange.

    r : 0x-prefixed 32-byte hex
    s : 0x-prefixed 32-byte hex
    v : recovery id, always 27 or 28
    """
    model_config = ConfigDict(frozen=True)

    r: str
    s: str
    v: int

    @field_validator("r", "s")
    @classmethod
    def validate_component(cls, v: str) -> str:
        if not _HEX32_RE.match(v):
            raise ValueError(f"signature component '{v}' is not 0x-prefixed 32-byte hex")
        return v.lower()

    @field_validator("v")
    @classmethod
    def validate_v(cls, v: int) -> int:
        if v not in (27, 28):
            raise ValueError(f"v must be 27 or 28, got {v}")
        return v

    def to_hex(self) -> str:
        """Reassemble the 65-byte ``r ∥ s ∥ v`` hex string."""
        return f"0x{self.r[2:]}{self.s[2:]}{self.v:02x}"


# ---------------------------------------------------------------------------
# Market data models
# ---------------------------------------------------------------------------

class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class L2Level(_WireModel):
    px: str
    sz: str
    n:  int = 0

    @field_validator("px", "sz")
    @classmethod
    def validate_decimal(cls, v: str) -> str:
        return _validate_decimal_string(v)


class L2Book(_WireModel):
    """L2 snapshot for a single coin.  ``levels`` is (bids, asks)."""
    coin:   str
    time:   int = 0
    levels: tuple[list[L2Level], list[L2Level]] = ([], [])

    @property
    def bids(self) -> list[L2Level]:
        return self.levels[0]

    @property
    def asks(self) -> list[L2Level]:
        return self.levels[1]


class WsTrade(_WireModel):
    """A single public trade from the ``trades`` channel."""
    coin: str
    side: str
    px:   str
    sz:   str
    time: int
    hash: str
    tid:  int = 0

    @field_validator("px", "sz")
    @classmethod
    def validate_decimal(cls, v: str) -> str:
        return _validate_decimal_string(v)


class AssetInfo(_WireModel):
    name:           str
    sz_decimals:    int  = Field(alias="szDecimals")
    max_leverage:   int  = Field(default=1, alias="maxLeverage")
    only_isolated:  bool = Field(default=False, alias="onlyIsolated")


class Meta(_WireModel):
    """Perpetuals universe; asset index == position in ``universe``."""
    universe: list[AssetInfo] = []

    def asset_index(self, coin: str) -> int:
        for index, asset in enumerate(self.universe):
            if asset.name == coin:
                return index
        raise KeyError(f"Unknown coin {coin!r}")


# ---------------------------------------------------------------------------
# Account models
# ---------------------------------------------------------------------------

class OpenOrder(_WireModel):
    coin:      str
    side:      str
    limit_px:  str = Field(alias="limitPx")
    sz:        str
    oid:       int
    timestamp: int
    orig_sz:   str           = Field(default="0", alias="origSz")
    cloid:     Optional[str] = None

    @field_validator("limit_px", "sz", "orig_sz")
    @classmethod
    def validate_decimal(cls, v: str) -> str:
        return _validate_decimal_string(v)


class UserFill(_WireModel):
    coin:        str
    px:          str
    sz:          str
    side:        str
    time:        int
    oid:         int
    hash:        str
    fee:         str  = "0"
    closed_pnl:  str  = Field(default="0", alias="closedPnl")
    crossed:     bool = False
    dir:         str  = ""

    @field_validator("px", "sz", "fee", "closed_pnl")
    @classmethod
    def validate_decimal(cls, v: str) -> str:
        return _validate_decimal_string(v)


class MarginSummary(_WireModel):
    account_value:     str = Field(alias="accountValue")
    total_ntl_pos:     str = Field(alias="totalNtlPos")
    total_raw_usd:     str = Field(alias="totalRawUsd")
    total_margin_used: str = Field(alias="totalMarginUsed")


class Position(_WireModel):
    """Open perpetual position.  ``szi`` is signed (negative = short)."""
    coin:            str
    szi:             str
    entry_px:        Optional[str] = Field(default=None, alias="entryPx")
    position_value:  str           = Field(default="0", alias="positionValue")
    unrealized_pnl:  str           = Field(default="0", alias="unrealizedPnl")
    liquidation_px:  Optional[str] = Field(default=None, alias="liquidationPx")
    margin_used:     str           = Field(default="0", alias="marginUsed")


class AssetPosition(_WireModel):
    type:     str = "oneWay"
    position: Position


class ClearinghouseState(_WireModel):
    """Perpetuals account summary for a user."""
    margin_summary:  MarginSummary        = Field(alias="marginSummary")
    withdrawable:    str                  = "0"
    asset_positions: list[AssetPosition]  = Field(default=[], alias="assetPositions")
    time:            int                  = 0

    @field_validator("withdrawable")
    @classmethod
    def validate_decimal(cls, v: str) -> str:
        return _validate_decimal_string(v, "withdrawable")
