"""
sorter.py – Canonical field order for exchange actions.

The L1 action hash is computed over the MessagePack encoding of the action,
and MessagePack preserves dict insertion order.  The exchange re-encodes the
action in its own field order, so a signature only verifies when the client
hashed the exact same layout.  Each sorter below rebuilds an action as a
fresh dict in that order:

  * decimal strings in orders are trimmed (``"30000.0"`` → ``"30000"``)
  * addresses are lower-cased
  * optional fields (cloid ``c``, ``builder``, schedule ``time``) are left
    out entirely when absent

The caller's dict is never modified.

USER_SIGNED_ACTION_TYPES holds the EIP-712 struct definitions for the
actions signed directly by the user wallet rather than through the L1
``Agent`` scheme.
"""

from __future__ import annotations

import copy
import re
from typing import Any, Callable

Action = dict[str, Any]

_LEADING_ZEROS_RE = re.compile(r"^0x0+")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def format_decimal(value: str) -> str:
    """Remove trailing zeros from the fractional part of a decimal string."""
    if "." not in value:
        return value
    int_part, frac_part = value.split(".", 1)
    frac_part = frac_part.rstrip("0")
    return f"{int_part}.{frac_part}" if frac_part else int_part


def _user_signed_header(action: Action) -> Action:
    return {
        "type":             action["type"],
        "signatureChainId": action["signatureChainId"],
        "hyperliquidChain": action["hyperliquidChain"],
    }


def _order_type(order_type: dict[str, Any]) -> dict[str, Any]:
    if "limit" in order_type:
        return {"limit": {"tif": order_type["limit"]["tif"]}}
    trigger = order_type["trigger"]
    return {
        "trigger": {
            "isMarket":  trigger["isMarket"],
            "triggerPx": format_decimal(trigger["triggerPx"]),
            "tpsl":      trigger["tpsl"],
        }
    }


def _order(order: dict[str, Any]) -> dict[str, Any]:
    sorted_order = {
        "a": order["a"],
        "b": order["b"],
        "p": format_decimal(order["p"]),
        "s": format_decimal(order["s"]),
        "r": order["r"],
        "t": _order_type(order["t"]),
    }
    if order.get("c") is not None:
        sorted_order["c"] = order["c"]
    return sorted_order


def _strip_signature_component(value: str) -> str:
    return _LEADING_ZEROS_RE.sub("0x", value).lower()


# ---------------------------------------------------------------------------
# Trading
# ---------------------------------------------------------------------------

def _sort_order(action: Action) -> Action:
    sorted_action = {
        "type":     action["type"],
        "orders":   [_order(order) for order in action["orders"]],
        "grouping": action["grouping"],
    }
    builder = action.get("builder")
    if builder:
        sorted_action["builder"] = {"b": builder["b"].lower(), "f": builder["f"]}
    return sorted_action


def _sort_modify(action: Action) -> Action:
    return {
        "type":  action["type"],
        "oid":   action["oid"],
        "order": _order(action["order"]),
    }


def _sort_batch_modify(action: Action) -> Action:
    return {
        "type": action["type"],
        "modifies": [
            {"oid": modify["oid"], "order": _order(modify["order"])}
            for modify in action["modifies"]
        ],
    }


def _sort_cancel(action: Action) -> Action:
    return {
        "type":    action["type"],
        "cancels": [{"a": c["a"], "o": c["o"]} for c in action["cancels"]],
    }


def _sort_cancel_by_cloid(action: Action) -> Action:
    return {
        "type":    action["type"],
        "cancels": [{"asset": c["asset"], "cloid": c["cloid"]} for c in action["cancels"]],
    }


def _sort_schedule_cancel(action: Action) -> Action:
    sorted_action: Action = {"type": action["type"]}
    if action.get("time") is not None:
        sorted_action["time"] = action["time"]
    return sorted_action


def _sort_twap_order(action: Action) -> Action:
    twap = action["twap"]
    return {
        "type": action["type"],
        "twap": {
            "a": twap["a"],
            "b": twap["b"],
            "s": format_decimal(twap["s"]),
            "r": twap["r"],
            "m": twap["m"],
            "t": twap["t"],
        },
    }


def _sort_twap_cancel(action: Action) -> Action:
    return {"type": action["type"], "a": action["a"], "t": action["t"]}


def _sort_update_leverage(action: Action) -> Action:
    return {
        "type":     action["type"],
        "asset":    action["asset"],
        "isCross":  action["isCross"],
        "leverage": action["leverage"],
    }


def _sort_update_isolated_margin(action: Action) -> Action:
    return {
        "type":  action["type"],
        "asset": action["asset"],
        "isBuy": action["isBuy"],
        "ntli":  action["ntli"],
    }


# ---------------------------------------------------------------------------
# Transfers (user-signed)
# ---------------------------------------------------------------------------

def _sort_usd_send(action: Action) -> Action:
    return {
        **_user_signed_header(action),
        "destination": action["destination"].lower(),
        "amount":      action["amount"],
        "time":        action["time"],
    }


def _sort_spot_send(action: Action) -> Action:
    return {
        **_user_signed_header(action),
        "destination": action["destination"].lower(),
        "token":       action["token"],
        "amount":      action["amount"],
        "time":        action["time"],
    }


def _sort_usd_class_transfer(action: Action) -> Action:
    return {
        **_user_signed_header(action),
        "amount": action["amount"],
        "toPerp": action["toPerp"],
        "nonce":  action["nonce"],
    }


def _sort_approve_agent(action: Action) -> Action:
    return {
        **_user_signed_header(action),
        "agentAddress": action["agentAddress"].lower(),
        "agentName":    action.get("agentName") or "",
        "nonce":        action["nonce"],
    }


def _sort_approve_builder_fee(action: Action) -> Action:
    return {
        **_user_signed_header(action),
        "maxFeeRate": action["maxFeeRate"],
        "builder":    action["builder"].lower(),
        "nonce":      action["nonce"],
    }


def _sort_token_delegate(action: Action) -> Action:
    return {
        **_user_signed_header(action),
        "validator":    action["validator"].lower(),
        "wei":          action["wei"],
        "isUndelegate": action["isUndelegate"],
        "nonce":        action["nonce"],
    }


def _sort_staking_transfer(action: Action) -> Action:
    # cDeposit and cWithdraw share a layout
    return {
        **_user_signed_header(action),
        "wei":   action["wei"],
        "nonce": action["nonce"],
    }


def _sort_convert_to_multi_sig_user(action: Action) -> Action:
    return {
        **_user_signed_header(action),
        "signers": action["signers"],
        "nonce":   action["nonce"],
    }


# ---------------------------------------------------------------------------
# Vaults and sub-accounts
# ---------------------------------------------------------------------------

def _sort_vault_transfer(action: Action) -> Action:
    return {
        "type":         action["type"],
        "vaultAddress": action["vaultAddress"],
        "isDeposit":    action["isDeposit"],
        "usd":          action["usd"],
    }


def _sort_vault_distribute(action: Action) -> Action:
    return {
        "type":         action["type"],
        "vaultAddress": action["vaultAddress"],
        "usd":          action["usd"],
    }


def _sort_vault_modify(action: Action) -> Action:
    return {
        "type":                  action["type"],
        "vaultAddress":          action["vaultAddress"],
        "allowDeposits":         action["allowDeposits"],
        "alwaysCloseOnWithdraw": action["alwaysCloseOnWithdraw"],
    }


def _sort_create_vault(action: Action) -> Action:
    return {
        "type":        action["type"],
        "name":        action["name"],
        "description": action["description"],
        "initialUsd":  action["initialUsd"],
        "nonce":       action["nonce"],
    }


def _sort_sub_account_transfer(action: Action) -> Action:
    return {
        "type":           action["type"],
        "subAccountUser": action["subAccountUser"].lower(),
        "isDeposit":      action["isDeposit"],
        "usd":            action["usd"],
    }


def _sort_sub_account_spot_transfer(action: Action) -> Action:
    return {
        "type":           action["type"],
        "subAccountUser": action["subAccountUser"].lower(),
        "isDeposit":      action["isDeposit"],
        "token":          action["token"],
        "amount":         action["amount"],
    }


# ---------------------------------------------------------------------------
# Account settings
# ---------------------------------------------------------------------------

def _single_field(field: str) -> Callable[[Action], Action]:
    def sorter(action: Action) -> Action:
        return {"type": action["type"], field: action[field]}
    return sorter


def _sort_spot_user(action: Action) -> Action:
    return {
        "type":              action["type"],
        "toggleSpotDusting": {"optOut": action["toggleSpotDusting"]["optOut"]},
    }


def _sort_claim_rewards(action: Action) -> Action:
    return {"type": action["type"]}


def _sort_multi_sig(action: Action) -> Action:
    payload = action["payload"]
    return {
        "type":             action["type"],
        "signatureChainId": action["signatureChainId"],
        "signatures": [
            {
                "r": _strip_signature_component(sig["r"]),
                "s": _strip_signature_component(sig["s"]),
                "v": sig["v"],
            }
            for sig in action["signatures"]
        ],
        "payload": {
            "multiSigUser": payload["multiSigUser"].lower(),
            "outerSigner":  payload["outerSigner"].lower(),
            "action":       copy.deepcopy(payload["action"]),
        },
    }


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

ACTION_SORTER: dict[str, Callable[[Action], Action]] = {
    "order":                  _sort_order,
    "modify":                 _sort_modify,
    "batchModify":            _sort_batch_modify,
    "cancel":                 _sort_cancel,
    "cancelByCloid":          _sort_cancel_by_cloid,
    "scheduleCancel":         _sort_schedule_cancel,
    "twapOrder":              _sort_twap_order,
    "twapCancel":             _sort_twap_cancel,
    "updateLeverage":         _sort_update_leverage,
    "updateIsolatedMargin":   _sort_update_isolated_margin,
    "usdSend":                _sort_usd_send,
    "spotSend":               _sort_spot_send,
    "withdraw3":              _sort_usd_send,
    "usdClassTransfer":       _sort_usd_class_transfer,
    "approveAgent":           _sort_approve_agent,
    "approveBuilderFee":      _sort_approve_builder_fee,
    "tokenDelegate":          _sort_token_delegate,
    "cDeposit":               _sort_staking_transfer,
    "cWithdraw":              _sort_staking_transfer,
    "vaultTransfer":          _sort_vault_transfer,
    "vaultDistribute":        _sort_vault_distribute,
    "vaultModify":            _sort_vault_modify,
    "subAccountTransfer":     _sort_sub_account_transfer,
    "subAccountSpotTransfer": _sort_sub_account_spot_transfer,
    "createSubAccount":       _single_field("name"),
    "createVault":            _sort_create_vault,
    "setDisplayName":         _single_field("displayName"),
    "setReferrer":            _single_field("code"),
    "registerReferrer":       _single_field("code"),
    "reserveRequestWeight":   _single_field("weight"),
    "evmUserModify":          _single_field("usingBigBlocks"),
    "spotUser":               _sort_spot_user,
    "claimRewards":           _sort_claim_rewards,
    "convertToMultiSigUser":  _sort_convert_to_multi_sig_user,
    "multiSig":               _sort_multi_sig,
}


def sort_action(action: Action) -> Action:
    """Return a copy of ``action`` in the exchange's canonical field order."""
    action_type = action.get("type")
    sorter = ACTION_SORTER.get(action_type)  # type: ignore[arg-type]
    if sorter is None:
        raise ValueError(f"Unknown action type: {action_type!r}")
    return sorter(action)


# ---------------------------------------------------------------------------
# EIP-712 types for user-signed actions
# ---------------------------------------------------------------------------

def _fields(*pairs: tuple[str, str]) -> list[dict[str, str]]:
    return [{"name": name, "type": type_} for name, type_ in pairs]


_CHAIN = ("hyperliquidChain", "string")
_NONCE = ("nonce", "uint64")

USER_SIGNED_ACTION_TYPES: dict[str, dict[str, list[dict[str, str]]]] = {
    "approveAgent": {
        "HyperliquidTransaction:ApproveAgent": _fields(
            _CHAIN, ("agentAddress", "address"), ("agentName", "string"), _NONCE,
        ),
    },
    "approveBuilderFee": {
        "HyperliquidTransaction:ApproveBuilderFee": _fields(
            _CHAIN, ("maxFeeRate", "string"), ("builder", "address"), _NONCE,
        ),
    },
    "cDeposit": {
        "HyperliquidTransaction:CDeposit": _fields(_CHAIN, ("wei", "uint64"), _NONCE),
    },
    "convertToMultiSigUser": {
        "HyperliquidTransaction:ConvertToMultiSigUser": _fields(
            _CHAIN, ("signers", "string"), _NONCE,
        ),
    },
    "cWithdraw": {
        "HyperliquidTransaction:CWithdraw": _fields(_CHAIN, ("wei", "uint64"), _NONCE),
    },
    "multiSig": {
        "HyperliquidTransaction:SendMultiSig": _fields(
            _CHAIN, ("multiSigActionHash", "bytes32"), _NONCE,
        ),
    },
    "spotSend": {
        "HyperliquidTransaction:SpotSend": _fields(
            _CHAIN,
            ("destination", "string"),
            ("token", "string"),
            ("amount", "string"),
            ("time", "uint64"),
        ),
    },
    "tokenDelegate": {
        "HyperliquidTransaction:TokenDelegate": _fields(
            _CHAIN,
            ("validator", "address"),
            ("wei", "uint64"),
            ("isUndelegate", "bool"),
            _NONCE,
        ),
    },
    "usdClassTransfer": {
        "HyperliquidTransaction:UsdClassTransfer": _fields(
            _CHAIN, ("amount", "string"), ("toPerp", "bool"), _NONCE,
        ),
    },
    "usdSend": {
        "HyperliquidTransaction:UsdSend": _fields(
            _CHAIN, ("destination", "string"), ("amount", "string"), ("time", "uint64"),
        ),
    },
    "withdraw3": {
        "HyperliquidTransaction:Withdraw": _fields(
            _CHAIN, ("destination", "string"), ("amount", "string"), ("time", "uint64"),
        ),
    },
}
