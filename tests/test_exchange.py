"""
tests/test_exchange.py – Unit tests for the Exchange client.

All tests run offline – requests go to an in-memory fake transport.
They verify that:
  1. L1 actions are sorted, signed and posted with the right body shape.
  2. Vault / expiry fields appear only when set.
  3. User-signed actions get signatureChainId, hyperliquidChain and a
     time / nonce field, and the signature verifies.
  4. Error responses raise ApiRequestError with a readable message.
  5. NonceManager hands out strictly increasing nonces, and concurrent
     submissions for one wallet reach the transport in nonce order.
  6. Multi-sig clients collect every signer's signature, wrap them in a
     multiSig action and sign the wrapper with the leader.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any

import pytest

from hl_sdk.eip712 import private_key_to_address
from hl_sdk.exchange import ApiRequestError, ExchangeClient, NonceManager, validate_response
from hl_sdk.rest import HyperliquidAPIError
from hl_sdk.signing import (
    MULTI_SIG_TYPES,
    create_l1_action_hash,
    recover_signer,
    sign_l1_action,
    sign_multi_sig_action,
    sign_user_signed_action,
    user_signed_domain,
)
from hl_sdk.sorter import USER_SIGNED_ACTION_TYPES
from hl_sdk.types import HyperliquidEnv, Signature
from hl_sdk.wallet import AbstractWalletError, get_wallet_chain_id


# ---------------------------------------------------------------------------
# Test fixtures
# ---------------------------------------------------------------------------

# Deterministic test private key (DO NOT use with real funds)
TEST_PRIVATE_KEY = "0x822e9959e022b78423eb653a62ea0020cd283e71a2a8133a6ff2aeffaf373cff"
TEST_ADDRESS     = private_key_to_address(TEST_PRIVATE_KEY)

VAULT = "0x1234567890123456789012345678901234567890"
AGENT = "0xABCDEF0000000000000000000000000000000001"

COSIGNER_KEY   = "0x" + "22" * 32
MULTI_SIG_USER = "0xAbCdEf1234567890aBcDeF1234567890AbCdEf12"

OK_ORDER = {
    "status": "ok",
    "response": {"type": "order", "data": {"statuses": [{"resting": {"oid": 77}}]}},
}


class _FakeTransport:
    """Records every request and answers with canned responses."""

    def __init__(self, env: HyperliquidEnv = HyperliquidEnv.MAINNET, response: Any = None) -> None:
        self.env = env
        self.response = response if response is not None else {"status": "ok", "response": {"type": "default"}}
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    async def request(self, path: str, body: dict[str, Any]) -> Any:
        self.requests.append((path, body))
        await asyncio.sleep(0)
        return self.response

    async def close(self) -> None:
        self.closed = True


class _Counter:
    """Deterministic nonce provider."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.value = start

    def __call__(self) -> int:
        self.value += 1
        return self.value


def _make_client(
    env: HyperliquidEnv = HyperliquidEnv.MAINNET,
    response: Any = None,
    **kwargs: Any,
) -> tuple[ExchangeClient, _FakeTransport]:
    transport = _FakeTransport(env, response)
    client = ExchangeClient(
        TEST_PRIVATE_KEY,
        transport=transport,   # type: ignore[arg-type]
        nonce_provider=kwargs.pop("nonce_provider", _Counter()),
        **kwargs,
    )
    return client, transport


def _make_multi_sig_client(
    env: HyperliquidEnv = HyperliquidEnv.MAINNET,
    **kwargs: Any,
) -> tuple[ExchangeClient, _FakeTransport]:
    transport = _FakeTransport(env)
    client = ExchangeClient(
        [TEST_PRIVATE_KEY, COSIGNER_KEY],
        transport=transport,   # type: ignore[arg-type]
        nonce_provider=kwargs.pop("nonce_provider", _Counter()),
        multi_sig_user=MULTI_SIG_USER,
        **kwargs,
    )
    return client, transport


def _order(**overrides: Any) -> dict[str, Any]:
    order = {"a": 0, "b": True, "p": "30000.0", "s": "0.1", "r": False, "t": {"limit": {"tif": "Gtc"}}}
    order.update(overrides)
    return order


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

class TestExchangeClientConstruction:
    def test_unsupported_wallet_fails_fast(self) -> None:
        with pytest.raises(AbstractWalletError):
            ExchangeClient(object(), transport=_FakeTransport())  # type: ignore[arg-type]

    def test_env_comes_from_transport(self) -> None:
        client, _ = _make_client(HyperliquidEnv.TESTNET)
        assert client.env is HyperliquidEnv.TESTNET

    @pytest.mark.asyncio
    async def test_address_lowercase(self) -> None:
        client, _ = _make_client()
        assert await client.address() == TEST_ADDRESS.lower()

    @pytest.mark.asyncio
    async def test_context_manager_closes_transport(self) -> None:
        client, transport = _make_client()
        async with client:
            pass
        assert transport.closed


# ---------------------------------------------------------------------------
# L1 actions
# ---------------------------------------------------------------------------

class TestL1Actions:
    @pytest.mark.asyncio
    async def test_order_body_shape(self) -> None:
        client, transport = _make_client(response=OK_ORDER)
        result = await client.order([_order()])

        assert result == OK_ORDER
        (path, body), = transport.requests
        assert path == "/exchange"
        assert list(body) == ["action", "nonce", "signature"]
        assert body["action"] == {
            "type": "order",
            "orders": [{"a": 0, "b": True, "p": "30000", "s": "0.1", "r": False,
                        "t": {"limit": {"tif": "Gtc"}}}],
            "grouping": "na",
        }
        assert set(body["signature"]) == {"r", "s", "v"}

    @pytest.mark.asyncio
    async def test_signature_matches_direct_signing(self) -> None:
        client, transport = _make_client(HyperliquidEnv.TESTNET, response=OK_ORDER)
        await client.order([_order()])

        (_, body), = transport.requests
        expected = await sign_l1_action(
            TEST_PRIVATE_KEY, body["action"], body["nonce"], is_testnet=True,
        )
        assert Signature(**body["signature"]) == expected

    @pytest.mark.asyncio
    async def test_vault_and_expiry_included(self) -> None:
        client, transport = _make_client(response=OK_ORDER)
        await client.order([_order()], vault_address=AGENT, expires_after=123)

        (_, body), = transport.requests
        assert body["vaultAddress"] == AGENT.lower()
        assert body["expiresAfter"] == 123
        expected = await sign_l1_action(
            TEST_PRIVATE_KEY, body["action"], body["nonce"],
            vault_address=AGENT.lower(), expires_after=123,
        )
        assert Signature(**body["signature"]) == expected

    @pytest.mark.asyncio
    async def test_client_defaults_for_vault_and_expiry(self) -> None:
        client, transport = _make_client(vault_address=VAULT, expires_after=999)
        await client.cancel([{"a": 0, "o": 1}])

        (_, body), = transport.requests
        assert body["vaultAddress"] == VAULT
        assert body["expiresAfter"] == 999

    @pytest.mark.asyncio
    async def test_builder_included(self) -> None:
        client, transport = _make_client(response=OK_ORDER)
        await client.order([_order()], builder={"b": "0xABC", "f": 10})
        (_, body), = transport.requests
        assert body["action"]["builder"] == {"b": "0xabc", "f": 10}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("call, expected_action", [
        (lambda c: c.modify(5, _order()),
         {"type": "modify", "oid": 5, "order": {"a": 0, "b": True, "p": "30000", "s": "0.1",
                                                 "r": False, "t": {"limit": {"tif": "Gtc"}}}}),
        (lambda c: c.batch_modify([{"order": _order(), "oid": 7}]),
         {"type": "batchModify", "modifies": [{"oid": 7, "order": {
             "a": 0, "b": True, "p": "30000", "s": "0.1", "r": False, "t": {"limit": {"tif": "Gtc"}}}}]}),
        (lambda c: c.cancel_by_cloid([{"asset": 1, "cloid": "0x01"}]),
         {"type": "cancelByCloid", "cancels": [{"asset": 1, "cloid": "0x01"}]}),
        (lambda c: c.schedule_cancel(),
         {"type": "scheduleCancel"}),
        (lambda c: c.schedule_cancel(time=42),
         {"type": "scheduleCancel", "time": 42}),
        (lambda c: c.twap_order(1, True, "1.50", False, 30, True),
         {"type": "twapOrder", "twap": {"a": 1, "b": True, "s": "1.5", "r": False, "m": 30, "t": True}}),
        (lambda c: c.twap_cancel(1, 9),
         {"type": "twapCancel", "a": 1, "t": 9}),
        (lambda c: c.update_leverage(2, 10, is_cross=False),
         {"type": "updateLeverage", "asset": 2, "isCross": False, "leverage": 10}),
        (lambda c: c.update_isolated_margin(2, True, 1_000_000),
         {"type": "updateIsolatedMargin", "asset": 2, "isBuy": True, "ntli": 1_000_000}),
        (lambda c: c.set_referrer("CODE"),
         {"type": "setReferrer", "code": "CODE"}),
        (lambda c: c.create_sub_account("desk"),
         {"type": "createSubAccount", "name": "desk"}),
    ])
    async def test_action_payloads(self, call: Any, expected_action: dict[str, Any]) -> None:
        client, transport = _make_client()
        await call(client)
        (_, body), = transport.requests
        assert body["action"] == expected_action
        assert list(body["action"]) == list(expected_action)

    @pytest.mark.asyncio
    async def test_vault_transfer_does_not_act_for_vault(self) -> None:
        client, transport = _make_client(vault_address="0xffffffffffffffffffffffffffffffffffffffff")
        await client.vault_transfer(AGENT, True, 5_000_000)

        (_, body), = transport.requests
        assert body["action"] == {
            "type": "vaultTransfer", "vaultAddress": AGENT.lower(), "isDeposit": True, "usd": 5_000_000,
        }
        assert "vaultAddress" not in body

    @pytest.mark.asyncio
    async def test_nonce_from_provider(self) -> None:
        client, transport = _make_client(nonce_provider=lambda: 1234567890)
        await client.cancel([{"a": 0, "o": 1}])
        (_, body), = transport.requests
        assert body["nonce"] == 1234567890


# ---------------------------------------------------------------------------
# User-signed actions
# ---------------------------------------------------------------------------

class TestUserSignedActions:
    @pytest.mark.asyncio
    async def test_usd_send_body(self) -> None:
        client, transport = _make_client(HyperliquidEnv.TESTNET)
        await client.usd_send("0xABCDEF0000000000000000000000000000000001", "100")

        (_, body), = transport.requests
        action = body["action"]
        assert list(action) == [
            "type", "signatureChainId", "hyperliquidChain", "destination", "amount", "time",
        ]
        assert action["signatureChainId"] == "0x66eee"
        assert action["hyperliquidChain"] == "Testnet"
        assert action["destination"] == "0xabcdef0000000000000000000000000000000001"
        assert action["time"] == body["nonce"]
        assert list(body) == ["action", "nonce", "signature"]

    @pytest.mark.asyncio
    async def test_usd_send_signature_verifies(self) -> None:
        client, transport = _make_client()
        await client.usd_send("0xabcdef0000000000000000000000000000000001", "100")

        (_, body), = transport.requests
        action = body["action"]
        types  = USER_SIGNED_ACTION_TYPES["usdSend"]
        recovered = recover_signer(
            user_signed_domain(action["signatureChainId"]),
            types,
            "HyperliquidTransaction:UsdSend",
            {k: action[k] for k in ("hyperliquidChain", "destination", "amount", "time")},
            Signature(**body["signature"]),
        )
        assert recovered == TEST_ADDRESS

    @pytest.mark.asyncio
    @pytest.mark.parametrize("call, action_type, nonce_field", [
        (lambda c: c.spot_send("0x01", "PURR:0xc1fb", "1"), "spotSend", "time"),
        (lambda c: c.withdraw3("0x01", "5"), "withdraw3", "time"),
        (lambda c: c.usd_class_transfer("5", True), "usdClassTransfer", "nonce"),
        (lambda c: c.approve_agent(AGENT), "approveAgent", "nonce"),
        (lambda c: c.approve_builder_fee(AGENT, "0.001%"), "approveBuilderFee", "nonce"),
    ])
    async def test_time_or_nonce_field(self, call: Any, action_type: str, nonce_field: str) -> None:
        client, transport = _make_client()
        await call(client)

        (_, body), = transport.requests
        assert body["action"]["type"] == action_type
        assert body["action"][nonce_field] == body["nonce"]
        assert list(body["action"])[-1] == nonce_field

    @pytest.mark.asyncio
    async def test_approve_agent_without_name(self) -> None:
        client, transport = _make_client()
        await client.approve_agent(AGENT)
        (_, body), = transport.requests
        assert body["action"]["agentName"] == ""
        assert body["action"]["agentAddress"] == AGENT.lower()

    @pytest.mark.asyncio
    async def test_local_key_chain_id_differs_from_wallet_chain(self) -> None:
        client, transport = _make_client()
        await client.usd_send(AGENT, "1")
        (_, body), = transport.requests
        assert await get_wallet_chain_id(TEST_PRIVATE_KEY) == "0x1"
        assert body["action"]["signatureChainId"] == "0x66eee"

    @pytest.mark.asyncio
    async def test_explicit_signature_chain_id(self) -> None:
        client, transport = _make_client(signature_chain_id="0xa4b1")
        await client.usd_send("0x01", "1")
        (_, body), = transport.requests
        assert body["action"]["signatureChainId"] == "0xa4b1"

    @pytest.mark.asyncio
    async def test_signature_chain_id_from_connected_wallet(self) -> None:
        class _Account:
            async def sign_typed_data(self, params: dict[str, Any]) -> str:
                from hl_sdk.eip712 import sign_typed_data_with_private_key

                types = {k: v for k, v in params["types"].items() if k != "EIP712Domain"}
                return sign_typed_data_with_private_key(
                    TEST_PRIVATE_KEY, params["domain"], types, params["primaryType"], params["message"],
                ).to_hex()

            async def get_addresses(self) -> list[str]:
                return [TEST_ADDRESS]

            async def get_chain_id(self) -> int:
                return 42161

        transport = _FakeTransport()
        client = ExchangeClient(_Account(), transport=transport, nonce_provider=_Counter())  # type: ignore[arg-type]
        await client.usd_send("0x01", "1")
        (_, body), = transport.requests
        assert body["action"]["signatureChainId"] == "0xa4b1"


# ---------------------------------------------------------------------------
# Response validation
# ---------------------------------------------------------------------------

class TestValidateResponse:
    def test_ok_passthrough(self) -> None:
        assert validate_response(OK_ORDER) is OK_ORDER

    def test_top_level_error(self) -> None:
        with pytest.raises(ApiRequestError, match="Insufficient margin") as exc_info:
            validate_response({"status": "err", "response": "Insufficient margin"})
        assert exc_info.value.response["status"] == "err"

    def test_order_status_errors_listed(self) -> None:
        response = {
            "status": "ok",
            "response": {"type": "order", "data": {"statuses": [
                {"resting": {"oid": 1}},
                {"error": "Price too far from oracle"},
            ]}},
        }
        with pytest.raises(ApiRequestError, match="Order 1: Price too far from oracle"):
            validate_response(response)

    def test_cancel_status_error(self) -> None:
        response = {
            "status": "ok",
            "response": {"type": "cancel", "data": {"statuses": [{"error": "Order was never placed"}]}},
        }
        with pytest.raises(ApiRequestError, match="Order 0: Order was never placed"):
            validate_response(response)

    def test_twap_error(self) -> None:
        response = {
            "status": "ok",
            "response": {"type": "twapOrder", "data": {"status": {"error": "Invalid TWAP duration"}}},
        }
        with pytest.raises(ApiRequestError, match="Invalid TWAP duration"):
            validate_response(response)

    def test_default_response_passes(self) -> None:
        response = {"status": "ok", "response": {"type": "default"}}
        assert validate_response(response) is response

    def test_is_api_error(self) -> None:
        err = ApiRequestError({"status": "err", "response": "nope"})
        assert isinstance(err, HyperliquidAPIError)
        assert err.path == "/exchange"

    @pytest.mark.asyncio
    async def test_client_raises_on_error_response(self) -> None:
        client, _ = _make_client(response={"status": "err", "response": "User or API Wallet does not exist"})
        with pytest.raises(ApiRequestError, match="does not exist"):
            await client.cancel([{"a": 0, "o": 1}])


# ---------------------------------------------------------------------------
# Nonces
# ---------------------------------------------------------------------------

class TestNonces:
    def test_nonce_manager_strictly_increasing(self) -> None:
        manager = NonceManager()
        nonces = [manager() for _ in range(1000)]
        assert all(b > a for a, b in zip(nonces, nonces[1:]))

    def test_nonce_manager_is_millisecond_timestamp(self) -> None:
        import time

        before = int(time.time() * 1000)
        nonce = NonceManager()()
        assert before <= nonce <= before + 60_000

    def test_nonce_manager_catches_up_after_clock_jump(self, monkeypatch: pytest.MonkeyPatch) -> None:
        import hl_sdk.exchange as exchange_module

        manager = NonceManager()
        monkeypatch.setattr(exchange_module.time, "time", lambda: 2_000_000.0)
        first = manager()
        monkeypatch.setattr(exchange_module.time, "time", lambda: 1_000_000.0)
        assert manager() == first + 1

    @pytest.mark.asyncio
    async def test_concurrent_submissions_in_nonce_order(self) -> None:
        client, transport = _make_client()
        await asyncio.gather(*(client.cancel([{"a": 0, "o": i}]) for i in range(10)))

        nonces = [body["nonce"] for _, body in transport.requests]
        assert nonces == sorted(nonces)
        assert len(set(nonces)) == 10

    @pytest.mark.asyncio
    async def test_action_hash_uses_posted_nonce(self) -> None:
        client, transport = _make_client(nonce_provider=lambda: 1234567890)
        await client.order([_order(p="30000")])
        (_, body), = transport.requests
        assert create_l1_action_hash(body["action"], body["nonce"]) == (
            "0x25367e0dba84351148288c2233cd6130ed6cec5967ded0c0b7334f36f957cc90"
        )


# ---------------------------------------------------------------------------
# Multi-sig
# ---------------------------------------------------------------------------

def _trimmed(sig: Signature) -> dict[str, Any]:
    return {
        "r": re.sub(r"^0x0+", "0x", sig.r),
        "s": re.sub(r"^0x0+", "0x", sig.s),
        "v": sig.v,
    }


class TestMultiSig:
    def test_single_wallet_is_not_multi_sig(self) -> None:
        client, _ = _make_client()
        assert not client.is_multi_sig

    def test_wallet_list_requires_multi_sig_user(self) -> None:
        with pytest.raises(ValueError, match="multi_sig_user"):
            ExchangeClient([TEST_PRIVATE_KEY, COSIGNER_KEY], transport=_FakeTransport())  # type: ignore[arg-type]

    def test_empty_wallet_list_rejected(self) -> None:
        with pytest.raises(ValueError):
            ExchangeClient([], transport=_FakeTransport(), multi_sig_user=MULTI_SIG_USER)  # type: ignore[arg-type]

    def test_every_signer_validated(self) -> None:
        with pytest.raises(AbstractWalletError):
            ExchangeClient(
                [TEST_PRIVATE_KEY, object()],
                transport=_FakeTransport(),  # type: ignore[arg-type]
                multi_sig_user=MULTI_SIG_USER,
            )

    @pytest.mark.asyncio
    async def test_leader_is_first_wallet(self) -> None:
        client, _ = _make_multi_sig_client()
        assert client.is_multi_sig
        assert await client.address() == TEST_ADDRESS.lower()

    @pytest.mark.asyncio
    async def test_l1_envelope(self) -> None:
        client, transport = _make_multi_sig_client(nonce_provider=lambda: 1234567890)
        await client.schedule_cancel(time=1234567890)

        (_, body), = transport.requests
        action = body["action"]
        assert list(action) == ["type", "signatureChainId", "signatures", "payload"]
        assert action["type"] == "multiSig"
        assert action["signatureChainId"] == "0x66eee"
        assert action["payload"] == {
            "multiSigUser": MULTI_SIG_USER.lower(),
            "outerSigner":  TEST_ADDRESS.lower(),
            "action":       {"type": "scheduleCancel", "time": 1234567890},
        }
        assert body["nonce"] == 1234567890
        assert "vaultAddress" not in body

    @pytest.mark.asyncio
    async def test_l1_signer_signatures(self) -> None:
        client, transport = _make_multi_sig_client(nonce_provider=lambda: 1234567890)
        await client.schedule_cancel(time=1234567890)

        (_, body), = transport.requests
        inner = [MULTI_SIG_USER.lower(), TEST_ADDRESS.lower(), {"type": "scheduleCancel", "time": 1234567890}]
        expected = [
            _trimmed(await sign_l1_action(key, inner, 1234567890))
            for key in (TEST_PRIVATE_KEY, COSIGNER_KEY)
        ]
        assert body["action"]["signatures"] == expected

    @pytest.mark.asyncio
    async def test_l1_leader_signs_envelope(self) -> None:
        client, transport = _make_multi_sig_client(nonce_provider=lambda: 1234567890)
        await client.schedule_cancel(time=1234567890)

        (_, body), = transport.requests
        envelope = {k: v for k, v in body["action"].items() if k != "type"}
        message = {
            "hyperliquidChain":   "Mainnet",
            "multiSigActionHash": create_l1_action_hash(envelope, 1234567890),
            "nonce":              1234567890,
        }
        signer = recover_signer(
            user_signed_domain("0x66eee"),
            MULTI_SIG_TYPES,
            "HyperliquidTransaction:SendMultiSig",
            message,
            Signature(**body["signature"]),
        )
        assert signer == TEST_ADDRESS

    @pytest.mark.asyncio
    async def test_l1_vault_and_expiry(self) -> None:
        client, transport = _make_multi_sig_client(
            HyperliquidEnv.TESTNET,
            nonce_provider=lambda: 1234567890,
            vault_address=VAULT,
            expires_after=1234567890,
        )
        await client.cancel([{"a": 0, "o": 1}])

        (_, body), = transport.requests
        assert body["vaultAddress"] == VAULT
        assert body["expiresAfter"] == 1234567890

        inner = [MULTI_SIG_USER.lower(), TEST_ADDRESS.lower(), {"type": "cancel", "cancels": [{"a": 0, "o": 1}]}]
        cosigner = await sign_l1_action(
            COSIGNER_KEY, inner, 1234567890,
            is_testnet=True, vault_address=VAULT, expires_after=1234567890,
        )
        assert body["action"]["signatures"][1] == _trimmed(cosigner)

        outer = await sign_multi_sig_action(
            TEST_PRIVATE_KEY, body["action"], 1234567890,
            is_testnet=True, vault_address=VAULT, expires_after=1234567890,
        )
        assert body["signature"] == outer.model_dump()

    @pytest.mark.asyncio
    async def test_user_signed_envelope(self) -> None:
        client, transport = _make_multi_sig_client(nonce_provider=lambda: 1234567890)
        await client.usd_send(AGENT, "1")

        (_, body), = transport.requests
        assert set(body) == {"action", "nonce", "signature"}

        inner_action = {
            "type":             "usdSend",
            "signatureChainId": "0x66eee",
            "hyperliquidChain": "Mainnet",
            "destination":      AGENT.lower(),
            "amount":           "1",
            "time":             1234567890,
        }
        payload = body["action"]["payload"]
        assert payload["action"] == inner_action
        assert list(payload["action"]) == list(inner_action)

        types = USER_SIGNED_ACTION_TYPES["usdSend"]
        signed = {"payloadMultiSigUser": MULTI_SIG_USER.lower(), "outerSigner": TEST_ADDRESS.lower(), **inner_action}
        expected = [
            _trimmed(await sign_user_signed_action(key, signed, types))
            for key in (TEST_PRIVATE_KEY, COSIGNER_KEY)
        ]
        assert body["action"]["signatures"] == expected

        outer = await sign_multi_sig_action(TEST_PRIVATE_KEY, body["action"], 1234567890)
        assert body["signature"] == outer.model_dump()

    @pytest.mark.asyncio
    async def test_user_signed_cosigner_signs_multi_sig_fields(self) -> None:
        client, transport = _make_multi_sig_client(nonce_provider=lambda: 1234567890)
        await client.usd_send(AGENT, "1")

        (_, body), = transport.requests
        inner_action = body["action"]["payload"]["action"]
        types = USER_SIGNED_ACTION_TYPES["usdSend"]
        single = await sign_user_signed_action(COSIGNER_KEY, inner_action, types)
        assert body["action"]["signatures"][1] != _trimmed(single)

    @pytest.mark.asyncio
    async def test_nonce_lock_keyed_on_leader(self) -> None:
        client, transport = _make_multi_sig_client()
        await asyncio.gather(*(client.cancel([{"a": 0, "o": i}]) for i in range(5)))

        nonces = [body["nonce"] for _, body in transport.requests]
        assert nonces == sorted(nonces)
