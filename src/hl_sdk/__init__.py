"""
hl-sdk – Python SDK for the Hyperliquid exchange.

Provides:
  - Unified façade                     (client.py   → HyperliquidClient)
  - EIP-712 hashing / key signing      (eip712.py   → hash_typed_data)
  - Wallet adapters                    (wallet.py   → sign_typed_data)
  - Action canonicalisation            (sorter.py   → sort_action)
  - L1 / user-signed / multi-sig       (signing.py  → sign_l1_action, ...)
  - Typed Pydantic v2 models           (types.py)
  - Sync / async Info clients          (rest.py     → InfoClient, AsyncInfoClient)
  - Async Exchange client              (exchange.py → ExchangeClient)
  - Async WebSocket client             (ws.py       → HyperliquidWebSocketClient)

Quickstart
----------
    import asyncio
    from hl_sdk import HyperliquidClient, HyperliquidEnv

    async def main() -> None:
        async with HyperliquidClient(wallet="0x...", env=HyperliquidEnv.TESTNET) as client:
            mids = await client.info.all_mids()
            await client.exchange.cancel([{"a": 0, "o": 123456}])

    asyncio.run(main())
"""

from .types import (
    # Environment
    HyperliquidEnv,
    DEFAULT_SIGNATURE_CHAIN_ID,
    # Signature
    Signature,
    # Market data
    L2Level,
    L2Book,
    WsTrade,
    AssetInfo,
    Meta,
    # Account
    OpenOrder,
    UserFill,
    MarginSummary,
    Position,
    AssetPosition,
    ClearinghouseState,
)
from .eip712 import (
    encode_type,
    encode_value,
    find_type_dependencies,
    hash_struct,
    hash_typed_data,
    is_valid_private_key,
    private_key_to_address,
    sign_typed_data_with_private_key,
)
from .wallet import (
    AbstractWalletError,
    classify_wallet,
    get_wallet_address,
    get_wallet_chain_id,
    recovery_id_to_v,
    sign_typed_data,
    split_signature,
)
from .sorter import ACTION_SORTER, USER_SIGNED_ACTION_TYPES, format_decimal, sort_action
from .signing import (
    create_l1_action_hash,
    recover_signer,
    sign_l1_action,
    sign_multi_sig_action,
    sign_user_signed_action,
)
from .rest import AsyncInfoClient, HyperliquidAPIError, InfoClient
from .exchange import ApiRequestError, ExchangeClient, NonceManager, NonceProvider
from .ws import HyperliquidWebSocketClient, make_ws_client
from .client import HyperliquidClient

__all__ = [
    # Environment
    "HyperliquidEnv",
    "DEFAULT_SIGNATURE_CHAIN_ID",
    # Models
    "Signature",
    "L2Level",
    "L2Book",
    "WsTrade",
    "AssetInfo",
    "Meta",
    "OpenOrder",
    "UserFill",
    "MarginSummary",
    "Position",
    "AssetPosition",
    "ClearinghouseState",
    # EIP-712
    "encode_type",
    "encode_value",
    "find_type_dependencies",
    "hash_struct",
    "hash_typed_data",
    "is_valid_private_key",
    "private_key_to_address",
    "sign_typed_data_with_private_key",
    # Wallets
    "AbstractWalletError",
    "classify_wallet",
    "get_wallet_address",
    "get_wallet_chain_id",
    "recovery_id_to_v",
    "sign_typed_data",
    "split_signature",
    # Actions
    "ACTION_SORTER",
    "USER_SIGNED_ACTION_TYPES",
    "format_decimal",
    "sort_action",
    # Signing
    "create_l1_action_hash",
    "recover_signer",
    "sign_l1_action",
    "sign_multi_sig_action",
    "sign_user_signed_action",
    # REST
    "InfoClient",
    "AsyncInfoClient",
    "HyperliquidAPIError",
    # Exchange
    "ExchangeClient",
    "ApiRequestError",
    "NonceManager",
    "NonceProvider",
    # WebSocket
    "HyperliquidWebSocketClient",
    "make_ws_client",
    # Unified façade
    "HyperliquidClient",
]

__version__ = "0.1.0"
