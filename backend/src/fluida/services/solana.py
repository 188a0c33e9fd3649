"""
Solana RPC integration for payment detection.

Handles:
- Recent signature lookup for a receiving address
- Transaction fetch with token balance metadata
- Translation of RPC payloads into domain records

Uses solana-py's AsyncClient so polling never blocks the API event loop.
"""

import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solders.pubkey import Pubkey
from solders.signature import Signature

from fluida.domain.models import SignatureInfo, TokenBalance, Transaction, TransactionMeta
from fluida.errors import ChainRPCError, ParseError

logger = logging.getLogger(__name__)


class SolanaNetwork(Enum):
    """Supported Solana clusters."""
    MAINNET = "mainnet"
    TESTNET = "testnet"
    DEVNET = "devnet"


# Public JSON-RPC endpoints (rate limited; use a dedicated provider in production)
NETWORK_URLS = {
    SolanaNetwork.MAINNET: "https://api.mainnet-beta.solana.com",
    SolanaNetwork.TESTNET: "https://api.testnet.solana.com",
    SolanaNetwork.DEVNET: "https://api.devnet.solana.com",
}

_RPC_ERRORS = (SolanaRpcException, RPCException, httpx.HTTPError)


class ChainClient(ABC):
    """Read-only view of the chain needed by the payment watcher."""

    @abstractmethod
    async def get_signatures_for_address(self, address: str, limit: int) -> list[SignatureInfo]:
        """Return up to ``limit`` most recent signatures, newest first."""
        pass

    @abstractmethod
    async def get_transaction(self, signature: str) -> Transaction | None:
        """Return the transaction, or None if the node cannot locate it."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None


def parse_pubkey(address: str) -> Pubkey:
    """Parse a base58 account address."""
    try:
        return Pubkey.from_string(address)
    except ValueError as e:
        raise ParseError(f"Invalid Solana address {address!r}: {e}") from e


def parse_signature(signature: str) -> Signature:
    """Parse a base58 transaction signature."""
    try:
        return Signature.from_string(signature)
    except ValueError as e:
        raise ParseError(f"Invalid transaction signature {signature!r}: {e}") from e


def _parse_token_balances(entries: list[dict[str, Any]] | None) -> list[TokenBalance]:
    balances = []
    for entry in entries or []:
        ui_amount = entry.get("uiTokenAmount") or {}
        balances.append(
            TokenBalance(
                account_index=int(entry["accountIndex"]),
                mint=entry.get("mint", ""),
                owner=entry.get("owner"),
                amount=str(ui_amount.get("amount", "0")),
                decimals=int(ui_amount.get("decimals", 0)),
            )
        )
    return balances


def transaction_from_json(signature: str, result: dict[str, Any] | None) -> Transaction | None:
    """
    Build a domain Transaction from a ``getTransaction`` JSON result.

    Args:
        signature: Signature the transaction was fetched by
        result: The ``result`` member of the RPC response (None if not found)
    """
    if result is None:
        return None

    meta_json = result.get("meta")
    meta = None
    if meta_json is not None:
        try:
            meta = TransactionMeta(
                pre_token_balances=_parse_token_balances(meta_json.get("preTokenBalances")),
                post_token_balances=_parse_token_balances(meta_json.get("postTokenBalances")),
                err=meta_json.get("err"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(f"Malformed token balances in {signature}: {e}") from e

    return Transaction(
        signature=signature,
        meta=meta,
        slot=result.get("slot"),
        block_time=result.get("blockTime"),
    )


class SolanaChainClient(ChainClient):
    """
    Chain client backed by a Solana JSON-RPC node.

    Example:
        client = SolanaChainClient(network=SolanaNetwork.DEVNET)
        sigs = await client.get_signatures_for_address("8JQx...", limit=10)
        tx = await client.get_transaction(sigs[0].signature)
        await client.close()
    """

    def __init__(
        self,
        network: SolanaNetwork = SolanaNetwork.DEVNET,
        custom_url: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        """
        Initialize Solana client.

        Args:
            network: Solana cluster to connect to
            custom_url: Override network URL (dedicated RPC provider, tests)
            timeout: Per-request HTTP timeout in seconds
        """
        self.network = network
        self.url = custom_url or NETWORK_URLS[network]
        self.timeout = timeout
        self._client: AsyncClient | None = None

    def _get_client(self) -> AsyncClient:
        """Get or create the async RPC client."""
        if self._client is None:
            self._client = AsyncClient(self.url, commitment=Confirmed, timeout=self.timeout)
        return self._client

    async def get_signatures_for_address(self, address: str, limit: int) -> list[SignatureInfo]:
        pubkey = parse_pubkey(address)
        try:
            response = await self._get_client().get_signatures_for_address(
                pubkey,
                limit=limit,
                commitment=Confirmed,
            )
        except _RPC_ERRORS as e:
            raise ChainRPCError(f"getSignaturesForAddress failed for {address}: {e}") from e

        return [
            SignatureInfo(
                signature=str(item.signature),
                err=item.err,
                slot=item.slot,
                block_time=item.block_time,
            )
            for item in response.value or []
        ]

    async def get_transaction(self, signature: str) -> Transaction | None:
        sig = parse_signature(signature)
        try:
            response = await self._get_client().get_transaction(
                sig,
                encoding="json",
                commitment=Confirmed,
                max_supported_transaction_version=0,
            )
        except _RPC_ERRORS as e:
            raise ChainRPCError(f"getTransaction failed for {signature}: {e}") from e

        payload = json.loads(response.to_json())
        return transaction_from_json(signature, payload.get("result"))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("Solana RPC client closed")
