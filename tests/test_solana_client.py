import json
from types import SimpleNamespace

import httpx
import pytest
from solders.pubkey import Pubkey
from solders.signature import Signature

from fluida.errors import ChainRPCError, ParseError
from fluida.services.solana import (
    NETWORK_URLS,
    SolanaChainClient,
    SolanaNetwork,
    transaction_from_json,
)

from conftest import RECEIVER_A, TOKEN_MINT

ADDRESS = str(Pubkey.default())
SIGNATURE = str(Signature.default())


def rpc_result(pre_amount: str = "0", post_amount: str = "100000000", meta: bool = True) -> dict:
    result = {"slot": 250_000_000, "blockTime": 1_700_000_000, "transaction": {}}
    if meta:
        result["meta"] = {
            "err": None,
            "preTokenBalances": [
                {
                    "accountIndex": 2,
                    "mint": TOKEN_MINT,
                    "owner": RECEIVER_A,
                    "uiTokenAmount": {"amount": pre_amount, "decimals": 6, "uiAmountString": "0"},
                }
            ],
            "postTokenBalances": [
                {
                    "accountIndex": 2,
                    "mint": TOKEN_MINT,
                    "owner": RECEIVER_A,
                    "uiTokenAmount": {"amount": post_amount, "decimals": 6, "uiAmountString": "100"},
                }
            ],
        }
    else:
        result["meta"] = None
    return result


class FakeResponse:
    def __init__(self, result):
        self._payload = {"jsonrpc": "2.0", "result": result, "id": 1}

    def to_json(self) -> str:
        return json.dumps(self._payload)


class FakeAsyncClient:
    def __init__(self, *, result=None, signatures=(), error: Exception | None = None):
        self.result = result
        self.signatures = list(signatures)
        self.error = error
        self.calls = []
        self.closed = False

    async def get_signatures_for_address(self, pubkey, limit=None, commitment=None):
        self.calls.append(("getSignaturesForAddress", str(pubkey), limit))
        if self.error:
            raise self.error
        return SimpleNamespace(value=self.signatures)

    async def get_transaction(self, sig, encoding=None, commitment=None, max_supported_transaction_version=None):
        self.calls.append(("getTransaction", str(sig), encoding))
        if self.error:
            raise self.error
        return FakeResponse(self.result)

    async def close(self):
        self.closed = True


def client_with(fake: FakeAsyncClient) -> SolanaChainClient:
    client = SolanaChainClient(network=SolanaNetwork.DEVNET)
    client._client = fake
    return client


def test_transaction_from_json_parses_token_balances():
    tx = transaction_from_json("sig-1", rpc_result())

    assert tx.signature == "sig-1"
    assert tx.slot == 250_000_000
    assert tx.block_time == 1_700_000_000
    post = tx.meta.post_token_balances[0]
    assert post.account_index == 2
    assert post.mint == TOKEN_MINT
    assert post.owner == RECEIVER_A
    assert post.amount == "100000000"
    assert post.decimals == 6


def test_transaction_from_json_handles_missing_result_and_meta():
    assert transaction_from_json("sig-1", None) is None
    assert transaction_from_json("sig-1", rpc_result(meta=False)).meta is None


def test_transaction_from_json_rejects_malformed_balances():
    result = rpc_result()
    del result["meta"]["postTokenBalances"][0]["accountIndex"]
    with pytest.raises(ParseError):
        transaction_from_json("sig-1", result)


def test_network_urls():
    assert SolanaChainClient(network=SolanaNetwork.MAINNET).url == NETWORK_URLS[SolanaNetwork.MAINNET]
    assert SolanaChainClient(custom_url="http://localhost:8899").url == "http://localhost:8899"


@pytest.mark.anyio
async def test_invalid_address_raises_parse_error_without_rpc_call():
    fake = FakeAsyncClient()
    client = client_with(fake)

    with pytest.raises(ParseError):
        await client.get_signatures_for_address("not-a-valid-address", 10)

    assert fake.calls == []


@pytest.mark.anyio
async def test_get_signatures_maps_results():
    fake = FakeAsyncClient(
        signatures=[
            SimpleNamespace(signature=Signature.default(), err=None, slot=10, block_time=1_700_000_000),
            SimpleNamespace(signature=Signature.default(), err={"InstructionError": [0, "Custom"]}, slot=9, block_time=None),
        ]
    )
    client = client_with(fake)

    infos = await client.get_signatures_for_address(ADDRESS, 5)

    assert fake.calls == [("getSignaturesForAddress", ADDRESS, 5)]
    assert [info.signature for info in infos] == [SIGNATURE, SIGNATURE]
    assert [info.failed for info in infos] == [False, True]
    assert infos[0].slot == 10


@pytest.mark.anyio
async def test_get_transaction_decodes_json_response():
    client = client_with(FakeAsyncClient(result=rpc_result(post_amount="2500000")))

    tx = await client.get_transaction(SIGNATURE)

    assert tx.signature == SIGNATURE
    assert tx.meta.post_token_balances[0].amount == "2500000"


@pytest.mark.anyio
async def test_get_transaction_not_found_returns_none():
    client = client_with(FakeAsyncClient(result=None))
    assert await client.get_transaction(SIGNATURE) is None


@pytest.mark.anyio
async def test_transport_errors_become_chain_rpc_errors():
    client = client_with(FakeAsyncClient(error=httpx.ConnectError("connection refused")))

    with pytest.raises(ChainRPCError):
        await client.get_signatures_for_address(ADDRESS, 10)
    with pytest.raises(ChainRPCError):
        await client.get_transaction(SIGNATURE)


@pytest.mark.anyio
async def test_close_releases_client():
    fake = FakeAsyncClient()
    client = client_with(fake)

    await client.close()
    await client.close()

    assert fake.closed
    assert client._client is None
