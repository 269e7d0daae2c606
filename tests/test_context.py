"""Tests for the JSON-RPC wallet context provider and chain client."""
from __future__ import annotations

import json
from unittest.mock import AsyncMock

import httpx
import pytest
from eth_abi import encode

from swarm_vault.cache import TTLCache
from swarm_vault.context import RPCWalletContextProvider, encode_balance_of
from swarm_vault.exceptions import ContextFetchError, RPCError
from swarm_vault.rpc_client import DEFAULT_PRIORITY_FEE_WEI, ChainRPCClient

from engine_fakes import TOKEN, WALLET_1, WALLET_2

OTHER_TOKEN = "0x4200000000000000000000000000000000000006"


def _word(value: int) -> str:
    return "0x" + encode(["uint256"], [value]).hex()


def make_rpc(token_balances=None):
    token_balances = {k.lower(): v for k, v in (token_balances or {}).items()}
    rpc = AsyncMock(spec=ChainRPCClient)
    rpc.get_balance.return_value = 10**18
    rpc.get_block_timestamp.return_value = 1_700_000_000

    async def call(to, data):
        if to.lower() not in token_balances:
            return "0x"
        return _word(token_balances[to.lower()])

    rpc.call.side_effect = call
    return rpc


class TestRPCWalletContextProvider:

    def test_balance_of_encoding(self):
        data = encode_balance_of(WALLET_1)
        assert data == "0x70a08231" + "0" * 24 + WALLET_1[2:]

    @pytest.mark.asyncio
    async def test_context(self):
        rpc = make_rpc({TOKEN: 500, OTHER_TOKEN: 7})
        provider = RPCWalletContextProvider(rpc)

        context = await provider.get_context(WALLET_1, [TOKEN, OTHER_TOKEN])

        assert context.wallet_address == WALLET_1
        assert context.native_balance == 10**18
        assert context.block_timestamp == 1_700_000_000
        assert context.token_balance(TOKEN) == 500
        assert context.token_balance(OTHER_TOKEN) == 7
        rpc.call.assert_any_await(TOKEN, encode_balance_of(WALLET_1))

    @pytest.mark.asyncio
    async def test_block_timestamp_shared_through_cache(self):
        rpc = make_rpc({TOKEN: 1})
        provider = RPCWalletContextProvider(rpc, cache=TTLCache(ttl_seconds=5))

        await provider.get_context(WALLET_1, [TOKEN])
        await provider.get_context(WALLET_2, [TOKEN])

        assert rpc.get_block_timestamp.await_count == 1
        assert rpc.get_balance.await_count == 2

    @pytest.mark.asyncio
    async def test_rpc_error_becomes_context_error(self):
        rpc = make_rpc()
        rpc.get_balance.side_effect = RPCError("eth_getBalance", "timeout")
        provider = RPCWalletContextProvider(rpc)

        with pytest.raises(ContextFetchError) as exc_info:
            await provider.get_context(WALLET_1, [])
        assert exc_info.value.details["wallet_address"] == WALLET_1

    @pytest.mark.asyncio
    async def test_empty_token_response_is_an_error(self):
        provider = RPCWalletContextProvider(make_rpc())
        with pytest.raises(ContextFetchError, match="balanceOf"):
            await provider.get_context(WALLET_1, [TOKEN])


class TestChainRPCClient:

    @staticmethod
    def client(handler) -> ChainRPCClient:
        return ChainRPCClient(
            "https://rpc.example",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

    @pytest.mark.asyncio
    async def test_hex_results(self):
        results = {
            "eth_chainId": "0x14a34",
            "eth_getBalance": "0xde0b6b3a7640000",
            "eth_getBlockByNumber": {"timestamp": "0x65"},
        }

        def handler(request):
            body = json.loads(request.content)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": results[body["method"]]})

        rpc = self.client(handler)
        assert await rpc.get_chain_id() == 84532
        assert await rpc.get_balance(WALLET_1) == 10**18
        assert await rpc.get_block_timestamp() == 101
        await rpc.close()

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        def handler(request):
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "boom"}})

        with pytest.raises(RPCError, match="boom"):
            await self.client(handler).get_gas_price()

    @pytest.mark.asyncio
    async def test_http_error(self):
        with pytest.raises(RPCError):
            await self.client(lambda request: httpx.Response(503)).get_balance(WALLET_1)

    @pytest.mark.asyncio
    async def test_priority_fee_fallback(self):
        def handler(request):
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "method not found"}})

        assert await self.client(handler).get_max_priority_fee() == DEFAULT_PRIORITY_FEE_WEI

    @pytest.mark.asyncio
    async def test_missing_block(self):
        def handler(request):
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": None})

        with pytest.raises(RPCError):
            await self.client(handler).get_block("0x999999")
