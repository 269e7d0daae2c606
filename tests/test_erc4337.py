"""Tests for the ERC-4337 bundler integration over mocked JSON-RPC."""
from __future__ import annotations

import json

import httpx
import pytest
from eth_abi import decode, encode
from web3 import Web3

from swarm_vault.config import DEFAULT_ENTRYPOINT
from swarm_vault.erc4337 import (
    BundlerClient,
    BundlerConfig,
    ERC4337Bundler,
    PaymasterClient,
    PaymasterConfig,
)
from swarm_vault.erc4337.service import OperationState
from swarm_vault.erc4337.user_operation import UserOperation, zero_hex
from swarm_vault.exceptions import BundlerError
from swarm_vault.models import ResolvedCall
from swarm_vault.rpc_client import ChainRPCClient

from engine_fakes import RECIPIENT, TOKEN, WALLET_1

CHAIN_ID = 84532


def _sample_user_op(**overrides) -> UserOperation:
    fields = dict(
        sender=WALLET_1,
        nonce=1,
        init_code=zero_hex(),
        call_data="0xdeadbeef",
        call_gas_limit=200_000,
        verification_gas_limit=250_000,
        pre_verification_gas=60_000,
        max_fee_per_gas=2_000_000_000,
        max_priority_fee_per_gas=1_000_000_000,
        paymaster_and_data=zero_hex(),
        signature=zero_hex(),
    )
    fields.update(overrides)
    return UserOperation(**fields)


class FakeNode:
    """Answers chain, bundler and paymaster JSON-RPC methods."""

    def __init__(self):
        self.requests: list[dict] = []
        self.results = {
            "eth_call": "0x" + encode(["uint256"], [5]).hex(),
            "eth_gasPrice": hex(1_000_000_000),
            "eth_maxPriorityFeePerGas": hex(100_000_000),
            "eth_estimateUserOperationGas": {
                "callGasLimit": "0x1000",
                "verificationGasLimit": "0x2000",
                "preVerificationGas": "0x3000",
            },
            "pm_sponsorUserOperation": {"paymasterAndData": "0xabcd", "callGasLimit": "0x1100"},
            "eth_sendUserOperation": "0x" + "cd" * 32,
            "eth_getUserOperationReceipt": None,
        }
        self.errors: dict[str, dict] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        method = body["method"]
        if method in self.errors:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": self.errors[method]})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": self.results[method]})

    def params(self, method: str) -> list:
        return [r["params"] for r in self.requests if r["method"] == method][-1]


@pytest.fixture
def node():
    return FakeNode()


@pytest.fixture
def http_client(node):
    return httpx.AsyncClient(transport=httpx.MockTransport(node))


def make_bundler(http_client, with_paymaster=False) -> ERC4337Bundler:
    paymaster = None
    if with_paymaster:
        paymaster = PaymasterClient(
            PaymasterConfig(url="https://pm.example", sponsorship_policy_id="sp_1"),
            http_client=http_client,
        )
    return ERC4337Bundler(
        BundlerClient(BundlerConfig(url="https://bundler.example"), http_client=http_client),
        ChainRPCClient("https://rpc.example", http_client=http_client),
        entrypoint=DEFAULT_ENTRYPOINT,
        chain_id=CHAIN_ID,
        paymaster=paymaster,
    )


class TestUserOperation:

    def test_hash_matches_entrypoint_layout(self):
        op = _sample_user_op()
        packed = encode(
            ["address", "uint256", "bytes32", "bytes32", "uint256", "uint256",
             "uint256", "uint256", "uint256", "bytes32"],
            [
                op.sender, op.nonce, Web3.keccak(b""), Web3.keccak(bytes.fromhex("deadbeef")),
                op.call_gas_limit, op.verification_gas_limit, op.pre_verification_gas,
                op.max_fee_per_gas, op.max_priority_fee_per_gas, Web3.keccak(b""),
            ],
        )
        expected = Web3.keccak(
            encode(["bytes32", "address", "uint256"], [Web3.keccak(packed), DEFAULT_ENTRYPOINT, CHAIN_ID])
        )
        assert op.hash(DEFAULT_ENTRYPOINT, CHAIN_ID) == bytes(expected)

    def test_hash_ignores_signature_but_binds_chain(self):
        op = _sample_user_op()
        assert op.hash(DEFAULT_ENTRYPOINT, CHAIN_ID) == op.with_signature("0x1234").hash(DEFAULT_ENTRYPOINT, CHAIN_ID)
        assert op.hash(DEFAULT_ENTRYPOINT, CHAIN_ID) != op.hash(DEFAULT_ENTRYPOINT, 1)

    def test_single_call_uses_execute(self):
        call_data = UserOperation.encode_calls([ResolvedCall(TOKEN, "0xa9059cbb", value=3)])
        assert call_data.startswith("0xb61d27f6")
        to, value, data = decode(["address", "uint256", "bytes"], bytes.fromhex(call_data[10:]))
        assert (to, value, data) == (TOKEN, 3, bytes.fromhex("a9059cbb"))

    def test_multiple_calls_use_execute_batch(self):
        calls = [ResolvedCall(TOKEN, "0x095ea7b3"), ResolvedCall(RECIPIENT, "0x", value=7)]
        call_data = UserOperation.encode_calls(calls)
        selector = Web3.keccak(text="executeBatch(address[],uint256[],bytes[])")[:4]
        assert bytes.fromhex(call_data[2:10]) == bytes(selector)
        targets, values, datas = decode(["address[]", "uint256[]", "bytes[]"], bytes.fromhex(call_data[10:]))
        assert list(targets) == [TOKEN, RECIPIENT]
        assert list(values) == [0, 7]
        assert list(datas) == [bytes.fromhex("095ea7b3"), b""]

    def test_no_calls(self):
        with pytest.raises(ValueError):
            UserOperation.encode_calls([])

    def test_rpc_form(self):
        payload = _sample_user_op().apply_gas({"callGasLimit": "0x10"}).to_rpc()
        assert payload["callGasLimit"] == "0x10"
        assert payload["nonce"] == "0x1"
        assert payload["verificationGasLimit"] == hex(250_000)


class TestERC4337Bundler:

    @pytest.mark.asyncio
    async def test_prepare_operation(self, node, http_client):
        bundler = make_bundler(http_client)
        prepared = await bundler.prepare_operation(WALLET_1, [ResolvedCall(TOKEN, "0xa9059cbb")])

        op = prepared.operation
        assert op.nonce == 5
        assert op.max_priority_fee_per_gas == 100_000_000
        assert op.max_fee_per_gas == 1_100_000_000
        assert (op.call_gas_limit, op.verification_gas_limit, op.pre_verification_gas) == (
            0x1000, 0x2000, 0x3000,
        )
        assert op.signature == "0x"
        assert prepared.operation_hash == op.hash(DEFAULT_ENTRYPOINT, CHAIN_ID)

        estimate_params = node.params("eth_estimateUserOperationGas")
        assert estimate_params[1] == DEFAULT_ENTRYPOINT
        assert len(estimate_params[0]["signature"]) == 132
        assert "pm_sponsorUserOperation" not in [r["method"] for r in node.requests]

    @pytest.mark.asyncio
    async def test_prepare_with_paymaster(self, node, http_client):
        bundler = make_bundler(http_client, with_paymaster=True)
        prepared = await bundler.prepare_operation(WALLET_1, [ResolvedCall(TOKEN, "0x")])

        assert prepared.operation.paymaster_and_data == "0xabcd"
        assert prepared.operation.call_gas_limit == 0x1100
        assert node.params("pm_sponsorUserOperation")[2] == {"sponsorshipPolicyId": "sp_1"}

    @pytest.mark.asyncio
    async def test_submit_attaches_signature(self, node, http_client):
        bundler = make_bundler(http_client)
        prepared = await bundler.prepare_operation(WALLET_1, [ResolvedCall(TOKEN, "0x")])
        handle = await bundler.submit(prepared, "0x" + "ee" * 65)

        assert handle == "0x" + "cd" * 32
        assert node.params("eth_sendUserOperation")[0]["signature"] == "0x" + "ee" * 65

    @pytest.mark.asyncio
    async def test_bundler_rejection(self, node, http_client):
        node.errors["eth_estimateUserOperationGas"] = {"code": -32500, "message": "AA21 didn't pay prefund"}
        bundler = make_bundler(http_client)
        with pytest.raises(BundlerError, match="AA21"):
            await bundler.prepare_operation(WALLET_1, [ResolvedCall(TOKEN, "0x")])

    @pytest.mark.asyncio
    async def test_status_pending(self, http_client):
        status = await make_bundler(http_client).get_status("0xop")
        assert status.state is OperationState.PENDING

    @pytest.mark.asyncio
    async def test_status_included(self, node, http_client):
        node.results["eth_getUserOperationReceipt"] = {
            "success": True,
            "receipt": {"transactionHash": "0xtx"},
        }
        status = await make_bundler(http_client).get_status("0xop")
        assert status.state is OperationState.INCLUDED
        assert status.chain_tx_hash == "0xtx"

    @pytest.mark.asyncio
    async def test_status_reverted(self, node, http_client):
        node.results["eth_getUserOperationReceipt"] = {
            "success": False,
            "reason": "ERC20: transfer amount exceeds balance",
            "receipt": {"transactionHash": "0xtx"},
        }
        status = await make_bundler(http_client).get_status("0xop")
        assert status.state is OperationState.REVERTED
        assert "exceeds balance" in status.error

