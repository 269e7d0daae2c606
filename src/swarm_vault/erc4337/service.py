"""Bundler service port and its ERC-4337 implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from eth_abi import decode, encode
from web3 import Web3

from ..exceptions import RPCError
from ..models import ResolvedCall
from ..rpc_client import ChainRPCClient
from .bundler_client import BundlerClient
from .paymaster_client import PaymasterClient
from .user_operation import DUMMY_SIGNATURE, UserOperation, zero_hex

logger = logging.getLogger(__name__)

GET_NONCE_SELECTOR = bytes(Web3.keccak(text="getNonce(address,uint192)")[:4])


class OperationState(str, Enum):
    PENDING = "pending"  # not yet included
    INCLUDED = "included"  # included and executed successfully
    REVERTED = "reverted"  # included but the inner call reverted


@dataclass(frozen=True)
class OperationStatus:
    state: OperationState
    chain_tx_hash: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class PreparedOperation:
    """An unsigned operation and its hash.

    Accounts validate an EIP-191 signature over ``operation_hash``.
    """
    sender: str
    operation: Any
    operation_hash: bytes


class BundlerService(ABC):
    """Port for building, submitting and tracking account operations."""

    @abstractmethod
    async def prepare_operation(
        self,
        sender: str,
        calls: Sequence[ResolvedCall],
    ) -> PreparedOperation:
        """Build an unsigned operation executing ``calls`` from ``sender``."""

    @abstractmethod
    async def submit(self, prepared: PreparedOperation, signature: str) -> str:
        """Submit the signed operation and return its external handle."""

    @abstractmethod
    async def get_status(self, handle: str) -> OperationStatus: ...


class ERC4337Bundler(BundlerService):
    """Submits user operations for already-deployed smart accounts.

    Gas limits come from the bundler's estimate; fees from the chain RPC.
    When a paymaster is configured every operation is sponsored.
    """

    def __init__(
        self,
        bundler: BundlerClient,
        rpc: ChainRPCClient,
        entrypoint: str,
        chain_id: int,
        paymaster: Optional[PaymasterClient] = None,
    ):
        self._bundler = bundler
        self._rpc = rpc
        self._entrypoint = entrypoint
        self._chain_id = chain_id
        self._paymaster = paymaster

    async def _get_nonce(self, sender: str) -> int:
        data = GET_NONCE_SELECTOR + encode(
            ["address", "uint192"], [Web3.to_checksum_address(sender), 0]
        )
        result = await self._rpc.call(self._entrypoint, "0x" + data.hex())
        raw = bytes.fromhex((result or "0x").removeprefix("0x"))
        if len(raw) < 32:
            raise RPCError("eth_call", f"getNonce returned {result!r}")
        (nonce,) = decode(["uint256"], raw[:32])
        return nonce

    async def prepare_operation(
        self,
        sender: str,
        calls: Sequence[ResolvedCall],
    ) -> PreparedOperation:
        nonce = await self._get_nonce(sender)
        gas_price = await self._rpc.get_gas_price()
        priority_fee = await self._rpc.get_max_priority_fee()

        user_op = UserOperation(
            sender=Web3.to_checksum_address(sender),
            nonce=nonce,
            init_code=zero_hex(),
            call_data=UserOperation.encode_calls(calls),
            call_gas_limit=0,
            verification_gas_limit=0,
            pre_verification_gas=0,
            max_fee_per_gas=gas_price + priority_fee,
            max_priority_fee_per_gas=priority_fee,
            paymaster_and_data=zero_hex(),
            signature=DUMMY_SIGNATURE,
        )

        estimate = await self._bundler.estimate_user_operation_gas(user_op, self._entrypoint)
        user_op = user_op.apply_gas(estimate)

        if self._paymaster is not None:
            sponsored = await self._paymaster.sponsor_user_operation(user_op, self._entrypoint)
            user_op = user_op.apply_gas(sponsored.gas_fields)
            user_op.paymaster_and_data = sponsored.paymaster_and_data

        user_op = user_op.with_signature(zero_hex())
        return PreparedOperation(
            sender=user_op.sender,
            operation=user_op,
            operation_hash=user_op.hash(self._entrypoint, self._chain_id),
        )

    async def submit(self, prepared: PreparedOperation, signature: str) -> str:
        user_op: UserOperation = prepared.operation.with_signature(signature)
        handle = await self._bundler.send_user_operation(user_op, self._entrypoint)
        logger.info("Submitted user operation %s for %s", handle, prepared.sender)
        return handle

    async def get_status(self, handle: str) -> OperationStatus:
        receipt = await self._bundler.get_user_operation_receipt(handle)
        if receipt is None:
            return OperationStatus(OperationState.PENDING)

        tx_hash = (receipt.get("receipt") or {}).get("transactionHash")
        if receipt.get("success"):
            return OperationStatus(OperationState.INCLUDED, chain_tx_hash=tx_hash)

        reason = receipt.get("reason") or "execution reverted"
        return OperationStatus(
            OperationState.REVERTED,
            chain_tx_hash=tx_hash,
            error=f"User operation reverted: {reason}",
        )

    async def close(self) -> None:
        await self._bundler.close()
        if self._paymaster is not None:
            await self._paymaster.close()
