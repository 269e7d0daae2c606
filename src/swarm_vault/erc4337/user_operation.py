"""UserOperation primitives for ERC-4337 (EntryPoint v0.6 layout)."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Sequence

from eth_abi import encode
from web3 import Web3

from ..models import ResolvedCall

# 65-byte placeholder accepted by ECDSA validators during gas estimation
DUMMY_SIGNATURE = "0x" + "ff" * 64 + "1c"


def zero_hex() -> str:
    return "0x"


def _to_hex_int(value: int) -> str:
    return hex(max(0, int(value)))


def _from_hex_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def _hex_bytes(value: str) -> bytes:
    return bytes.fromhex(value.removeprefix("0x"))


@dataclass
class UserOperation:
    sender: str
    nonce: int
    init_code: str
    call_data: str
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: str
    signature: str

    @staticmethod
    def encode_execute(to: str, value: int, data: bytes) -> str:
        """Encode account execute() calldata for a single call."""
        selector = bytes(Web3.keccak(text="execute(address,uint256,bytes)")[:4])
        encoded = encode(
            ["address", "uint256", "bytes"],
            [Web3.to_checksum_address(to), value, data],
        )
        return "0x" + (selector + encoded).hex()

    @staticmethod
    def encode_execute_batch(calls: Sequence[ResolvedCall]) -> str:
        """Encode account executeBatch() calldata; calls run in order, atomically."""
        selector = bytes(Web3.keccak(text="executeBatch(address[],uint256[],bytes[])")[:4])
        encoded = encode(
            ["address[]", "uint256[]", "bytes[]"],
            [
                [Web3.to_checksum_address(c.to) for c in calls],
                [c.value for c in calls],
                [_hex_bytes(c.data) for c in calls],
            ],
        )
        return "0x" + (selector + encoded).hex()

    @classmethod
    def encode_calls(cls, calls: Sequence[ResolvedCall]) -> str:
        if not calls:
            raise ValueError("A user operation needs at least one call")
        if len(calls) == 1:
            call = calls[0]
            return cls.encode_execute(call.to, call.value, _hex_bytes(call.data))
        return cls.encode_execute_batch(calls)

    def with_signature(self, signature: str) -> "UserOperation":
        return replace(self, signature=signature)

    def pack(self) -> bytes:
        """ABI-encoded operation with dynamic fields hashed, signature excluded."""
        return encode(
            [
                "address", "uint256", "bytes32", "bytes32",
                "uint256", "uint256", "uint256", "uint256", "uint256",
                "bytes32",
            ],
            [
                Web3.to_checksum_address(self.sender),
                self.nonce,
                Web3.keccak(_hex_bytes(self.init_code)),
                Web3.keccak(_hex_bytes(self.call_data)),
                self.call_gas_limit,
                self.verification_gas_limit,
                self.pre_verification_gas,
                self.max_fee_per_gas,
                self.max_priority_fee_per_gas,
                Web3.keccak(_hex_bytes(self.paymaster_and_data)),
            ],
        )

    def hash(self, entrypoint: str, chain_id: int) -> bytes:
        """The userOpHash the EntryPoint computes and the account validates."""
        inner = Web3.keccak(self.pack())
        return bytes(Web3.keccak(
            encode(
                ["bytes32", "address", "uint256"],
                [inner, Web3.to_checksum_address(entrypoint), chain_id],
            )
        ))

    def apply_gas(self, fields: dict[str, Any]) -> "UserOperation":
        """Copy with gas limits taken from a bundler or paymaster response."""
        return replace(
            self,
            call_gas_limit=_from_hex_int(fields.get("callGasLimit", self.call_gas_limit)),
            verification_gas_limit=_from_hex_int(
                fields.get("verificationGasLimit", self.verification_gas_limit)
            ),
            pre_verification_gas=_from_hex_int(
                fields.get("preVerificationGas", self.pre_verification_gas)
            ),
        )

    def to_rpc(self) -> dict[str, Any]:
        return {
            "sender": self.sender,
            "nonce": _to_hex_int(self.nonce),
            "initCode": self.init_code,
            "callData": self.call_data,
            "callGasLimit": _to_hex_int(self.call_gas_limit),
            "verificationGasLimit": _to_hex_int(self.verification_gas_limit),
            "preVerificationGas": _to_hex_int(self.pre_verification_gas),
            "maxFeePerGas": _to_hex_int(self.max_fee_per_gas),
            "maxPriorityFeePerGas": _to_hex_int(self.max_priority_fee_per_gas),
            "paymasterAndData": self.paymaster_and_data,
            "signature": self.signature,
        }
