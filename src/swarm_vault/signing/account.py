"""Signer account backed by a delegated threshold-signing service.

The service only ever sees 32-byte hashes. This account does the hashing for
each signing surface (raw hash, EIP-191 message, EIP-712 typed data and
EIP-1559 / EIP-155 transactions) so the remote key can be used wherever a
local account would be.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Union

import rlp
from eth_account.messages import SignableMessage, encode_defunct, encode_typed_data
from web3 import Web3

from ..exceptions import SigningError
from .signature import RecoverableSignature, normalize_signature

logger = logging.getLogger(__name__)

HASH_LENGTH = 32


class ThresholdSigner(ABC):
    """Port for a remote signing service that signs raw 32-byte hashes."""

    @abstractmethod
    async def sign(self, message_hash: bytes, key_handle: str) -> Any:
        """Return the raw signature result for ``message_hash``.

        The result is passed through ``normalize_signature``; implementations
        raise SigningError when the service refuses or fails.
        """


def signable_hash(signable: SignableMessage) -> bytes:
    """keccak256 of an EIP-191 envelope."""
    return bytes(
        Web3.keccak(b"\x19" + signable.version + signable.header + signable.body)
    )


def _as_hash(message_hash: Union[bytes, str]) -> bytes:
    if isinstance(message_hash, str):
        try:
            message_hash = bytes.fromhex(message_hash.removeprefix("0x"))
        except ValueError:
            raise SigningError(f"Hash is not hex: {message_hash!r}") from None
    if len(message_hash) != HASH_LENGTH:
        raise SigningError(f"Hash must be {HASH_LENGTH} bytes, got {len(message_hash)}")
    return bytes(message_hash)


def _int_field(tx: Mapping[str, Any], key: str, default: Optional[int] = None) -> int:
    value = tx.get(key, default)
    if value is None:
        raise SigningError(f"Transaction is missing {key}")
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def _bytes_field(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return bytes.fromhex(str(value).removeprefix("0x"))


def _access_list(tx: Mapping[str, Any]) -> list:
    return [
        [
            _bytes_field(entry["address"]),
            [_bytes_field(key) for key in entry.get("storageKeys", [])],
        ]
        for entry in tx.get("accessList") or []
    ]


class DelegatedSigningAccount:
    """Account whose key lives in a threshold-signing service.

    Args:
        signer: Remote signer.
        key_handle: Key identifier understood by the signer (a PKP public key
            for Lit).
        address: Address of the key. When set, every signature is checked to
            recover to it.
    """

    def __init__(
        self,
        signer: ThresholdSigner,
        key_handle: str,
        address: Optional[str] = None,
    ):
        self._signer = signer
        self.key_handle = key_handle
        self.address = Web3.to_checksum_address(address) if address else None

    async def sign_hash(self, message_hash: Union[bytes, str]) -> RecoverableSignature:
        digest = _as_hash(message_hash)
        raw = await self._signer.sign(digest, self.key_handle)
        signature = normalize_signature(raw)

        if self.address:
            recovered = signature.recover_address(digest)
            if recovered != self.address:
                raise SigningError(
                    f"Signature recovers to {recovered}, expected {self.address}"
                )
        return signature

    async def sign_message(self, message: Union[str, bytes, SignableMessage]) -> str:
        """EIP-191 personal-sign; returns the 65-byte signature hex."""
        if isinstance(message, SignableMessage):
            signable = message
        elif isinstance(message, (bytes, bytearray)):
            signable = encode_defunct(primitive=bytes(message))
        else:
            signable = encode_defunct(text=message)
        signature = await self.sign_hash(signable_hash(signable))
        return signature.to_hex()

    async def sign_typed_data(self, full_message: dict[str, Any]) -> str:
        """EIP-712 typed data; returns the 65-byte signature hex."""
        signable = encode_typed_data(full_message=full_message)
        signature = await self.sign_hash(signable_hash(signable))
        return signature.to_hex()

    async def sign_transaction(self, tx: Mapping[str, Any]) -> str:
        """Sign a transaction dict and return the raw signed transaction hex.

        Transactions with ``maxFeePerGas`` are EIP-1559 (type 2); those with
        ``gasPrice`` are legacy with EIP-155 replay protection.
        """
        chain_id = _int_field(tx, "chainId")
        to = _bytes_field(tx.get("to"))
        data = _bytes_field(tx.get("data"))
        value = _int_field(tx, "value", 0)
        nonce = _int_field(tx, "nonce")
        gas = _int_field(tx, "gas")

        if "maxFeePerGas" in tx:
            fields = [
                chain_id,
                nonce,
                _int_field(tx, "maxPriorityFeePerGas"),
                _int_field(tx, "maxFeePerGas"),
                gas,
                to,
                value,
                data,
                _access_list(tx),
            ]
            # The hash to sign is keccak256(0x02 || rlp(fields))
            digest = bytes(Web3.keccak(b"\x02" + rlp.encode(fields)))
            signature = await self.sign_hash(digest)
            signed = rlp.encode(fields + [signature.recovery_id, signature.r, signature.s])
            logger.debug("Signed type-2 transaction via key %s", self.key_handle[:12])
            return "0x02" + signed.hex()

        if "gasPrice" in tx:
            fields = [nonce, _int_field(tx, "gasPrice"), gas, to, value, data]
            digest = bytes(Web3.keccak(rlp.encode(fields + [chain_id, 0, 0])))
            signature = await self.sign_hash(digest)
            v = signature.recovery_id + 35 + 2 * chain_id
            signed = rlp.encode(fields + [v, signature.r, signature.s])
            logger.debug("Signed legacy transaction via key %s", self.key_handle[:12])
            return "0x" + signed.hex()

        raise SigningError("Transaction needs maxFeePerGas (type 2) or gasPrice (legacy)")
