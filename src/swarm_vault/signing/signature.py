"""Normalization of threshold-signer output into recoverable ECDSA signatures.

Signers report signatures in several shapes: a JSON object (or its string form)
with ``r``/``s`` and one of ``recid``, ``recoveryParam`` or ``v``, or a combined
65-byte ``r || s || v`` hex string. Every shape normalizes to the same
``RecoverableSignature``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError

from ..exceptions import SignatureFormatError

_WORD = 32
_MAX_WORD = 2**256


@dataclass(frozen=True)
class RecoverableSignature:
    r: int
    s: int
    recovery_id: int  # 0 or 1

    @property
    def v(self) -> int:
        return self.recovery_id + 27

    def to_bytes(self) -> bytes:
        return (
            self.r.to_bytes(_WORD, "big")
            + self.s.to_bytes(_WORD, "big")
            + bytes([self.v])
        )

    def to_hex(self) -> str:
        return "0x" + self.to_bytes().hex()

    def recover_address(self, message_hash: bytes) -> str:
        """Checksum address of the key that produced this signature."""
        try:
            signature = keys.Signature(vrs=(self.recovery_id, self.r, self.s))
            public_key = signature.recover_public_key_from_msg_hash(message_hash)
        except (BadSignature, ValidationError) as e:
            raise SignatureFormatError(f"Signature does not recover: {e}") from e
        return public_key.to_checksum_address()


def _parse_word(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise SignatureFormatError(f"Signature component {name} must be hex or int")
    if isinstance(value, int):
        word = value
    elif isinstance(value, str):
        text = value.strip().removeprefix("0x").removeprefix("0X")
        if not text or len(text) > 2 * _WORD:
            raise SignatureFormatError(f"Signature component {name} has invalid length")
        try:
            word = int(text, 16)
        except ValueError:
            raise SignatureFormatError(f"Signature component {name} is not hex") from None
    else:
        raise SignatureFormatError(f"Signature component {name} must be hex or int")
    if not 0 < word < _MAX_WORD:
        raise SignatureFormatError(f"Signature component {name} out of range")
    return word


def _parse_small_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise SignatureFormatError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError:
            raise SignatureFormatError(f"{name} is not an integer: {value!r}") from None
    raise SignatureFormatError(f"{name} must be an integer")


def _recovery_id(raw: Mapping[str, Any]) -> int:
    for key in ("recid", "recoveryParam"):
        if raw.get(key) is not None:
            recid = _parse_small_int(raw[key], key)
            if recid not in (0, 1):
                raise SignatureFormatError(f"{key} must be 0 or 1, got {recid}")
            return recid

    if raw.get("v") is not None:
        v = _parse_small_int(raw["v"], "v")
        if v in (27, 28):
            return v - 27
        if v in (0, 1):
            return v
        raise SignatureFormatError(f"v must be 27 or 28, got {v}")

    raise SignatureFormatError("Signature has no recid, recoveryParam or v")


def _from_combined(data: bytes) -> RecoverableSignature:
    if len(data) != 2 * _WORD + 1:
        raise SignatureFormatError(f"Combined signature must be 65 bytes, got {len(data)}")
    return _from_mapping({
        "r": int.from_bytes(data[:_WORD], "big"),
        "s": int.from_bytes(data[_WORD:2 * _WORD], "big"),
        "v": data[-1],
    })


def _from_mapping(raw: Mapping[str, Any]) -> RecoverableSignature:
    if "r" not in raw or "s" not in raw:
        raise SignatureFormatError("Signature is missing r or s")
    return RecoverableSignature(
        r=_parse_word(raw["r"], "r"),
        s=_parse_word(raw["s"], "s"),
        recovery_id=_recovery_id(raw),
    )


def normalize_signature(raw: Any) -> RecoverableSignature:
    """Normalize any supported signer output.

    Raises:
        SignatureFormatError: the input matches none of the supported shapes.
    """
    if isinstance(raw, RecoverableSignature):
        return raw

    if isinstance(raw, (bytes, bytearray)):
        return _from_combined(bytes(raw))

    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("{"):
            try:
                raw = json.loads(text)
            except json.JSONDecodeError as e:
                raise SignatureFormatError(f"Signature JSON is malformed: {e}") from e
        else:
            try:
                return _from_combined(bytes.fromhex(text.removeprefix("0x")))
            except ValueError:
                raise SignatureFormatError("Signature string is neither JSON nor hex") from None

    if isinstance(raw, Mapping):
        return _from_mapping(raw)

    raise SignatureFormatError(f"Unsupported signature type {type(raw).__name__}")
