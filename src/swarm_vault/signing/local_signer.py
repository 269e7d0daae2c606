"""Local-key threshold signer for development and tests."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Union

from eth_keys import keys

from ..exceptions import SigningError
from .account import ThresholdSigner

logger = logging.getLogger(__name__)


def _private_key(key: Union[str, bytes]) -> keys.PrivateKey:
    if isinstance(key, str):
        key = bytes.fromhex(key.removeprefix("0x"))
    return keys.PrivateKey(key)


class LocalThresholdSigner(ThresholdSigner):
    """Holds private keys in memory, addressed by their public key hex.

    Returns signatures in the same JSON shape the Lit relay produces
    (``r``, ``s``, ``recid``) so the normalization path is exercised.
    """

    def __init__(self, private_keys: Iterable[Union[str, bytes]] = ()):
        self._keys: Dict[str, keys.PrivateKey] = {}
        for key in private_keys:
            self.add_key(key)

    def add_key(self, private_key: Union[str, bytes]) -> str:
        """Register a key and return its handle."""
        pk = _private_key(private_key)
        handle = pk.public_key.to_hex()
        self._keys[handle] = pk
        return handle

    def address_for(self, key_handle: str) -> str:
        return self._key(key_handle).public_key.to_checksum_address()

    def _key(self, key_handle: str) -> keys.PrivateKey:
        try:
            return self._keys[key_handle]
        except KeyError:
            raise SigningError(f"Unknown key handle {key_handle[:18]}...") from None

    async def sign(self, message_hash: bytes, key_handle: str) -> Any:
        signature = self._key(key_handle).sign_msg_hash(message_hash)
        return {
            "r": hex(signature.r),
            "s": hex(signature.s),
            "recid": signature.v,
        }
