"""Wallet context providers: balances and block time for template resolution."""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from eth_abi import decode, encode
from web3 import Web3

from .cache import TTLCache
from .exceptions import ContextFetchError, RPCError
from .rpc_client import ChainRPCClient
from .template.resolver import WalletContext

logger = logging.getLogger(__name__)

BALANCE_OF_SELECTOR = bytes(Web3.keccak(text="balanceOf(address)")[:4])


def encode_balance_of(owner: str) -> str:
    return "0x" + (BALANCE_OF_SELECTOR + encode(["address"], [Web3.to_checksum_address(owner)])).hex()


class WalletContextProvider(ABC):
    """Source of per-wallet chain state."""

    @abstractmethod
    async def get_context(
        self,
        wallet_address: str,
        token_addresses: Sequence[str],
    ) -> WalletContext:
        """Return a context containing a balance for every requested token.

        Raises:
            ContextFetchError: the data could not be fetched.
        """


class RPCWalletContextProvider(WalletContextProvider):
    """Reads balances over JSON-RPC.

    The latest block timestamp is shared by every wallet of a dispatch through
    a short-lived cache, so N members cost one block read rather than N.
    """

    BLOCK_TIMESTAMP_KEY = "block:latest:timestamp"

    def __init__(self, rpc: ChainRPCClient, cache: Optional[TTLCache] = None):
        self._rpc = rpc
        self._cache = cache or TTLCache(ttl_seconds=0)

    async def _token_balance(self, wallet_address: str, token_address: str) -> int:
        result = await self._rpc.call(token_address, encode_balance_of(wallet_address))
        raw = bytes.fromhex((result or "0x").removeprefix("0x"))
        if len(raw) < 32:
            raise RPCError("eth_call", f"balanceOf on {token_address} returned {result!r}")
        (balance,) = decode(["uint256"], raw[:32])
        return balance

    async def _block_timestamp(self) -> int:
        return await self._cache.get_or_load(
            self.BLOCK_TIMESTAMP_KEY, self._rpc.get_block_timestamp
        )

    async def get_context(
        self,
        wallet_address: str,
        token_addresses: Sequence[str],
    ) -> WalletContext:
        try:
            native, timestamp, *token_balances = await asyncio.gather(
                self._rpc.get_balance(wallet_address),
                self._block_timestamp(),
                *(self._token_balance(wallet_address, t) for t in token_addresses),
            )
        except (RPCError, ValueError, KeyError) as e:
            raise ContextFetchError(wallet_address, str(e)) from e

        logger.debug(
            "Fetched context for %s: %d token balance(s), block time %d",
            wallet_address, len(token_balances), timestamp,
        )
        return WalletContext(
            wallet_address=wallet_address,
            native_balance=native,
            token_balances=dict(zip(token_addresses, token_balances)),
            block_timestamp=timestamp,
        )
