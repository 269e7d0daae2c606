"""Minimal JSON-RPC client for chain reads."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .exceptions import RPCError

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY_FEE_WEI = 1_000_000_000  # 1 gwei


class ChainRPCClient:
    """JSON-RPC client for blockchain interaction."""

    def __init__(
        self,
        rpc_url: str,
        timeout_seconds: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._rpc_url = rpc_url
        self._timeout = timeout_seconds
        self._http_client = http_client
        self._request_id = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def _call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Make JSON-RPC call."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        client = await self._get_client()
        try:
            response = await client.post(
                self._rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RPCError(method, e) from e
        result = response.json()

        if result.get("error"):
            raise RPCError(method, result["error"])

        return result.get("result")

    async def get_chain_id(self) -> int:
        result = await self._call("eth_chainId")
        return int(result, 16)

    async def get_balance(self, address: str, block: str = "latest") -> int:
        """Native balance in wei."""
        result = await self._call("eth_getBalance", [address, block])
        return int(result, 16)

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        """eth_call returning the raw hex result."""
        return await self._call("eth_call", [{"to": to, "data": data}, block])

    async def get_block(self, block: str = "latest") -> Dict[str, Any]:
        result = await self._call("eth_getBlockByNumber", [block, False])
        if not isinstance(result, dict):
            raise RPCError("eth_getBlockByNumber", f"no block returned for {block}")
        return result

    async def get_block_timestamp(self, block: str = "latest") -> int:
        block_data = await self.get_block(block)
        return int(block_data["timestamp"], 16)

    async def get_gas_price(self) -> int:
        """Get current gas price in wei."""
        result = await self._call("eth_gasPrice")
        return int(result, 16)

    async def get_max_priority_fee(self) -> int:
        """Get max priority fee for EIP-1559."""
        try:
            result = await self._call("eth_maxPriorityFeePerGas")
            return int(result, 16)
        except RPCError as e:
            # Fallback for chains that don't support this
            logger.debug("eth_maxPriorityFeePerGas unavailable, using default: %s", e)
            return DEFAULT_PRIORITY_FEE_WEI

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
