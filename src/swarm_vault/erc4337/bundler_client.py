"""Minimal ERC-4337 bundler client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..exceptions import BundlerError
from .user_operation import UserOperation


@dataclass
class BundlerConfig:
    url: str
    timeout_seconds: float = 30.0


class BundlerClient:
    def __init__(self, config: BundlerConfig, http_client: Optional[httpx.AsyncClient] = None):
        self._config = config
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            response = await self._client.post(self._config.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise BundlerError(method, e) from e
        data = response.json()
        if data.get("error"):
            raise BundlerError(method, data["error"])
        return data.get("result")

    async def estimate_user_operation_gas(self, user_op: UserOperation, entrypoint: str) -> dict[str, str]:
        method = "eth_estimateUserOperationGas"
        result = await self._rpc(method, [user_op.to_rpc(), entrypoint])
        if not isinstance(result, dict):
            raise BundlerError(method, "invalid gas estimate payload")
        return result

    async def send_user_operation(self, user_op: UserOperation, entrypoint: str) -> str:
        method = "eth_sendUserOperation"
        result = await self._rpc(method, [user_op.to_rpc(), entrypoint])
        if not isinstance(result, str):
            raise BundlerError(method, "invalid user op hash")
        return result

    async def get_user_operation_receipt(self, user_op_hash: str) -> dict[str, Any] | None:
        method = "eth_getUserOperationReceipt"
        result = await self._rpc(method, [user_op_hash])
        if result is None:
            return None
        if not isinstance(result, dict):
            raise BundlerError(method, "invalid receipt payload")
        return result

    async def close(self) -> None:
        await self._client.aclose()
