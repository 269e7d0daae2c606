"""ERC-4337 sponsoring paymaster client."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from ..exceptions import BundlerError
from .user_operation import UserOperation

logger = logging.getLogger(__name__)


@dataclass
class PaymasterConfig:
    url: str
    timeout_seconds: float = 30.0
    sponsorship_policy_id: Optional[str] = None


@dataclass
class SponsoredUserOperation:
    paymaster_and_data: str
    # Gas limits the paymaster re-estimated, in RPC (hex) form
    gas_fields: dict[str, Any] = field(default_factory=dict)


class PaymasterClient:
    """Pimlico/ZeroDev-compatible paymaster client (sponsor model)."""

    def __init__(self, config: PaymasterConfig, http_client: Optional[httpx.AsyncClient] = None):
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

    async def sponsor_user_operation(
        self,
        user_op: UserOperation,
        entrypoint: str,
    ) -> SponsoredUserOperation:
        method = "pm_sponsorUserOperation"
        params: list[Any] = [user_op.to_rpc(), entrypoint]
        if self._config.sponsorship_policy_id:
            params.append({"sponsorshipPolicyId": self._config.sponsorship_policy_id})

        result = await self._rpc(method, params)
        if not isinstance(result, dict) or not isinstance(result.get("paymasterAndData"), str):
            raise BundlerError(method, "invalid sponsorship payload")

        gas_fields = {
            key: result[key]
            for key in ("callGasLimit", "verificationGasLimit", "preVerificationGas")
            if key in result
        }
        logger.debug("Paymaster sponsored user operation for %s", user_op.sender)
        return SponsoredUserOperation(
            paymaster_and_data=result["paymasterAndData"],
            gas_fields=gas_fields,
        )

    async def close(self) -> None:
        await self._client.aclose()
