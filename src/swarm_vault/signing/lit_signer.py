"""Lit Protocol PKP signer.

Programmable Key Pairs (PKPs) are threshold keys distributed across the Lit
network; no single node holds the full private key. Signing runs a small Lit
Action through the relay that signs the given hash with the PKP and returns
the combined signature.

Requests are not retried here: a failed signature fails that member's target
and the caller decides what to do next.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..config import LitSettings
from ..exceptions import SigningError
from .account import ThresholdSigner

logger = logging.getLogger(__name__)

# Signs one hash with the PKP and returns the combined signature JSON
SIGN_HASH_LIT_ACTION = """
(async () => {
  try {
    const signature = await Lit.Actions.signAndCombineEcdsa({
      toSign: ethers.utils.arrayify(dataToSign),
      publicKey,
      sigName: "sig_0",
    });
    Lit.Actions.setResponse({
      response: JSON.stringify({
        success: true,
        signatures: [{ sigName: "sig_0", signature }],
      }),
    });
  } catch (error) {
    Lit.Actions.setResponse({
      response: JSON.stringify({ success: false, error: error.message }),
    });
  }
})();
"""


class LitThresholdSigner(ThresholdSigner):
    """Signs hashes with a Lit PKP through the relay ``execute`` endpoint."""

    REQUEST_TIMEOUT = 30.0

    def __init__(
        self,
        relay_url: str,
        api_key: str = "",
        network: str = "naga-dev",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._relay_url = relay_url.rstrip("/")
        self._network = network
        self._client = http_client or httpx.AsyncClient(
            timeout=self.REQUEST_TIMEOUT,
            headers={
                "Content-Type": "application/json",
                "api-key": api_key,
            },
        )

        logger.info(
            "LitThresholdSigner initialized (network=%s, relay=%s)",
            self._network,
            self._relay_url,
        )

    @classmethod
    def from_settings(cls, settings: LitSettings) -> "LitThresholdSigner":
        return cls(
            relay_url=settings.get_relay_url(),
            api_key=settings.api_key,
            network=settings.network,
        )

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = await self._client.post(f"{self._relay_url}{path}", json=body)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as e:
            raise SigningError(f"Lit relay request failed: {e}") from e
        except ValueError as e:
            raise SigningError(f"Lit relay returned invalid JSON: {e}") from e

    @staticmethod
    def _extract_signature(result: Dict[str, Any]) -> Any:
        response = result.get("response")
        if isinstance(response, str):
            try:
                response = json.loads(response)
            except json.JSONDecodeError as e:
                raise SigningError(f"Lit Action response is not JSON: {e}") from e

        if isinstance(response, dict):
            if not response.get("success", True):
                raise SigningError(f"Lit Action failed: {response.get('error', 'unknown')}")
            for entry in response.get("signatures") or []:
                if entry.get("sigName") == "sig_0":
                    return entry.get("signature")

        # Older relays return the signature at the top level
        signatures = result.get("signatures") or {}
        sig = signatures.get("sig_0") or result.get("sig1") or result.get("signature")
        if sig:
            return sig

        raise SigningError(f"Unexpected Lit signing response: {result}")

    async def sign(self, message_hash: bytes, key_handle: str) -> Any:
        """Sign a 32-byte hash with the PKP identified by its public key."""
        if not key_handle:
            raise SigningError("No PKP public key configured for this member")

        result = await self._post(
            "/execute/sign",
            {
                "publicKey": key_handle,
                "code": SIGN_HASH_LIT_ACTION,
                "jsParams": {
                    "publicKey": key_handle,
                    "dataToSign": "0x" + message_hash.hex(),
                },
            },
        )
        signature = self._extract_signature(result)
        logger.debug("Hash 0x%s signed via Lit PKP", message_hash.hex()[:16])
        return signature

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
