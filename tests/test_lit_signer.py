"""Tests for the Lit relay signer using a mocked HTTP transport."""
from __future__ import annotations

import json

import httpx
import pytest

from swarm_vault.config import LitSettings
from swarm_vault.exceptions import SigningError
from swarm_vault.signing import LitThresholdSigner, normalize_signature

RELAY = "https://relay.example"
PKP = "0x04" + "ab" * 64
HASH = b"\x42" * 32
SIGNATURE = {"r": "0x" + "11" * 32, "s": "0x" + "22" * 32, "recid": 1}


def make_signer(handler) -> LitThresholdSigner:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LitThresholdSigner(RELAY + "/", http_client=client)


class TestSign:

    @pytest.mark.asyncio
    async def test_request_and_action_response(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = {
                "response": json.dumps({
                    "success": True,
                    "signatures": [{"sigName": "sig_0", "signature": json.dumps(SIGNATURE)}],
                })
            }
            return httpx.Response(200, json=body)

        signer = make_signer(handler)
        raw = await signer.sign(HASH, PKP)
        await signer.close()

        assert normalize_signature(raw).recovery_id == 1
        assert str(seen[0].url) == f"{RELAY}/execute/sign"
        payload = json.loads(seen[0].content)
        assert payload["publicKey"] == PKP
        assert payload["jsParams"] == {"publicKey": PKP, "dataToSign": "0x" + HASH.hex()}
        assert "signAndCombineEcdsa" in payload["code"]

    @pytest.mark.asyncio
    async def test_top_level_signature_fallback(self):
        signer = make_signer(lambda request: httpx.Response(200, json={"signatures": {"sig_0": SIGNATURE}}))
        assert await signer.sign(HASH, PKP) == SIGNATURE

    @pytest.mark.asyncio
    async def test_action_failure(self):
        body = {"response": json.dumps({"success": False, "error": "PKP not permitted"})}
        signer = make_signer(lambda request: httpx.Response(200, json=body))
        with pytest.raises(SigningError, match="PKP not permitted"):
            await signer.sign(HASH, PKP)

    @pytest.mark.asyncio
    async def test_http_error(self):
        signer = make_signer(lambda request: httpx.Response(502, text="bad gateway"))
        with pytest.raises(SigningError, match="Lit relay request failed"):
            await signer.sign(HASH, PKP)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        signer = make_signer(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(SigningError, match="invalid JSON"):
            await signer.sign(HASH, PKP)

    @pytest.mark.asyncio
    async def test_no_signature_in_response(self):
        signer = make_signer(lambda request: httpx.Response(200, json={"logs": ""}))
        with pytest.raises(SigningError, match="Unexpected Lit signing response"):
            await signer.sign(HASH, PKP)

    @pytest.mark.asyncio
    async def test_missing_key_handle(self):
        signer = make_signer(lambda request: httpx.Response(200, json={}))
        with pytest.raises(SigningError):
            await signer.sign(HASH, "")


class TestFromSettings:

    def test_network_relay(self):
        assert LitSettings(network="naga-test").get_relay_url() == "https://naga-test-relayer.getlit.dev"

    def test_explicit_relay_wins(self):
        settings = LitSettings(relay_url="https://custom.example")
        assert settings.get_relay_url() == "https://custom.example"
