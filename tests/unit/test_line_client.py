"""
Unit tests for the LINE adapter: signature check, push retries, failures.
"""
import base64
import hashlib
import hmac
import json

import httpx
import pytest

from govcar.exceptions import NotificationError
from govcar.services.line import LineClient, verify_signature


def _sign(body: bytes, secret: str) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


class TestVerifySignature:
    def test_valid(self):
        body = b'{"events": []}'
        assert verify_signature(body, _sign(body, "s3cret"), "s3cret")

    def test_tampered_body(self):
        sig = _sign(b'{"events": []}', "s3cret")
        assert not verify_signature(b'{"events": [1]}', sig, "s3cret")

    def test_missing_signature_or_secret(self):
        assert not verify_signature(b"{}", None, "s3cret")
        assert not verify_signature(b"{}", _sign(b"{}", ""), "")


def _client(handler, **kwargs) -> LineClient:
    return LineClient(
        access_token="token",
        base_url="https://line.test",
        backoff_seconds=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
class TestLinePush:
    async def test_push_success(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        await _client(handler).push("U123", [{"type": "text", "text": "hi"}])

        assert len(seen) == 1
        assert seen[0].url.path == "/v2/bot/message/push"
        assert seen[0].headers["Authorization"] == "Bearer token"
        assert json.loads(seen[0].content) == {"to": "U123", "messages": [{"type": "text", "text": "hi"}]}

    async def test_retries_server_errors(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(503 if calls["n"] < 3 else 200)

        await _client(handler, max_attempts=3).push("U123", [])
        assert calls["n"] == 3

    async def test_gives_up_after_max_attempts(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(500)

        with pytest.raises(NotificationError):
            await _client(handler, max_attempts=2).push("U123", [])
        assert calls["n"] == 2

    async def test_quota_is_not_retried(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(429, text='{"message":"You have reached your monthly limit."}')

        with pytest.raises(NotificationError, match="quota"):
            await _client(handler).push("U123", [])
        assert calls["n"] == 1

    async def test_transport_error_is_retried(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200)

        await _client(handler).push("U123", [])
        assert calls["n"] == 2

    async def test_missing_token(self):
        client = LineClient(access_token="")
        with pytest.raises(NotificationError):
            await client.push("U123", [])
