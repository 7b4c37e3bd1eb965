"""
LINE Messaging API adapter.

Push sends are retried on transport errors and 5xx responses with
exponential backoff; 4xx responses (bad recipient, monthly quota) fail
immediately.
"""
import asyncio
import base64
import hashlib
import hmac
import logging

import httpx

from govcar.config import get_settings
from govcar.exceptions import NotificationError

logger = logging.getLogger(__name__)
settings = get_settings()


def verify_signature(body: bytes, signature: str | None, channel_secret: str) -> bool:
    """Check X-Line-Signature: base64(HMAC-SHA256(channel_secret, body))."""
    if not signature or not channel_secret:
        return False
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")
    return hmac.compare_digest(expected, signature)


class LineClient:
    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.line.me",
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._transport = transport

    async def push(self, to: str, messages: list[dict]) -> None:
        if not self.access_token:
            raise NotificationError("LINE channel access token is not configured")
        if not to:
            raise NotificationError("No LINE recipient")

        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._send(to, messages)
                logger.info("LINE push delivered to=%s messages=%d", to, len(messages))
                return
            except NotificationError:
                raise
            except (httpx.TransportError, _RetryableStatus) as exc:
                if attempt == self.max_attempts:
                    logger.error("LINE push failed after %d attempts: %s", attempt, exc)
                    raise NotificationError(f"LINE push failed: {exc}") from exc
                await asyncio.sleep(self.backoff_seconds * 2 ** (attempt - 1))

    async def _send(self, to: str, messages: list[dict]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(
                f"{self.base_url}/v2/bot/message/push",
                headers={"Authorization": f"Bearer {self.access_token}"},
                json={"to": to, "messages": messages},
            )
        if resp.status_code >= 500:
            raise _RetryableStatus(f"LINE error {resp.status_code}")
        if resp.status_code >= 400:
            if "monthly limit" in resp.text:
                raise NotificationError("LINE monthly message quota reached")
            raise NotificationError(f"LINE rejected push ({resp.status_code}): {resp.text[:200]}")


class _RetryableStatus(Exception):
    pass


def build_line_client() -> LineClient:
    return LineClient(
        access_token=settings.line_channel_access_token,
        base_url=settings.line_api_base_url,
        timeout=settings.notification_timeout_seconds,
        max_attempts=settings.notification_max_attempts,
        backoff_seconds=settings.notification_backoff_seconds,
    )
