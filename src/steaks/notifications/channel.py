"""Farcaster mini-app notification delivery over HTTP."""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx
import structlog

logger = structlog.get_logger()

# Statuses meaning the token itself was rejected
TOKEN_REJECTED_STATUSES = frozenset({400, 401})


@dataclass
class DeliveryResult:
    """What the notification server reported for one send."""

    status_code: int
    successful_tokens: list[str] = field(default_factory=list)
    invalid_tokens: list[str] = field(default_factory=list)
    rate_limited_tokens: list[str] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return bool(self.successful_tokens)

    @property
    def token_rejected(self) -> bool:
        return self.status_code in TOKEN_REJECTED_STATUSES


class NotificationChannel:
    """POSTs notification payloads to a client-registered notification URL."""

    def __init__(self, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(
        self,
        url: str,
        notification_id: str,
        title: str,
        body: str,
        target_url: str,
        tokens: list[str],
    ) -> DeliveryResult:
        """Deliver one notification; transport errors propagate as ``httpx.HTTPError``."""
        response = await self._client.post(
            url,
            json={
                "notificationId": notification_id,
                "title": title,
                "body": body,
                "targetUrl": target_url,
                "tokens": tokens,
            },
        )
        if response.is_error:
            logger.warning("notification_rejected", status=response.status_code, body=response.text[:200])
            return DeliveryResult(status_code=response.status_code)

        data = response.json()
        return DeliveryResult(
            status_code=response.status_code,
            successful_tokens=list(data.get("successfulTokens") or []),
            invalid_tokens=list(data.get("invalidTokens") or []),
            rate_limited_tokens=list(data.get("rateLimitedTokens") or []),
        )
