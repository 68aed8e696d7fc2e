"""HIGHER/USD price from CoinGecko, cached in Redis.

Any failure yields 0.0: valuations read as $0 and USD-gated notifications
are suppressed.
"""

from __future__ import annotations

import httpx
import structlog
from redis.asyncio import Redis

logger = structlog.get_logger()

PRICE_CACHE_KEY = "price:higher:usd"


class PriceFeed:
    """Token price lookups with a short Redis cache."""

    def __init__(
        self,
        token_address: str,
        url: str = "https://api.coingecko.com/api/v3/simple/token_price/base",
        redis: Redis | None = None,
        cache_ttl: int = 300,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token_address = token_address
        self.url = url
        self.redis = redis
        self.cache_ttl = cache_ttl
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _cached(self) -> float | None:
        if self.redis is None:
            return None
        try:
            value = await self.redis.get(PRICE_CACHE_KEY)
        except Exception:  # noqa: BLE001
            logger.warning("price_cache_read_failed", exc_info=True)
            return None
        return float(value) if value is not None else None

    async def _store(self, price: float) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.set(PRICE_CACHE_KEY, str(price), ex=self.cache_ttl)
        except Exception:  # noqa: BLE001
            logger.warning("price_cache_write_failed", exc_info=True)

    async def get_price(self) -> float:
        """Current USD price, 0.0 when unavailable."""
        cached = await self._cached()
        if cached is not None:
            return cached

        try:
            response = await self._client.get(
                self.url,
                params={"contract_addresses": self.token_address, "vs_currencies": "usd"},
            )
            response.raise_for_status()
            data = response.json()
            price = float((data.get(self.token_address.lower()) or {}).get("usd") or 0)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("price_fetch_failed", error=str(exc))
            return 0.0

        if price > 0:
            await self._store(price)
        return price
