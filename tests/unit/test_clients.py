"""HTTP clients against mocked transports."""

from __future__ import annotations

import json
from collections.abc import Callable
from unittest.mock import AsyncMock

import httpx
import pytest

from steaks.notifications.channel import NotificationChannel
from steaks.notifications.price import PRICE_CACHE_KEY, PriceFeed
from steaks.social.client import NeynarClient

TOKEN = "0x0578d8A44db98B23BF096A382e016e29a5Ce0ffe"

USER = {
    "fid": 7,
    "username": "bob",
    "display_name": "Bob",
    "pfp_url": "https://pfp.example/7.png",
    "verified_addresses": {"eth_addresses": ["0xABC"]},
}


def _transport(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


class TestNeynarClient:
    @pytest.mark.asyncio
    async def test_resolve_by_address_lowercases(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"0xABC": [USER], "extra": "ignored"})

        client = NeynarClient("key", "https://neynar.example/v2", transport=_transport(handler))
        resolved = await client.resolve_by_address(["0xabc"])
        await client.aclose()

        assert list(resolved) == ["0xabc"]
        assert resolved["0xabc"][0].verified_addresses == ["0xabc"]
        assert seen[0].headers["x-api-key"] == "key"
        assert seen[0].url.path == "/v2/user/bulk-by-address"

    @pytest.mark.asyncio
    async def test_empty_inputs_skip_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("unexpected request")

        client = NeynarClient("key", transport=_transport(handler))
        assert await client.resolve_by_address([]) == {}
        assert await client.fetch_users([]) == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_fetch_users(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["fids"] == "7,8"
            return httpx.Response(200, json={"users": [USER]})

        client = NeynarClient("key", transport=_transport(handler))
        users = await client.fetch_users([7, 8])
        await client.aclose()
        assert [u.username for u in users] == ["bob"]

    @pytest.mark.asyncio
    async def test_lookup_cast_not_found(self) -> None:
        client = NeynarClient("key", transport=_transport(lambda r: httpx.Response(404, json={})))
        assert await client.lookup_cast("0x" + "1" * 40) is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_lookup_cast(self) -> None:
        cast = {
            "hash": "0xABCD",
            "text": "hello",
            "timestamp": "2026-10-01T12:00:00Z",
            "author": USER,
            "channel": {"id": "higher"},
        }
        client = NeynarClient("key", transport=_transport(lambda r: httpx.Response(200, json={"cast": cast})))
        post = await client.lookup_cast("0xabcd")
        await client.aclose()
        assert post is not None
        assert post.hash == "0xabcd"
        assert post.channel_id == "higher"

    @pytest.mark.asyncio
    async def test_server_error_raises(self) -> None:
        client = NeynarClient("key", transport=_transport(lambda r: httpx.Response(500)))
        with pytest.raises(httpx.HTTPStatusError):
            await client.fetch_posts_for_user(7)
        await client.aclose()


class TestNotificationChannel:
    @pytest.mark.asyncio
    async def test_send_reports_tokens(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["tokens"] == ["a", "b"]
            assert body["targetUrl"] == "https://steaks.example"
            return httpx.Response(200, json={"successfulTokens": ["a"], "invalidTokens": ["b"]})

        channel = NotificationChannel(transport=_transport(handler))
        result = await channel.send(
            "https://notify.example", "n-1", "title", "body", "https://steaks.example", ["a", "b"]
        )
        await channel.aclose()

        assert result.delivered
        assert result.invalid_tokens == ["b"]
        assert not result.token_rejected

    @pytest.mark.asyncio
    async def test_rejected_status(self) -> None:
        channel = NotificationChannel(transport=_transport(lambda r: httpx.Response(401, text="bad token")))
        result = await channel.send("https://notify.example", "n-1", "t", "b", "u", ["a"])
        await channel.aclose()
        assert result.token_rejected
        assert not result.delivered


class TestPriceFeed:
    @pytest.mark.asyncio
    async def test_fetches_and_caches(self) -> None:
        redis = AsyncMock()
        redis.get.return_value = None

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={TOKEN.lower(): {"usd": 0.0123}})

        feed = PriceFeed(TOKEN, redis=redis, cache_ttl=60, transport=_transport(handler))
        assert await feed.get_price() == 0.0123
        await feed.aclose()
        redis.set.assert_awaited_once_with(PRICE_CACHE_KEY, "0.0123", ex=60)

    @pytest.mark.asyncio
    async def test_cached_value_wins(self) -> None:
        redis = AsyncMock()
        redis.get.return_value = b"0.02"

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("unexpected request")

        feed = PriceFeed(TOKEN, redis=redis, transport=_transport(handler))
        assert await feed.get_price() == 0.02
        await feed.aclose()

    @pytest.mark.asyncio
    async def test_failure_yields_zero(self) -> None:
        feed = PriceFeed(TOKEN, transport=_transport(lambda r: httpx.Response(503)))
        assert await feed.get_price() == 0.0
        await feed.aclose()

    @pytest.mark.asyncio
    async def test_broken_cache_falls_through(self) -> None:
        redis = AsyncMock()
        redis.get.side_effect = ConnectionError("redis down")
        redis.set.side_effect = ConnectionError("redis down")
        transport = _transport(lambda r: httpx.Response(200, json={TOKEN.lower(): {"usd": 1.5}}))
        feed = PriceFeed(TOKEN, redis=redis, transport=transport)
        assert await feed.get_price() == 1.5
        await feed.aclose()
