"""Shared test fixtures.

Nothing here needs Postgres, Redis or a chain node: API tests run the app
in-process over ``httpx.ASGITransport`` with the lifespan skipped and every
external client replaced through ``app.dependency_overrides``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from steaks.config import Settings
from steaks.db.models import LeaderboardEntry
from steaks.dependencies import (
    get_app_settings,
    get_chain,
    get_channel,
    get_db,
    get_events,
    get_price_feed,
    get_social,
)
from steaks.events.buffer import EventBuffer
from steaks.main import create_app
from steaks.social.schemas import Identity, Post
from steaks.staking.discovery import LockupPosition

TOKEN = "0x0578d8a44db98b23bf096a382e016e29a5ce0ffe"
CAST_HASH = "0x" + "ab" * 20
WEI = 10**18


@pytest.fixture
def make_identity() -> Callable[..., Identity]:
    def _make(fid: int = 1, username: str | None = None, addresses: list[str] | None = None) -> Identity:
        return Identity(
            fid=fid,
            username=username or f"user{fid}",
            display_name=f"User {fid}",
            pfp_url=f"https://pfp.example/{fid}.png",
            verified_addresses=addresses or [],
        )

    return _make


@pytest.fixture
def make_post(make_identity: Callable[..., Identity]) -> Callable[..., Post]:
    def _make(
        text: str = "started aiming higher and it worked out! shipped the thing",
        fid: int = 1,
        cast_hash: str = CAST_HASH,
        channel_id: str | None = "higher",
        parent_url: str | None = None,
        timestamp: datetime | None = None,
    ) -> Post:
        return Post(
            hash=cast_hash,
            text=text,
            timestamp=timestamp or datetime(2026, 10, 1, tzinfo=timezone.utc),
            author=make_identity(fid),
            channel_id=channel_id,
            parent_url=parent_url,
        )

    return _make


@pytest.fixture
def make_position() -> Callable[..., LockupPosition]:
    def _make(
        lockup_id: int = 1,
        amount: int = 100 * WEI,
        receiver: str = "0xaaa",
        unlock_time: int = 2_000,
        unlocked: bool = False,
        title: str = "",
        token: str = TOKEN,
    ) -> LockupPosition:
        return LockupPosition(
            lockup_id=lockup_id,
            token=token,
            is_fungible=True,
            unlock_time=unlock_time,
            unlocked=unlocked,
            amount=amount,
            receiver=receiver,
            title=title,
        )

    return _make


@pytest.fixture
def make_entry() -> Callable[..., LeaderboardEntry]:
    def _make(**overrides: Any) -> LeaderboardEntry:  # noqa: ANN401
        values: dict[str, Any] = {
            "id": 1,
            "cast_hash": CAST_HASH,
            "creator_fid": 1,
            "creator_username": "alice",
            "creator_display_name": "Alice",
            "creator_pfp_url": "https://pfp.example/1.png",
            "cast_text": "started aiming higher and it worked out! shipped",
            "description": "shipped",
            "cast_timestamp": datetime(2026, 10, 1, tzinfo=timezone.utc),
            "total_higher_staked": Decimal("100"),
            "usd_value": Decimal("1.50"),
            "rank": 1,
            "cast_state": "higher",
            "updated_at": datetime(2026, 10, 2, tzinfo=timezone.utc),
            "caster_stake_lockup_ids": [],
            "caster_stake_amounts": [],
            "caster_stake_unlock_times": [],
            "caster_stake_unlocked": [],
            "caster_stake_lock_times": [],
            "supporter_stake_lockup_ids": [],
            "supporter_stake_amounts": [],
            "supporter_stake_fids": [],
            "supporter_stake_pfps": [],
            "supporter_stake_unlock_times": [],
            "supporter_stake_unlocked": [],
            "supporter_stake_lock_times": [],
        }
        values.update(overrides)
        return LeaderboardEntry(**values)

    return _make


@pytest.fixture
def settings() -> Settings:
    return Settings(
        cron_secret="cron-secret",
        cdp_webhook_secrets=["whsec-one", "whsec-two"],
        neynar_api_key="test-key",
        log_format="console",
    )


@pytest.fixture
def fakes() -> dict[str, Any]:
    """Stand-ins for every long-lived client the routes depend on."""
    price_feed = MagicMock()
    price_feed.get_price = AsyncMock(return_value=0.015)
    return {
        "db": AsyncMock(),
        "chain": AsyncMock(),
        "social": AsyncMock(),
        "channel": AsyncMock(),
        "price_feed": price_feed,
        "events": EventBuffer(capacity=100),
    }


@pytest.fixture
def app(settings: Settings, fakes: dict[str, Any]) -> FastAPI:
    application = create_app()

    async def _db() -> AsyncGenerator[Any, None]:
        yield fakes["db"]

    application.dependency_overrides[get_db] = _db
    application.dependency_overrides[get_app_settings] = lambda: settings
    application.dependency_overrides[get_chain] = lambda: fakes["chain"]
    application.dependency_overrides[get_social] = lambda: fakes["social"]
    application.dependency_overrides[get_channel] = lambda: fakes["channel"]
    application.dependency_overrides[get_price_feed] = lambda: fakes["price_feed"]
    application.dependency_overrides[get_events] = lambda: fakes["events"]
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """In-process HTTP client; Redis is never initialized so rate limiting passes through."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
