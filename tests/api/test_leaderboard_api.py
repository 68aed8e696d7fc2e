"""Leaderboard, cast and refresh endpoints."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from httpx import AsyncClient

from steaks.errors import StaleBlockError
from steaks.leaderboard.pipeline import RefreshSummary

CAST_HASH = "0x" + "ab" * 20


@pytest.fixture
def repo() -> Iterator[MagicMock]:
    mock = MagicMock()
    for name in ("get", "ranked", "all_entries", "for_creator"):
        setattr(mock, name, AsyncMock(return_value=None if name == "get" else []))
    with patch("steaks.leaderboard.router.LeaderboardRepository", return_value=mock):
        yield mock


def _summary() -> RefreshSummary:
    return RefreshSummary(
        block=123,
        block_age=4,
        total_lockups=10,
        token_lockups=8,
        positions=6,
        identities=3,
        candidates=2,
        stored=2,
        higher=1,
        expired=1,
        price=0.015,
    )


class TestReads:
    @pytest.mark.asyncio
    async def test_top(self, client: AsyncClient, repo: MagicMock, make_entry: Callable[..., Any]) -> None:
        repo.ranked.return_value = [make_entry()]
        response = await client.get("/api/leaderboard/top", params={"limit": 5})
        assert response.status_code == 200
        data = response.json()
        repo.ranked.assert_awaited_once_with(5)
        assert data["entries"][0]["castHash"] == CAST_HASH
        assert data["entries"][0]["totalHigherStaked"] == "100"
        assert data["entries"][0]["usdValue"] == 1.5
        assert data["asOf"] > 0

    @pytest.mark.asyncio
    async def test_top_limit_bounds(self, client: AsyncClient, repo: MagicMock) -> None:
        response = await client.get("/api/leaderboard/top", params={"limit": 101})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_report(self, client: AsyncClient, repo: MagicMock, make_entry: Callable[..., Any]) -> None:
        repo.all_entries.return_value = [make_entry(), make_entry(cast_hash="0x" + "1" * 40, cast_state="expired")]
        response = await client.get("/api/leaderboard/report", params={"state": "expired"})
        assert response.status_code == 200
        data = response.json()
        assert data["totalEntries"] == 2
        assert data["byState"] == {"higher": 1, "expired": 1}
        assert [e["castHash"] for e in data["entries"]] == ["0x" + "1" * 40]

    @pytest.mark.asyncio
    async def test_stored_cast(self, client: AsyncClient, repo: MagicMock, make_entry: Callable[..., Any]) -> None:
        repo.get.return_value = make_entry()
        response = await client.get(f"/api/cast/{CAST_HASH.upper()}")
        assert response.status_code == 200
        data = response.json()
        repo.get.assert_awaited_once_with(CAST_HASH)
        assert data["state"] == "higher"
        assert data["hash"] == CAST_HASH
        assert "reason" not in data

    @pytest.mark.asyncio
    async def test_invalid_hash(self, client: AsyncClient, repo: MagicMock) -> None:
        response = await client.get("/api/cast/not-a-hash")
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid cast hash format"}

    @pytest.mark.asyncio
    async def test_live_validation_fallback(
        self, client: AsyncClient, repo: MagicMock, fakes: dict[str, Any], make_post: Callable[..., Any]
    ) -> None:
        fakes["social"].lookup_cast.return_value = make_post(channel_id=None)
        response = await client.get(f"/api/cast/{CAST_HASH}")
        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "invalid"
        assert data["reason"] == "Cast not in /higher channel"

    @pytest.mark.asyncio
    async def test_live_lookup_failure(self, client: AsyncClient, repo: MagicMock, fakes: dict[str, Any]) -> None:
        fakes["social"].lookup_cast.side_effect = httpx.ConnectError("down")
        response = await client.get(f"/api/cast/{CAST_HASH}")
        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_cast_leaderboard(
        self, client: AsyncClient, repo: MagicMock, fakes: dict[str, Any], make_entry: Callable[..., Any]
    ) -> None:
        repo.get.return_value = make_entry()
        fakes["social"].fetch_users.return_value = []
        response = await client.get(f"/api/cast/{CAST_HASH}/leaderboard", params={"page": 1, "userFid": 5})
        assert response.status_code == 200
        data = response.json()
        assert data["caster"]["fid"] == 1
        assert data["supporters"] == []
        assert data["totalPages"] == 1

    @pytest.mark.asyncio
    async def test_cast_leaderboard_unknown(self, client: AsyncClient, repo: MagicMock) -> None:
        response = await client.get(f"/api/cast/{CAST_HASH}/leaderboard")
        assert response.status_code == 404
        assert response.json() == {"detail": "Higher cast not found"}


class TestRefresh:
    @pytest.mark.asyncio
    async def test_manual_refresh(self, client: AsyncClient) -> None:
        with patch("steaks.leaderboard.router.run_refresh", AsyncMock(return_value=_summary())):
            response = await client.post("/api/leaderboard/refresh")
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["stored"] == 2
        assert data["blockAge"] == 4
        assert "durationMs" in data

    @pytest.mark.asyncio
    async def test_manual_refresh_rate_limited(self, client: AsyncClient) -> None:
        with (
            patch("steaks.leaderboard.router.get_redis", return_value=MagicMock()),
            patch("steaks.leaderboard.router.hit_window", AsyncMock(return_value=6)),
            patch("steaks.leaderboard.router.run_refresh", AsyncMock()) as run,
        ):
            response = await client.post("/api/leaderboard/refresh")
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_block(self, client: AsyncClient) -> None:
        stale = AsyncMock(side_effect=StaleBlockError(block_age=120, attempts=7))
        with patch("steaks.leaderboard.router.run_refresh", stale):
            response = await client.post("/api/leaderboard/refresh")
        assert response.status_code == 503
        assert response.json() == {"success": False, "error": "RPC node is behind", "blockAge": 120, "attempts": 7}

    @pytest.mark.asyncio
    async def test_refresh_failure(self, client: AsyncClient) -> None:
        with patch("steaks.leaderboard.router.run_refresh", AsyncMock(side_effect=ValueError("boom"))):
            response = await client.post("/api/leaderboard/refresh")
        assert response.status_code == 500
        assert response.json()["message"] == "boom"

    @pytest.mark.asyncio
    async def test_cron_requires_secret(self, client: AsyncClient) -> None:
        response = await client.get("/api/cron/update-staking-leaderboard")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_cron_refresh(self, client: AsyncClient) -> None:
        with patch("steaks.leaderboard.router.run_refresh", AsyncMock(return_value=_summary())) as run:
            response = await client.get(
                "/api/cron/update-staking-leaderboard", headers={"Authorization": "Bearer cron-secret"}
            )
        assert response.status_code == 200
        run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cron_expired_sweep(self, client: AsyncClient, repo: MagicMock) -> None:
        response = await client.get(
            "/api/cron/notify-expired-stakes", headers={"Authorization": "Bearer cron-secret"}
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "sent": 0}
