"""Qualification reconciliation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from steaks.staking.identity import IdentityBalance
from steaks.staking.qualification import reconcile_candidates, select_qualifying_post

AS_OF = int(datetime(2026, 10, 10, tzinfo=timezone.utc).timestamp())


class TestSelectQualifyingPost:
    def test_first_qualifying_wins(self, make_post) -> None:
        newest = make_post(cast_hash="0x" + "1" * 40, text="started aiming higher and it worked out! newest")
        older = make_post(cast_hash="0x" + "2" * 40, text="started aiming higher and it worked out! older")
        post, description = select_qualifying_post([make_post(text="gm"), newest, older])
        assert post is newest
        assert description == "newest"

    def test_outside_cutoff_ignored(self, make_post) -> None:
        old = make_post(timestamp=datetime(2020, 1, 1, tzinfo=timezone.utc))
        assert select_qualifying_post([old], cutoff=datetime(2026, 1, 1, tzinfo=timezone.utc)) is None

    def test_text_only_match_never_qualifies(self, make_post) -> None:
        assert select_qualifying_post([make_post(channel_id=None)]) is None


class TestReconcileCandidates:
    @pytest.mark.asyncio
    async def test_builds_candidates_for_funded_identities(self, make_identity, make_post) -> None:
        alice, bob, carol = make_identity(1), make_identity(2), make_identity(3)
        recent = datetime.fromtimestamp(AS_OF, tz=timezone.utc) - timedelta(days=1)

        async def posts(fid, limit):
            if fid == 2:
                raise httpx.ConnectError("down")
            return [make_post(fid=fid, timestamp=recent)]

        social = AsyncMock()
        social.fetch_posts_for_user = AsyncMock(side_effect=posts)
        balances = {
            1: IdentityBalance(identity=alice, total_balance=10, addresses=["0xa"]),
            2: IdentityBalance(identity=bob, total_balance=20, addresses=["0xb"]),
            3: IdentityBalance(identity=carol, total_balance=0, addresses=["0xc"]),
        }

        candidates = await reconcile_candidates(social, balances, AS_OF)

        assert [c.fid for c in candidates] == [1]
        assert candidates[0].balance == 10
        assert candidates[0].addresses == ("0xa",)
        assert candidates[0].description == "shipped the thing"
        fetched = {call.args[0] for call in social.fetch_posts_for_user.await_args_list}
        assert fetched == {1, 2}

    @pytest.mark.asyncio
    async def test_no_qualifying_post_excluded(self, make_identity, make_post) -> None:
        social = AsyncMock()
        social.fetch_posts_for_user = AsyncMock(return_value=[make_post(text="gm")])
        balances = {1: IdentityBalance(identity=make_identity(1), total_balance=5)}
        assert await reconcile_candidates(social, balances, AS_OF) == []
