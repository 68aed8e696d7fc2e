"""Identity resolution and aggregation."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from steaks.staking.identity import aggregate_by_identity, fetch_pfps, resolve_identities


class TestResolveIdentities:
    @pytest.mark.asyncio
    async def test_batches_by_size(self, make_identity) -> None:
        social = AsyncMock()
        social.resolve_by_address = AsyncMock(return_value={})
        await resolve_identities(social, [f"0x{i:03x}" for i in range(7)], batch_size=3)
        sizes = sorted(len(call.args[0]) for call in social.resolve_by_address.await_args_list)
        assert sizes == [1, 3, 3]

    @pytest.mark.asyncio
    async def test_failed_batch_is_isolated(self, make_identity) -> None:
        alice = make_identity(1)

        async def resolve(batch):
            if "0xbad" in batch:
                raise httpx.ConnectError("boom")
            return {a: [alice] for a in batch}

        social = AsyncMock()
        social.resolve_by_address = AsyncMock(side_effect=resolve)
        resolved = await resolve_identities(social, ["0xaaa", "0xbad"], batch_size=1)
        assert resolved == {"0xaaa": alice}

    @pytest.mark.asyncio
    async def test_first_identity_wins(self, make_identity) -> None:
        social = AsyncMock()
        social.resolve_by_address = AsyncMock(return_value={"0xaaa": [make_identity(1), make_identity(2)]})
        resolved = await resolve_identities(social, ["0xAAA"])
        assert resolved["0xaaa"].fid == 1

    @pytest.mark.asyncio
    async def test_first_page_wins_across_address_casing(self, make_identity) -> None:
        pages = [{"0xAAA": [make_identity(1)]}, {"0xaaa": [make_identity(2)]}]
        social = AsyncMock()
        social.resolve_by_address = AsyncMock(side_effect=pages)
        resolved = await resolve_identities(social, ["0xaaa", "0xbbb"], batch_size=1)
        assert resolved == {"0xaaa": make_identity(1)}


class TestAggregate:
    def test_sums_wallets_of_one_identity(self, make_identity) -> None:
        alice = make_identity(1)
        balances = aggregate_by_identity({"0xa1": 5, "0xa2": 7, "0xzz": 100}, {"0xa1": alice, "0xa2": alice})
        assert set(balances) == {1}
        assert balances[1].total_balance == 12
        assert balances[1].addresses == ["0xa1", "0xa2"]

    def test_order_independent(self, make_identity) -> None:
        alice, bob = make_identity(1), make_identity(2)
        identities = {"0xa": alice, "0xb": bob, "0xc": alice}
        first = aggregate_by_identity({"0xa": 1, "0xb": 2, "0xc": 3}, identities)
        second = aggregate_by_identity({"0xc": 3, "0xb": 2, "0xa": 1}, identities)
        assert {k: v.total_balance for k, v in first.items()} == {k: v.total_balance for k, v in second.items()}


class TestFetchPfps:
    @pytest.mark.asyncio
    async def test_skips_failed_batches(self, make_identity) -> None:
        async def fetch(fids):
            if 2 in fids:
                raise httpx.ReadTimeout("slow")
            return [make_identity(f) for f in fids]

        social = AsyncMock()
        social.fetch_users = AsyncMock(side_effect=fetch)
        pfps = await fetch_pfps(social, {1, 2, 3}, batch_size=1)
        assert set(pfps) == {1, 3}
