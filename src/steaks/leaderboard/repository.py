"""Persistence for ``leaderboard_entries``."""

from __future__ import annotations

from dataclasses import asdict

from sqlalchemy import delete, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from steaks.db.models import LeaderboardEntry
from steaks.leaderboard.materializer import EntryRow

CASTER = "caster"
SUPPORTER = "supporter"

_UNLOCK_SQL = {
    CASTER: """
        UPDATE leaderboard_entries
        SET caster_stake_unlocked[array_position(caster_stake_lockup_ids, CAST(:lockup_id AS BIGINT))] = true,
            updated_at = NOW()
        WHERE CAST(:lockup_id AS BIGINT) = ANY(caster_stake_lockup_ids)
          AND (CAST(:cast_hash AS TEXT) IS NULL OR cast_hash = CAST(:cast_hash AS TEXT))
    """,
    SUPPORTER: """
        UPDATE leaderboard_entries
        SET supporter_stake_unlocked[array_position(supporter_stake_lockup_ids, CAST(:lockup_id AS BIGINT))] = true,
            updated_at = NOW()
        WHERE CAST(:lockup_id AS BIGINT) = ANY(supporter_stake_lockup_ids)
          AND (CAST(:cast_hash AS TEXT) IS NULL OR cast_hash = CAST(:cast_hash AS TEXT))
    """,
}


class LeaderboardRepository:
    """Reads and writes against the cast-keyed leaderboard table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def replace_all(self, rows: list[EntryRow]) -> None:
        """Delete every row and insert ``rows`` in one transaction."""
        try:
            await self.db.execute(delete(LeaderboardEntry))
            self.db.add_all([LeaderboardEntry(**asdict(row)) for row in rows])
            await self.db.flush()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def count(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(LeaderboardEntry))
        return int(result.scalar_one())

    async def get(self, cast_hash: str) -> LeaderboardEntry | None:
        result = await self.db.execute(select(LeaderboardEntry).where(LeaderboardEntry.cast_hash == cast_hash))
        return result.scalar_one_or_none()

    async def ranked(self, limit: int) -> list[LeaderboardEntry]:
        """Ranked (``higher``) entries in rank order."""
        result = await self.db.execute(
            select(LeaderboardEntry)
            .where(LeaderboardEntry.rank.isnot(None))
            .order_by(LeaderboardEntry.rank.asc())
            .limit(limit)
        )
        return list(result.scalars())

    async def all_entries(self) -> list[LeaderboardEntry]:
        result = await self.db.execute(
            select(LeaderboardEntry).order_by(LeaderboardEntry.rank.asc().nulls_last(), LeaderboardEntry.id.asc())
        )
        return list(result.scalars())

    async def for_creator(self, fid: int) -> list[LeaderboardEntry]:
        result = await self.db.execute(select(LeaderboardEntry).where(LeaderboardEntry.creator_fid == fid))
        return list(result.scalars())

    async def lock_times(self) -> dict[int, int]:
        """Known lock times (non-zero) from the current snapshot, by lockup id."""
        result = await self.db.execute(
            select(
                LeaderboardEntry.caster_stake_lockup_ids,
                LeaderboardEntry.caster_stake_lock_times,
                LeaderboardEntry.supporter_stake_lockup_ids,
                LeaderboardEntry.supporter_stake_lock_times,
            )
        )
        known: dict[int, int] = {}
        for caster_ids, caster_times, supporter_ids, supporter_times in result.all():
            for ids, times in ((caster_ids, caster_times), (supporter_ids, supporter_times)):
                for lockup_id, lock_time in zip(ids or [], times or [], strict=False):
                    if lock_time:
                        known[int(lockup_id)] = int(lock_time)
        return known

    async def mark_lockup_unlocked(
        self, lockup_id: int, stake_type: str | None = None, cast_hash: str | None = None
    ) -> int:
        """Flip the unlocked flag for ``lockup_id`` in place; returns rows touched.

        ``stake_type`` and ``cast_hash`` narrow the update to one group or one row.

        Only the matching array element changes, so a concurrent full refresh
        is never clobbered. Writing ``true`` twice is a no-op.
        """
        groups = [stake_type] if stake_type else [CASTER, SUPPORTER]
        touched = 0
        for group in groups:
            result = await self.db.execute(text(_UNLOCK_SQL[group]), {"lockup_id": lockup_id, "cast_hash": cast_hash})
            touched += result.rowcount or 0
        await self.db.commit()
        return touched
