"""Qualification reconciliation: balances meet qualifying casts.

For every identity holding a locked balance, the most recent qualifying cast
within the lookback window becomes its leaderboard cast. Posts arrive
newest-first from the provider; the first match wins.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog

from steaks.social.client import NeynarClient
from steaks.social.schemas import Identity, Post
from steaks.staking.identity import IdentityBalance
from steaks.staking.matcher import qualify

logger = structlog.get_logger()


@dataclass(frozen=True)
class Candidate:
    """An identity eligible for the leaderboard this run."""

    identity: Identity
    balance: int
    addresses: tuple[str, ...]
    post: Post
    description: str

    @property
    def fid(self) -> int:
        return self.identity.fid


def select_qualifying_post(posts: list[Post], cutoff: datetime | None = None) -> tuple[Post, str] | None:
    """First (most recent) qualifying post at or after ``cutoff``."""
    for post in posts:
        if cutoff is not None and post.timestamp is not None and post.timestamp < cutoff:
            continue
        result = qualify(post)
        if result.qualifies:
            return post, result.description  # type: ignore[return-value]
    return None


async def reconcile_candidates(
    social: NeynarClient,
    balances: dict[int, IdentityBalance],
    as_of: int,
    lookback_limit: int = 25,
    recency_days: int = 30,
    concurrency: int = 10,
) -> list[Candidate]:
    """Build candidates for identities with a non-zero balance, in ``balances`` order."""
    cutoff = datetime.fromtimestamp(as_of, tz=timezone.utc) - timedelta(days=recency_days)
    semaphore = asyncio.Semaphore(concurrency)

    async def _reconcile(entry: IdentityBalance) -> Candidate | None:
        fid = entry.identity.fid
        async with semaphore:
            try:
                posts = await social.fetch_posts_for_user(fid, lookback_limit)
            except Exception as exc:  # noqa: BLE001
                logger.warning("post_lookup_failed", fid=fid, error=str(exc))
                return None

        selected = select_qualifying_post(posts, cutoff)
        if selected is None:
            return None
        post, description = selected
        return Candidate(
            identity=entry.identity,
            balance=entry.total_balance,
            addresses=tuple(entry.addresses),
            post=post,
            description=description,
        )

    eligible = [entry for entry in balances.values() if entry.total_balance > 0]
    results = await asyncio.gather(*(_reconcile(entry) for entry in eligible))
    candidates = [c for c in results if c is not None]

    logger.info("candidates_qualified", identities=len(eligible), candidates=len(candidates))
    return candidates
