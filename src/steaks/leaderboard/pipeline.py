"""Staking leaderboard refresh.

Stages run strictly in order, each fanning out internally and joining before
the next starts:

    fresh block -> positions -> identities -> qualifying casts -> materialize

Structural failures (stale RPC, broken base reads, storage errors) abort the
run before the commit, leaving the previous snapshot in place.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from steaks.chain.client import BlockInfo, ChainClient
from steaks.config import Settings
from steaks.errors import StaleBlockError
from steaks.leaderboard.materializer import EntryRow, build_entry, materialize, rank_candidates
from steaks.leaderboard.repository import LeaderboardRepository
from steaks.notifications.price import PriceFeed
from steaks.social.client import NeynarClient
from steaks.social.schemas import Identity
from steaks.staking.discovery import LockupPosition, PositionSnapshot, snapshot_positions
from steaks.staking.identity import aggregate_by_identity, fetch_pfps, resolve_identities
from steaks.staking.qualification import Candidate, reconcile_candidates

logger = structlog.get_logger()


@dataclass
class RefreshSummary:
    """Counts reported by one refresh run."""

    block: int
    block_age: int
    total_lockups: int
    token_lockups: int
    positions: int
    identities: int
    candidates: int
    stored: int
    higher: int
    expired: int
    price: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "block": self.block,
            "blockAge": self.block_age,
            "totalLockups": self.total_lockups,
            "higherLockups": self.token_lockups,
            "positions": self.positions,
            "identities": self.identities,
            "validCasts": self.candidates,
            "higherCasts": self.higher,
            "expiredCasts": self.expired,
            "stored": self.stored,
            "tokenPrice": self.price,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


async def wait_for_fresh_block(
    chain: ChainClient,
    stale_threshold: int,
    retry_delays: list[float],
    max_duration: float,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> tuple[BlockInfo, int]:
    """Latest block whose age is within ``stale_threshold`` seconds, with back-off retries.

    Returns the block and its age. Raises ``StaleBlockError`` once the retry
    budget is spent.
    """
    started = clock()
    attempt = 0
    age: int | None = None

    while clock() - started < max_duration:
        try:
            block = await chain.get_block("latest")
            age = int(time.time()) - block.timestamp
            if age <= stale_threshold:
                logger.info("block_fresh", block=block.number, age=age, attempts=attempt + 1)
                return block, age
            logger.warning("block_stale", block=block.number, age=age, attempt=attempt + 1)
        except Exception as exc:  # noqa: BLE001
            logger.warning("block_fetch_failed", attempt=attempt + 1, error=str(exc))

        delay = retry_delays[min(attempt, len(retry_delays) - 1)]
        remaining = max_duration - (clock() - started)
        if remaining <= delay:
            break
        await sleep(delay)
        attempt += 1

    raise StaleBlockError(age, attempt + 1)


async def resolve_lock_times(
    chain: ChainClient,
    repo: LeaderboardRepository,
    lockup_ids: set[int],
    settings: Settings,
    to_block: int,
) -> dict[int, int]:
    """Lock times carried forward from storage, with new ids read from creation logs."""
    known = await repo.lock_times()
    missing = sorted(i for i in lockup_ids if i not in known)
    if missing:
        try:
            known.update(
                await chain.lockup_created_times(
                    missing,
                    from_block=settings.lockup_deploy_block,
                    to_block=to_block,
                    chunk_size=settings.lockup_log_chunk_size,
                )
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("lock_time_scan_failed", missing=len(missing), error=str(exc))
    return known


def _stakes_for(
    candidate: Candidate,
    by_title: dict[str, list[LockupPosition]],
    identities: dict[str, Identity],
) -> tuple[list[LockupPosition], list[tuple[LockupPosition, Identity]]]:
    """Split the lockups titled with the candidate's cast into caster and supporter stakes.

    A lockup is a caster stake when its receiver is one of the creator's wallets
    (or resolves to the creator); any other resolvable receiver is a supporter.
    """
    wallets = set(candidate.addresses) | set(candidate.identity.verified_addresses)
    casters: list[LockupPosition] = []
    supporters: list[tuple[LockupPosition, Identity]] = []
    for position in by_title.get(candidate.post.hash.lower(), []):
        owner = identities.get(position.receiver)
        if position.receiver in wallets or (owner is not None and owner.fid == candidate.fid):
            casters.append(position)
        elif owner is not None:
            supporters.append((position, owner))
    return casters, supporters


async def run_refresh(
    settings: Settings,
    chain: ChainClient,
    social: NeynarClient,
    price_feed: PriceFeed,
    db: AsyncSession,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> RefreshSummary:
    """Run the full refresh and commit the new leaderboard snapshot."""
    block, block_age = await wait_for_fresh_block(
        chain,
        settings.block_stale_threshold_seconds,
        settings.block_retry_delays_seconds,
        settings.block_retry_max_seconds,
        sleep=sleep,
    )
    as_of = block.timestamp

    snapshot: PositionSnapshot = await snapshot_positions(chain, settings.higher_token, block.number)
    by_receiver = snapshot.by_receiver()
    by_title = snapshot.by_title()

    identities = await resolve_identities(
        social,
        set(by_receiver),
        batch_size=settings.address_batch_size,
        concurrency=settings.fanout_concurrency,
    )
    balances = aggregate_by_identity(snapshot.balances_by_receiver(), identities)

    candidates = await reconcile_candidates(
        social,
        balances,
        as_of,
        lookback_limit=settings.post_lookback_limit,
        recency_days=settings.post_recency_days,
        concurrency=settings.fanout_concurrency,
    )

    ranked = rank_candidates(candidates, settings.leaderboard_top_n)
    stakes = {c.fid: _stakes_for(c, by_title, identities) for c in ranked}

    referenced = {p.lockup_id for casters, supporters in stakes.values() for p in casters}
    referenced |= {p.lockup_id for casters, supporters in stakes.values() for p, _ in supporters}
    supporter_fids = {ident.fid for _, supporters in stakes.values() for _, ident in supporters}

    repo = LeaderboardRepository(db)
    lock_times = await resolve_lock_times(chain, repo, referenced, settings, block.number)
    pfps = await fetch_pfps(social, supporter_fids, batch_size=settings.bulk_user_batch_size)
    price = await price_feed.get_price()

    def build(candidate: Candidate) -> EntryRow:
        casters, supporters = stakes[candidate.fid]
        return build_entry(candidate, casters, supporters, lock_times, pfps, as_of, price)

    result = await materialize(repo, ranked, settings.leaderboard_top_n, build)

    return RefreshSummary(
        block=block.number,
        block_age=block_age,
        total_lockups=snapshot.total_lockups,
        token_lockups=len(snapshot.lockup_ids),
        positions=len(snapshot.positions),
        identities=len(balances),
        candidates=len(candidates),
        stored=result.stored,
        higher=result.higher,
        expired=result.expired,
        price=price,
    )
