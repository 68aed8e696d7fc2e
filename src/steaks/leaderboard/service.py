"""Read models over stored leaderboard entries.

Weighted stakes are never stored; they are recomputed here against the
caller's ``as_of``.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx
import structlog

from steaks.db.models import LeaderboardEntry
from steaks.leaderboard.materializer import CAST_STATE_INVALID, CAST_STATE_VALID
from steaks.leaderboard.schemas import (
    CastDetailResponse,
    CasterStakeItem,
    CasterSummary,
    CastLeaderboardResponse,
    LeaderboardItem,
    ReportEntry,
    ReportResponse,
    SupporterRow,
    SupporterTotal,
)
from steaks.social.client import NeynarClient
from steaks.social.schemas import Post
from steaks.staking.matcher import qualify
from steaks.staking.scoring import weighted_stake

logger = structlog.get_logger()

ENTRIES_PER_PAGE = 20
TOP_SUPPORTERS = 10


@dataclass(frozen=True)
class Stake:
    """One element of a stored stake group."""

    lockup_id: int
    amount: int
    unlock_time: int
    lock_time: int
    unlocked: bool
    fid: int = 0
    pfp: str = ""


def _at(values: list | None, i: int, default):  # type: ignore[no-untyped-def]
    return values[i] if values is not None and i < len(values) and values[i] is not None else default


def _amount(raw: object) -> int:
    try:
        return int(str(raw))
    except ValueError:
        return 0


def caster_stakes(entry: LeaderboardEntry) -> list[Stake]:
    ids = entry.caster_stake_lockup_ids or []
    return [
        Stake(
            lockup_id=int(lockup_id),
            amount=_amount(_at(entry.caster_stake_amounts, i, "0")),
            unlock_time=int(_at(entry.caster_stake_unlock_times, i, 0)),
            lock_time=int(_at(entry.caster_stake_lock_times, i, 0)),
            unlocked=bool(_at(entry.caster_stake_unlocked, i, False)),
            fid=entry.creator_fid,
        )
        for i, lockup_id in enumerate(ids)
    ]


def supporter_stakes(entry: LeaderboardEntry) -> list[Stake]:
    ids = entry.supporter_stake_lockup_ids or []
    return [
        Stake(
            lockup_id=int(lockup_id),
            amount=_amount(_at(entry.supporter_stake_amounts, i, "0")),
            unlock_time=int(_at(entry.supporter_stake_unlock_times, i, 0)),
            lock_time=int(_at(entry.supporter_stake_lock_times, i, 0)),
            unlocked=bool(_at(entry.supporter_stake_unlocked, i, False)),
            fid=int(_at(entry.supporter_stake_fids, i, 0)),
            pfp=str(_at(entry.supporter_stake_pfps, i, "")),
        )
        for i, lockup_id in enumerate(ids)
    ]


def weighted_sum(stakes: list[Stake], as_of: int) -> float:
    return sum(weighted_stake(s.amount, s.lock_time, s.unlock_time, as_of) for s in stakes)


def _usd(entry: LeaderboardEntry) -> float | None:
    return float(entry.usd_value) if entry.usd_value is not None else None


# ---------------------------------------------------------------------------
# Top leaderboard
# ---------------------------------------------------------------------------


def leaderboard_item(entry: LeaderboardEntry, as_of: int) -> LeaderboardItem:
    return LeaderboardItem(
        rank=entry.rank,
        cast_hash=entry.cast_hash,
        fid=entry.creator_fid,
        username=entry.creator_username,
        display_name=entry.creator_display_name,
        pfp_url=entry.creator_pfp_url,
        cast_text=entry.cast_text,
        description=entry.description,
        cast_timestamp=entry.cast_timestamp,
        total_higher_staked=str(entry.total_higher_staked),
        usd_value=_usd(entry),
        caster_weighted_stake=weighted_sum(caster_stakes(entry), as_of),
        supporter_weighted_stake=weighted_sum([s for s in supporter_stakes(entry) if s.fid > 0], as_of),
        cast_state=entry.cast_state,
    )


# ---------------------------------------------------------------------------
# Single cast
# ---------------------------------------------------------------------------


def cast_detail(entry: LeaderboardEntry, user_fid: int | None = None) -> CastDetailResponse:
    """Stored cast with its active caster stakes and supporter totals.

    Supporter stakes count when still locked and their unlock time matches
    one of the caster's unlock times.
    """
    casters = caster_stakes(entry)
    active_casters = [s for s in casters if not s.unlocked]
    caster_unlocks = [s.unlock_time for s in active_casters]
    all_caster_unlocks = {s.unlock_time for s in casters}

    totals: Counter[int] = Counter()
    for stake in supporter_stakes(entry):
        if stake.unlocked or stake.unlock_time not in all_caster_unlocks:
            continue
        if stake.fid <= 0 or stake.amount <= 0:
            continue
        totals[stake.fid] += stake.amount

    top = sorted(totals.items(), key=lambda item: item[1], reverse=True)[:TOP_SUPPORTERS]
    connected = None
    if user_fid and user_fid in totals:
        connected = SupporterTotal(fid=user_fid, total_amount=str(totals[user_fid]))

    return CastDetailResponse(
        hash=entry.cast_hash,
        fid=entry.creator_fid,
        username=entry.creator_username,
        display_name=entry.creator_display_name,
        pfp_url=entry.creator_pfp_url,
        cast_text=entry.cast_text,
        description=entry.description,
        timestamp=entry.cast_timestamp,
        state=entry.cast_state,
        total_higher_staked=str(entry.total_higher_staked),
        usd_value=_usd(entry),
        rank=entry.rank,
        min_caster_unlock_time=min(caster_unlocks, default=0),
        max_caster_unlock_time=max(caster_unlocks, default=0),
        total_caster_staked=str(sum(s.amount for s in active_casters)),
        total_supporter_staked=str(sum(totals.values())),
        caster_stakes=[
            CasterStakeItem(lockup_id=s.lockup_id, amount=str(s.amount), unlock_time=s.unlock_time)
            for s in active_casters
        ],
        top_supporters=[SupporterTotal(fid=fid, total_amount=str(amount)) for fid, amount in top],
        total_unique_supporters=len(totals),
        connected_user_stake=connected,
    )


def live_cast_detail(cast_hash: str, post: Post | None) -> CastDetailResponse:
    """Validate a cast that has no stored entry.

    A keyphrase match outside /higher is reported ``invalid`` but still
    carries its description.
    """
    if post is None:
        return CastDetailResponse(hash=cast_hash, state=CAST_STATE_INVALID, reason="Cast not found")

    result = qualify(post)
    if result.qualifies:
        state, reason = CAST_STATE_VALID, None
    elif result.text_only:
        state, reason = CAST_STATE_INVALID, "Cast not in /higher channel"
    else:
        state, reason = CAST_STATE_INVALID, "Cast missing required keyphrase"

    return CastDetailResponse(
        hash=post.hash,
        fid=post.author.fid,
        username=post.author.username,
        display_name=post.author.display_name,
        pfp_url=post.author.pfp_url,
        cast_text=post.text,
        description=result.description,
        timestamp=post.timestamp,
        state=state,
        reason=reason,
    )


# ---------------------------------------------------------------------------
# Cast supporter leaderboard
# ---------------------------------------------------------------------------


async def _usernames(social: NeynarClient, fids: list[int], batch_size: int) -> dict[int, tuple[str, str]]:
    names: dict[int, tuple[str, str]] = {}
    for start in range(0, len(fids), batch_size):
        batch = fids[start : start + batch_size]
        try:
            users = await social.fetch_users(batch)
        except httpx.HTTPError as exc:
            logger.warning("supporter_names_batch_failed", batch_start=start, error=str(exc))
            continue
        for user in users:
            names[user.fid] = (user.username, user.display_name or user.username)
    return names


async def cast_leaderboard(
    entry: LeaderboardEntry,
    social: NeynarClient,
    as_of: int,
    user_fid: int | None = None,
    page: int = 1,
    per_page: int = ENTRIES_PER_PAGE,
    batch_size: int = 100,
) -> CastLeaderboardResponse:
    """Supporters of one cast ranked by time-weighted stake.

    Every stored stake counts, unlocked and expired included; the connected
    viewer (``user_fid``) is pinned to the top.
    """
    caster_weight = weighted_sum(
        [s for s in caster_stakes(entry) if s.lock_time > 0 and s.unlock_time > 0 and s.amount > 0], as_of
    )

    weights: dict[int, float] = {}
    pfps: dict[int, str] = {}
    for stake in supporter_stakes(entry):
        if stake.lock_time <= 0 or stake.unlock_time <= 0 or stake.amount <= 0 or stake.fid <= 0:
            continue
        weights[stake.fid] = weights.get(stake.fid, 0.0) + weighted_stake(
            stake.amount, stake.lock_time, stake.unlock_time, as_of
        )
        pfps.setdefault(stake.fid, stake.pfp)

    names = await _usernames(social, list(weights), batch_size)

    ordered = sorted(weights.items(), key=lambda item: item[1], reverse=True)
    if user_fid is not None:
        ordered.sort(key=lambda item: item[0] != user_fid)

    total = len(ordered)
    total_pages = max(1, math.ceil(total / per_page))
    start = (page - 1) * per_page
    rows = []
    for offset, (fid, weight) in enumerate(ordered[start : start + per_page]):
        username, display_name = names.get(fid, (f"fid-{fid}", f"fid-{fid}"))
        rows.append(
            SupporterRow(
                rank=start + offset + 1,
                fid=fid,
                pfp=pfps.get(fid, ""),
                username=username,
                display_name=display_name,
                weighted_stake=weight,
            )
        )

    return CastLeaderboardResponse(
        caster=CasterSummary(
            fid=entry.creator_fid,
            username=entry.creator_username,
            display_name=entry.creator_display_name,
            pfp_url=entry.creator_pfp_url,
            weighted_stake=caster_weight,
        ),
        supporters=rows,
        total_pages=total_pages,
        current_page=page,
        total_supporters=total,
    )


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def report(entries: list[LeaderboardEntry], state: str | None = None, fid: int | None = None) -> ReportResponse:
    """Snapshot of stored entries, optionally narrowed by cast state or creator."""
    by_state = Counter(e.cast_state for e in entries)
    selected = [
        e for e in entries if (state is None or e.cast_state == state) and (fid is None or e.creator_fid == fid)
    ]
    return ReportResponse(
        timestamp=datetime.now(timezone.utc),
        total_entries=len(entries),
        by_state=dict(by_state),
        entries=[
            ReportEntry(
                cast_hash=e.cast_hash,
                fid=e.creator_fid,
                username=e.creator_username,
                description=e.description,
                total_higher_staked=str(e.total_higher_staked),
                usd_value=_usd(e),
                rank=e.rank,
                cast_state=e.cast_state,
                caster_stakes=len(e.caster_stake_lockup_ids or []),
                supporter_stakes=len(e.supporter_stake_lockup_ids or []),
                updated_at=e.updated_at,
            )
            for e in selected
        ],
    )
