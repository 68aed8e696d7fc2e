"""Leaderboard materialization.

Candidates are ranked by aggregate locked balance (descending, stable on
input order), cut to the top N, checked for duplicate identities and written
as one atomic replace of the table. Only entries in the ``higher`` state are
ranked; ranks are dense from 1.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

import structlog

from steaks.errors import DuplicateIdentityError
from steaks.social.schemas import Identity
from steaks.staking.discovery import LockupPosition
from steaks.staking.qualification import Candidate
from steaks.staking.scoring import TOKEN_DECIMALS

logger = structlog.get_logger()

CAST_STATE_HIGHER = "higher"
CAST_STATE_EXPIRED = "expired"
CAST_STATE_VALID = "valid"
CAST_STATE_INVALID = "invalid"

_WEI = Decimal(10) ** TOKEN_DECIMALS
_CENTS = Decimal("0.01")


@dataclass
class EntryRow:
    """Column values of one ``leaderboard_entries`` row."""

    cast_hash: str
    creator_fid: int
    creator_username: str
    creator_display_name: str
    creator_pfp_url: str
    cast_text: str
    description: str
    cast_timestamp: datetime | None
    total_higher_staked: Decimal
    usd_value: Decimal
    cast_state: str
    rank: int | None = None
    caster_stake_lockup_ids: list[int] = field(default_factory=list)
    caster_stake_amounts: list[str] = field(default_factory=list)
    caster_stake_unlock_times: list[int] = field(default_factory=list)
    caster_stake_unlocked: list[bool] = field(default_factory=list)
    caster_stake_lock_times: list[int] = field(default_factory=list)
    supporter_stake_lockup_ids: list[int] = field(default_factory=list)
    supporter_stake_amounts: list[str] = field(default_factory=list)
    supporter_stake_fids: list[int] = field(default_factory=list)
    supporter_stake_pfps: list[str] = field(default_factory=list)
    supporter_stake_unlock_times: list[int] = field(default_factory=list)
    supporter_stake_unlocked: list[bool] = field(default_factory=list)
    supporter_stake_lock_times: list[int] = field(default_factory=list)


class LeaderboardWriter(Protocol):
    async def replace_all(self, rows: list[EntryRow]) -> None: ...

    async def count(self) -> int: ...


@dataclass(frozen=True)
class MaterializeResult:
    expected: int
    stored: int
    higher: int
    expired: int


def wei_to_decimal(amount: int) -> Decimal:
    return Decimal(amount) / _WEI


def is_live(position: LockupPosition, as_of: int) -> bool:
    """Still locked on-chain and not yet past its unlock time."""
    return not position.unlocked and position.unlock_time > as_of


def build_entry(
    candidate: Candidate,
    caster_positions: list[LockupPosition],
    supporter_positions: list[tuple[LockupPosition, Identity]],
    lock_times: dict[int, int],
    pfps: dict[int, str],
    as_of: int,
    price: float,
) -> EntryRow:
    """Assemble the row for one candidate cast.

    Every stake is stored (including unlocked and expired ones) so that the
    arrays mirror the ledger. The total only counts live caster stakes plus
    live supporter stakes that outlast the earliest live caster unlock.
    """
    casters = sorted(caster_positions, key=lambda p: p.lockup_id)
    supporters = sorted(supporter_positions, key=lambda s: s[0].lockup_id)

    live_casters = [p for p in casters if is_live(p, as_of)]
    state = CAST_STATE_HIGHER if live_casters else CAST_STATE_EXPIRED

    total_wei = sum(p.amount for p in live_casters)
    if live_casters:
        min_caster_unlock = min(p.unlock_time for p in live_casters)
        total_wei += sum(
            p.amount for p, _ in supporters if is_live(p, as_of) and p.unlock_time > min_caster_unlock
        )

    total = wei_to_decimal(total_wei)
    usd = (total * Decimal(str(price))).quantize(_CENTS, rounding=ROUND_HALF_UP)

    post = candidate.post
    return EntryRow(
        cast_hash=post.hash,
        creator_fid=candidate.fid,
        creator_username=candidate.identity.username,
        creator_display_name=candidate.identity.display_name or candidate.identity.username,
        creator_pfp_url=candidate.identity.pfp_url,
        cast_text=post.text,
        description=candidate.description,
        cast_timestamp=post.timestamp,
        total_higher_staked=total,
        usd_value=usd,
        cast_state=state,
        caster_stake_lockup_ids=[p.lockup_id for p in casters],
        caster_stake_amounts=[str(p.amount) for p in casters],
        caster_stake_unlock_times=[p.unlock_time for p in casters],
        caster_stake_unlocked=[p.unlocked for p in casters],
        caster_stake_lock_times=[lock_times.get(p.lockup_id, 0) for p in casters],
        supporter_stake_lockup_ids=[p.lockup_id for p, _ in supporters],
        supporter_stake_amounts=[str(p.amount) for p, _ in supporters],
        supporter_stake_fids=[ident.fid for _, ident in supporters],
        supporter_stake_pfps=[pfps.get(ident.fid, ident.pfp_url) for _, ident in supporters],
        supporter_stake_unlock_times=[p.unlock_time for p, _ in supporters],
        supporter_stake_unlocked=[p.unlocked for p, _ in supporters],
        supporter_stake_lock_times=[lock_times.get(p.lockup_id, 0) for p, _ in supporters],
    )


def rank_candidates(candidates: list[Candidate], top_n: int) -> list[Candidate]:
    """Sort by balance descending (stable), keep ``top_n``, reject duplicate fids."""
    ranked = sorted(candidates, key=lambda c: c.balance, reverse=True)[:top_n]
    counts = Counter(c.fid for c in ranked)
    duplicates = [fid for fid, n in counts.items() if n > 1]
    if duplicates:
        raise DuplicateIdentityError(duplicates)
    return ranked


def assign_ranks(rows: list[EntryRow]) -> list[EntryRow]:
    """Dense ranks 1..k over ``higher`` rows, in list order; others get None."""
    rank = 1
    for row in rows:
        if row.cast_state == CAST_STATE_HIGHER:
            row.rank = rank
            rank += 1
        else:
            row.rank = None
    return rows


async def materialize(
    repo: LeaderboardWriter,
    candidates: list[Candidate],
    top_n: int,
    build: Callable[[Candidate], EntryRow],
) -> MaterializeResult:
    """Rank, build and atomically replace the persisted leaderboard.

    Raises ``DuplicateIdentityError`` before anything is written.
    """
    ranked = rank_candidates(candidates, top_n)
    rows = assign_ranks([build(c) for c in ranked])

    await repo.replace_all(rows)

    stored = await repo.count()
    if stored != len(rows):
        logger.warning("leaderboard_count_mismatch", expected=len(rows), stored=stored)

    higher = sum(1 for r in rows if r.cast_state == CAST_STATE_HIGHER)
    result = MaterializeResult(expected=len(rows), stored=stored, higher=higher, expired=len(rows) - higher)
    logger.info(
        "leaderboard_materialized",
        candidates=len(candidates),
        stored=stored,
        higher=result.higher,
        expired=result.expired,
    )
    return result
