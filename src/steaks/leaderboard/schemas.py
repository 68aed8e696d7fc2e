"""Pydantic schemas for the leaderboard and cast read API.

Responses are serialized camelCase for the mini-app client.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Top leaderboard
# ---------------------------------------------------------------------------


class LeaderboardItem(CamelModel):
    """One ranked cast."""

    rank: int | None
    cast_hash: str
    fid: int
    username: str | None = None
    display_name: str | None = None
    pfp_url: str | None = None
    cast_text: str | None = None
    description: str | None = None
    cast_timestamp: datetime | None = None
    total_higher_staked: str
    usd_value: float | None = None
    caster_weighted_stake: float = 0.0
    supporter_weighted_stake: float = 0.0
    cast_state: str


class LeaderboardTopResponse(CamelModel):
    entries: list[LeaderboardItem]
    as_of: int


# ---------------------------------------------------------------------------
# Single cast
# ---------------------------------------------------------------------------


class CasterStakeItem(CamelModel):
    lockup_id: int
    amount: str
    unlock_time: int


class SupporterTotal(CamelModel):
    fid: int
    total_amount: str


class CastDetailResponse(CamelModel):
    """A stored cast with its active stakes, or a live validation result."""

    hash: str
    fid: int | None = None
    username: str | None = None
    display_name: str | None = None
    pfp_url: str | None = None
    cast_text: str | None = None
    description: str | None = None
    timestamp: datetime | None = None
    state: str
    reason: str | None = None
    total_higher_staked: str | None = None
    usd_value: float | None = None
    rank: int | None = None
    min_caster_unlock_time: int = 0
    max_caster_unlock_time: int = 0
    total_caster_staked: str = "0"
    total_supporter_staked: str = "0"
    caster_stakes: list[CasterStakeItem] = []
    top_supporters: list[SupporterTotal] = []
    total_unique_supporters: int = 0
    connected_user_stake: SupporterTotal | None = None


# ---------------------------------------------------------------------------
# Cast supporter leaderboard
# ---------------------------------------------------------------------------


class CasterSummary(CamelModel):
    fid: int
    username: str | None = None
    display_name: str | None = None
    pfp_url: str | None = None
    weighted_stake: float


class SupporterRow(CamelModel):
    rank: int
    fid: int
    pfp: str
    username: str
    display_name: str
    weighted_stake: float


class CastLeaderboardResponse(CamelModel):
    caster: CasterSummary
    supporters: list[SupporterRow]
    total_pages: int
    current_page: int
    total_supporters: int


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


class ReportEntry(CamelModel):
    cast_hash: str
    fid: int
    username: str | None = None
    description: str | None = None
    total_higher_staked: str
    usd_value: float | None = None
    rank: int | None = None
    cast_state: str
    caster_stakes: int
    supporter_stakes: int
    updated_at: datetime | None = None


class ReportResponse(CamelModel):
    timestamp: datetime
    total_entries: int
    by_state: dict[str, int]
    entries: list[ReportEntry]
