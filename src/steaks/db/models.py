"""ORM models for the leaderboard and notification tables.

The leaderboard is keyed by cast hash. Stakes backing a cast are stored as
parallel arrays per group (caster, supporter); every array in a group has the
same length and index ``i`` across them describes one lockup.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from steaks.db.base import Base


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------


class LeaderboardEntry(Base):
    """One qualifying cast and the stakes behind it."""

    __tablename__ = "leaderboard_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cast_hash: Mapped[str] = mapped_column(String(66), unique=True, nullable=False)
    creator_fid: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    creator_username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    creator_display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    creator_pfp_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    cast_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    cast_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_higher_staked: Mapped[Decimal] = mapped_column(Numeric(30, 18), nullable=False, default=0)
    usd_value: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cast_state: Mapped[str] = mapped_column(String(16), nullable=False, server_default="higher")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # --- Caster stakes (wei amounts as decimal strings) ---
    caster_stake_lockup_ids: Mapped[list[int]] = mapped_column(ARRAY(BigInteger), nullable=False, default=list)
    caster_stake_amounts: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False, default=list)
    caster_stake_unlock_times: Mapped[list[int]] = mapped_column(ARRAY(BigInteger), nullable=False, default=list)
    caster_stake_unlocked: Mapped[list[bool]] = mapped_column(ARRAY(Boolean), nullable=False, default=list)
    caster_stake_lock_times: Mapped[list[int]] = mapped_column(ARRAY(BigInteger), nullable=False, default=list)

    # --- Supporter stakes ---
    supporter_stake_lockup_ids: Mapped[list[int]] = mapped_column(ARRAY(BigInteger), nullable=False, default=list)
    supporter_stake_amounts: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False, default=list)
    supporter_stake_fids: Mapped[list[int]] = mapped_column(ARRAY(BigInteger), nullable=False, default=list)
    supporter_stake_pfps: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False, default=list)
    supporter_stake_unlock_times: Mapped[list[int]] = mapped_column(ARRAY(BigInteger), nullable=False, default=list)
    supporter_stake_unlocked: Mapped[list[bool]] = mapped_column(ARRAY(Boolean), nullable=False, default=list)
    supporter_stake_lock_times: Mapped[list[int]] = mapped_column(ARRAY(BigInteger), nullable=False, default=list)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationSent(Base):
    """Write-once dedup record for a delivered notification."""

    __tablename__ = "notification_sent"
    __table_args__ = (
        UniqueConstraint("notification_type", "fid", "reference_id", name="uq_notification_sent_type_fid_ref"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    notification_type: Mapped[str] = mapped_column(String(32), nullable=False)
    fid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reference_id: Mapped[str] = mapped_column(String(255), nullable=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class NotificationToken(Base):
    """Mini-app notification token registered by a client for an fid."""

    __tablename__ = "notification_tokens"
    __table_args__ = (UniqueConstraint("fid", "token", name="uq_notification_tokens_fid_token"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fid: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    token: Mapped[str] = mapped_column(Text, nullable=False)
    notification_url: Mapped[str] = mapped_column(Text, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
