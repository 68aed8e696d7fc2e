"""Leaderboard and notification tables.

Creates leaderboard_entries (cast-keyed, caster/supporter stake arrays),
notification_sent (dedup ledger) and notification_tokens.

Revision ID: 001_leaderboard_tables
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_leaderboard_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Leaderboard entries ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboard_entries (
            id SERIAL PRIMARY KEY,
            cast_hash VARCHAR(66) UNIQUE NOT NULL,
            creator_fid BIGINT NOT NULL,
            creator_username VARCHAR(255),
            creator_display_name VARCHAR(255),
            creator_pfp_url TEXT,
            cast_text TEXT,
            description TEXT,
            cast_timestamp TIMESTAMPTZ,
            total_higher_staked NUMERIC(30, 18) NOT NULL DEFAULT 0,
            usd_value NUMERIC(15, 2),
            rank INTEGER,
            cast_state VARCHAR(16) NOT NULL DEFAULT 'higher',
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            caster_stake_lockup_ids BIGINT[] NOT NULL DEFAULT '{}',
            caster_stake_amounts TEXT[] NOT NULL DEFAULT '{}',
            caster_stake_unlock_times BIGINT[] NOT NULL DEFAULT '{}',
            caster_stake_unlocked BOOLEAN[] NOT NULL DEFAULT '{}',
            caster_stake_lock_times BIGINT[] NOT NULL DEFAULT '{}',
            supporter_stake_lockup_ids BIGINT[] NOT NULL DEFAULT '{}',
            supporter_stake_amounts TEXT[] NOT NULL DEFAULT '{}',
            supporter_stake_fids BIGINT[] NOT NULL DEFAULT '{}',
            supporter_stake_pfps TEXT[] NOT NULL DEFAULT '{}',
            supporter_stake_unlock_times BIGINT[] NOT NULL DEFAULT '{}',
            supporter_stake_unlocked BOOLEAN[] NOT NULL DEFAULT '{}',
            supporter_stake_lock_times BIGINT[] NOT NULL DEFAULT '{}',
            CONSTRAINT chk_cast_state CHECK (cast_state IN ('invalid', 'valid', 'higher', 'expired'))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_leaderboard_entries_creator_fid
        ON leaderboard_entries(creator_fid)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_leaderboard_rank
        ON leaderboard_entries(rank) WHERE rank IS NOT NULL
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_leaderboard_caster_lockups
        ON leaderboard_entries USING GIN (caster_stake_lockup_ids)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_leaderboard_supporter_lockups
        ON leaderboard_entries USING GIN (supporter_stake_lockup_ids)
    """)

    # --- Notification dedup ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_sent (
            id SERIAL PRIMARY KEY,
            notification_type VARCHAR(32) NOT NULL,
            fid BIGINT NOT NULL,
            reference_id VARCHAR(255) NOT NULL,
            sent_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_notification_sent_type_fid_ref UNIQUE (notification_type, fid, reference_id)
        )
    """)

    # --- Notification tokens ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_tokens (
            id SERIAL PRIMARY KEY,
            fid BIGINT NOT NULL,
            token TEXT NOT NULL,
            notification_url TEXT NOT NULL,
            enabled BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_notification_tokens_fid_token UNIQUE (fid, token)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_notification_tokens_fid
        ON notification_tokens(fid)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notification_tokens")
    op.execute("DROP TABLE IF EXISTS notification_sent")
    op.execute("DROP TABLE IF EXISTS leaderboard_entries")
