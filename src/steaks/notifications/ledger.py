"""Notification dedup ledger and delivery tokens."""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from steaks.db.models import NotificationSent, NotificationToken

STAKE_EXPIRED = "stake_expired"
SUPPORTER_ADDED = "supporter_added"


class NotificationLedger:
    """Write-once ``notification_sent`` records plus the ``notification_tokens`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # --- Dedup ---

    async def has_been_sent(self, notification_type: str, fid: int, reference_id: str) -> bool:
        result = await self.db.execute(
            select(NotificationSent.id)
            .where(
                NotificationSent.notification_type == notification_type,
                NotificationSent.fid == fid,
                NotificationSent.reference_id == reference_id,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def mark_sent(self, notification_type: str, fid: int, reference_id: str) -> None:
        stmt = (
            insert(NotificationSent)
            .values(notification_type=notification_type, fid=fid, reference_id=reference_id)
            .on_conflict_do_nothing(constraint="uq_notification_sent_type_fid_ref")
        )
        await self.db.execute(stmt)
        await self.db.commit()

    # --- Tokens ---

    async def enabled_token(self, fid: int) -> NotificationToken | None:
        """Most recently updated enabled token for ``fid``."""
        result = await self.db.execute(
            select(NotificationToken)
            .where(NotificationToken.fid == fid, NotificationToken.enabled.is_(True))
            .order_by(NotificationToken.updated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def upsert_token(self, fid: int, token: str, url: str, enabled: bool = True) -> None:
        stmt = insert(NotificationToken).values(fid=fid, token=token, notification_url=url, enabled=enabled)
        stmt = stmt.on_conflict_do_update(
            constraint="uq_notification_tokens_fid_token",
            set_={"enabled": enabled, "notification_url": url, "updated_at": func.now()},
        )
        await self.db.execute(stmt)
        await self.db.commit()

    async def disable_token(self, fid: int, token: str) -> None:
        await self.db.execute(
            update(NotificationToken)
            .where(NotificationToken.fid == fid, NotificationToken.token == token)
            .values(enabled=False, updated_at=func.now())
        )
        await self.db.commit()

    async def disable_all(self, fid: int) -> None:
        await self.db.execute(
            update(NotificationToken)
            .where(NotificationToken.fid == fid)
            .values(enabled=False, updated_at=func.now())
        )
        await self.db.commit()
