"""Applies broadcast chain events to stored state.

Runs as a background task inside the API process, subscribed to the event
buffer like any stream client. Each event is handled in its own session;
a failure is logged and the loop moves on.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from steaks.database import session_scope
from steaks.events.buffer import EventBuffer
from steaks.events.schemas import BroadcastEvent, EventType, LockupCreatedData, UnlockData
from steaks.leaderboard.repository import LeaderboardRepository
from steaks.notifications.channel import NotificationChannel
from steaks.notifications.ledger import NotificationLedger
from steaks.notifications.price import PriceFeed
from steaks.notifications.service import Notifier
from steaks.social.client import NeynarClient
from steaks.staking.matcher import is_valid_cast_hash, normalize_hash
from steaks.staking.scoring import wei_to_tokens

logger = structlog.get_logger()

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class EventReconciler:
    """Consumes the event buffer and reconciles unlocks and new supporter stakes."""

    def __init__(
        self,
        buffer: EventBuffer,
        social: NeynarClient,
        channel: NotificationChannel,
        price_feed: PriceFeed,
        app_url: str,
        min_supporter_usd: float = 10.0,
        sessions: SessionScope = session_scope,
    ) -> None:
        self.buffer = buffer
        self.social = social
        self.channel = channel
        self.price_feed = price_feed
        self.app_url = app_url
        self.min_supporter_usd = min_supporter_usd
        self.sessions = sessions
        self._running = False
        self._client_id: str | None = None

    async def start(self) -> None:
        """Consume events until ``stop()`` is called."""
        self._running = True
        self._client_id, queue = self.buffer.subscribe()
        logger.info("event_reconciler_started")
        try:
            while self._running:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=1.0)
                except TimeoutError:
                    continue
                await self.handle(event)
        finally:
            self.buffer.unsubscribe(self._client_id)
            logger.info("event_reconciler_stopped")

    async def stop(self) -> None:
        self._running = False

    async def handle(self, event: BroadcastEvent) -> None:
        try:
            if event.type == EventType.UNLOCK:
                await self._on_unlock(UnlockData.model_validate(event.data))
            elif event.type == EventType.LOCKUP_CREATED:
                await self._on_lockup_created(LockupCreatedData.model_validate(event.data))
            else:
                logger.debug("event_ignored", event_id=event.id, type=event.type.value)
        except Exception:
            logger.exception("event_reconcile_failed", event_id=event.id, type=event.type.value)

    async def _on_unlock(self, data: UnlockData) -> None:
        async with self.sessions() as db:
            touched = await LeaderboardRepository(db).mark_lockup_unlocked(data.lockup_id)
        logger.info("lockup_unlocked", lockup_id=data.lockup_id, rows=touched)

    async def _on_lockup_created(self, data: LockupCreatedData) -> None:
        cast_hash = normalize_hash(data.title or "")
        if not is_valid_cast_hash(cast_hash) or not data.receiver or not data.amount:
            return

        async with self.sessions() as db:
            entry = await LeaderboardRepository(db).get(cast_hash)
            if entry is None:
                logger.debug("lockup_for_unknown_cast", cast_hash=cast_hash, lockup_id=data.lockup_id)
                return

            resolved = await self.social.resolve_by_address([data.receiver.lower()])
            supporters = resolved.get(data.receiver.lower()) or []
            if not supporters:
                return
            supporter = supporters[0]
            if supporter.fid == entry.creator_fid:
                return

            notifier = Notifier(
                ledger=NotificationLedger(db),
                channel=self.channel,
                price_feed=self.price_feed,
                app_url=self.app_url,
                min_supporter_usd=self.min_supporter_usd,
            )
            await notifier.send_supporter(
                cast_owner_fid=entry.creator_fid,
                supporter_fid=supporter.fid,
                supporter_username=supporter.username,
                amount=wei_to_tokens(int(data.amount)),
                cast_hash=cast_hash,
                description=entry.description or "",
            )
