"""Notification endpoints: supporter trigger and the mini-app token webhook."""

from __future__ import annotations

import json

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from steaks.config import Settings
from steaks.dependencies import get_app_settings, get_channel, get_db, get_price_feed, get_social
from steaks.errors import SignatureError
from steaks.leaderboard.repository import LeaderboardRepository
from steaks.notifications.channel import NotificationChannel
from steaks.notifications.envelope import (
    MINIAPP_ADDED,
    MINIAPP_REMOVED,
    NOTIFICATIONS_DISABLED,
    NOTIFICATIONS_ENABLED,
    parse_envelope,
)
from steaks.notifications.ledger import NotificationLedger
from steaks.notifications.price import PriceFeed
from steaks.notifications.service import Notifier
from steaks.social.client import NeynarClient
from steaks.staking.matcher import normalize_hash

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["Notifications"])


class SendSupporterRequest(BaseModel):
    cast_hash: str = Field(alias="castHash", min_length=1)
    supporter_fid: int = Field(alias="supporterFid", gt=0)
    amount: float = Field(gt=0)
    tx_hash: str | None = Field(default=None, alias="txHash")


# ---------------------------------------------------------------------------
# POST /notifications/send-supporter
# ---------------------------------------------------------------------------
@router.post("/notifications/send-supporter")
async def send_supporter(
    body: SendSupporterRequest,
    db: AsyncSession = Depends(get_db),  # noqa: B008
    social: NeynarClient = Depends(get_social),  # noqa: B008
    channel: NotificationChannel = Depends(get_channel),  # noqa: B008
    price_feed: PriceFeed = Depends(get_price_feed),  # noqa: B008
    settings: Settings = Depends(get_app_settings),  # noqa: B008
) -> dict[str, object]:
    """Notify a cast owner that ``supporterFid`` staked ``amount`` HIGHER on their cast."""
    cast_hash = normalize_hash(body.cast_hash)
    entry = await LeaderboardRepository(db).get(cast_hash) if cast_hash else None
    if entry is None:
        raise HTTPException(status_code=404, detail="Cast not found")

    if entry.creator_fid == body.supporter_fid:
        return {"success": False, "message": "Self-stakes do not trigger notifications"}

    username = f"user-{body.supporter_fid}"
    try:
        users = await social.fetch_users([body.supporter_fid])
        if users and users[0].username:
            username = users[0].username
    except httpx.HTTPError as exc:
        logger.warning("supporter_username_lookup_failed", fid=body.supporter_fid, error=str(exc))

    notifier = Notifier(
        ledger=NotificationLedger(db),
        channel=channel,
        price_feed=price_feed,
        app_url=settings.app_url,
        min_supporter_usd=settings.supporter_min_usd,
    )
    sent = await notifier.send_supporter(
        cast_owner_fid=entry.creator_fid,
        supporter_fid=body.supporter_fid,
        supporter_username=username,
        amount=body.amount,
        cast_hash=entry.cast_hash,
        description=entry.description or "",
    )
    if sent:
        return {"success": True, "message": "Supporter notification sent"}
    return {"success": False, "message": "Notification not sent (below minimum or already sent)"}


# ---------------------------------------------------------------------------
# POST /webhooks/notifications (mini-app lifecycle events)
# ---------------------------------------------------------------------------
@router.post("/webhooks/notifications")
async def notifications_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict[str, object]:
    """Keep ``notification_tokens`` in step with the client. Always answers 200."""
    try:
        body = json.loads(await request.body())
    except ValueError:
        return {"success": False, "error": "Invalid request data"}
    if not isinstance(body, dict):
        return {"success": False, "error": "Invalid request data"}

    try:
        event = parse_envelope(body)
    except SignatureError as exc:
        logger.warning("miniapp_webhook_rejected", reason=exc.reason)
        return {"success": False, "error": "Verification failed"}

    # TODO: confirm event.app_key is an active signer for event.fid via Neynar before accepting.
    ledger = NotificationLedger(db)
    token, url = event.notification_token, event.notification_url

    if event.event in (MINIAPP_ADDED, NOTIFICATIONS_ENABLED):
        if token and url:
            await ledger.upsert_token(event.fid, token, url, enabled=True)
    elif event.event in (MINIAPP_REMOVED, NOTIFICATIONS_DISABLED):
        await ledger.disable_all(event.fid)
    else:
        logger.info("miniapp_event_unknown", fid=event.fid, event_name=event.event)
        return {"success": False, "error": f"Unknown event type: {event.event}"}

    logger.info("miniapp_event_processed", fid=event.fid, event_name=event.event)
    return {"success": True}
