"""Leaderboard API router: reads, manual refresh and cron triggers."""

from __future__ import annotations

import time

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from steaks.chain.client import ChainClient
from steaks.config import Settings
from steaks.dependencies import get_app_settings, get_chain, get_channel, get_db, get_price_feed, get_social
from steaks.errors import StaleBlockError
from steaks.leaderboard import service
from steaks.leaderboard.pipeline import run_refresh
from steaks.leaderboard.repository import LeaderboardRepository
from steaks.leaderboard.schemas import (
    CastDetailResponse,
    CastLeaderboardResponse,
    LeaderboardTopResponse,
    ReportResponse,
)
from steaks.notifications.channel import NotificationChannel
from steaks.notifications.ledger import NotificationLedger
from steaks.notifications.price import PriceFeed
from steaks.notifications.service import Notifier
from steaks.redis_client import get_redis, hit_window
from steaks.social.client import NeynarClient
from steaks.staking.matcher import is_valid_cast_hash, normalize_hash

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["Leaderboard"])


def _cast_hash_or_400(raw: str) -> str:
    cast_hash = normalize_hash(raw)
    if not is_valid_cast_hash(cast_hash):
        raise HTTPException(status_code=400, detail="Invalid cast hash format")
    return cast_hash  # type: ignore[return-value]


def _require_cron_auth(request: Request, settings: Settings) -> None:
    if settings.cron_secret and request.headers.get("authorization") != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


async def _refresh(
    settings: Settings,
    chain: ChainClient,
    social: NeynarClient,
    price_feed: PriceFeed,
    db: AsyncSession,
) -> JSONResponse:
    """Run one refresh and map its failures onto status codes."""
    started = time.monotonic()
    try:
        summary = await run_refresh(settings, chain, social, price_feed, db)
    except StaleBlockError as exc:
        logger.error("leaderboard_refresh_stale_block", block_age=exc.block_age, attempts=exc.attempts)
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "error": "RPC node is behind",
                "blockAge": exc.block_age,
                "attempts": exc.attempts,
            },
        )
    except Exception as exc:
        logger.exception("leaderboard_refresh_failed")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to update leaderboard", "message": str(exc)},
        )

    body = summary.as_dict()
    body["durationMs"] = int((time.monotonic() - started) * 1000)
    logger.info("leaderboard_refresh_complete", stored=summary.stored, duration_ms=body["durationMs"])
    return JSONResponse(content=body)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("/leaderboard/top", response_model=LeaderboardTopResponse)
async def leaderboard_top(
    limit: int = Query(100, ge=1, le=100),
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> LeaderboardTopResponse:
    """Ranked casts with weighted stakes as of now."""
    as_of = int(time.time())
    entries = await LeaderboardRepository(db).ranked(limit)
    return LeaderboardTopResponse(entries=[service.leaderboard_item(e, as_of) for e in entries], as_of=as_of)


@router.get("/leaderboard/report", response_model=ReportResponse)
async def leaderboard_report(
    state: str | None = Query(None, pattern="^(higher|expired)$"),
    fid: int | None = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> ReportResponse:
    """Every stored entry with per-state counts."""
    entries = await LeaderboardRepository(db).all_entries()
    return service.report(entries, state=state, fid=fid)


@router.get("/cast/{cast_hash}", response_model=CastDetailResponse, response_model_exclude_none=True)
async def get_cast(
    cast_hash: str,
    user_fid: int | None = Query(None, alias="userFid"),
    db: AsyncSession = Depends(get_db),  # noqa: B008
    social: NeynarClient = Depends(get_social),  # noqa: B008
) -> CastDetailResponse:
    """Stored cast detail, falling back to live validation."""
    normalized = _cast_hash_or_400(cast_hash)
    entry = await LeaderboardRepository(db).get(normalized)
    if entry is not None:
        return service.cast_detail(entry, user_fid)

    try:
        post = await social.lookup_cast(normalized)
    except httpx.HTTPError as exc:
        logger.warning("cast_lookup_failed", cast_hash=normalized, error=str(exc))
        raise HTTPException(status_code=502, detail="Cast lookup failed") from exc
    return service.live_cast_detail(normalized, post)


@router.get("/cast/{cast_hash}/leaderboard", response_model=CastLeaderboardResponse)
async def get_cast_leaderboard(
    cast_hash: str,
    page: int = Query(1, ge=1),
    user_fid: int | None = Query(None, alias="userFid"),
    db: AsyncSession = Depends(get_db),  # noqa: B008
    social: NeynarClient = Depends(get_social),  # noqa: B008
    settings: Settings = Depends(get_app_settings),  # noqa: B008
) -> CastLeaderboardResponse:
    """Supporters of one cast by time-weighted stake."""
    normalized = _cast_hash_or_400(cast_hash)
    entry = await LeaderboardRepository(db).get(normalized)
    if entry is None:
        raise HTTPException(status_code=404, detail="Higher cast not found")
    return await service.cast_leaderboard(
        entry,
        social,
        as_of=int(time.time()),
        user_fid=user_fid,
        page=page,
        batch_size=settings.bulk_user_batch_size,
    )


# ---------------------------------------------------------------------------
# Refresh triggers
# ---------------------------------------------------------------------------
@router.post("/leaderboard/refresh")
async def refresh_leaderboard(
    request: Request,
    db: AsyncSession = Depends(get_db),  # noqa: B008
    chain: ChainClient = Depends(get_chain),  # noqa: B008
    social: NeynarClient = Depends(get_social),  # noqa: B008
    price_feed: PriceFeed = Depends(get_price_feed),  # noqa: B008
    settings: Settings = Depends(get_app_settings),  # noqa: B008
) -> JSONResponse:
    """Manual refresh, limited per client IP."""
    client_ip = request.headers.get("x-forwarded-for") or (request.client.host if request.client else "unknown")
    try:
        hits = await hit_window(get_redis(), "refresh", client_ip, settings.refresh_rate_window_seconds)
    except RuntimeError:
        hits = 0
    if hits > settings.refresh_rate_limit:
        logger.info("refresh_rate_limited", client_ip=client_ip)
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded. Please try again later."},
            headers={"Retry-After": str(settings.refresh_rate_window_seconds)},
        )
    return await _refresh(settings, chain, social, price_feed, db)


@router.get("/cron/update-staking-leaderboard")
async def cron_update_leaderboard(
    request: Request,
    db: AsyncSession = Depends(get_db),  # noqa: B008
    chain: ChainClient = Depends(get_chain),  # noqa: B008
    social: NeynarClient = Depends(get_social),  # noqa: B008
    price_feed: PriceFeed = Depends(get_price_feed),  # noqa: B008
    settings: Settings = Depends(get_app_settings),  # noqa: B008
) -> JSONResponse:
    """Scheduled refresh for external schedulers."""
    _require_cron_auth(request, settings)
    return await _refresh(settings, chain, social, price_feed, db)


@router.get("/cron/notify-expired-stakes")
async def cron_notify_expired(
    request: Request,
    db: AsyncSession = Depends(get_db),  # noqa: B008
    channel: NotificationChannel = Depends(get_channel),  # noqa: B008
    price_feed: PriceFeed = Depends(get_price_feed),  # noqa: B008
    settings: Settings = Depends(get_app_settings),  # noqa: B008
) -> dict[str, object]:
    """Notify owners of stakes that have passed their unlock time."""
    _require_cron_auth(request, settings)
    notifier = Notifier(
        ledger=NotificationLedger(db),
        channel=channel,
        price_feed=price_feed,
        app_url=settings.app_url,
        min_supporter_usd=settings.supporter_min_usd,
    )
    sent = await notifier.sweep_expired(LeaderboardRepository(db), int(time.time()))
    return {"success": True, "sent": sent}
