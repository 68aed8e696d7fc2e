"""arq worker for the scheduled leaderboard jobs.

Import path for arq CLI: arq steaks.workers.settings.WorkerSettings
"""

from __future__ import annotations

import time

import structlog
from arq import cron
from arq.connections import RedisSettings

from steaks.chain.client import ChainClient
from steaks.config import get_settings, rpc_endpoint
from steaks.database import close_db, init_db, session_scope
from steaks.leaderboard.pipeline import run_refresh
from steaks.leaderboard.repository import LeaderboardRepository
from steaks.middleware.logging import setup_logging
from steaks.notifications.channel import NotificationChannel
from steaks.notifications.ledger import NotificationLedger
from steaks.notifications.price import PriceFeed
from steaks.notifications.service import Notifier
from steaks.redis_client import close_redis, get_redis, init_redis
from steaks.social.client import NeynarClient

logger = structlog.get_logger()


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Open the database, Redis and outbound clients once per worker process."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url, settings.database_pool_size, settings.database_max_overflow)
    await init_redis(settings.redis_url)

    ctx["settings"] = settings
    ctx["chain"] = ChainClient(
        rpc_endpoint(settings),
        settings.lockup_contract,
        settings.higher_token,
        timeout=settings.rpc_timeout_seconds,
        concurrency=settings.multicall_concurrency,
    )
    ctx["social"] = NeynarClient(
        settings.neynar_api_key, settings.neynar_base_url, timeout=settings.neynar_timeout_seconds
    )
    ctx["channel"] = NotificationChannel(timeout=settings.notification_timeout_seconds)
    ctx["price_feed"] = PriceFeed(
        settings.higher_token,
        settings.price_feed_url,
        redis=get_redis(),
        cache_ttl=settings.price_cache_ttl_seconds,
        timeout=settings.notification_timeout_seconds,
    )
    logger.info("worker_started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    for key in ("social", "channel", "price_feed"):
        client = ctx.get(key)
        if client is not None:
            await client.aclose()
    await close_redis()
    await close_db()
    logger.info("worker_stopped")


async def refresh_leaderboard(ctx: dict) -> dict[str, object]:  # type: ignore[type-arg]
    """Full staking leaderboard refresh."""
    async with session_scope() as db:
        summary = await run_refresh(ctx["settings"], ctx["chain"], ctx["social"], ctx["price_feed"], db)
    return summary.as_dict()


async def sweep_expired_stakes(ctx: dict) -> int:  # type: ignore[type-arg]
    """Notify owners of stakes past their unlock time."""
    settings = ctx["settings"]
    async with session_scope() as db:
        notifier = Notifier(
            ledger=NotificationLedger(db),
            channel=ctx["channel"],
            price_feed=ctx["price_feed"],
            app_url=settings.app_url,
            min_supporter_usd=settings.supporter_min_usd,
        )
        return await notifier.sweep_expired(LeaderboardRepository(db), int(time.time()))


class WorkerSettings:
    """arq worker settings."""

    functions = [refresh_leaderboard, sweep_expired_stakes]
    cron_jobs = [
        # Refresh every 15 minutes, sweep hourly
        cron(refresh_leaderboard, minute={0, 15, 30, 45}, run_at_startup=False, unique=True, timeout=600),
        cron(sweep_expired_stakes, minute={5}, unique=True, timeout=300),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 2
    job_timeout = 600
