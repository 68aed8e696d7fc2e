"""FastAPI application factory."""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from steaks.chain.client import ChainClient
from steaks.config import get_settings, rpc_endpoint
from steaks.database import close_db, init_db
from steaks.events.buffer import close_event_buffer, init_event_buffer
from steaks.events.reconciler import EventReconciler
from steaks.events.router import router as events_router
from steaks.health.router import router as health_router
from steaks.leaderboard.router import router as leaderboard_router
from steaks.middleware import setup_middleware
from steaks.notifications.channel import NotificationChannel
from steaks.notifications.price import PriceFeed
from steaks.notifications.router import router as notifications_router
from steaks.redis_client import close_redis, get_redis, init_redis
from steaks.social.client import NeynarClient
from steaks.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url, settings.database_pool_size, settings.database_max_overflow)
    await init_redis(settings.redis_url)

    app.state.chain = ChainClient(
        rpc_endpoint(settings),
        settings.lockup_contract,
        settings.higher_token,
        timeout=settings.rpc_timeout_seconds,
        concurrency=settings.multicall_concurrency,
    )
    app.state.social = NeynarClient(
        settings.neynar_api_key, settings.neynar_base_url, timeout=settings.neynar_timeout_seconds
    )
    app.state.channel = NotificationChannel(timeout=settings.notification_timeout_seconds)
    app.state.price_feed = PriceFeed(
        settings.higher_token,
        settings.price_feed_url,
        redis=get_redis(),
        cache_ttl=settings.price_cache_ttl_seconds,
        timeout=settings.notification_timeout_seconds,
    )

    # Chain events -> stored unlock flags and supporter notifications
    buffer = init_event_buffer(settings.event_buffer_capacity)
    reconciler = EventReconciler(
        buffer,
        app.state.social,
        app.state.channel,
        app.state.price_feed,
        app_url=settings.app_url,
        min_supporter_usd=settings.supporter_min_usd,
    )
    reconciler_task = asyncio.create_task(reconciler.start())
    logger.info("app_started", environment=settings.environment)

    yield

    await reconciler.stop()
    reconciler_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await reconciler_task
    close_event_buffer()

    await app.state.social.aclose()
    await app.state.channel.aclose()
    await app.state.price_feed.aclose()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Higher Steaks API",
        description="Staking leaderboard and chain-event reconciliation for /higher casts",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(leaderboard_router)
    app.include_router(users_router)
    app.include_router(notifications_router)
    app.include_router(events_router)

    return app


app = create_app()
