"""Shared FastAPI dependencies.

Long-lived clients are created in the app lifespan and parked on
``app.state``; routes receive them through these getters so tests can swap
them with ``app.dependency_overrides``.
"""

from collections.abc import AsyncGenerator

from fastapi import Request

from steaks.chain.client import ChainClient
from steaks.config import Settings, get_settings
from steaks.database import get_session as _get_session
from steaks.events.buffer import EventBuffer
from steaks.events.buffer import get_event_buffer as _get_event_buffer
from steaks.notifications.channel import NotificationChannel
from steaks.notifications.price import PriceFeed
from steaks.redis_client import get_redis as _get_redis
from steaks.social.client import NeynarClient

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client as a FastAPI dependency."""
    yield _get_redis()


def get_app_settings() -> Settings:
    return get_settings()


def get_chain(request: Request) -> ChainClient:
    return request.app.state.chain


def get_social(request: Request) -> NeynarClient:
    return request.app.state.social


def get_channel(request: Request) -> NotificationChannel:
    return request.app.state.channel


def get_price_feed(request: Request) -> PriceFeed:
    return request.app.state.price_feed


def get_events() -> EventBuffer:
    return _get_event_buffer()
