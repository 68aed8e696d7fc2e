"""Inbound chain-event webhook and the outbound event stream."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from steaks.config import Settings
from steaks.dependencies import get_app_settings, get_events
from steaks.errors import SignatureError
from steaks.events.buffer import EventBuffer
from steaks.events.schemas import UnrecognizedEvent, parse_cdp_payload
from steaks.events.signature import SIGNATURE_HEADER, verify_signature

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["Events"])


# ---------------------------------------------------------------------------
# POST /webhooks/cdp (signed chain activity)
# ---------------------------------------------------------------------------
@router.post("/webhooks/cdp")
async def cdp_webhook(
    request: Request,
    settings: Settings = Depends(get_app_settings),  # noqa: B008
    events: EventBuffer = Depends(get_events),  # noqa: B008
) -> JSONResponse:
    """Verify, normalize and buffer one CDP event."""
    secrets = settings.webhook_secrets()
    if not secrets:
        logger.error("cdp_webhook_unconfigured")
        return JSONResponse(status_code=503, content={"detail": "Webhook secret not configured"})

    raw = (await request.body()).decode()
    try:
        verify_signature(
            raw,
            request.headers.get(SIGNATURE_HEADER),
            request.headers,
            secrets,
            max_age_seconds=settings.webhook_replay_window_seconds,
        )
    except SignatureError as exc:
        logger.warning("cdp_signature_rejected", reason=exc.reason)
        return JSONResponse(status_code=401, content={"detail": "Invalid signature"})

    try:
        event = parse_cdp_payload(json.loads(raw), settings.lockup_contract, settings.higher_token)
    except (ValueError, ValidationError) as exc:
        logger.error("cdp_event_processing_failed", error=str(exc))
        return JSONResponse(status_code=500, content={"detail": "Failed to process event"})

    if isinstance(event, UnrecognizedEvent):
        logger.info("cdp_event_unrecognized", event_type=event.event_type, event_name=event.event_name)
    else:
        published = events.publish(event.type, event.data.model_dump(by_alias=True))
        logger.info("cdp_event_buffered", event_id=published.id, type=event.type.value)

    return JSONResponse(content={"success": True, "message": "Event received"})


# ---------------------------------------------------------------------------
# GET /events/stream (server-sent events)
# ---------------------------------------------------------------------------
def _sse(payload: dict) -> str:  # type: ignore[type-arg]
    return f"data: {json.dumps(payload)}\n\n"


async def _stream(
    request: Request,
    events: EventBuffer,
    keepalive_seconds: float,
) -> AsyncIterator[str]:
    client_id, queue = events.subscribe()
    logger.info("event_stream_connected", client_id=client_id, subscribers=events.subscriber_count)
    try:
        yield _sse({"type": "connected", "clientId": client_id})
        latest = events.latest()
        if latest is not None:
            yield _sse(latest.model_dump(mode="json"))

        while not await request.is_disconnected():
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield _sse(event.model_dump(mode="json"))
    finally:
        events.unsubscribe(client_id)
        logger.info("event_stream_disconnected", client_id=client_id)


@router.get("/events/stream")
async def event_stream(
    request: Request,
    settings: Settings = Depends(get_app_settings),  # noqa: B008
    events: EventBuffer = Depends(get_events),  # noqa: B008
) -> StreamingResponse:
    """Push buffered chain events to the client as they arrive."""
    return StreamingResponse(
        _stream(request, events, settings.event_keepalive_seconds),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )
