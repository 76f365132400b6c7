"""SSE streaming endpoint for realtime engine events."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from .hub import BroadcastHub, Subscription

logger = logging.getLogger(__name__)


def create_stream_router(hub: BroadcastHub) -> APIRouter:
    """Create the SSE streaming router with a reference to the broadcast hub.

    This factory pattern lets us inject the hub without globals.
    """
    router = APIRouter(prefix="/api/stream", tags=["streaming"])

    @router.get("/events")
    async def stream_events(request: Request, topics: str = "") -> StreamingResponse:
        """SSE endpoint for engine events.

        `topics` is a comma-separated filter, e.g. `prices,server-status,user-42`.
        An empty filter subscribes to every topic. Events arrive as:

            event: prices
            data: {"symbols": ["VNM", "FPT"], "timestamp": "...", "active": true, "count": 2}

        Includes a retry directive so the browser auto-reconnects on
        disconnection (EventSource built-in behavior).
        """
        wanted = [t.strip() for t in topics.split(",") if t.strip()]
        subscription = hub.subscribe(wanted)
        return StreamingResponse(
            _generate_events(hub, subscription, request),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    return router


def format_sse(topic: str, payload: dict) -> str:
    return f"event: {topic}\ndata: {json.dumps(payload, default=str)}\n\n"


async def _generate_events(
    hub: BroadcastHub,
    subscription: Subscription,
    request: Request,
    poll_interval: float = 1.0,
) -> AsyncGenerator[str, None]:
    """Async generator that yields SSE-formatted hub events.

    Wakes at least every `poll_interval` seconds to check for client
    disconnect (detected via request.is_disconnected()).
    """
    # Tell the client to retry after 1 second if the connection drops
    yield "retry: 1000\n\n"

    client_ip = request.client.host if request.client else "unknown"
    logger.info("SSE client connected: %s (topics: %s)", client_ip, sorted(subscription.topics) or "all")

    try:
        while True:
            if await request.is_disconnected():
                logger.info("SSE client disconnected: %s", client_ip)
                break

            event = await subscription.next_event(timeout=poll_interval)
            if event is not None:
                yield format_sse(event.topic, event.payload)
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", client_ip)
    finally:
        hub.unsubscribe(subscription)
