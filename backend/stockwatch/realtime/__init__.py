"""Realtime fan-out to browser clients.

Public API:
    Broadcaster          - Abstract publish interface
    BroadcastHub         - In-process pub/sub with bounded subscriber queues
    create_stream_router - FastAPI router factory for the SSE endpoint
"""

from .hub import BroadcastHub, Event, Subscription
from .interface import Broadcaster
from .stream import create_stream_router

__all__ = [
    "BroadcastHub",
    "Broadcaster",
    "Event",
    "Subscription",
    "create_stream_router",
]
