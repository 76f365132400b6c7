"""Tests for the SSE formatting and router."""

import json

from fastapi import FastAPI

from stockwatch.realtime.hub import BroadcastHub
from stockwatch.realtime.stream import create_stream_router, format_sse


class TestFormatSse:
    def test_event_frame(self):
        frame = format_sse("prices", {"symbols": ["VNM"], "count": 1})
        lines = frame.split("\n")

        assert lines[0] == "event: prices"
        assert json.loads(lines[1].removeprefix("data: ")) == {"symbols": ["VNM"], "count": 1}
        assert frame.endswith("\n\n")

    def test_non_json_values_are_stringified(self):
        from datetime import date

        frame = format_sse("server-status", {"day": date(2024, 3, 4)})
        assert '"day": "2024-03-04"' in frame


class TestStreamRouter:
    def test_router_registers_events_route(self):
        app = FastAPI()
        app.include_router(create_stream_router(BroadcastHub()))
        paths = {route.path for route in app.routes}
        assert "/api/stream/events" in paths
