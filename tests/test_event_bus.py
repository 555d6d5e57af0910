"""
Unit tests for rockguard/core/event_bus.py
"""
import asyncio
import json

import pytest

from rockguard.core.event_bus import Event, EventBus, format_sse, sse_stream


@pytest.mark.unit
class TestEventBus:

    @pytest.mark.asyncio
    async def test_publish_reaches_all_subscribers(self):
        bus = EventBus()
        a = bus.subscribe("alerts")
        b = bus.subscribe("alerts")
        other = bus.subscribe("telemetry:1,2")

        notified = bus.publish("alerts", "alert", {"id": 1})

        assert notified == 2
        assert (await a.get(timeout=0.1)).data == {"id": 1}
        assert (await b.get(timeout=0.1)).data == {"id": 1}
        assert await other.get(timeout=0.01) is None

    def test_publish_without_subscribers(self):
        assert EventBus().publish("nobody", "alert", {}) == 0

    @pytest.mark.asyncio
    async def test_overflow_drops_oldest(self):
        bus = EventBus()
        sub = bus.subscribe("alerts", max_queue_size=2)

        for i in range(5):
            bus.publish("alerts", "alert", {"id": i})

        assert sub.dropped == 3
        assert sub.pending == 2
        assert (await sub.get(timeout=0.1)).data == {"id": 3}
        assert (await sub.get(timeout=0.1)).data == {"id": 4}
        assert not sub.closed

    @pytest.mark.asyncio
    async def test_close_detaches_and_runs_callbacks(self):
        bus = EventBus()
        sub = bus.subscribe("alerts")
        seen = []
        sub.add_close_callback(lambda s: seen.append(s.channel))

        sub.close()
        sub.close()

        assert seen == ["alerts"]
        assert bus.subscriber_count("alerts") == 0
        assert "alerts" not in bus.active_channels
        assert await sub.get(timeout=0.01) is None

    @pytest.mark.asyncio
    async def test_iteration_ends_after_close(self):
        bus = EventBus()
        sub = bus.subscribe("alerts")
        bus.publish("alerts", "alert", {"id": 1})
        sub.close()

        received = [event.data async for event in sub]

        assert received == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_close_channel(self):
        bus = EventBus()
        subs = [bus.subscribe("telemetry:x") for _ in range(3)]
        keep = bus.subscribe("alerts")

        assert bus.close_channel("telemetry:x") == 3
        assert all(s.closed for s in subs)
        assert not keep.closed


@pytest.mark.unit
class TestSse:

    def test_format_sse_uses_to_dict(self):
        class Payload:
            def to_dict(self):
                return {"score": None}

        text = format_sse(Event(type="telemetry", data=Payload()))

        assert text.startswith("event: telemetry\n")
        assert json.loads(text.split("data: ", 1)[1]) == {"score": None}
        assert text.endswith("\n\n")

    @pytest.mark.asyncio
    async def test_stream_yields_events_and_keepalives(self):
        bus = EventBus()
        sub = bus.subscribe("alerts")
        stream = sse_stream(sub, keepalive=0.01)

        assert await stream.__anext__() == ": keepalive\n\n"
        bus.publish("alerts", "alert", {"id": 7})
        chunk = await stream.__anext__()
        assert chunk.startswith("event: alert")

        await stream.aclose()
        assert sub.closed
        assert bus.subscriber_count("alerts") == 0
