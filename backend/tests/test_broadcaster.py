"""
Unit tests for the fan-out registry.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from collector.services.broadcaster import Broadcaster


async def _settle():
    """Let call_soon_threadsafe callbacks run."""
    await asyncio.sleep(0)
    await asyncio.sleep(0)


class TestSubscriptions:
    """Test subscribe/unsubscribe lifecycle."""

    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe(self):
        broadcaster = Broadcaster()
        subscriber = broadcaster.subscribe(AsyncMock())
        assert broadcaster.subscriber_count == 1

        broadcaster.unsubscribe(subscriber)

        assert broadcaster.subscriber_count == 0
        assert subscriber.active is False

    @pytest.mark.asyncio
    async def test_broadcast_without_subscribers(self):
        broadcaster = Broadcaster()
        assert broadcaster.broadcast("command", {"tool_name": "bash"}) == 0
        assert broadcaster.get_stats()["published"] == {"command": 1}

    @pytest.mark.asyncio
    async def test_late_subscriber_gets_no_replay(self):
        broadcaster = Broadcaster()
        broadcaster.broadcast("command", {"tool_name": "bash"})

        subscriber = broadcaster.subscribe(AsyncMock())
        await _settle()

        assert subscriber.queue.empty()


class TestDelivery:
    """Test envelope delivery through the pump."""

    @pytest.mark.asyncio
    async def test_envelope_reaches_every_subscriber(self):
        broadcaster = Broadcaster()
        first, second = AsyncMock(), AsyncMock()
        subs = [broadcaster.subscribe(first), broadcaster.subscribe(second)]
        pumps = [asyncio.create_task(broadcaster.pump(s)) for s in subs]

        assert broadcaster.broadcast("llm", {"cost_usd": 0.1}) == 2
        await _settle()
        await _settle()

        expected = {"type": "llm", "data": {"cost_usd": 0.1}}
        first.send_json.assert_awaited_once_with(expected)
        second.send_json.assert_awaited_once_with(expected)
        assert broadcaster.get_stats()["delivered"] == 2

        for pump in pumps:
            pump.cancel()

    @pytest.mark.asyncio
    async def test_failed_send_drops_only_that_subscriber(self):
        broadcaster = Broadcaster()
        broken, healthy = AsyncMock(), AsyncMock()
        broken.send_json.side_effect = RuntimeError("connection closed")
        broken_sub = broadcaster.subscribe(broken)
        healthy_sub = broadcaster.subscribe(healthy)
        broken_pump = asyncio.create_task(broadcaster.pump(broken_sub))
        healthy_pump = asyncio.create_task(broadcaster.pump(healthy_sub))

        broadcaster.broadcast("status", {"state": "busy"})
        await _settle()
        await _settle()

        assert broken_pump.done()
        assert broadcaster.subscriber_count == 1
        assert broadcaster.get_stats()["dropped"] == 1
        healthy.send_json.assert_awaited_once()

        # Later envelopes still reach the healthy one
        broadcaster.broadcast("status", {"state": "idle"})
        await _settle()
        await _settle()
        assert healthy.send_json.await_count == 2

        healthy_pump.cancel()

    @pytest.mark.asyncio
    async def test_slow_subscriber_is_dropped_without_blocking(self):
        broadcaster = Broadcaster(queue_size=2)
        slow = broadcaster.subscribe(AsyncMock())  # no pump, queue never drains

        for i in range(5):
            broadcaster.broadcast("command", {"n": i})
        await _settle()

        assert slow.active is False
        assert broadcaster.subscriber_count == 0
        assert broadcaster.get_stats()["dropped"] == 1
