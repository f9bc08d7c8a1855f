import asyncio

import pytest

from talk_time.domain.fanout import EventFanout


class TestEventFanout:
    @pytest.mark.asyncio
    async def test_subscriber_gets_initial_message_first(self):
        fanout = EventFanout()
        subscription = fanout.subscribe({"type": "analytics", "n": 0})
        fanout.publish({"type": "final", "n": 1})

        first = await subscription.__anext__()
        second = await subscription.__anext__()

        assert first["n"] == 0
        assert second["n"] == 1

    @pytest.mark.asyncio
    async def test_publish_reaches_every_subscriber(self):
        fanout = EventFanout()
        a = fanout.subscribe({"n": 0})
        b = fanout.subscribe({"n": 0})

        fanout.publish({"n": 1})

        assert a.pending == 2
        assert b.pending == 2
        assert fanout.subscriber_count == 2

    @pytest.mark.asyncio
    async def test_full_subscriber_is_dropped(self):
        fanout = EventFanout(queue_size=2)
        slow = fanout.subscribe({"n": 0})
        fast = fanout.subscribe({"n": 0})

        fanout.publish({"n": 1})
        await fast.__anext__()
        await fast.__anext__()
        fanout.publish({"n": 2})

        assert slow.closed
        assert not fast.closed
        assert fanout.subscriber_count == 1

    @pytest.mark.asyncio
    async def test_close_ends_iteration(self):
        fanout = EventFanout()
        subscription = fanout.subscribe({"n": 0})

        subscription.close()
        received = [message async for message in subscription]

        assert received == [{"n": 0}]
        assert fanout.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_close_all_wakes_waiting_reader(self):
        fanout = EventFanout()
        subscription = fanout.subscribe({"n": 0})
        await subscription.__anext__()

        async def read_rest():
            return [message async for message in subscription]

        reader = asyncio.create_task(read_rest())
        await asyncio.sleep(0)
        fanout.close_all()

        assert await asyncio.wait_for(reader, timeout=1.0) == []

    @pytest.mark.asyncio
    async def test_closed_subscription_ignores_delivery(self):
        fanout = EventFanout()
        subscription = fanout.subscribe({"n": 0})
        subscription.close()

        assert not subscription.deliver({"n": 1})
