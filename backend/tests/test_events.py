import asyncio
import pytest
from crown.events import EventBus, notify


@pytest.mark.asyncio
async def test_publish_reaches_sync_and_async_handlers():
    bus = EventBus()
    got = []

    async def handler(event):
        got.append(("async", event["detail"]["id"]))

    bus.subscribe("videoUpdate", lambda e: got.append(("sync", e["detail"]["id"])))
    bus.subscribe("videoUpdate", handler)
    delivered = await bus.publish("videoUpdate", {"id": "v1"})
    assert delivered == 2
    assert got == [("sync", "v1"), ("async", "v1")]


@pytest.mark.asyncio
async def test_failing_handler_does_not_block_others():
    bus = EventBus()
    got = []

    def bad(event):
        raise RuntimeError("nope")

    bus.subscribe("contestUpdate", bad)
    bus.subscribe("contestUpdate", got.append)
    assert await bus.publish("contestUpdate", {"id": "c1"}) == 1
    assert len(got) == 1


@pytest.mark.asyncio
async def test_unsubscribe_and_unknown_topic():
    bus = EventBus()
    unsub = bus.subscribe("notice", lambda e: None)
    assert bus.subscriber_count("notice") == 1
    unsub()
    assert bus.subscriber_count("notice") == 0
    with pytest.raises(ValueError):
        bus.subscribe("nope", lambda e: None)


@pytest.mark.asyncio
async def test_stream_and_notify():
    bus = EventBus()
    async with bus.stream("notice") as queue:
        await notify(bus, "Saved", user_id="u1")
        event = await asyncio.wait_for(queue.get(), 1)
    assert event["topic"] == "notice"
    assert event["detail"] == {"level": "info", "message": "Saved", "user_id": "u1"}
    assert bus.subscriber_count("notice") == 0
