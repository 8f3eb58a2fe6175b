import asyncio
import json

import pytest

from collie.ui.events import KEEP_ALIVE, ProgressEvent
from collie.ui.progress_hub import ProgressHub, with_keepalive
from collie.workflow.game_record import GameRecord
from collie.workflow.progress import SessionState


def state(**fields):
    current = SessionState()
    current.reset(total=fields.pop("total", 5))
    for key, value in fields.items():
        setattr(current, key, value)
    return current


def event(message, completed=0):
    return ProgressEvent(
        completed=completed, total=5, success_count=completed,
        fail_count=0, skip_count=0, message=message,
    )


@pytest.mark.unit
def test_event_from_state_and_json():
    record = GameRecord(rom_name="Alpha.gba")
    current = state(progress=2, success_count=1, skip_count=1, current_message="Working")

    built = ProgressEvent.from_state(current, current_rom="Alpha.gba", game_update=record)
    data = json.loads(built.to_json())

    assert data["completed"] == 2
    assert data["total"] == 5
    assert data["skip_count"] == 1
    assert data["message"] == "Working"
    assert data["current_rom"] == "Alpha.gba"
    assert data["game_update"]["rom_name"] == "Alpha.gba"
    assert data["game_update"]["status"] == "pending"


@pytest.mark.unit
def test_event_copies_the_record():
    record = GameRecord(rom_name="Alpha.gba")
    built = ProgressEvent.from_state(SessionState(), game_update=record)
    record.rom_name = "Changed.gba"
    assert built.game_update.rom_name == "Alpha.gba"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_subscribe_starts_with_resync_event():
    hub = ProgressHub(state_provider=lambda: state(progress=3, success_count=3, current_message="Busy"))

    subscription = hub.subscribe()
    first = await subscription.get()

    assert first.completed == 3
    assert first.message == "Busy"
    assert first.current_rom is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_every_subscriber_receives_events_in_order():
    hub = ProgressHub()
    first = hub.subscribe()
    second = hub.subscribe()

    for i in range(3):
        hub.publish(event(f"event {i}", completed=i))
    hub.close_all()

    for subscription in (first, second):
        messages = [e.message async for e in subscription]
        assert messages[1:] == ["event 0", "event 1", "event 2"]
    assert hub.get_stats()["events_published"] == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_slow_subscriber_is_dropped_without_blocking():
    hub = ProgressHub(queue_size=2)
    slow = hub.subscribe()
    fast = hub.subscribe()

    # The resync event already occupies one slot of each queue
    hub.publish(event("a"))
    await fast.get()
    await fast.get()
    hub.publish(event("b"))

    assert hub.subscriber_count == 1
    assert hub.get_stats()["subscribers_dropped"] == 1
    assert slow.dropped
    assert [e async for e in slow] == []
    assert (await fast.get()).message == "b"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unsubscribe_ends_iteration():
    hub = ProgressHub()
    subscription = hub.subscribe()
    await subscription.get()

    hub.unsubscribe(subscription)

    assert await subscription.get() is None
    assert hub.subscriber_count == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_keepalive_fills_silence():
    hub = ProgressHub()
    subscription = hub.subscribe()
    stream = with_keepalive(subscription, interval=0.02)

    first = await stream.__anext__()
    assert isinstance(first, ProgressEvent)
    assert await stream.__anext__() == KEEP_ALIVE

    hub.publish(event("after silence"))
    item = await stream.__anext__()
    while item == KEEP_ALIVE:
        item = await stream.__anext__()
    assert item.message == "after silence"

    hub.close_all()
    remaining = [i async for i in stream]
    assert all(i == KEEP_ALIVE for i in remaining)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_publish_never_awaits():
    hub = ProgressHub(queue_size=1)
    hub.subscribe()
    # Nobody reads; publishing must still return immediately
    for i in range(100):
        hub.publish(event(str(i)))
    await asyncio.sleep(0)
    assert hub.subscriber_count == 0
