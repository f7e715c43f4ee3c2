"""Tests for the in-memory village store."""

from datetime import date, datetime, timezone

import pytest

from cozyvillage.results import capture
from cozyvillage.schemas import Agent, Message, NewMessage, Room, WorldState
from cozyvillage.store import InMemoryStore, StoreOperationError


def make_store(**kwargs) -> InMemoryStore:
    return InMemoryStore(
        agents=[
            Agent(id="a2", name="Zinnia", room_id="r1"),
            Agent(id="a1", name="Ada", room_id="r2"),
            Agent(id="a3", name="Moss", room_id=None, is_active=False),
        ],
        rooms=[
            Room(id="r2", name="Library", x=1, y=0),
            Room(id="r3", name="Attic", x=0, y=1),
            Room(id="r1", name="Tea Nook", x=0, y=0),
        ],
        **kwargs,
    )


@pytest.mark.asyncio
async def test_listing_order_and_active_filter():
    store = make_store()
    await store.initialize()

    active = await store.list_active_agents()
    everyone = await store.list_agents()
    rooms = await store.list_rooms()

    assert {agent.id for agent in active} == {"a1", "a2"}
    assert [agent.name for agent in everyone] == ["Ada", "Moss", "Zinnia"]
    assert [room.id for room in rooms] == ["r1", "r2", "r3"]


@pytest.mark.asyncio
async def test_insert_assigns_increasing_ids_and_utc_timestamps():
    seeded = Message(id=41, ts=datetime(2024, 1, 1, tzinfo=timezone.utc), from_agent="a1", room_id="r2", content="old")
    store = make_store(messages=[seeded])

    first = await store.insert_message(NewMessage(from_agent="a1", room_id="r2", content="Ada dusts shelves"))
    second = await store.insert_message(NewMessage(from_agent="a2", room_id="r1", content="Zinnia pours tea"))

    assert (first.id, second.id) == (42, 43)
    assert first.ts.tzinfo is not None
    recent = await store.recent_messages(2)
    assert [message.content for message in recent] == ["Zinnia pours tea", "Ada dusts shelves"]


@pytest.mark.asyncio
async def test_recent_messages_filters():
    messages = [
        Message(id=1, ts=datetime(2024, 5, 1, 23, 30, tzinfo=timezone.utc), from_agent="a1", room_id="r2", content="one"),
        Message(id=2, ts=datetime(2024, 5, 2, 0, 30, tzinfo=timezone.utc), from_agent="a1", room_id="r2", content="two"),
        Message(id=3, ts=datetime(2024, 5, 2, 1, 0, tzinfo=timezone.utc), from_agent="a2", room_id="r1", content="three"),
    ]
    store = make_store(messages=messages)

    by_agent = await store.recent_messages(10, agent_id="a1")
    by_day = await store.recent_messages(10, day=date(2024, 5, 2))
    both = await store.recent_messages(10, agent_id="a1", day=date(2024, 5, 1))

    assert [m.id for m in by_agent] == [2, 1]
    assert [m.id for m in by_day] == [3, 2]
    assert [m.id for m in both] == [1]
    assert await store.message_day_counts() == {"2024-05-02": 2, "2024-05-01": 1}


@pytest.mark.asyncio
async def test_update_room_and_advance_tick():
    store = make_store(world=WorldState(tick=9))

    await store.update_agent_room("a1", "r3")
    tick = await store.advance_tick()

    assert store.agents["a1"].room_id == "r3"
    assert tick == 10
    assert (await store.get_world_state()).tick == 10

    with pytest.raises(StoreOperationError):
        await store.update_agent_room("nobody", "r1")


@pytest.mark.asyncio
async def test_returned_agents_are_copies():
    store = make_store()
    agents = await store.list_active_agents()
    agents[0].room_id = "elsewhere"
    assert all(agent.room_id != "elsewhere" for agent in store.agents.values())


@pytest.mark.asyncio
async def test_injected_failures_surface_through_capture():
    store = make_store(fail_on={"list_rooms"})

    result = await capture(store.list_rooms(), action="Room listing")

    assert not result.ok
    assert result.reason == "Room listing failed: list_rooms unavailable"
    assert isinstance(result.error, StoreOperationError)
    assert store.calls == ["list_rooms"]
