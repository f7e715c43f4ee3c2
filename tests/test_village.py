"""Tests for the read-side helpers."""

from datetime import datetime, timezone

import pytest

from cozyvillage.schemas import Agent, Message, Room
from cozyvillage.store import InMemoryStore
from cozyvillage.village import build_snapshot, merge_messages, mood_label


def message(message_id: int, content: str = "") -> Message:
    return Message(
        id=message_id,
        ts=datetime(2024, 6, 1, tzinfo=timezone.utc),
        from_agent="a1",
        room_id="r1",
        content=content or f"line {message_id}",
    )


@pytest.mark.parametrize(
    "mood,label",
    [(None, "Unknown"), (-3, "Low"), (-2, "Low"), (-1.5, "Tired"), (-1, "Tired"), (0, "Neutral"), (1, "Bright"), (2, "Buoyant")],
)
def test_mood_label(mood, label):
    assert mood_label(mood) == label


def test_merge_messages_dedupes_and_trims():
    current = [message(3), message(2), message(1)]
    incoming = [message(4), message(2, "edited"), message(5)]

    merged = merge_messages(current, incoming, limit=4)

    assert [m.id for m in merged] == [5, 4, 3, 2]
    assert merged[3].content == "edited"


@pytest.mark.asyncio
async def test_snapshot_places_agents_in_rooms():
    store = InMemoryStore(
        agents=[
            Agent(id="a1", name="Ada", room_id="r1", mood=0.2),
            Agent(id="a2", name="Basil", room_id="r1"),
            Agent(id="a3", name="Clover", room_id=None),
        ],
        rooms=[Room(id="r1", name="Tea Nook", x=0, y=0), Room(id="r2", name="Library", x=1, y=0)],
        messages=[message(i) for i in range(1, 6)],
    )

    snapshot = await build_snapshot(store, message_limit=3)

    assert [agent.name for agent in snapshot.rooms[0].occupants] == ["Ada", "Basil"]
    assert snapshot.rooms[1].occupants == []
    assert len(snapshot.agents) == 3
    assert [m.id for m in snapshot.messages] == [5, 4, 3]
    assert snapshot.world is not None and snapshot.world.tick == 0
    assert snapshot.moods["a1"] == "Neutral"
