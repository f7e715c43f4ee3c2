"""Read-side helpers serving the village front end.

The tick writes; these functions only read. They mirror what the browser
loads on start (rooms with occupants, agents, the newest messages, the world
row) and how it folds realtime inserts into its rolling log window.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional

from .schemas import Message, RoomView, VillageSnapshot
from .store import StoreGateway

DEFAULT_LOG_WINDOW = 100


def mood_label(mood: Optional[float]) -> str:
    """Map the agent mood scalar to the label shown on room cards."""

    if mood is None:
        return "Unknown"
    if mood <= -2:
        return "Low"
    if mood <= -1:
        return "Tired"
    if mood < 1:
        return "Neutral"
    if mood < 2:
        return "Bright"
    return "Buoyant"


def merge_messages(
    current: Iterable[Message],
    incoming: Iterable[Message],
    *,
    limit: int = DEFAULT_LOG_WINDOW,
) -> List[Message]:
    """Fold new messages into a log window, newest first.

    Notifications can arrive twice or out of order relative to polling, so the
    window is de-duplicated by id and re-sorted rather than appended to.
    """

    by_id: Dict[int, Message] = {message.id: message for message in current}
    for message in incoming:
        by_id[message.id] = message
    ordered = sorted(by_id.values(), key=lambda message: message.id, reverse=True)
    return ordered[:limit]


async def build_snapshot(store: StoreGateway, *, message_limit: int = 50) -> VillageSnapshot:
    """Load rooms, agents, recent messages and world state in one aggregate."""

    rooms = await store.list_rooms()
    agents = await store.list_agents()
    messages = await store.recent_messages(message_limit)
    world = await store.get_world_state()

    views = [RoomView(**room.model_dump()) for room in rooms]
    by_room = {view.id: view for view in views}
    for agent in agents:
        if agent.room_id in by_room:
            by_room[agent.room_id].occupants.append(agent)

    return VillageSnapshot(
        rooms=views,
        agents=agents,
        messages=messages,
        world=world,
        moods={agent.id: mood_label(agent.mood) for agent in agents},
    )


async def message_log(
    store: StoreGateway,
    *,
    agent_id: Optional[str] = None,
    day: Optional[date] = None,
    limit: int = DEFAULT_LOG_WINDOW,
) -> List[Message]:
    return await store.recent_messages(limit, agent_id=agent_id, day=day)


async def message_days(store: StoreGateway, *, agent_id: Optional[str] = None) -> Dict[str, int]:
    return await store.message_day_counts(agent_id=agent_id)
