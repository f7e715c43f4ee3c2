"""
StoreGateway interface for the village's relational store.

The village lives in four tables: ``agents``, ``rooms``, ``messages`` and
``world_state``. The tick reads agents, rooms and recent messages, appends
messages, relocates agents and advances the tick counter. The read API serves
the same tables to the front end.

Two included implementations:
1. InMemoryStore - Dict-based storage, data lost on exit (testing, local demos)
2. PostgresStore - asyncpg connection pool against the shared database (production)

Usage pattern:
    store = PostgresStore()          # or InMemoryStore(...)
    await store.initialize()
    agents = await store.list_active_agents()
    await store.insert_message(NewMessage(from_agent=..., room_id=..., content=...))
    await store.close()
"""

import json
from abc import ABC, abstractmethod
from collections import Counter
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

import asyncpg

from .config import Config
from .schemas import Agent, Message, NewMessage, Room, WorldState


class StoreGateway(ABC):
    """Abstract base class for the village store.

    All methods are async; implementations raise on failure and callers in the
    tick wrap them with ``results.capture`` to decide whether to skip or abort.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections. Called once before use."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections. Called once on shutdown."""

    @abstractmethod
    async def list_active_agents(self) -> List[Agent]:
        """Return agents with ``is_active`` set, in store order."""

    @abstractmethod
    async def list_agents(self) -> List[Agent]:
        """Return every agent ordered by name."""

    @abstractmethod
    async def list_rooms(self) -> List[Room]:
        """Return every room ordered by row (y) then column (x)."""

    @abstractmethod
    async def recent_messages(
        self,
        limit: int,
        *,
        agent_id: Optional[str] = None,
        day: Optional[date] = None,
    ) -> List[Message]:
        """Return up to ``limit`` messages, newest first.

        Args:
            limit: Maximum number of rows
            agent_id: Only messages authored by this agent
            day: Only messages whose timestamp falls on this (UTC) date
        """

    @abstractmethod
    async def message_day_counts(self, *, agent_id: Optional[str] = None) -> Dict[str, int]:
        """Return ISO date -> message count, optionally for one agent."""

    @abstractmethod
    async def insert_message(self, message: NewMessage) -> Message:
        """Append a message; the store assigns id and timestamp."""

    @abstractmethod
    async def update_agent_room(self, agent_id: str, room_id: str) -> None:
        """Move an agent to another room."""

    @abstractmethod
    async def get_world_state(self) -> Optional[WorldState]:
        """Return the singleton world-state row, if present."""

    @abstractmethod
    async def advance_tick(self) -> int:
        """Increment the tick counter and return the new value."""


class StoreOperationError(RuntimeError):
    """Raised by InMemoryStore when a failure has been injected for an operation."""


class InMemoryStore(StoreGateway):
    """In-memory store using Python lists and dicts (no database).

    Message ids are assigned from a monotonic counter, timestamps default to
    now (UTC). ``fail_on`` names operations that should raise, which lets
    tests exercise the tick's partial-failure paths.
    """

    def __init__(
        self,
        *,
        agents: Iterable[Agent] = (),
        rooms: Iterable[Room] = (),
        messages: Iterable[Message] = (),
        world: Optional[WorldState] = None,
        fail_on: Iterable[str] = (),
    ):
        self.agents: Dict[str, Agent] = {agent.id: agent for agent in agents}
        self.rooms: Dict[str, Room] = {room.id: room for room in rooms}
        self.messages: List[Message] = list(messages)
        self.world: Optional[WorldState] = world if world is not None else WorldState()
        self.fail_on = set(fail_on)
        self.calls: List[str] = []
        self._next_id = max((m.id for m in self.messages), default=0) + 1

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise StoreOperationError(f"{operation} unavailable")

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        # Data is kept so callers can inspect it after a run.
        pass

    async def list_active_agents(self) -> List[Agent]:
        self._record("list_active_agents")
        return [agent.model_copy(deep=True) for agent in self.agents.values() if agent.is_active]

    async def list_agents(self) -> List[Agent]:
        self._record("list_agents")
        ordered = sorted(self.agents.values(), key=lambda agent: agent.name)
        return [agent.model_copy(deep=True) for agent in ordered]

    async def list_rooms(self) -> List[Room]:
        self._record("list_rooms")
        return sorted(self.rooms.values(), key=lambda room: (room.y, room.x))

    async def recent_messages(
        self,
        limit: int,
        *,
        agent_id: Optional[str] = None,
        day: Optional[date] = None,
    ) -> List[Message]:
        self._record("recent_messages")
        selected = [
            message
            for message in self.messages
            if (agent_id is None or message.from_agent == agent_id)
            and (day is None or _utc_date(message.ts) == day)
        ]
        selected.sort(key=lambda message: message.id, reverse=True)
        return selected[:limit]

    async def message_day_counts(self, *, agent_id: Optional[str] = None) -> Dict[str, int]:
        self._record("message_day_counts")
        counts = Counter(
            _utc_date(message.ts).isoformat()
            for message in self.messages
            if agent_id is None or message.from_agent == agent_id
        )
        return dict(sorted(counts.items(), reverse=True))

    async def insert_message(self, message: NewMessage) -> Message:
        self._record("insert_message")
        stored = Message(
            id=self._next_id,
            ts=datetime.now(timezone.utc),
            **message.model_dump(),
        )
        self._next_id += 1
        self.messages.append(stored)
        return stored

    async def update_agent_room(self, agent_id: str, room_id: str) -> None:
        self._record("update_agent_room")
        agent = self.agents.get(agent_id)
        if agent is None:
            raise StoreOperationError(f"agent {agent_id} not found")
        self.agents[agent_id] = agent.model_copy(update={"room_id": room_id})

    async def get_world_state(self) -> Optional[WorldState]:
        self._record("get_world_state")
        return self.world.model_copy(deep=True) if self.world is not None else None

    async def advance_tick(self) -> int:
        self._record("advance_tick")
        if self.world is None:
            self.world = WorldState()
        self.world = self.world.model_copy(update={"tick": self.world.tick + 1})
        return self.world.tick


def _utc_date(ts: datetime) -> date:
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.date()


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS rooms (
    id TEXT PRIMARY KEY,
    name TEXT,
    x INTEGER NOT NULL DEFAULT 0,
    y INTEGER NOT NULL DEFAULT 0,
    theme TEXT
);

CREATE TABLE IF NOT EXISTS agents (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    provider TEXT NOT NULL DEFAULT '',
    model TEXT,
    room_id TEXT REFERENCES rooms(id),
    mood DOUBLE PRECISION,
    energy DOUBLE PRECISION,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    persona JSONB
);

CREATE TABLE IF NOT EXISTS messages (
    id BIGSERIAL PRIMARY KEY,
    ts TIMESTAMPTZ NOT NULL DEFAULT now(),
    from_agent TEXT NOT NULL REFERENCES agents(id),
    room_id TEXT NOT NULL REFERENCES rooms(id),
    content TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS messages_from_agent_idx ON messages (from_agent, id DESC);

CREATE TABLE IF NOT EXISTS world_state (
    id INTEGER PRIMARY KEY,
    tick BIGINT NOT NULL DEFAULT 0,
    rules JSONB
);
"""

_AGENT_COLUMNS = "id, name, provider, model, room_id, mood, energy, is_active, persona"
_MESSAGE_COLUMNS = "id, ts, from_agent, room_id, content"


async def _init_connection(conn) -> None:
    # Decode jsonb columns (persona, rules) into Python objects.
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


class PostgresStore(StoreGateway):
    """PostgreSQL-backed store using an asyncpg connection pool.

    Connection management:
    - initialize() creates the pool (idempotent)
    - close() releases the pool
    - ensure_schema() creates the tables for local development; production
      databases are provisioned outside the app
    """

    def __init__(self, database_url: Optional[str] = None, *, world_state_id: Optional[int] = None):
        self.database_url = database_url or Config.DATABASE_URL
        self.world_state_id = world_state_id if world_state_id is not None else Config.WORLD_STATE_ID
        self.pool: Optional[asyncpg.Pool] = None

    async def initialize(self) -> None:
        if self.pool is None:
            self.pool = await asyncpg.create_pool(self.database_url, init=_init_connection)

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def ensure_schema(self) -> None:
        assert self.pool is not None, "Store not initialized"

        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    async def list_active_agents(self) -> List[Agent]:
        assert self.pool is not None, "Store not initialized"

        query = f"""
            SELECT {_AGENT_COLUMNS}
            FROM agents
            WHERE is_active = TRUE
        """

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query)

        return [Agent.model_validate(dict(row)) for row in rows]

    async def list_agents(self) -> List[Agent]:
        assert self.pool is not None, "Store not initialized"

        query = f"""
            SELECT {_AGENT_COLUMNS}
            FROM agents
            ORDER BY name
        """

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query)

        return [Agent.model_validate(dict(row)) for row in rows]

    async def list_rooms(self) -> List[Room]:
        assert self.pool is not None, "Store not initialized"

        query = """
            SELECT id, name, x, y, theme
            FROM rooms
            ORDER BY y, x
        """

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query)

        return [Room.model_validate(dict(row)) for row in rows]

    async def recent_messages(
        self,
        limit: int,
        *,
        agent_id: Optional[str] = None,
        day: Optional[date] = None,
    ) -> List[Message]:
        assert self.pool is not None, "Store not initialized"

        conditions: List[str] = []
        params: List[object] = []
        if agent_id is not None:
            params.append(agent_id)
            conditions.append(f"from_agent = ${len(params)}")
        if day is not None:
            params.append(day)
            conditions.append(f"(ts AT TIME ZONE 'UTC')::date = ${len(params)}")
        params.append(limit)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages
            {where}
            ORDER BY id DESC
            LIMIT ${len(params)}
        """

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [Message.model_validate(dict(row)) for row in rows]

    async def message_day_counts(self, *, agent_id: Optional[str] = None) -> Dict[str, int]:
        assert self.pool is not None, "Store not initialized"

        query = """
            SELECT (ts AT TIME ZONE 'UTC')::date AS day, count(*) AS total
            FROM messages
            WHERE $1::text IS NULL OR from_agent = $1
            GROUP BY day
            ORDER BY day DESC
        """

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, agent_id)

        return {row["day"].isoformat(): row["total"] for row in rows}

    async def insert_message(self, message: NewMessage) -> Message:
        assert self.pool is not None, "Store not initialized"

        query = f"""
            INSERT INTO messages (from_agent, room_id, content)
            VALUES ($1, $2, $3)
            RETURNING {_MESSAGE_COLUMNS}
        """

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, message.from_agent, message.room_id, message.content)

        return Message.model_validate(dict(row))

    async def update_agent_room(self, agent_id: str, room_id: str) -> None:
        assert self.pool is not None, "Store not initialized"

        query = """
            UPDATE agents
            SET room_id = $2
            WHERE id = $1
        """

        async with self.pool.acquire() as conn:
            status = await conn.execute(query, agent_id, room_id)

        if status.endswith(" 0"):
            raise LookupError(f"agent {agent_id} not found")

    async def get_world_state(self) -> Optional[WorldState]:
        assert self.pool is not None, "Store not initialized"

        query = """
            SELECT id, tick, rules
            FROM world_state
            WHERE id = $1
        """

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, self.world_state_id)

        if not row:
            return None

        return WorldState.model_validate(dict(row))

    async def advance_tick(self) -> int:
        assert self.pool is not None, "Store not initialized"

        query = """
            INSERT INTO world_state (id, tick)
            VALUES ($1, 1)
            ON CONFLICT (id) DO UPDATE SET tick = world_state.tick + 1
            RETURNING tick
        """

        async with self.pool.acquire() as conn:
            return await conn.fetchval(query, self.world_state_id)
