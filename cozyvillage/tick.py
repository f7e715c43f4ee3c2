"""
Tick processor: one pass over every active, placed villager.

Each invocation:
1. Lists active agents (fatal if this read fails)
2. Loads rooms and the recent message window (degrades to empty on failure)
3. Movement phase: a few agents relocate and announce it from the new room
4. Speech phase: everyone who did not move gets one action line, generated
   by the language model or drawn from the canned fallback set
5. Advances the world-state tick counter

Agents are processed strictly sequentially. Per-agent failures are logged and
skipped; they never abort the pass or change the response status.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from .config import TickSettings
from .llm_utils import LLMGateway, complete_with_rate_limit_retry
from .logging_utils import log_deterministic, log_error, log_info, log_line, log_success
from .prompts import build_speech_prompt, fallback_line, pick_temperature
from .results import capture
from .schemas import Agent, Message, NewMessage, Room, TickSummary
from .store import StoreGateway


class AgentListingError(Exception):
    """Raised when the active agent list cannot be read; the tick cannot proceed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Could not list active agents: {reason}")


def partition_history(messages: Iterable[Message], per_agent: int) -> Dict[str, List[str]]:
    """Group message contents by author, newest first, capped per agent.

    ``messages`` must already be ordered newest first.
    """

    history: Dict[str, List[str]] = {}
    for message in messages:
        bucket = history.setdefault(message.from_agent, [])
        if len(bucket) < per_agent:
            bucket.append(message.content)
    return history


def movement_line(agent: Agent, room: Room) -> str:
    return f"{agent.name} moves to {room.display_name}"


class TickProcessor:
    """Runs one tick against an injected store and (optional) model gateway.

    Passing ``llm=None`` means no credential is configured: every line comes
    from the fallback set. ``rng`` and ``sleep`` are injectable so tests can
    force movement decisions and skip the rate-limit delay.
    """

    def __init__(
        self,
        store: StoreGateway,
        llm: Optional[LLMGateway] = None,
        settings: Optional[TickSettings] = None,
        *,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.llm = llm
        self.settings = settings or TickSettings()
        self.rng = rng or random.Random()
        self.sleep = sleep

    async def run(self) -> TickSummary:
        listing = await capture(self.store.list_active_agents(), action="list active agents")
        if not listing.ok:
            log_error(f"[Tick] {listing.reason}")
            raise AgentListingError(listing.reason or "unknown error") from listing.error

        agents: List[Agent] = listing.value or []
        rooms = await self._load_rooms()
        history = await self._load_history()
        summary = TickSummary()

        placed = sum(1 for agent in agents if agent.is_placed)
        log_info(
            f"[Tick] {len(agents)} active agents ({placed} placed), {len(rooms)} rooms, "
            f"LLM {'on' if self.llm else 'off'}"
        )

        relocated, moved = await self._movement_phase(agents, rooms, summary)

        # Apply relocations to the snapshot so speech is authored from the
        # agent's current room without re-reading the agent table.
        agents = [
            agent.model_copy(update={"room_id": relocated[agent.id]}) if agent.id in relocated else agent
            for agent in agents
        ]

        await self._speech_phase(agents, rooms, history, moved, summary)

        advanced = await capture(self.store.advance_tick(), action="advance tick")
        if advanced.ok:
            summary.tick = advanced.value
        else:
            log_error(f"[Tick] {advanced.reason}")

        log_success(
            f"[Tick] inserted {summary.inserted} messages "
            f"({summary.moved} moves, {summary.spoke} lines, {summary.fallbacks} fallbacks, "
            f"{summary.skipped} skipped)"
        )
        return summary

    async def _load_rooms(self) -> Dict[str, Room]:
        result = await capture(self.store.list_rooms(), action="list rooms")
        if not result.ok:
            log_error(f"[Tick] {result.reason}; continuing without room context")
            return {}
        return {room.id: room for room in result.value or []}

    async def _load_history(self) -> Dict[str, List[str]]:
        result = await capture(
            self.store.recent_messages(self.settings.history_window),
            action="load recent messages",
        )
        if not result.ok:
            log_error(f"[Tick] {result.reason}; continuing without history")
            return {}
        return partition_history(result.value or [], self.settings.history_per_agent)

    async def _movement_phase(
        self,
        agents: List[Agent],
        rooms: Dict[str, Room],
        summary: TickSummary,
    ) -> tuple[Dict[str, str], Set[str]]:
        """Relocate agents at random.

        Returns (relocated, moved): ``relocated`` maps every agent whose room
        update succeeded to its new room; ``moved`` holds the agents whose
        announcement was also written and who therefore stay quiet this tick.
        """

        relocated: Dict[str, str] = {}
        moved: Set[str] = set()

        for agent in agents:
            if not agent.is_placed:
                continue
            if self.rng.random() >= self.settings.move_probability:
                continue

            candidates = [room_id for room_id in rooms if room_id != agent.room_id]
            if not candidates:
                continue
            target = rooms[self.rng.choice(candidates)]

            update = await capture(
                self.store.update_agent_room(agent.id, target.id),
                action=f"move {agent.name}",
            )
            if not update.ok:
                log_error(f"[Move] {update.reason}")
                summary.skipped += 1
                continue
            relocated[agent.id] = target.id

            inserted = await capture(
                self.store.insert_message(
                    NewMessage(from_agent=agent.id, room_id=target.id, content=movement_line(agent, target))
                ),
                action=f"announce move of {agent.name}",
            )
            if not inserted.ok:
                log_error(f"[Move] {inserted.reason}")
                summary.skipped += 1
                continue

            moved.add(agent.id)
            summary.moved += 1
            summary.inserted += 1
            log_deterministic(f"[Move] {agent.name} -> {target.display_name}")

        return relocated, moved

    async def _speech_phase(
        self,
        agents: List[Agent],
        rooms: Dict[str, Room],
        history: Dict[str, List[str]],
        moved: Set[str],
        summary: TickSummary,
    ) -> None:
        for agent in agents:
            if not agent.is_placed or agent.id in moved:
                continue

            content, used_fallback = await self._compose_line(
                agent, rooms.get(agent.room_id), history.get(agent.id, [])
            )

            inserted = await capture(
                self.store.insert_message(
                    NewMessage(from_agent=agent.id, room_id=agent.room_id, content=content)
                ),
                action=f"insert line for {agent.name}",
            )
            if not inserted.ok:
                log_error(f"[Speak] {inserted.reason}")
                summary.skipped += 1
                continue

            summary.spoke += 1
            summary.inserted += 1
            if used_fallback:
                summary.fallbacks += 1
            log_line(agent.name, content, model_written=not used_fallback)

    async def _compose_line(
        self,
        agent: Agent,
        room: Optional[Room],
        history: List[str],
    ) -> tuple[str, bool]:
        """Return (content, used_fallback) for one agent."""

        if self.llm is None:
            return fallback_line(agent, self.rng), True

        prompt = build_speech_prompt(
            agent,
            room,
            history,
            rng=self.rng,
            history_limit=self.settings.history_per_agent,
        )
        low, high = self.settings.temperature_range
        completion = await complete_with_rate_limit_retry(
            self.llm,
            prompt,
            model=self._model_for(agent),
            temperature=pick_temperature(self.rng, low, high),
            delay_range=self.settings.rate_limit_delay,
            sleep=self.sleep,
        )
        if completion.usable:
            return completion.text, False

        log_error(f"[Speak] {agent.name}: {completion.status} ({completion.reason}); using fallback line")
        return fallback_line(agent, self.rng), True

    def _model_for(self, agent: Agent) -> Optional[str]:
        # An agent's own model only applies when it runs on the configured provider.
        if agent.model and agent.provider.strip().lower() == self.llm.provider:
            return agent.model
        return None


async def run_tick(
    store: StoreGateway,
    llm: Optional[LLMGateway] = None,
    settings: Optional[TickSettings] = None,
    **kwargs: Any,
) -> TickSummary:
    """Run one tick pass with the given collaborators."""

    return await TickProcessor(store, llm, settings, **kwargs).run()
