"""Prompt templates and rendering for villager action lines."""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from .schemas import Agent, Persona, Room


@dataclass
class PromptTemplate:
    """Represents a templated prompt with placeholders."""

    name: str
    system: str
    user: str
    description: str = ""


@dataclass
class RenderedPrompt:
    system: str
    user: str


FALLBACK_LINES = (
    "puts the kettle on ☕",
    "waters the window herbs 🌿",
    "straightens the picture frames 🖼️",
    "hums a soft tune 🎵",
    "jots a tiny note 📒",
    "enjoys the lantern's kind glow ✨",
)

HISTORY_PLACEHOLDER = "- (nothing yet)"
INTEREST_NUDGE_PROBABILITY = 0.3
_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

SPEECH_TEMPLATE = PromptTemplate(
    name="speech",
    system=(
        "You narrate a cozy apartment block where small villagers live quiet, gentle lives. "
        "You write exactly one short line describing what a villager is doing right now."
    ),
    user=(
        "Villager: {{agent_name}} (powered by {{provider}})\n"
        "Current room: {{room}}\n\n"
        "Persona:\n{{persona}}\n\n"
        "Recent actions (most recent first):\n{{history}}\n\n"
        "Write ONE slice-of-life line about what {{agent_name}} does next.\n"
        "- Present tense, third person, starting with \"{{agent_name}}\".\n"
        "- About 80 characters, no more than one sentence.\n"
        "- Do not repeat or closely paraphrase any recent action above.\n"
        "{{nudge}}"
        "Reply with the line only, no quotes or explanations."
    ),
    description="Single present-tense action line for the village log.",
)


def fallback_line(agent: Agent, rng: Optional[random.Random] = None) -> str:
    """Return a canned action line prefixed with the agent's name."""

    rng = rng or random
    return f"{agent.name} {rng.choice(FALLBACK_LINES)}"


def render_persona(persona: Optional[Persona]) -> str:
    """Render the persona fields that are present, one per line."""

    if persona is None or persona.is_empty():
        return "- (no particular persona)"

    lines = []
    if persona.traits:
        lines.append(f"- Traits: {', '.join(persona.traits)}")
    if persona.communication_style:
        lines.append(f"- Communication style: {persona.communication_style}")
    if persona.interests:
        lines.append(f"- Interests: {', '.join(persona.interests)}")
    if persona.quirks:
        lines.append(f"- Quirks: {', '.join(persona.quirks)}")
    if persona.speech_patterns:
        lines.append(f"- Speech patterns: {', '.join(persona.speech_patterns)}")
    return "\n".join(lines)


def render_history(lines: Sequence[str], limit: int = 10) -> str:
    """Render recent lines as a bulleted list. Input is expected newest first."""

    items = [f"- {line}" for line in list(lines)[:limit] if line and line.strip()]
    return "\n".join(items) if items else HISTORY_PLACEHOLDER


def render_room(room: Optional[Room]) -> str:
    if room is None:
        return "an unfamiliar room"
    if room.theme:
        return f"{room.display_name} ({room.theme})"
    return room.display_name


def _fill(text: str, values: Dict[str, str]) -> str:
    # Single pass, so placeholder-looking text inside a value stays literal.
    return _PLACEHOLDER.sub(lambda match: values.get(match.group(1), match.group(0)), text)


def pick_temperature(rng: random.Random, low: float = 0.8, high: float = 1.2) -> float:
    return rng.uniform(low, high)


def build_speech_prompt(
    agent: Agent,
    room: Optional[Room],
    history: Sequence[str],
    *,
    rng: Optional[random.Random] = None,
    history_limit: int = 10,
    template: PromptTemplate = SPEECH_TEMPLATE,
) -> RenderedPrompt:
    """Render the speech template for one agent.

    Now and then (when the persona lists interests) the prompt nudges the model
    toward one interest so lines drift back to what the villager cares about.
    """

    rng = rng or random.Random()
    nudge = ""
    interests = agent.persona.interests if agent.persona else []
    if interests and rng.random() < INTEREST_NUDGE_PROBABILITY:
        nudge = f"- This time, let it touch on {rng.choice(interests)}.\n"

    replacements: Dict[str, str] = {
        "agent_name": agent.name,
        "provider": agent.provider or "an unknown model",
        "room": render_room(room),
        "persona": render_persona(agent.persona),
        "history": render_history(history, limit=history_limit),
        "nudge": nudge,
    }

    return RenderedPrompt(
        system=_fill(template.system, replacements),
        user=_fill(template.user, replacements),
    )
