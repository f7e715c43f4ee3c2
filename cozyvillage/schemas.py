"""
Pydantic schemas for the Cozy Village.

Rows as read from and written to the village store, plus the aggregates
returned by the tick endpoint and the read API.

Design Philosophy:
- Store rows map 1:1 to models (agents, rooms, messages, world_state)
- Persona is a structured optional record, tolerant of messy JSON blobs
- Unknown fields are ignored so schema drift in the store never fails a tick
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Persona
# ============================================================================


def _as_string_list(value: Any) -> List[str]:
    """Coerce a persona list field into a clean list of strings."""

    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    items = []
    for item in value:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            items.append(text)
    return items


class Persona(BaseModel):
    """Descriptive flavour for an agent, used only to colour generated lines.

    Every field is independently optional. Persona blobs are written by hand in
    the store, so list fields accept a bare string and drop blank entries, and
    unrecognised keys are ignored rather than rejected.
    """

    model_config = ConfigDict(extra="ignore")

    traits: List[str] = Field(default_factory=list)
    communication_style: Optional[str] = None
    interests: List[str] = Field(default_factory=list)
    quirks: List[str] = Field(default_factory=list)
    speech_patterns: List[str] = Field(default_factory=list)

    @field_validator("traits", "interests", "quirks", "speech_patterns", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> List[str]:
        return _as_string_list(value)

    @field_validator("communication_style", mode="before")
    @classmethod
    def _coerce_style(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def is_empty(self) -> bool:
        return not (
            self.traits
            or self.communication_style
            or self.interests
            or self.quirks
            or self.speech_patterns
        )


# ============================================================================
# Store rows
# ============================================================================


class Agent(BaseModel):
    """A villager row.

    ``room_id`` is nullable: unplaced agents neither speak nor move. The tick
    only ever changes ``room_id``; everything else is managed outside the app.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    provider: str = ""
    model: Optional[str] = None
    room_id: Optional[str] = None
    mood: Optional[float] = None
    energy: Optional[float] = None
    is_active: bool = True
    persona: Optional[Persona] = None

    @field_validator("id", "room_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        # uuid columns come back from asyncpg as UUID objects
        return None if value is None else str(value)

    @field_validator("persona", mode="before")
    @classmethod
    def _coerce_persona(cls, value: Any) -> Any:
        if value is None or isinstance(value, Persona):
            return value
        if isinstance(value, dict):
            return value
        # Anything else (string, list, number) carries no usable persona
        return {}

    @field_validator("is_active", mode="before")
    @classmethod
    def _null_means_active(cls, value: Any) -> Any:
        return True if value is None else value

    @property
    def is_placed(self) -> bool:
        return self.room_id is not None


class Room(BaseModel):
    """A room in the apartment block, addressed by grid coordinates."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    x: int = 0
    y: int = 0
    theme: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return None if value is None else str(value)

    @property
    def display_name(self) -> str:
        return self.name or "Room"


class NewMessage(BaseModel):
    """Insert payload for the messages log; id and ts are assigned by the store."""

    from_agent: str
    room_id: str
    content: str


class Message(NewMessage):
    """An append-only activity log entry."""

    model_config = ConfigDict(extra="ignore")

    id: int
    ts: datetime

    @field_validator("from_agent", "room_id", mode="before")
    @classmethod
    def _stringify_refs(cls, value: Any) -> Any:
        return None if value is None else str(value)


class WorldState(BaseModel):
    """Singleton row holding the tick counter and informational rules."""

    model_config = ConfigDict(extra="ignore")

    id: int = 1
    tick: int = 0
    rules: Optional[Any] = None


# ============================================================================
# Tick output
# ============================================================================


class TickSummary(BaseModel):
    """Counts from one tick pass.

    ``inserted`` counts message rows actually created (movement + speech).
    """

    ok: bool = True
    inserted: int = 0
    moved: int = 0
    spoke: int = 0
    fallbacks: int = 0
    skipped: int = 0
    tick: Optional[int] = None

    def to_response(self) -> Dict[str, Any]:
        """Public JSON body of the tick endpoint."""
        return {"ok": self.ok, "inserted": self.inserted}


# ============================================================================
# Read side
# ============================================================================


class RoomView(Room):
    """A room together with the agents currently placed in it."""

    occupants: List[Agent] = Field(default_factory=list)


class VillageSnapshot(BaseModel):
    """Everything the front end needs for its initial render."""

    rooms: List[RoomView] = Field(default_factory=list)
    agents: List[Agent] = Field(default_factory=list)
    messages: List[Message] = Field(default_factory=list)
    world: Optional[WorldState] = None
    # agent id -> mood label shown on room cards
    moods: Dict[str, str] = Field(default_factory=dict)
