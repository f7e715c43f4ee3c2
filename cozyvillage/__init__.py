"""
Cozy Village - a tiny apartment block of LLM villagers.

A scheduled tick moves a few villagers between rooms and has the rest write
one short action line each (model-generated or canned), persisting everything
to a shared store that the front end reads.

Store and model gateways are injected; nothing here holds global clients.
"""

__version__ = "0.1.0"

# Core tick
from .tick import TickProcessor, AgentListingError, partition_history, run_tick

# Collaborators
from .store import StoreGateway, InMemoryStore, PostgresStore
from .llm_utils import LLMGateway, build_gateway, complete_with_rate_limit_retry
from .config import Config, TickSettings
from .results import Result, Completion, capture

# Schemas
from .schemas import (
    Agent,
    Persona,
    Room,
    Message,
    NewMessage,
    WorldState,
    TickSummary,
    RoomView,
    VillageSnapshot,
)

# Read side
from .village import build_snapshot, merge_messages, mood_label

__all__ = [
    # Core tick
    "TickProcessor",
    "AgentListingError",
    "partition_history",
    "run_tick",
    # Collaborators
    "StoreGateway",
    "InMemoryStore",
    "PostgresStore",
    "LLMGateway",
    "build_gateway",
    "complete_with_rate_limit_retry",
    "Config",
    "TickSettings",
    "Result",
    "Completion",
    "capture",
    # Schemas
    "Agent",
    "Persona",
    "Room",
    "Message",
    "NewMessage",
    "WorldState",
    "TickSummary",
    "RoomView",
    "VillageSnapshot",
    # Read side
    "build_snapshot",
    "merge_messages",
    "mood_label",
]
