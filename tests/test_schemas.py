"""Unit tests for the village schemas."""

from uuid import UUID

from cozyvillage.schemas import Agent, Persona, Room, TickSummary


def test_persona_accepts_partial_and_messy_fields():
    persona = Persona.model_validate(
        {
            "traits": "curious",
            "interests": ["tea", "", None, "  knitting "],
            "communication_style": "   ",
            "favourite_colour": "teal",
        }
    )

    assert persona.traits == ["curious"]
    assert persona.interests == ["tea", "knitting"]
    assert persona.communication_style is None
    assert persona.quirks == []
    assert not persona.is_empty()
    assert not hasattr(persona, "favourite_colour")


def test_persona_with_wrong_types_is_empty():
    persona = Persona.model_validate({"traits": 42, "quirks": {"a": 1}})
    assert persona.is_empty()


def test_agent_tolerates_non_mapping_persona_and_null_active():
    agent = Agent.model_validate(
        {"id": "a1", "name": "Ada", "provider": "openai", "persona": "just vibes", "is_active": None}
    )

    assert agent.persona is not None and agent.persona.is_empty()
    assert agent.is_active is True
    assert not agent.is_placed


def test_agent_ids_are_stringified():
    agent_id = UUID("12345678-1234-5678-1234-567812345678")
    agent = Agent.model_validate({"id": agent_id, "name": "Ada", "room_id": agent_id})

    assert agent.id == str(agent_id)
    assert agent.room_id == str(agent_id)
    assert agent.is_placed


def test_room_display_name_falls_back():
    assert Room(id="r1", x=0, y=0).display_name == "Room"
    assert Room(id="r2", name="Library", x=1, y=0).display_name == "Library"


def test_tick_summary_response_shape():
    summary = TickSummary(inserted=4, moved=1, spoke=3, fallbacks=2)
    assert summary.to_response() == {"ok": True, "inserted": 4}
