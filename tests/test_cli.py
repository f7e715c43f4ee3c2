"""Tests for the command line entry point."""

import pytest

from cozyvillage import cli
from cozyvillage.config import Config
from cozyvillage.schemas import TickSummary
from cozyvillage.tick import AgentListingError


class FakeStore:
    def __init__(self):
        self.events: list[str] = []

    async def initialize(self):
        self.events.append("initialize")

    async def close(self):
        self.events.append("close")

    async def ensure_schema(self):
        self.events.append("ensure_schema")


def test_config_command_prints_without_validating(monkeypatch, capsys):
    monkeypatch.setattr(Config, "DATABASE_URL", "")

    assert cli.main(["config"]) == 0
    assert "Cozy Village Configuration:" in capsys.readouterr().out


def test_other_commands_validate_first(monkeypatch):
    monkeypatch.setattr(Config, "DATABASE_URL", "")
    with pytest.raises(ValueError):
        cli.main(["tick"])


def test_tick_command_prints_summary_and_closes_store(monkeypatch, capsys):
    store = FakeStore()

    async def fake_run_tick(store_arg, llm, settings):
        assert store_arg is store
        return TickSummary(inserted=2, spoke=2, fallbacks=2, tick=5)

    monkeypatch.setattr(Config, "DATABASE_URL", "postgresql://localhost/test")
    monkeypatch.setattr(cli, "PostgresStore", lambda: store)
    monkeypatch.setattr(cli, "build_gateway", lambda: None)
    monkeypatch.setattr(cli, "run_tick", fake_run_tick)

    assert cli.main(["tick"]) == 0
    assert '"inserted": 2' in capsys.readouterr().out
    assert store.events == ["initialize", "close"]


def test_tick_command_reports_listing_failure(monkeypatch, capsys):
    store = FakeStore()

    async def failing_run_tick(store_arg, llm, settings):
        raise AgentListingError("connection refused")

    monkeypatch.setattr(Config, "DATABASE_URL", "postgresql://localhost/test")
    monkeypatch.setattr(cli, "PostgresStore", lambda: store)
    monkeypatch.setattr(cli, "build_gateway", lambda: None)
    monkeypatch.setattr(cli, "run_tick", failing_run_tick)

    assert cli.main(["tick"]) == 1
    assert "connection refused" in capsys.readouterr().err
    assert store.events == ["initialize", "close"]


def test_init_db_creates_schema(monkeypatch):
    store = FakeStore()
    monkeypatch.setattr(Config, "DATABASE_URL", "postgresql://localhost/test")
    monkeypatch.setattr(cli, "PostgresStore", lambda: store)

    assert cli.main(["init-db"]) == 0
    assert store.events == ["initialize", "ensure_schema", "close"]
