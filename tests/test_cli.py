"""
Command Line Tests

Drives the ``agentkg`` Typer app through ``CliRunner`` against a SQLite store
under ``tmp_path``. Only commands that stay offline are exercised here; the
registry and triple-store paths are covered by the harvest and publish suites.

Usage:
    pytest tests/test_cli.py
"""

from __future__ import annotations

import json
import logging

import pytest
from typer.testing import CliRunner

from AgentsToKG.cli import app
from AgentsToKG.storage import CheckpointStore, SQLiteStore, ensure_schema, get_agent
from AgentsToKG.storage.records import AgentRecord, upsert_agent

runner = CliRunner()


@pytest.fixture
def store_path(tmp_path, monkeypatch):
    path = tmp_path / "agents.sqlite"
    monkeypatch.setenv("AGENTKG_STORE_PATH", str(path))
    monkeypatch.setenv("AGENTKG_LOG_LEVEL", "WARNING")
    return path


@pytest.fixture(autouse=True)
def detach_log_handlers():
    """Drop handlers bound to the runner's short-lived streams."""

    yield
    logger = logging.getLogger("AgentsToKG")
    for handler in list(logger.handlers):
        if getattr(handler, "_agentkg_managed", False):
            logger.removeHandler(handler)
            handler.close()


def _seed(path, *records: AgentRecord) -> None:
    with SQLiteStore(path) as store:
        ensure_schema(store)
        for record in records:
            upsert_agent(store, record)


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("harvest", "dedup", "crossref", "compile", "publish", "sync-agent", "checkpoint"):
        assert command in result.stdout


def test_checkpoint_reset_then_show(store_path):
    reset = runner.invoke(app, ["checkpoint", "reset", "hol:erc-8004"])
    shown = runner.invoke(app, ["checkpoint", "show", "hol:erc-8004"])

    assert reset.exit_code == 0
    assert "reset to page 1" in reset.stdout
    assert shown.exit_code == 0
    assert json.loads(shown.stdout) == {"page": 1, "processed": 0}


def test_checkpoint_show_missing(store_path):
    result = runner.invoke(app, ["checkpoint", "show", "agentverse"])

    assert result.exit_code == 0
    assert "No checkpoint stored" in result.stdout


def test_harvest_without_credentials_exits_nonzero(store_path):
    result = runner.invoke(app, ["harvest", "agentverse"])

    assert result.exit_code == 1
    assert "AGENTVERSE_JWT" in result.stdout


def test_unknown_registry_exits_nonzero(store_path):
    result = runner.invoke(app, ["harvest", "nope"])

    assert result.exit_code == 1
    assert "Unknown registry" in result.stdout


def test_dedup_reports_and_marks(store_path):
    _seed(
        store_path,
        AgentRecord(registry_source_id="hol", external_agent_id="a", name="Acme", rating=1.0),
        AgentRecord(registry_source_id="hol", external_agent_id="b", name="acme", rating=3.0),
    )

    result = runner.invoke(app, ["dedup", "hol"])

    assert result.exit_code == 0
    assert "duplicates" in result.stdout
    with SQLiteStore(store_path) as store:
        assert get_agent(store, "hol", "a").is_duplicate is True


def test_compile_writes_turtle(store_path, tmp_path):
    _seed(store_path, AgentRecord(registry_source_id="hol", external_agent_id="42", name="Acme"))
    out = tmp_path / "build" / "hol.ttl"

    result = runner.invoke(app, ["compile", "hol", "--out", str(out)])

    assert result.exit_code == 0, result.stdout
    assert "<https://www.agentictrust.io/id/agent/hol/42>" in out.read_text(encoding="utf-8")
    with SQLiteStore(store_path) as store:
        assert CheckpointStore(store).get("compile:hol") is None


def test_invalid_config_file_exits_nonzero(store_path, tmp_path):
    config = tmp_path / "bad.yaml"
    config.write_text("harvest:\n  page_size: -1\n", encoding="utf-8")

    result = runner.invoke(app, ["--config", str(config), "dedup", "hol"])

    assert result.exit_code == 1
    assert "ConfigurationError" in result.stdout
