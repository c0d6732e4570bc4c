"""Agent upsert semantics and checkpoint cursors."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from AgentsToKG.storage import CheckpointStore, PageCursor, get_agent, load_agents, upsert_agent
from AgentsToKG.storage.records import AgentRecord, load_agent_skills, replace_agent_skills


class TestUpsertAgent:
    """Repeated upserts converge on one row with a stable internal id."""

    def test_internal_ids_are_assigned_sequentially(self, store):
        first = upsert_agent(store, AgentRecord(registry_source_id="hol", external_agent_id="a"))
        second = upsert_agent(store, AgentRecord(registry_source_id="hol", external_agent_id="b"))

        assert (first, second) == (1, 2)

    def test_reupsert_keeps_internal_id_and_row_count(self, store):
        record = AgentRecord(registry_source_id="hol", external_agent_id="a", name="Alpha")
        first = upsert_agent(store, record)
        second = upsert_agent(store, record)

        assert first == second
        assert store.first("SELECT COUNT(*) AS n FROM agents")["n"] == 1

    def test_empty_fields_do_not_clear_stored_values(self, store):
        upsert_agent(
            store,
            AgentRecord(registry_source_id="hol", external_agent_id="a", name="Alpha", description="first"),
        )
        upsert_agent(store, AgentRecord(registry_source_id="hol", external_agent_id="a", rating=4.0))

        agent = get_agent(store, "hol", "a")
        assert agent.name == "Alpha"
        assert agent.description == "first"
        assert agent.rating == 4.0

    def test_annotations_survive_reupsert(self, store):
        upsert_agent(store, AgentRecord(registry_source_id="hol", external_agent_id="a", name="Alpha"))
        store.run(
            "UPDATE agents SET isDuplicate = 1, duplicateOfInternalId = 7, duplicateReason = 'name-dup:alpha', "
            "crossrefOtherRegistry = 'nanda', crossrefOtherRegistryInternalId = 3 WHERE externalAgentId = 'a'"
        )

        upsert_agent(store, AgentRecord(registry_source_id="hol", external_agent_id="a", name="Alpha v2"))

        agent = get_agent(store, "hol", "a")
        assert agent.name == "Alpha v2"
        assert agent.is_duplicate is True
        assert agent.duplicate_of_internal_id == 7
        assert agent.duplicate_reason == "name-dup:alpha"
        assert agent.crossref_other_registry == "nanda"
        assert agent.crossref_other_registry_internal_id == 3

    def test_name_key_is_derived_on_write(self, store):
        upsert_agent(store, AgentRecord(registry_source_id="hol", external_agent_id="a", name="  Acme   Bot "))

        assert get_agent(store, "hol", "a").name_norm == "acme bot"

    def test_blank_keys_are_rejected(self):
        with pytest.raises(ValidationError):
            AgentRecord(registry_source_id="hol", external_agent_id="   ")

    def test_load_agents_orders_and_pages(self, store):
        for external_id in ("c", "a", "b"):
            upsert_agent(store, AgentRecord(registry_source_id="hol", external_agent_id=external_id))
        upsert_agent(store, AgentRecord(registry_source_id="nanda", external_agent_id="z"))

        assert [a.external_agent_id for a in load_agents(store, "hol")] == ["a", "b", "c"]
        assert [a.external_agent_id for a in load_agents(store, "hol", after_external_id="a", limit=1)] == ["b"]


class TestAgentSkills:
    def test_replace_is_idempotent_and_deduplicates(self, store):
        replace_agent_skills(store, "nanda", "a", ["search", "tag:web", "search", " "])
        replace_agent_skills(store, "nanda", "a", ["search", "tag:web"])

        assert list(load_agent_skills(store, "nanda", "a")) == ["search", "tag:web"]

    def test_replace_drops_removed_skills(self, store):
        replace_agent_skills(store, "nanda", "a", ["search", "translate"])
        replace_agent_skills(store, "nanda", "a", ["translate"])

        assert list(load_agent_skills(store, "nanda", "a")) == ["translate"]


class TestCheckpointStore:
    """Cursors round-trip as JSON and ``reset`` wins over ``resume``."""

    def test_missing_cursor_starts_at_page_one(self, store):
        assert CheckpointStore(store).load_page_cursor("holImportCursor:hol") == PageCursor()

    def test_saved_cursor_is_resumed(self, store):
        checkpoints = CheckpointStore(store)
        checkpoints.save_page_cursor("agentverseImportCursor", page=3, processed=40)

        cursor = checkpoints.load_page_cursor("agentverseImportCursor")

        assert (cursor.page, cursor.processed) == (3, 40)
        assert cursor.at is not None

    def test_no_resume_ignores_but_keeps_stored_cursor(self, store):
        checkpoints = CheckpointStore(store)
        checkpoints.save_page_cursor("k", page=5, processed=9)

        assert checkpoints.load_page_cursor("k", resume=False) == PageCursor()
        assert checkpoints.get("k")["page"] == 5

    def test_reset_overwrites_stored_cursor(self, store):
        checkpoints = CheckpointStore(store)
        checkpoints.save_page_cursor("k", page=5, processed=9)

        cursor = checkpoints.load_page_cursor("k", resume=True, reset=True)

        assert cursor == PageCursor()
        assert checkpoints.get("k") == {"page": 1, "processed": 0}

    def test_unreadable_value_is_treated_as_absent(self, store):
        store.run("INSERT INTO checkpoints (key, value) VALUES ('k', 'not json')")

        assert CheckpointStore(store).get("k") is None
        assert CheckpointStore(store).load_page_cursor("k") == PageCursor()

    def test_delete(self, store):
        checkpoints = CheckpointStore(store)
        checkpoints.set("k", {"page": 2})
        checkpoints.delete("k")

        assert checkpoints.get("k") is None
