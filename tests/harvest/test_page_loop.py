"""Checkpointed page loop: resume after a crash, early stop, skipped items."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import pytest

from AgentsToKG.errors import ConfigurationError
from AgentsToKG.RegistryHarvest import FieldSpec, Harvester, Page
from AgentsToKG.storage import CheckpointStore


class _Crash(RuntimeError):
    pass


class FakeHarvester(Harvester):
    """Serves ``page_count`` pages of two items each from memory."""

    registry_name = "fake"
    checkpoint_key = "fakeImportCursor"
    field_specs = (FieldSpec("external_agent_id", ("id",)), FieldSpec("name", ("name",)))

    def __init__(self, store, *, page_count: int = 10, crash_on: Optional[str] = None, **kwargs: Any) -> None:
        kwargs.setdefault("page_delay_seconds", 0)
        kwargs.setdefault("client", object())
        super().__init__(store, **kwargs)
        self.page_count = page_count
        self.crash_on = crash_on
        self.fetched: List[int] = []
        self.failing_pages: Dict[int, Exception] = {}
        self.extra_items: Dict[int, List[Mapping[str, Any]]] = {}

    def fetch_page(self, stream, page, page_size):
        self.fetched.append(page)
        if page in self.failing_pages:
            raise self.failing_pages[page]
        if page > self.page_count:
            return Page(items=[])
        items = [{"id": f"p{page}-{i}", "name": f"Agent {page}.{i}"} for i in range(page_size)]
        items.extend(self.extra_items.get(page, []))
        return Page(items=items, total=self.page_count * page_size)

    def after_upsert(self, record, item, internal_id):
        if record.external_agent_id == self.crash_on:
            raise _Crash(f"crashed while processing {self.crash_on}")


def _agent_count(store) -> int:
    return store.first("SELECT COUNT(*) AS n FROM agents")["n"]


class TestResume:
    """A crash mid-page replays that page on the next run without duplicating rows."""

    def test_crash_on_page_three_resumes_at_page_three(self, store, sleeps):
        crashing = FakeHarvester(store, crash_on="p3-1", sleep=sleeps.append)
        with pytest.raises(_Crash):
            crashing.harvest(page_size=2)

        cursor = CheckpointStore(store).load_page_cursor("fakeImportCursor")
        assert (cursor.page, cursor.processed) == (3, 4)
        assert crashing.fetched == [1, 2, 3]

        resumed = FakeHarvester(store, sleep=sleeps.append)
        result = resumed.harvest(page_size=2)

        assert resumed.fetched[0] == 3
        assert resumed.fetched == list(range(3, 11))
        assert result.processed == 16
        assert result.streams == {"fakeImportCursor": 20}
        assert _agent_count(store) == 20
        assert store.first("SELECT COUNT(DISTINCT internalId) AS n FROM agents")["n"] == 20

    def test_replayed_page_keeps_internal_ids(self, store, sleeps):
        with pytest.raises(_Crash):
            FakeHarvester(store, crash_on="p3-1", sleep=sleeps.append).harvest(page_size=2)
        before = store.first("SELECT internalId FROM agents WHERE externalAgentId = 'p3-0'")["internalId"]

        FakeHarvester(store, sleep=sleeps.append).harvest(page_size=2)

        after = store.first("SELECT internalId FROM agents WHERE externalAgentId = 'p3-0'")["internalId"]
        assert before == after

    def test_reset_starts_over(self, store, sleeps):
        FakeHarvester(store, page_count=3, sleep=sleeps.append).harvest(page_size=2)
        again = FakeHarvester(store, page_count=3, sleep=sleeps.append)

        result = again.harvest(page_size=2, reset=True)

        assert again.fetched == [1, 2, 3]
        assert result.processed == 6
        assert _agent_count(store) == 6

    def test_max_pages_caps_the_run_and_advances_the_cursor(self, store, sleeps):
        harvester = FakeHarvester(store, sleep=sleeps.append)

        result = harvester.harvest(page_size=2, max_pages=2)

        assert result.pages == 2
        assert CheckpointStore(store).load_page_cursor("fakeImportCursor").page == 3

    def test_empty_page_ends_the_stream(self, store, sleeps):
        harvester = FakeHarvester(store, page_count=1, sleep=sleeps.append)
        harvester.is_last_page = lambda page, number, size: False  # type: ignore[method-assign]

        result = harvester.harvest(page_size=2)

        assert harvester.fetched == [1, 2]
        assert result.pages == 1


class TestFailures:
    def test_persistent_page_failure_stops_early(self, store, sleeps):
        harvester = FakeHarvester(store, page_retries=3, sleep=sleeps.append)
        harvester.failing_pages[2] = ValueError("malformed page")

        result = harvester.harvest(page_size=2)

        assert result.stopped_early is True
        assert result.processed == 2
        assert harvester.fetched == [1, 2, 2, 2]
        assert sleeps == [1.0, 4.0]
        assert CheckpointStore(store).load_page_cursor("fakeImportCursor").page == 2

    def test_retry_pause_is_capped(self, store, sleeps):
        harvester = FakeHarvester(store, page_retries=4, page_retry_max_sleep_seconds=5.0, sleep=sleeps.append)
        harvester.failing_pages[1] = ValueError("down")

        harvester.harvest(page_size=2)

        assert sleeps == [1.0, 4.0, 5.0]

    def test_bad_items_are_skipped_not_fatal(self, store, sleeps):
        harvester = FakeHarvester(store, page_count=1, sleep=sleeps.append)
        harvester.extra_items[1] = [{"name": "no id"}, "not-an-object"]

        result = harvester.harvest(page_size=2)

        assert result.processed == 2
        assert result.skipped == 2
        assert result.stopped_early is False
        assert _agent_count(store) == 2

    def test_negative_page_size_is_rejected(self, store):
        with pytest.raises(ConfigurationError):
            FakeHarvester(store).harvest(page_size=-1)
