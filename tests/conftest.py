# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest fixtures for the suite",
#   "sections": [
#     {
#       "id": "isolated-environment",
#       "name": "isolated_environment",
#       "anchor": "function-isolated-environment",
#       "kind": "function"
#     },
#     {
#       "id": "store",
#       "name": "store",
#       "anchor": "function-store",
#       "kind": "function"
#     },
#     {
#       "id": "mock-client",
#       "name": "mock_client",
#       "anchor": "function-mock-client",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

Every test runs hermetically: registry and triple-store traffic goes through
``httpx.MockTransport``, relational state lives in in-memory SQLite stores,
and pipeline environment variables are cleared so a developer's shell cannot
leak credentials into assertions.
"""

from __future__ import annotations

import json
import os
from typing import Any, Callable, Dict, Iterator, List, Optional

import httpx
import pytest

from AgentsToKG.network.client import reset_http_client
from AgentsToKG.settings import invalidate_settings_cache
from AgentsToKG.storage import SQLiteStore, ensure_schema
from AgentsToKG.storage.records import AgentRecord, upsert_agent

_PIPELINE_ENV_PREFIXES = ("AGENTKG_", "AGENTVERSE_", "HOL_", "NANDA_", "GRAPHDB_", "CLOUDFLARE_")


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path) -> Iterator[None]:
    """Drop pipeline env vars, point logs at ``tmp_path``, and reset caches."""

    for name in list(os.environ):
        if name.startswith(_PIPELINE_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AGENTKG_LOG_DIR", str(tmp_path / "logs"))
    invalidate_settings_cache()
    reset_http_client()
    yield
    invalidate_settings_cache()
    reset_http_client()


@pytest.fixture
def store() -> Iterator[SQLiteStore]:
    """In-memory store with the schema applied."""

    db = SQLiteStore(":memory:")
    ensure_schema(db)
    yield db
    db.close()


@pytest.fixture
def make_agent(store) -> Callable[..., AgentRecord]:
    """Upsert an agent into ``store`` and return the stored record."""

    def _make(registry: str, external_id: str, **fields: Any) -> AgentRecord:
        record = AgentRecord(registry_source_id=registry, external_agent_id=external_id, **fields)
        upsert_agent(store, record)
        row = store.first(
            "SELECT * FROM agents WHERE registrySourceId = ? AND externalAgentId = ?",
            [registry, external_id],
        )
        return AgentRecord.model_validate(row)

    return _make


class RecordingTransport:
    """``httpx.MockTransport`` wrapper that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: List[httpx.Request] = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._dispatch)

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return self._handler(request)


@pytest.fixture
def mock_client() -> Iterator[Callable[[Callable[[httpx.Request], httpx.Response]], httpx.Client]]:
    """Factory building clients backed by a recording mock transport.

    The transport is exposed as ``client.recorder`` so tests can inspect the
    requests that were sent.
    """

    clients: List[httpx.Client] = []

    def _build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
        recorder = RecordingTransport(handler)
        client = httpx.Client(transport=recorder.transport)
        client.recorder = recorder  # type: ignore[attr-defined]
        clients.append(client)
        return client

    yield _build
    for client in clients:
        client.close()


@pytest.fixture
def sleeps() -> List[float]:
    """List that an injected ``sleep`` appends to instead of sleeping."""

    return []


def _json_response(payload: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode("utf-8"),
        headers={"content-type": "application/json", **(headers or {})},
    )


@pytest.fixture
def json_response() -> Callable[..., httpx.Response]:
    """Builder for JSON responses returned by mock handlers."""

    return _json_response
