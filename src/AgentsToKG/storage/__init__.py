"""Relational storage: backends, schema, checkpoints, and agent records.

Example:
    >>> from AgentsToKG.storage import open_store
    >>> store = open_store(settings.storage)
    >>> store.first("SELECT COUNT(*) AS n FROM agents")
"""

from __future__ import annotations

from typing import Optional

import httpx

from ..settings import StorageSettings
from .base import RelationalStore, Statement, StatementResult, translate_params
from .checkpoints import CheckpointStore, PageCursor
from .d1 import HttpSQLStore
from .records import AgentRecord, get_agent, load_agents, upsert_agent
from .schema import ensure_schema
from .sqlite import SQLiteStore

__all__ = [
    "RelationalStore",
    "Statement",
    "StatementResult",
    "translate_params",
    "CheckpointStore",
    "PageCursor",
    "HttpSQLStore",
    "SQLiteStore",
    "AgentRecord",
    "get_agent",
    "load_agents",
    "upsert_agent",
    "ensure_schema",
    "open_store",
]


def open_store(
    settings: StorageSettings,
    *,
    path_override: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> RelationalStore:
    """Open the configured backend.

    Args:
        settings: Storage section of the resolved settings.
        path_override: SQLite path that replaces ``settings.path`` (used when a
            command works on a second store, e.g. cross-referencing).
        client: HTTP client for the ``d1`` backend.
    """
    if settings.backend == "d1":
        return HttpSQLStore(
            account_id=settings.account_id,
            database_id=settings.database_id,
            api_token=settings.api_token,
            api_base=settings.api_base,
            client=client,
            max_batch_statements=settings.max_batch_statements,
            batch_enabled=settings.batch_enabled,
        )
    return SQLiteStore(
        path_override or settings.path,
        max_batch_statements=settings.max_batch_statements,
        batch_enabled=settings.batch_enabled,
    )
