"""Schema bootstrap for agent stores."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import List

from ..errors import AuthorizationError, StorageError
from .base import RelationalStore

logger = logging.getLogger(__name__)

__all__ = ["schema_statements", "ensure_schema"]

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


@lru_cache(maxsize=1)
def schema_statements() -> List[str]:
    """Return the individual DDL statements from ``schema.sql``."""

    if not SCHEMA_PATH.exists():
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_PATH}")
    lines = [
        line
        for line in SCHEMA_PATH.read_text(encoding="utf-8").splitlines()
        if not line.strip().startswith("--")
    ]
    return [chunk.strip() for chunk in "\n".join(lines).split(";") if chunk.strip()]


def ensure_schema(store: RelationalStore) -> int:
    """Create missing tables and indexes.

    Each statement is applied on its own so one failing index does not block
    the rest of the schema.

    Args:
        store: Target store.

    Returns:
        int: Number of statements that applied cleanly.

    Raises:
        AuthorizationError: When the backend rejects the credentials.
    """

    applied = 0
    for statement in schema_statements():
        try:
            store.exec(statement)
            applied += 1
        except AuthorizationError:
            raise
        except StorageError as exc:
            if "Authentication error" in str(exc) or "401" in str(exc):
                raise AuthorizationError(str(exc)) from exc
            logger.warning(
                "schema statement failed: %s",
                exc,
                extra={"stage": "schema", "extra_fields": {"statement": statement.split("(")[0]}},
            )
    return applied
