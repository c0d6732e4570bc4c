"""Persistent, JSON-encoded cursors for resumable harvests and backfills."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .base import RelationalStore

logger = logging.getLogger(__name__)

__all__ = ["PageCursor", "CheckpointStore"]


@dataclass(frozen=True)
class PageCursor:
    """Next page to fetch plus the running count of processed items."""

    page: int = 1
    processed: int = 0
    at: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"page": self.page, "processed": self.processed}
        if self.at is not None:
            payload["at"] = self.at
        return payload


class CheckpointStore:
    """Read and write checkpoint rows keyed by stream name."""

    def __init__(self, store: RelationalStore) -> None:
        self._store = store

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the decoded cursor for ``key``, or ``None`` when absent or unreadable."""
        row = self._store.first("SELECT value FROM checkpoints WHERE key = ?", [key])
        if not row or row.get("value") in (None, ""):
            return None
        try:
            value = json.loads(row["value"])
        except (TypeError, ValueError):
            logger.warning("ignoring unreadable checkpoint", extra={"stage": "checkpoint", "record_key": key})
            return None
        return value if isinstance(value, dict) else None

    def set(self, key: str, value: Mapping[str, Any]) -> None:
        """Upsert the cursor for ``key``."""
        self._store.run(
            "INSERT INTO checkpoints (key, value) VALUES (:key, :value) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            {"key": key, "value": json.dumps(dict(value), sort_keys=True)},
        )

    def delete(self, key: str) -> None:
        self._store.run("DELETE FROM checkpoints WHERE key = ?", [key])

    def reset(self, key: str) -> PageCursor:
        """Overwrite ``key`` with the initial cursor and return it."""
        cursor = PageCursor()
        self.set(key, cursor.as_dict())
        return cursor

    def load_page_cursor(self, key: str, *, resume: bool = True, reset: bool = False) -> PageCursor:
        """Resolve the cursor a page loop should start from.

        ``reset`` wins over ``resume``; without ``resume`` the loop starts at
        page 1 but the stored cursor is left untouched until the first page
        completes.
        """
        if reset:
            return self.reset(key)
        if not resume:
            return PageCursor()
        stored = self.get(key) or {}
        try:
            page = max(1, int(stored.get("page", 1)))
            processed = max(0, int(stored.get("processed", 0)))
        except (TypeError, ValueError):
            logger.warning("malformed page cursor; restarting", extra={"stage": "checkpoint", "record_key": key})
            return PageCursor()
        return PageCursor(page=page, processed=processed, at=stored.get("at"))

    def save_page_cursor(self, key: str, page: int, processed: int) -> PageCursor:
        cursor = PageCursor(page=page, processed=processed, at=int(time.time()))
        self.set(key, cursor.as_dict())
        return cursor
