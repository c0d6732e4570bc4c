"""SQLite-backed implementation of :class:`RelationalStore`."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, List, Sequence, Tuple, Union

from ..errors import BatchRejectedError, StorageError
from .base import RelationalStore, Row, StatementResult

logger = logging.getLogger(__name__)

__all__ = ["SQLiteStore"]


class SQLiteStore(RelationalStore):
    """SQLite store with WAL mode and a re-entrant lock around the connection.

    ``path=":memory:"`` gives an in-process database, which the tests use.
    """

    backend_name = "sqlite"

    def __init__(
        self,
        path: Union[str, Path],
        *,
        wal_mode: bool = True,
        max_batch_statements: int = 50,
        batch_enabled: bool = True,
    ) -> None:
        super().__init__(max_batch_statements=max_batch_statements, batch_enabled=batch_enabled)
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self.conn = sqlite3.connect(self.path, check_same_thread=False, timeout=30.0)
        self.conn.row_factory = sqlite3.Row
        if wal_mode and self.path != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
        logger.debug("Opened SQLite store at %s", self.path)

    def _execute(self, sql: str, params: List[Any]) -> Tuple[List[Row], StatementResult]:
        with self._lock:
            try:
                cursor = self.conn.execute(sql, params)
                rows = [dict(row) for row in cursor.fetchall()]
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise StorageError(f"SQLite statement failed: {exc}") from exc
            changes = cursor.rowcount if cursor.rowcount is not None and cursor.rowcount > 0 else 0
            return rows, StatementResult(changes=changes, last_row_id=cursor.lastrowid)

    def _execute_batch(
        self, statements: Sequence[Tuple[str, List[Any]]]
    ) -> List[Tuple[List[Row], StatementResult]]:
        results: List[Tuple[List[Row], StatementResult]] = []
        with self._lock:
            try:
                for sql, params in statements:
                    cursor = self.conn.execute(sql, params)
                    rows = [dict(row) for row in cursor.fetchall()]
                    changes = cursor.rowcount if cursor.rowcount and cursor.rowcount > 0 else 0
                    results.append((rows, StatementResult(changes, cursor.lastrowid)))
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise BatchRejectedError(f"SQLite batch rolled back: {exc}") from exc
        return results

    def exec(self, sql: str) -> None:
        with self._lock:
            try:
                self.conn.executescript(sql)
                self.conn.commit()
            except sqlite3.Error as exc:
                raise StorageError(f"SQLite script failed: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            self.conn.close()
