# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.storage.base",
#   "purpose": "Relational store contract, parameter translation and batching",
#   "sections": [
#     {
#       "id": "statement-result",
#       "name": "StatementResult",
#       "anchor": "class-statement-result",
#       "kind": "class"
#     },
#     {
#       "id": "statement",
#       "name": "Statement",
#       "anchor": "class-statement",
#       "kind": "class"
#     },
#     {
#       "id": "translate-params",
#       "name": "translate_params",
#       "anchor": "function-translate-params",
#       "kind": "function"
#     },
#     {
#       "id": "chunked",
#       "name": "chunked",
#       "anchor": "function-chunked",
#       "kind": "function"
#     },
#     {
#       "id": "relational-store",
#       "name": "RelationalStore",
#       "anchor": "class-relational-store",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Relational storage contract shared by the SQLite and SQL-over-HTTP backends.

Callers write plain SQL with either positional ``?`` placeholders and a
sequence of values, or named ``:name`` / ``@name`` / ``$name`` placeholders and
a mapping. Named parameters are translated to positional order of appearance
before anything reaches a backend, so backends only ever see ``?``.

``batch`` splits statement lists into chunks of ``max_batch_statements``.
When a backend rejects a chunk as a unit the chunk is replayed one statement
at a time.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import BatchRejectedError, StorageError

__all__ = [
    "Params",
    "Row",
    "Statement",
    "StatementResult",
    "RelationalStore",
    "translate_params",
    "chunked",
]

logger = logging.getLogger(__name__)

Params = Union[Sequence[Any], Mapping[str, Any], None]
Row = Dict[str, Any]

# Quoted literals are matched first so placeholders inside strings are left alone.
_TOKEN = re.compile(
    r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|(?<![:\w])[:@$]([A-Za-z_][A-Za-z0-9_]*)"
)


@dataclass(frozen=True)
class StatementResult:
    """Outcome of a write statement."""

    changes: int = 0
    last_row_id: Optional[int] = None


@dataclass(frozen=True)
class Statement:
    """SQL text plus its parameters, queued for :meth:`RelationalStore.batch`."""

    sql: str
    params: Params = None


def translate_params(sql: str, params: Params) -> Tuple[str, List[Any]]:
    """Rewrite named placeholders to ``?`` and return positional values.

    Args:
        sql: Statement text.
        params: ``None``, a sequence of positional values, or a mapping of
            named values (keys with or without the ``:``/``@``/``$`` sigil).

    Returns:
        Tuple of rewritten SQL and positional values.

    Raises:
        StorageError: When a named placeholder has no value in ``params``.
    """

    if params is None:
        return sql, []
    if isinstance(params, Mapping):
        lookup = {str(key).lstrip(":@$"): value for key, value in params.items()}
        values: List[Any] = []

        def _replace(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name is None:
                return match.group(0)
            if name not in lookup:
                raise StorageError(f"Missing value for named parameter '{name}'")
            values.append(lookup[name])
            return "?"

        return _TOKEN.sub(_replace, sql), values
    if isinstance(params, (str, bytes)):
        raise StorageError("Statement parameters must be a sequence or a mapping, not a string")
    return sql, list(params)


def chunked(items: Sequence[Statement], size: int) -> Iterable[Sequence[Statement]]:
    """Yield consecutive slices of ``items`` with at most ``size`` elements."""
    for start in range(0, len(items), size):
        yield items[start : start + size]


class RelationalStore:
    """Protocol-like base class for relational store backends.

    Subclasses implement :meth:`_execute`, :meth:`_execute_batch`, :meth:`exec`
    and :meth:`close`; the public helpers here handle parameter translation and
    batch chunking.
    """

    backend_name = "abstract"

    def __init__(self, *, max_batch_statements: int = 50, batch_enabled: bool = True) -> None:
        if max_batch_statements < 1:
            raise ValueError("max_batch_statements must be at least 1")
        self.max_batch_statements = max_batch_statements
        self.batch_enabled = batch_enabled

    # -- backend hooks -------------------------------------------------------

    def _execute(self, sql: str, params: List[Any]) -> Tuple[List[Row], StatementResult]:
        raise NotImplementedError

    def _execute_batch(
        self, statements: Sequence[Tuple[str, List[Any]]]
    ) -> List[Tuple[List[Row], StatementResult]]:
        raise NotImplementedError

    def exec(self, sql: str) -> None:
        """Execute raw SQL without parameters (DDL, pragmas)."""
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources."""
        raise NotImplementedError

    # -- public API ----------------------------------------------------------

    def run(self, sql: str, params: Params = None) -> StatementResult:
        """Execute a write statement and return its change summary."""
        text, values = translate_params(sql, params)
        return self._execute(text, values)[1]

    def all(self, sql: str, params: Params = None) -> List[Row]:
        """Return every row produced by ``sql``."""
        text, values = translate_params(sql, params)
        return self._execute(text, values)[0]

    def first(self, sql: str, params: Params = None) -> Optional[Row]:
        """Return the first row produced by ``sql`` or ``None``."""
        rows = self.all(sql, params)
        return rows[0] if rows else None

    get = first

    def batch(self, statements: Sequence[Statement]) -> List[StatementResult]:
        """Execute ``statements`` in chunks, replaying rejected chunks one by one.

        Args:
            statements: Ordered statements; order is preserved across chunks.

        Returns:
            One :class:`StatementResult` per input statement.
        """

        results: List[StatementResult] = []
        for chunk in chunked(list(statements), self.max_batch_statements):
            prepared = [translate_params(stmt.sql, stmt.params) for stmt in chunk]
            if self.batch_enabled:
                try:
                    results.extend(result for _, result in self._execute_batch(prepared))
                    continue
                except BatchRejectedError as exc:
                    logger.warning(
                        "batch rejected; falling back to sequential execution",
                        extra={"stage": "storage", "extra_fields": {"error": str(exc), "size": len(chunk)}},
                    )
            for text, values in prepared:
                results.append(self._execute(text, values)[1])
        return results

    def __enter__(self) -> "RelationalStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
