"""SQL-over-HTTP store for Cloudflare D1 databases.

Statements are POSTed to ``{api_base}/accounts/{account}/d1/database/{db}/query``
with a bearer token. A single statement is sent as ``{"sql", "params"}``; a
chunk of statements as ``{"batch": [...]}``. The response envelope is::

    {"success": true, "errors": [], "result": [{"results": [...], "meta": {...}}]}

HTTP 401/403 is fatal (:class:`StorageAuthorizationError`). Any other batch
failure is reported as :class:`BatchRejectedError` so the base class replays
the chunk statement by statement.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx

from ..errors import BatchRejectedError, ConfigurationError, StorageAuthorizationError, StorageError
from ..network.retry import RetryPolicy, request_with_retry
from .base import RelationalStore, Row, StatementResult

logger = logging.getLogger(__name__)

__all__ = ["HttpSQLStore", "D1_RETRY_POLICY"]

_ACCOUNT_ID = re.compile(r"^[0-9a-fA-F]{32}$")

D1_RETRY_POLICY = RetryPolicy(
    timeout_seconds=30.0,
    retries=4,
    min_backoff_seconds=0.75,
    max_backoff_seconds=20.0,
    retry_on_statuses=frozenset({429, 500, 502, 503, 504, 522, 524}),
)


class HttpSQLStore(RelationalStore):
    """Relational store backed by the D1 REST query endpoint."""

    backend_name = "d1"

    def __init__(
        self,
        *,
        account_id: Optional[str],
        database_id: Optional[str],
        api_token: Optional[str],
        api_base: str = "https://api.cloudflare.com/client/v4",
        client: Optional[httpx.Client] = None,
        policy: RetryPolicy = D1_RETRY_POLICY,
        max_batch_statements: int = 50,
        batch_enabled: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(max_batch_statements=max_batch_statements, batch_enabled=batch_enabled)
        account = (account_id or "").strip()
        if not _ACCOUNT_ID.fullmatch(account):
            raise ConfigurationError(
                "CLOUDFLARE_ACCOUNT_ID must be a 32 character hex account id"
            )
        if not (database_id or "").strip():
            raise ConfigurationError("CLOUDFLARE_D1_DATABASE_ID is required for the d1 backend")
        if not (api_token or "").strip():
            raise ConfigurationError("CLOUDFLARE_API_TOKEN is required for the d1 backend")

        self.endpoint = (
            f"{api_base.rstrip('/')}/accounts/{account}/d1/database/{database_id.strip()}/query"
        )
        self._headers = {"Authorization": f"Bearer {api_token.strip()}"}
        self._owns_client = client is None
        self._client = client or httpx.Client()
        self._policy = policy
        self._sleep = sleep

    def _post(self, body: Mapping[str, Any], *, as_batch: bool) -> List[Dict[str, Any]]:
        try:
            response = request_with_retry(
                self._client,
                "POST",
                self.endpoint,
                json=body,
                headers=self._headers,
                policy=self._policy,
                sleep=self._sleep,
            )
        except httpx.HTTPError as exc:
            raise StorageError(f"D1 request failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise StorageAuthorizationError(
                f"D1 rejected credentials (HTTP {response.status_code}): Authentication error"
            )

        payload: Dict[str, Any] = {}
        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.is_success and payload.get("success", True):
            result = payload.get("result")
            return result if isinstance(result, list) else []

        errors = payload.get("errors") or response.text[:500]
        message = f"D1 query failed (HTTP {response.status_code}): {errors}"
        if as_batch:
            raise BatchRejectedError(message)
        raise StorageError(message)

    @staticmethod
    def _to_result(entry: Mapping[str, Any]) -> Tuple[List[Row], StatementResult]:
        rows = entry.get("results") or []
        meta = entry.get("meta") or {}
        changes = meta.get("changes")
        if changes is None:
            changes = meta.get("rows_written") or 0
        return list(rows), StatementResult(changes=int(changes), last_row_id=meta.get("last_row_id"))

    def _execute(self, sql: str, params: List[Any]) -> Tuple[List[Row], StatementResult]:
        result = self._post({"sql": sql, "params": params}, as_batch=False)
        if not result:
            return [], StatementResult()
        return self._to_result(result[0])

    def _execute_batch(
        self, statements: Sequence[Tuple[str, List[Any]]]
    ) -> List[Tuple[List[Row], StatementResult]]:
        body = {"batch": [{"sql": sql, "params": params} for sql, params in statements]}
        result = self._post(body, as_batch=True)
        if len(result) != len(statements):
            raise BatchRejectedError(
                f"D1 batch returned {len(result)} results for {len(statements)} statements"
            )
        return [self._to_result(entry) for entry in result]

    def exec(self, sql: str) -> None:
        self._post({"sql": sql, "params": []}, as_batch=False)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
