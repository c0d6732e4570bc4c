# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.GraphPublish.graphdb",
#   "purpose": "HTTP client for an RDF4J/GraphDB repository",
#   "sections": [
#     {
#       "id": "graphstoreclient",
#       "name": "GraphStoreClient",
#       "anchor": "class-graphstoreclient",
#       "kind": "class"
#     },
#     {
#       "id": "describe-failure",
#       "name": "describe_failure",
#       "anchor": "function-describe-failure",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
GraphDB Repository Client

Thin synchronous wrapper over the RDF4J REST surface exposed by GraphDB:

* ``DELETE /repositories/{repo}/statements?context=<ctx>`` clears a named graph.
* ``POST /repositories/{repo}/statements?context=<ctx>`` with ``text/turtle``
  uploads statements into it.
* ``POST /repositories/{repo}/statements`` with ``application/sparql-update``
  runs an update.
* ``POST /repositories/{repo}`` with ``application/sparql-query`` runs a query
  and returns SPARQL JSON results.
* ``GET /rest/repositories`` lists repository ids.

Requests go through :func:`AgentsToKG.network.retry.request_with_retry`.
HTTP 401/403 raises :class:`AuthorizationError`; any other non-2xx status
raises :class:`PublishError` carrying the status code and, for uploads, the
line number and offending IRI reported by the server.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

import httpx

from ..errors import AuthorizationError, ConfigurationError, PublishError
from ..network.client import get_http_client
from ..network.retry import RetryPolicy, request_with_retry
from ..settings import GraphStoreSettings

logger = logging.getLogger(__name__)

__all__ = ["GraphStoreClient", "GRAPH_RETRY_POLICY", "describe_failure"]

GRAPH_RETRY_POLICY = RetryPolicy(
    timeout_seconds=120.0,
    retries=3,
    min_backoff_seconds=1.0,
    max_backoff_seconds=30.0,
)

_LINE_PATTERNS = (
    re.compile(r"\[line\s+(\d+)(?:,\s*column\s+(\d+))?\]", re.IGNORECASE),
    re.compile(r"line\s+(\d+)(?:,?\s*col(?:umn)?\s+(\d+))?", re.IGNORECASE),
)
_IRI_PATTERNS = (
    re.compile(r"IRI[:\s]+<([^>]+)>", re.IGNORECASE),
    re.compile(r"IRI[:\s]+([a-z][a-z0-9+.-]*:[^\s<>\"{}|^`]+)", re.IGNORECASE),
)


def describe_failure(action: str, response: httpx.Response) -> str:
    """Build an error message that surfaces the server's position hints.

    Args:
        action: Short label such as ``"upload"`` or ``"update"``.
        response: Failed response.

    Returns:
        str: ``"GraphDB <action> failed (HTTP n) (line L, column C) ..."``.

    Examples:
        >>> request = httpx.Request("POST", "https://g.example/repositories/r/statements")
        >>> failed = httpx.Response(400, text="Parse error [line 12, column 4]", request=request)
        >>> describe_failure("upload", failed)
        'GraphDB upload failed (HTTP 400) (line 12, column 4): Parse error [line 12, column 4]'
    """

    text = response.text or ""
    message = f"GraphDB {action} failed (HTTP {response.status_code})"
    for pattern in _LINE_PATTERNS:
        match = pattern.search(text)
        if match:
            line, column = match.group(1), match.group(2)
            message += f" (line {line}, column {column})" if column else f" (line {line})"
            break
    for pattern in _IRI_PATTERNS:
        match = pattern.search(text)
        if match:
            message += f" (problematic IRI: {match.group(1)[:150]})"
            break
    if text:
        message += f": {text[:2000]}"
    return message


def _context_query(context: Optional[str]) -> Dict[str, str]:
    value = (context or "").strip()
    if not value:
        return {}
    if not (value.startswith("<") and value.endswith(">")):
        value = f"<{value}>"
    return {"context": value}


class GraphStoreClient:
    """Client for one repository on a GraphDB server.

    Attributes:
        base_url: Server root, without trailing slash.
        repository: Repository id.
    """

    def __init__(
        self,
        base_url: str,
        repository: str,
        *,
        auth: Optional[Tuple[str, str]] = None,
        extra_headers: Optional[Mapping[str, str]] = None,
        client: Optional[httpx.Client] = None,
        policy: RetryPolicy = GRAPH_RETRY_POLICY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not (base_url or "").strip():
            raise ConfigurationError("GRAPHDB_BASE_URL is required to publish")
        if not (repository or "").strip():
            raise ConfigurationError("GRAPHDB_REPOSITORY is required to publish")
        self.base_url = base_url.strip().rstrip("/")
        self.repository = repository.strip()
        self._auth = httpx.BasicAuth(*auth) if auth else None
        self._headers = dict(extra_headers or {})
        self._client = client
        self._policy = policy
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, settings: GraphStoreSettings, *, client: Optional[httpx.Client] = None
    ) -> "GraphStoreClient":
        """Build a client from :class:`GraphStoreSettings`.

        Basic auth is used when both username and password are set. Cloudflare
        Access service-token headers are added when both halves are present.
        """

        auth = None
        if settings.username and settings.password:
            auth = (settings.username, settings.password)
        headers: Dict[str, str] = {}
        if settings.access_client_id and settings.access_client_secret:
            headers["CF-Access-Client-Id"] = settings.access_client_id
            headers["CF-Access-Client-Secret"] = settings.access_client_secret
        return cls(settings.base_url, settings.repository, auth=auth, extra_headers=headers, client=client)

    @property
    def statements_url(self) -> str:
        return f"{self.base_url}/repositories/{quote(self.repository, safe='')}/statements"

    @property
    def repository_url(self) -> str:
        return f"{self.base_url}/repositories/{quote(self.repository, safe='')}"

    def _request(self, action: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = dict(self._headers)
        headers.update(kwargs.pop("headers", {}) or {})
        client = self._client or get_http_client()
        try:
            response = request_with_retry(
                client,
                method,
                url,
                policy=self._policy,
                sleep=self._sleep,
                headers=headers,
                auth=self._auth,
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise PublishError(f"GraphDB {action} request failed: {exc}") from exc
        status = response.status_code
        if status in (401, 403):
            raise AuthorizationError(
                f"GraphDB rejected credentials for {action} (HTTP {status}): {(response.text or '')[:300]}"
            )
        if not 200 <= status < 300:
            raise PublishError(describe_failure(action, response), status_code=status)
        return response

    def clear_statements(self, context: Optional[str] = None) -> None:
        """Delete every statement in ``context`` (or the whole repository when ``None``)."""
        logger.info("clearing context %s", context or "<all>", extra={"stage": "publish"})
        self._request("clear", "DELETE", self.statements_url, params=_context_query(context))

    def upload_turtle(self, turtle: str, context: Optional[str] = None) -> int:
        """POST ``turtle`` into ``context`` and return the number of bytes sent."""
        body = turtle.encode("utf-8")
        self._request(
            "upload",
            "POST",
            self.statements_url,
            params=_context_query(context),
            content=body,
            headers={"Content-Type": "text/turtle; charset=utf-8"},
        )
        logger.info("uploaded %d bytes", len(body), extra={"stage": "publish"})
        return len(body)

    def update(self, sparql: str) -> None:
        """Run a SPARQL 1.1 update against the repository."""
        self._request(
            "update",
            "POST",
            self.statements_url,
            content=sparql.encode("utf-8"),
            headers={"Content-Type": "application/sparql-update; charset=utf-8"},
        )

    def query(self, sparql: str) -> Dict[str, Any]:
        """Run a SPARQL query and return the decoded JSON results document."""
        response = self._request(
            "query",
            "POST",
            self.repository_url,
            content=sparql.encode("utf-8"),
            headers={
                "Content-Type": "application/sparql-query; charset=utf-8",
                "Accept": "application/sparql-results+json",
            },
        )
        try:
            return response.json()
        except ValueError as exc:
            raise PublishError(
                f"GraphDB query returned a non-JSON body: {(response.text or '')[:300]}",
                status_code=response.status_code,
            ) from exc

    def list_repositories(self) -> List[str]:
        """Return repository ids known to the server."""
        response = self._request(
            "list repositories",
            "GET",
            f"{self.base_url}/rest/repositories",
            headers={"Accept": "application/json"},
        )
        try:
            payload = response.json()
        except ValueError as exc:
            raise PublishError("GraphDB repository listing is not JSON", status_code=response.status_code) from exc
        ids: List[str] = []
        for entry in payload if isinstance(payload, list) else []:
            if isinstance(entry, Mapping) and isinstance(entry.get("id"), str) and entry["id"].strip():
                ids.append(entry["id"])
        return ids

    def ensure_repository(self) -> None:
        """Raise :class:`ConfigurationError` when the configured repository is missing."""
        if self.repository in self.list_repositories():
            return
        raise ConfigurationError(
            f"GraphDB repository not found: {self.repository}. "
            f"Create it in the Workbench at {self.base_url}/ or set GRAPHDB_REPOSITORY to an existing id."
        )
