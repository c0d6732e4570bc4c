"""Shared HTTPX client factory.

Provides a lazily created, thread-safe ``httpx.Client`` reused by every
harvester, the SQL-over-HTTP store, and the graph-store client. Harvesters
and publishers accept an explicit client too, which is how tests inject an
``httpx.MockTransport``.

Example:
    >>> from AgentsToKG.network import get_http_client, close_http_client
    >>> client = get_http_client()
    >>> close_http_client()  # at process shutdown or test cleanup
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Optional

import httpx

from ..settings import HttpSettings

logger = logging.getLogger(__name__)

_client: Optional[httpx.Client] = None
_client_lock = threading.Lock()
_client_bind_pid: Optional[int] = None


def get_http_client(settings: Optional[HttpSettings] = None) -> httpx.Client:
    """Get or create the shared HTTPX client.

    Args:
        settings: Settings used when the client is first created. Ignored once
            the client exists; call :func:`reset_http_client` to rebuild.

    Returns:
        httpx.Client: Process-wide client bound to the current PID.
    """
    global _client, _client_bind_pid

    if _client is not None and _client_bind_pid == os.getpid():
        return _client

    with _client_lock:
        if _client is not None and _client_bind_pid == os.getpid():
            return _client

        if _client is not None:
            logger.debug("Process forked; closing old HTTP client and rebuilding.")
            _client.close()
            _client = None

        _client = create_http_client(settings or HttpSettings())
        _client_bind_pid = os.getpid()
        logger.debug("HTTP client initialized", extra={"stage": "network"})
        return _client


def close_http_client() -> None:
    """Close the HTTP client and release resources.

    Safe to call multiple times or when no client has been created.
    """
    global _client

    with _client_lock:
        if _client is not None:
            try:
                _client.close()
                logger.debug("HTTP client closed")
            finally:
                _client = None


def reset_http_client() -> None:
    """Reset the HTTP client so the next call builds a fresh one (test isolation)."""
    global _client_bind_pid

    close_http_client()
    _client_bind_pid = None


def create_http_client(
    settings: HttpSettings,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Create an HTTPX client with pooled connections and per-phase timeouts.

    Args:
        settings: Timeout, pool, and user agent configuration.
        transport: Optional transport override (``httpx.MockTransport`` in tests).

    Returns:
        httpx.Client: Configured client; the caller owns its lifetime.
    """
    return httpx.Client(
        transport=transport,
        timeout=httpx.Timeout(
            connect=settings.timeout_connect,
            read=settings.timeout_read,
            write=settings.timeout_read,
            pool=settings.timeout_connect,
        ),
        limits=httpx.Limits(
            max_connections=settings.pool_max_connections,
            max_keepalive_connections=settings.pool_keepalive_max,
        ),
        headers={"User-Agent": settings.user_agent, "Accept": "application/json"},
        follow_redirects=True,
    )


__all__ = [
    "get_http_client",
    "close_http_client",
    "reset_http_client",
    "create_http_client",
]
