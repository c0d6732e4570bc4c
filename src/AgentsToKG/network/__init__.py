"""Network subsystem: shared HTTPX client and Tenacity retry policies.

Modules:
- client: HTTPX client factory with lazy singleton pattern
- retry: Tenacity-based retry policy with Retry-After support

Example:
    >>> from AgentsToKG.network import get_http_client, request_with_retry, RetryPolicy
    >>> client = get_http_client()
    >>> response = request_with_retry(client, "GET", url, policy=RetryPolicy(retries=2))
"""

from AgentsToKG.network.client import (
    close_http_client,
    create_http_client,
    get_http_client,
    reset_http_client,
)
from AgentsToKG.network.retry import (
    TRANSIENT_NETWORK_ERRORS,
    RetryPolicy,
    build_retrying,
    request_with_retry,
)

__all__ = [
    "get_http_client",
    "close_http_client",
    "reset_http_client",
    "create_http_client",
    "TRANSIENT_NETWORK_ERRORS",
    "RetryPolicy",
    "build_retrying",
    "request_with_retry",
]
