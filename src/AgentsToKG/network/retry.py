# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.network.retry",
#   "purpose": "Tenacity retry policy for outbound HTTP requests",
#   "sections": [
#     {
#       "id": "retry-policy",
#       "name": "RetryPolicy",
#       "anchor": "class-retry-policy",
#       "kind": "class"
#     },
#     {
#       "id": "build-retrying",
#       "name": "build_retrying",
#       "anchor": "function-build-retrying",
#       "kind": "function"
#     },
#     {
#       "id": "request-with-retry",
#       "name": "request_with_retry",
#       "anchor": "function-request-with-retry",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Network retry policies: Tenacity-based backoff for registry and graph-store calls.

Every outbound request in the pipeline goes through :func:`request_with_retry`.
The policy retries:
- Transient network errors (connect/read/write failures, timeouts, protocol errors)
- Configurable HTTP statuses (429 and 5xx by default)

Backoff is capped exponential (``min(max, min * 2**n)``) plus a small jitter.
A ``Retry-After`` header (seconds or HTTP-date) overrides the computed delay,
capped at the policy maximum.

When retries are exhausted on a retryable *status*, the final response is
returned so the caller can decide how to surface it. When they are exhausted
on a network *exception*, the exception propagates.

Example:
    >>> policy = RetryPolicy(retries=2)
    >>> response = request_with_retry(client, "GET", "https://hol.org/api/v1/search", policy=policy)
"""

from __future__ import annotations

import email.utils
import logging
import random
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, FrozenSet, Iterable, Optional

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
)
from tenacity.wait import wait_base

__all__ = [
    "TRANSIENT_NETWORK_ERRORS",
    "RetryPolicy",
    "build_retrying",
    "request_with_retry",
]

logger = logging.getLogger(__name__)

TRANSIENT_NETWORK_ERRORS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Timeout and retry parameters for one family of requests."""

    timeout_seconds: float = 30.0
    retries: int = 4
    min_backoff_seconds: float = 0.5
    max_backoff_seconds: float = 30.0
    retry_on_statuses: FrozenSet[int] = field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504})
    )

    @classmethod
    def from_settings(cls, retry, http=None) -> "RetryPolicy":
        """Build a policy from :class:`RetrySettings` (and optionally :class:`HttpSettings`)."""

        return cls(
            timeout_seconds=http.timeout_read if http is not None else cls.timeout_seconds,
            retries=retry.retries,
            min_backoff_seconds=retry.min_backoff_seconds,
            max_backoff_seconds=retry.max_backoff_seconds,
            retry_on_statuses=frozenset(retry.retry_on_statuses),
        )

    def with_statuses(self, extra: Iterable[int]) -> "RetryPolicy":
        """Return a copy that also retries on ``extra`` statuses."""

        return replace(self, retry_on_statuses=self.retry_on_statuses | frozenset(extra))


# ============================================================================
# Wait strategies
# ============================================================================


def _parse_retry_after_value(value: Optional[str]) -> Optional[float]:
    """Convert a Retry-After header value into a delay in seconds."""
    if not value:
        return None

    try:
        delay = float(value.strip())
    except ValueError:
        try:
            dt = email.utils.parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delay = (dt - datetime.now(timezone.utc)).total_seconds()

    return max(0.0, delay)


def _extract_retry_after_seconds(candidate: object) -> Optional[float]:
    """Extract Retry-After guidance from an HTTPX response-like object."""
    if candidate is None:
        return None
    headers = getattr(candidate, "headers", None)
    if headers is None:
        return None
    return _parse_retry_after_value(headers.get("Retry-After"))


class _CappedExponentialJitter(wait_base):
    """``min(max, min * 2**n)`` plus up to ``min(0.25, max(0.05, 10%))`` seconds of jitter."""

    def __init__(self, min_seconds: float, max_seconds: float, rand: Callable[[], float] = random.random) -> None:
        self._min = min_seconds
        self._max = max_seconds
        self._rand = rand

    def __call__(self, retry_state: RetryCallState) -> float:
        exponent = max(0, retry_state.attempt_number - 1)
        base = min(self._max, self._min * (2**exponent))
        jitter = self._rand() * min(0.25, max(0.05, base * 0.1))
        return base + jitter


class _RetryAfterOrBackoff(wait_base):
    """Wait strategy that honours Retry-After before falling back to backoff."""

    def __init__(self, fallback_wait: wait_base, max_delay_seconds: float) -> None:
        self._fallback_wait = fallback_wait
        self._max_delay_seconds = max_delay_seconds

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self._retry_after_delay(retry_state)
        if delay is not None:
            return min(delay, float(self._max_delay_seconds))
        return float(self._fallback_wait(retry_state))

    def _retry_after_delay(self, retry_state: RetryCallState) -> Optional[float]:
        outcome = retry_state.outcome
        if outcome is None or outcome.failed:
            return None
        return _extract_retry_after_seconds(outcome.result())


def _return_last_outcome(retry_state: RetryCallState):
    """Return the final response, or re-raise the final exception."""
    return retry_state.outcome.result()


# ============================================================================
# Builders
# ============================================================================


def build_retrying(
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    rand: Callable[[], float] = random.random,
) -> Retrying:
    """Create a Tenacity controller for ``policy``.

    Args:
        policy: Retry parameters.
        sleep: Sleep function; tests inject a recorder.
        rand: Jitter source in ``[0, 1)``.

    Returns:
        Retrying: Controller meant to be *called* with the request function.
    """

    def retry_on_status(response) -> bool:
        status = getattr(response, "status_code", None)
        return status in policy.retry_on_statuses

    wait_strategy = _RetryAfterOrBackoff(
        fallback_wait=_CappedExponentialJitter(
            policy.min_backoff_seconds, policy.max_backoff_seconds, rand
        ),
        max_delay_seconds=policy.max_backoff_seconds,
    )

    return Retrying(
        stop=stop_after_attempt(policy.retries + 1),
        wait=wait_strategy,
        retry=retry_if_exception_type(TRANSIENT_NETWORK_ERRORS) | retry_if_result(retry_on_status),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        retry_error_callback=_return_last_outcome,
        sleep=sleep,
        reraise=True,
    )


def request_with_retry(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> httpx.Response:
    """Issue ``method url`` through ``client`` with timeout and retry handling.

    Args:
        client: HTTPX client (shared or test-provided).
        method: HTTP method.
        url: Absolute URL.
        policy: Retry parameters; defaults to :class:`RetryPolicy()`.
        sleep: Sleep function used between attempts.
        **kwargs: Forwarded to :meth:`httpx.Client.request`.

    Returns:
        httpx.Response: The first non-retryable response, or the last response
        once retries are exhausted.

    Raises:
        httpx.HTTPError: When the final attempt fails with a network error.
    """

    policy = policy or RetryPolicy()
    kwargs.setdefault("timeout", policy.timeout_seconds)
    retrying = build_retrying(policy, sleep=sleep)
    return retrying(client.request, method, url, **kwargs)
