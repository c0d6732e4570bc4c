"""Tests for the retrying request helper and shared client lifecycle."""

from __future__ import annotations

import httpx
import pytest

from AgentsToKG.network import (
    RetryPolicy,
    close_http_client,
    create_http_client,
    get_http_client,
    request_with_retry,
)
from AgentsToKG.settings import HttpSettings, RetrySettings

URL = "https://registry.example/api"


def _sequence(*responses):
    """Handler returning ``responses`` in order, repeating the last one."""
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    return handler


class TestStatusRetries:
    """Retryable statuses are retried and the last response is surfaced."""

    def test_recovers_after_transient_503(self, mock_client, sleeps):
        client = mock_client(_sequence(httpx.Response(503), httpx.Response(503), httpx.Response(200, text="ok")))

        response = request_with_retry(client, "GET", URL, policy=RetryPolicy(retries=4), sleep=sleeps.append)

        assert response.status_code == 200
        assert len(client.recorder.requests) == 3
        assert len(sleeps) == 2

    def test_returns_last_response_when_exhausted(self, mock_client, sleeps):
        client = mock_client(_sequence(httpx.Response(502)))

        response = request_with_retry(client, "GET", URL, policy=RetryPolicy(retries=2), sleep=sleeps.append)

        assert response.status_code == 502
        assert len(client.recorder.requests) == 3

    def test_non_retryable_status_is_returned_immediately(self, mock_client, sleeps):
        client = mock_client(_sequence(httpx.Response(404)))

        response = request_with_retry(client, "GET", URL, sleep=sleeps.append)

        assert response.status_code == 404
        assert len(client.recorder.requests) == 1
        assert sleeps == []

    def test_with_statuses_extends_the_retry_set(self, mock_client, sleeps):
        client = mock_client(_sequence(httpx.Response(522), httpx.Response(200)))
        policy = RetryPolicy(retries=1).with_statuses({522})

        response = request_with_retry(client, "POST", URL, policy=policy, sleep=sleeps.append)

        assert response.status_code == 200
        assert 522 in policy.retry_on_statuses


class TestBackoff:
    """Waits follow Retry-After first, then capped exponential backoff with jitter."""

    def test_retry_after_seconds_is_honoured(self, mock_client, sleeps):
        client = mock_client(_sequence(httpx.Response(429, headers={"Retry-After": "2"}), httpx.Response(200)))

        request_with_retry(client, "GET", URL, sleep=sleeps.append)

        assert sleeps == [2.0]

    def test_retry_after_is_capped_at_max_backoff(self, mock_client, sleeps):
        client = mock_client(_sequence(httpx.Response(429, headers={"Retry-After": "600"}), httpx.Response(200)))
        policy = RetryPolicy(max_backoff_seconds=5.0)

        request_with_retry(client, "GET", URL, policy=policy, sleep=sleeps.append)

        assert sleeps == [5.0]

    def test_exponential_backoff_with_bounded_jitter(self, mock_client, sleeps):
        client = mock_client(_sequence(httpx.Response(500)))
        policy = RetryPolicy(retries=3, min_backoff_seconds=0.5, max_backoff_seconds=1.5)

        request_with_retry(client, "GET", URL, policy=policy, sleep=sleeps.append)

        expected_bases = [0.5, 1.0, 1.5]
        assert len(sleeps) == 3
        for waited, base in zip(sleeps, expected_bases):
            assert base <= waited <= base + 0.25


class TestNetworkErrors:
    """Transient network errors are retried; exhaustion re-raises."""

    def test_connect_error_then_success(self, mock_client, sleeps):
        request = httpx.Request("GET", URL)
        client = mock_client(_sequence(httpx.ConnectError("refused", request=request), httpx.Response(200)))

        response = request_with_retry(client, "GET", URL, sleep=sleeps.append)

        assert response.status_code == 200
        assert len(sleeps) == 1

    def test_exhausted_network_error_propagates(self, mock_client, sleeps):
        request = httpx.Request("GET", URL)
        client = mock_client(_sequence(httpx.ReadTimeout("slow", request=request)))

        with pytest.raises(httpx.ReadTimeout):
            request_with_retry(client, "GET", URL, policy=RetryPolicy(retries=1), sleep=sleeps.append)
        assert len(client.recorder.requests) == 2


class TestPolicyFromSettings:
    def test_from_settings_copies_values(self):
        policy = RetryPolicy.from_settings(
            RetrySettings(retries=7, min_backoff_seconds=1.0, max_backoff_seconds=9.0, retry_on_statuses=[429]),
            HttpSettings(timeout_read=12.0),
        )

        assert policy.retries == 7
        assert policy.timeout_seconds == 12.0
        assert policy.retry_on_statuses == frozenset({429})


class TestSharedClient:
    """The shared client is created lazily and replaced after close."""

    def test_singleton_reuse_and_close(self):
        first = get_http_client()
        assert get_http_client() is first
        close_http_client()
        assert get_http_client() is not first

    def test_create_http_client_applies_settings(self):
        client = create_http_client(HttpSettings(user_agent="agentkg-tests/1.0", timeout_read=7.0))
        try:
            assert client.headers["User-Agent"] == "agentkg-tests/1.0"
            assert client.timeout.read == 7.0
        finally:
            client.close()
