import asyncio

import pytest
from aiohttp import client_exceptions

from fakes import FakeResponse, FakeSession

from flickrsync.retry import API_RETRY, CDN_RETRY, TRANSPORT_FAILURE, RetryPolicy


class TestShouldRetry:
    @pytest.mark.parametrize("status", [TRANSPORT_FAILURE, 404, 429, 503])
    def test_cdn_statuses(self, status):
        assert CDN_RETRY.should_retry("GET", status)

    def test_success_is_final(self):
        assert not CDN_RETRY.should_retry("GET", 200, "image/jpeg")

    def test_html_error_page_with_success_status(self):
        assert CDN_RETRY.should_retry("GET", 200, "text/html; charset=utf-8")
        assert not API_RETRY.should_retry("GET", 200, "text/html")

    def test_non_idempotent_methods(self):
        assert not CDN_RETRY.should_retry("POST", 503)

    def test_api_does_not_retry_missing_resource(self):
        assert not API_RETRY.should_retry("GET", 404)


class TestDelay:
    def test_exponential_without_jitter(self):
        policy = RetryPolicy(delay_ms=1000, multiplier=2, jitter=0, max_delay_ms=0)
        assert [policy.delay_for(n) for n in range(4)] == [1, 2, 4, 8]

    def test_capped(self):
        policy = RetryPolicy(delay_ms=1000, multiplier=10, jitter=0, max_delay_ms=5000)
        assert policy.delay_for(3) == 5

    def test_retry_after_wins(self):
        assert CDN_RETRY.delay_for(0, "7") == 7

    def test_jitter_stays_in_bounds(self):
        policy = RetryPolicy(delay_ms=1000, multiplier=1, jitter=0.3, max_delay_ms=0)
        for _ in range(50):
            assert 0.7 <= policy.delay_for(0) <= 1.3


class TestRequest:
    def test_retries_until_success(self):
        failed = FakeResponse(503)
        ok = FakeResponse.image(b"data")
        session = FakeSession.replay(failed, ok)
        delays = []

        async def sleep(delay):
            delays.append(delay)

        response = asyncio.run(CDN_RETRY.request(session, "GET", "https://cdn/x.jpg", sleep=sleep))
        assert response is ok
        assert failed.released
        assert len(delays) == 1
        assert len(session.requests) == 2

    def test_returns_last_response_when_exhausted(self):
        policy = RetryPolicy(max_retries=2, jitter=0)
        responses = [FakeResponse(503) for _ in range(3)]
        session = FakeSession.replay(*responses)

        async def sleep(_delay):
            return None

        response = asyncio.run(policy.request(session, "GET", "https://cdn/x.jpg", sleep=sleep))
        assert response is responses[-1]
        assert response.status == 503
        assert len(session.requests) == 3

    def test_transport_error_is_reraised(self):
        policy = RetryPolicy(max_retries=1, jitter=0)
        session = FakeSession(lambda *_: client_exceptions.ClientConnectionError("reset"))

        async def sleep(_delay):
            return None

        with pytest.raises(client_exceptions.ClientConnectionError):
            asyncio.run(policy.request(session, "GET", "https://cdn/x.jpg", sleep=sleep))
        assert len(session.requests) == 2

    def test_post_is_sent_once(self):
        session = FakeSession.replay(FakeResponse(503))
        response = asyncio.run(CDN_RETRY.request(session, "POST", "https://cdn/x"))
        assert response.status == 503
        assert len(session.requests) == 1
