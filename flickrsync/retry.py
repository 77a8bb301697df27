"""Retry/backoff policy for outbound HTTP calls."""

# pylint: disable=line-too-long

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from aiohttp import ClientResponse, ClientSession, client_exceptions
from tqdm import tqdm

from flickrsync.utils import dbg

# Pseudo status for "no response at all"
TRANSPORT_FAILURE = 0

CDN_RETRY_STATUSES = frozenset({TRANSPORT_FAILURE, 404, 423, 425, 429, 500, 502, 503, 504, 507, 510})
API_RETRY_STATUSES = frozenset({TRANSPORT_FAILURE, 429, 500, 502, 503, 504})
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff with jitter for idempotent requests.

    Besides the configured status codes, a 2xx answer whose Content-Type is
    text/* is retried when a binary payload is expected: the CDN sometimes
    serves an HTML error page with a success status.
    """

    status_codes: frozenset = CDN_RETRY_STATUSES
    max_retries: int = 3
    delay_ms: int = 1500
    multiplier: float = 1.5
    max_delay_ms: int = 10000
    jitter: float = 0.3
    expect_binary: bool = True

    def should_retry(
        self, method: str, status: int, content_type: Optional[str] = None
    ) -> bool:
        """
        Decide whether an attempt that ended with `status` deserves another try.

        Args:
            method (str): HTTP method of the request.
            status (int): Response status, or TRANSPORT_FAILURE when none arrived.
            content_type (Optional[str]): Response Content-Type header.

        Returns:
            bool: True when the request should be repeated.
        """
        if method.upper() not in IDEMPOTENT_METHODS:
            return False
        if status in self.status_codes:
            return True
        if (
            self.expect_binary
            and 200 <= status < 300
            and content_type
            and content_type.lower().startswith("text/")
        ):
            return True
        return False

    def delay_for(
        self,
        attempt: int,
        retry_after: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ) -> float:
        """Seconds to wait before retry number `attempt` (0-based)."""
        if retry_after and str(retry_after).isdigit():
            return float(retry_after)
        rng = rng or random
        delay = self.delay_ms * (self.multiplier**attempt)
        if self.jitter > 0:
            spread = delay * self.jitter
            delay += rng.uniform(-spread, spread)
        if self.max_delay_ms and delay > self.max_delay_ms:
            delay = self.max_delay_ms
        return max(delay, 0) / 1000

    async def request(
        self,
        session: ClientSession,
        method: str,
        url: str,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        **kwargs: Any,
    ) -> ClientResponse:
        """
        Issue a request, retrying per this policy.

        When retries run out on a status based failure the last response is
        returned for the caller to inspect; when they run out on a transport
        failure the original exception is re-raised unchanged.
        """
        attempt = 0
        while True:
            try:
                response = await session.request(method, url, **kwargs)
            except (client_exceptions.ClientError, asyncio.TimeoutError) as e:
                if attempt >= self.max_retries or not self.should_retry(
                    method, TRANSPORT_FAILURE
                ):
                    raise
                delay = self.delay_for(attempt)
                tqdm.write(
                    f"[~] {type(e).__name__} on {method} {url} (attempt {attempt + 1}), retrying in {delay:.1f}s"
                )
                await sleep(delay)
                attempt += 1
                continue

            content_type = response.headers.get("Content-Type", "")
            dbg(f"{method} {url} -> {response.status} {content_type}")
            if attempt >= self.max_retries or not self.should_retry(
                method, response.status, content_type
            ):
                return response

            delay = self.delay_for(attempt, response.headers.get("Retry-After"))
            if attempt == 0 or attempt % 3 == 0:
                tqdm.write(
                    f"[~] HTTP {response.status} ({content_type or 'no type'}) on {url} "
                    f"(attempt {attempt + 1}), retrying in {delay:.1f}s"
                )
            await response.release()
            await sleep(delay)
            attempt += 1


CDN_RETRY = RetryPolicy()
API_RETRY = RetryPolicy(status_codes=API_RETRY_STATUSES, expect_binary=False)
