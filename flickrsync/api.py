"""REST API client with identity rotation and retries."""

# pylint: disable=line-too-long

from __future__ import annotations

import asyncio
import json
from typing import Any, Mapping, Optional

from aiohttp import ClientSession, ClientTimeout, client_exceptions

from flickrsync.config import API_URL
from flickrsync.errors import ApiCallError, TransportError, UnexpectedResponseShape
from flickrsync.identity import ApiClientConfig, ClientProfile, IdentityPool
from flickrsync.retry import API_RETRY, RetryPolicy
from flickrsync.utils import dbg

# Finite timeouts to avoid hanging forever (no overall cap, but idle/read capped)
DEFAULT_TIMEOUT = ClientTimeout(total=None, connect=30, sock_connect=30, sock_read=300)


def unwrap_response(
    data: Mapping[str, Any], envelope: Optional[str]
) -> dict[str, Any]:
    """
    Validate a decoded API response and return its envelope content.

    Args:
        data (Mapping[str, Any]): Decoded JSON body.
        envelope (Optional[str]): Top-level key holding the payload, or None
            to return the whole body.

    Returns:
        dict[str, Any]: Envelope content.

    Raises:
        ApiCallError: API reported stat=fail with an integer code.
        UnexpectedResponseShape: Failure without a usable code, or the
            envelope is missing.
    """
    if data.get("stat") != "ok":
        code = data.get("code")
        if code is None:
            raise UnexpectedResponseShape(
                "API responded with failure without providing reason code", data
            )
        try:
            numeric_code = int(str(code))
        except ValueError:
            raise UnexpectedResponseShape(
                f"API responded with failure with non-integer error code ({code})", data
            ) from None
        raise ApiCallError(numeric_code, data.get("message"))

    if envelope is None:
        return dict(data)
    if envelope not in data:
        raise UnexpectedResponseShape(
            f"API returned data but not in an expected '{envelope}' envelope", data
        )
    return data[envelope]


class ApiClient:
    """
    Thin caller for the REST endpoint.

    The identity (API key + user agent + proxy) stays the same between calls
    until switch_identity() is called.
    """

    def __init__(
        self,
        session: ClientSession,
        pool: IdentityPool,
        profile: ClientProfile = ClientProfile.COMMON_CLI,
        retry: RetryPolicy = API_RETRY,
        api_url: str = API_URL,
    ) -> None:
        self.session = session
        self.pool = pool
        self.profile = profile
        self.retry = retry
        self.api_url = api_url
        self.config: ApiClientConfig = pool.next(profile)
        self.calls = 0

    def switch_identity(self, profile: Optional[ClientProfile] = None) -> None:
        """Draw a fresh API identity from the pool."""
        if profile is not None:
            self.profile = profile
        self.config = self.pool.next(self.profile)

    def _log_call(self, method: str, params: Mapping[str, Any], envelope: Optional[str], error: Optional[str] = None) -> None:
        args = ", ".join(f"{k}={v}" for k, v in params.items())
        http = self.config.http_config
        msg = (
            f"Call {method}({args})[{envelope}] via key={self.config.key_hint()} "
            f"ua='{http.agent.user_agent}' prx={http.proxy or '-'}"
        )
        if error:
            msg += f" FAILED: {error}"
        dbg(msg)

    async def call(
        self,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
        envelope: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Call one API method and return the payload inside `envelope`.

        Args:
            method (str): API method name, e.g. "flickr.photosets.getInfo".
            params (Optional[Mapping[str, Any]]): Method arguments.
            envelope (Optional[str]): Response key holding the payload.

        Returns:
            dict[str, Any]: Decoded payload.

        Raises:
            TransportError: Network failure after retries, or an undecodable body.
            ApiCallError: API level failure with vendor code.
            UnexpectedResponseShape: Envelope missing.
        """
        params = dict(params or {})
        query = {
            "method": method,
            "api_key": self.config.api_key,
            "format": "json",
            "nojsoncallback": "1",
        }
        query.update({k: str(v) for k, v in params.items() if v is not None})
        self._log_call(method, params, envelope)
        self.calls += 1

        try:
            response = await self.retry.request(
                self.session,
                "GET",
                self.api_url,
                params=query,
                **self.config.http_config.as_request_kwargs(),
            )
            async with response:
                if response.status != 200:
                    raise TransportError(f"HTTP {response.status} from API calling {method}")
                body = await response.text()
        except (client_exceptions.ClientError, asyncio.TimeoutError) as e:
            self._log_call(method, params, envelope, f"transport error '{e}'")
            raise TransportError(
                f"HTTP call to API failed with {type(e).__name__}: {e}"
            ) from e

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise TransportError(f"API returned non-JSON body for {method}: {e}") from e
        if not isinstance(data, dict):
            raise UnexpectedResponseShape(f"API returned non-object body for {method}")

        return unwrap_response(data, envelope)
