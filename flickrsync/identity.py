"""API key, user agent and proxy rotation."""

# pylint: disable=line-too-long

from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

from flickrsync.errors import ConfigurationError
from flickrsync.utils import dbg, get_random_user_agent

COMMON_BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; rv:102.0) Gecko/20100101 Firefox/102.0"
COMMON_BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
}
COMMON_CLI_UA = "curl/7.82.0"
CLI_CLIENTS = {
    "curl": ("7.68.0", "7.74.0", "7.79.1", "7.81.0", "7.82.0", "7.85.0", "7.88.1", "8.0.1", "8.1.2"),
    "Wget": ("1.20.3", "1.21", "1.21.1", "1.21.2", "1.21.3", "1.21.4"),
    "PostmanRuntime": ("7.26.8", "7.28.4", "7.29.0", "7.29.2", "7.30.0", "7.31.3", "7.32.2"),
}
BROWSER_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8"
BROWSER_LANGUAGES = ("en-US,en;q=0.5", "en-US,en;q=0.7", "en-GB,en;q=0.8", "en-US,en;q=0.9")
BROWSER_OPTIONAL_HEADERS = {
    "Sec-Fetch-User": "?1",
    "Sec-Fetch-Site": "same-origin",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Dest": "document",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Gpc": "1",
}


class ClientProfile(Enum):
    """What kind of HTTP client to pretend to be."""

    COMMON_BROWSER = "common-browser"
    COMMON_CLI = "common-cli"
    RANDOM_BROWSER = "random-browser"
    RANDOM_CLI = "random-cli"


@dataclass(frozen=True)
class AgentIdentity:
    """User agent string plus the headers that go with it."""

    user_agent: str
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class HttpClientConfig:
    """Agent identity and optional proxy applied to one HTTP client."""

    agent: AgentIdentity
    proxy: str | None = None

    def as_headers(self) -> dict[str, str]:
        headers = dict(self.agent.headers)
        headers["User-Agent"] = self.agent.user_agent
        return headers

    def as_request_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for aiohttp ClientSession.request()."""
        opts: dict[str, Any] = {"headers": self.as_headers()}
        if self.proxy:
            opts["proxy"] = self.proxy
        return opts


@dataclass(frozen=True)
class ApiClientConfig:
    """API key bound to the HTTP identity used to send it."""

    api_key: str
    http_config: HttpClientConfig

    def key_hint(self) -> str:
        return f"...{self.api_key[-4:]}" if len(self.api_key) > 4 else "****"


def common_browser() -> AgentIdentity:
    return AgentIdentity(COMMON_BROWSER_UA, dict(COMMON_BROWSER_HEADERS))


def common_cli_client() -> AgentIdentity:
    return AgentIdentity(COMMON_CLI_UA, {"Accept": "*/*"})


def random_cli_client(rng: random.Random | None = None) -> AgentIdentity:
    rng = rng or random
    kind = rng.choice(sorted(CLI_CLIENTS))
    version = rng.choice(CLI_CLIENTS[kind])
    return AgentIdentity(f"{kind}/{version}", {"Accept": "*/*"})


def random_browser(rng: random.Random | None = None) -> AgentIdentity:
    """Random real-world browser UA with a slightly varied header set."""
    rng = rng or random
    optional = list(BROWSER_OPTIONAL_HEADERS.items())
    # Drop one unimportant header for extra entropy
    optional.pop(rng.randrange(len(optional)))
    headers = dict(optional)
    headers["Accept"] = BROWSER_ACCEPT
    headers["Accept-Language"] = rng.choice(BROWSER_LANGUAGES)
    return AgentIdentity(get_random_user_agent(), headers)


class IdentityPool:
    """
    Hands out (API key, HTTP config) combinations.

    Keys and proxies are shuffled once at construction so uniform draws do not
    favour whichever entry was configured first. Randomness here only spreads
    traffic; it is not security sensitive.

    In pinned mode the first drawn combination is returned for every profile
    request of the same kind for the lifetime of the pool.
    """

    def __init__(
        self,
        api_keys: Sequence[str],
        proxies: Sequence[str] | None = None,
        pinned: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        keys = [key for key in api_keys if key]
        if not keys:
            raise ConfigurationError(
                "You need to specify at least one API key (FLICKRSYNC_API_KEYS)"
            )
        self._rng = rng or random.Random()
        self._keys = keys
        self._rng.shuffle(self._keys)
        self._proxies = [proxy for proxy in (proxies or []) if proxy]
        self._rng.shuffle(self._proxies)
        self.pinned = pinned
        self._pinned_api: dict[ClientProfile, ApiClientConfig] = {}
        self._pinned_http: dict[ClientProfile, HttpClientConfig] = {}

    @property
    def key_count(self) -> int:
        return len(self._keys)

    def _random_key(self) -> str:
        if len(self._keys) == 1:
            return self._keys[0]
        return self._keys[self._rng.randrange(len(self._keys))]

    def _random_proxy(self) -> str | None:
        if not self._proxies:
            return None
        if len(self._proxies) == 1:
            return self._proxies[0]
        return self._proxies[self._rng.randrange(len(self._proxies))]

    def _agent_for(self, profile: ClientProfile) -> AgentIdentity:
        if profile is ClientProfile.COMMON_BROWSER:
            return common_browser()
        if profile is ClientProfile.COMMON_CLI:
            return common_cli_client()
        if profile is ClientProfile.RANDOM_BROWSER:
            return random_browser(self._rng)
        return random_cli_client(self._rng)

    def http_config(self, profile: ClientProfile) -> HttpClientConfig:
        """HTTP-only identity, e.g. for CDN downloads which need no API key."""
        if self.pinned and profile in self._pinned_http:
            return self._pinned_http[profile]
        config = HttpClientConfig(self._agent_for(profile), self._random_proxy())
        if self.pinned:
            self._pinned_http[profile] = config
        return config

    def next(self, profile: ClientProfile = ClientProfile.RANDOM_CLI) -> ApiClientConfig:
        """
        Return the API identity to use for the next call.

        Args:
            profile (ClientProfile): Kind of HTTP client to impersonate.

        Returns:
            ApiClientConfig: Key plus HTTP config.
        """
        if self.pinned and profile in self._pinned_api:
            return self._pinned_api[profile]
        config = ApiClientConfig(self._random_key(), self.http_config(profile))
        if self.pinned:
            self._pinned_api[profile] = config
        dbg(
            f"Identity: key={config.key_hint()} ua='{config.http_config.agent.user_agent}' "
            f"proxy={config.http_config.proxy or '-'}"
        )
        return config
