from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .config import Settings
from .errors import DecodeError, Result, UpstreamError
from .tokens import TokenResolver

log = logging.getLogger(__name__)

API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"

CALENDAR_QUERY = """
query ViewerCalendar {
  viewer {
    contributionsCollection {
      contributionCalendar {
        weeks {
          contributionDays { contributionCount date }
        }
      }
    }
  }
}
"""

Send = Callable[[str], Awaitable[httpx.Response]]


def _auth_headers(token: str, api_version: str) -> Dict[str, str]:
    return {
        "Accept": "application/vnd.github+json",
        "Authorization": f"Bearer {token}",
        "X-GitHub-Api-Version": api_version,
    }


def _rest_should_retry(status: int) -> bool:
    return status in (401, 403)


def _graphql_should_retry(status: int) -> bool:
    return not 200 <= status < 300


class GitHubClient:
    """REST and GraphQL access to GitHub with one-shot credential substitution.

    A call is first sent with the resolver's effective token. If GitHub rejects
    it (401/403 for REST, any non-2xx for GraphQL) and the resolver offers a
    distinct fallback token, the call is sent once more with that token. The
    outcome is returned as a ``Result``; ``rest`` and ``graphql`` unwrap it.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        resolver: TokenResolver,
        *,
        api_url: str = API_URL,
        api_version: str = API_VERSION,
    ) -> None:
        self.http = http
        self.resolver = resolver
        self.api_url = api_url.rstrip("/")
        self.api_version = api_version

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, resolver: TokenResolver, settings: Settings) -> "GitHubClient":
        return cls(http, resolver, api_url=settings.github_api_url, api_version=settings.github_api_version)

    async def _exchange(
        self,
        send: Send,
        endpoint: str,
        should_retry: Callable[[int], bool],
        token: Optional[str] = None,
    ) -> Result[Any]:
        current = token or self.resolver.effective
        try:
            resp = await send(current)
            if should_retry(resp.status_code):
                fallback = self.resolver.fallback_for(current)
                if fallback:
                    log.warning("Token failed (%s) for %s, retrying with fallback token", resp.status_code, endpoint)
                    resp = await send(fallback)
        except httpx.HTTPError as e:
            return Result.failure(UpstreamError(0, endpoint, detail=type(e).__name__))

        if not resp.is_success:
            log.warning("GitHub %s %s: %s", resp.status_code, endpoint, resp.text[:200])
            return Result.failure(UpstreamError(resp.status_code, endpoint))
        try:
            return Result.success(resp.json())
        except ValueError:
            return Result.failure(DecodeError(endpoint))

    async def fetch(self, endpoint: str, token: Optional[str] = None) -> Result[Any]:
        url = f"{self.api_url}{endpoint}"

        async def send(t: str) -> httpx.Response:
            return await self.http.get(url, headers=_auth_headers(t, self.api_version))

        return await self._exchange(send, endpoint, _rest_should_retry, token)

    async def rest(self, endpoint: str, token: Optional[str] = None) -> Any:
        return (await self.fetch(endpoint, token)).unwrap()

    async def fetch_graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Result[Any]:
        url = f"{self.api_url}/graphql"
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        async def send(t: str) -> httpx.Response:
            return await self.http.post(url, json=payload, headers=_auth_headers(t, self.api_version))

        result = await self._exchange(send, "graphql", _graphql_should_retry)
        if result.ok and isinstance(result.value, dict) and result.value.get("errors"):
            return Result.failure(UpstreamError(200, "graphql", detail=str(result.value["errors"])[:200]))
        return result

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Any:
        return (await self.fetch_graphql(query, variables)).unwrap()
