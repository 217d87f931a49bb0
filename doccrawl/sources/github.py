"""GitHub REST API client.

Provides the repository update feed polled by the GitHub updates task and
the repository lookups used by the suppression scorer.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

import httpx

from doccrawl.config import GitHubAuth
from doccrawl.exceptions import DocCrawlError, FeedError, ScoringError
from doccrawl.timeutil import utcnow

logger = logging.getLogger(__name__)

# Cursor format used by the search API's pushed: qualifier
CURSOR_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# How far back the first poll looks
INITIAL_LOOKBACK = timedelta(hours=24)


def parse_github_time(value: str) -> datetime:
    """Parse a GitHub timestamp into naive UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@dataclass
class RepositoryInfo:
    """The repository signals the suppression scorer looks at."""

    full_name: str
    fork: bool
    archived: bool
    created_at: datetime
    pushed_at: datetime

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RepositoryInfo":
        return cls(
            full_name=data["full_name"],
            fork=bool(data.get("fork", False)),
            archived=bool(data.get("archived", False)),
            created_at=parse_github_time(data["created_at"]),
            pushed_at=parse_github_time(data["pushed_at"] or data["created_at"]),
        )


class GitHubClient:
    """Minimal async client for the GitHub REST API."""

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        search_query: str = "language:Go",
        timeout: float = 30.0,
        user_agent: str = "doccrawl",
        auth: Optional[GitHubAuth] = None,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the client.

        Args:
            api_url: Base URL of the API
            search_query: Qualifiers added to the update search
            timeout: Request timeout in seconds
            user_agent: User-Agent header sent with every request
            auth: Default OAuth application credentials
            client: Pre-built client; one is created on first use otherwise
            clock: Source of the current naive UTC time
        """
        self.api_url = api_url.rstrip("/")
        self.search_query = search_query
        self.timeout = timeout
        self.user_agent = user_agent
        self.auth = auth
        self._client = client
        self._owns_client = client is None
        self._clock = clock

    async def initialize(self) -> None:
        """Create the HTTP client."""
        if self._client is not None:
            return

        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            headers={
                "Accept": "application/vnd.github+json",
                "User-Agent": self.user_agent,
            },
            timeout=self.timeout,
        )

    async def close(self) -> None:
        """Close the HTTP client if we created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]],
        auth: Optional[GitHubAuth],
        error_class: Type[DocCrawlError],
    ) -> Any:
        await self.initialize()
        assert self._client is not None

        auth = auth or self.auth
        try:
            response = await self._client.get(
                path,
                params=params,
                auth=(auth.client_id, auth.client_secret) if auth else httpx.USE_CLIENT_DEFAULT,
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise error_class(
                f"GitHub API error: {e.response.status_code}",
                details={"url": str(e.request.url)},
            ) from e
        except httpx.HTTPError as e:
            raise error_class(f"GitHub API request failed: {e}") from e
        except ValueError as e:
            raise error_class(f"Invalid GitHub API response: {e}") from e

    async def poll_updates(self, cursor: str) -> Tuple[str, List[str]]:
        """Find repositories pushed since a cursor.

        Args:
            cursor: Last push time seen, empty on the first poll

        Returns:
            Tuple of (new cursor, repository full names). The new cursor is
            the latest push time in the batch, or the old one when the
            batch is empty.

        Raises:
            FeedError: If the search fails
        """
        last = cursor or (self._clock() - INITIAL_LOOKBACK).strftime(CURSOR_FORMAT)
        query = f"fork:true {self.search_query} pushed:>{last}".strip()

        data = await self._get_json(
            "/search/repositories",
            {"q": query, "sort": "updated", "order": "asc", "per_page": 100},
            None,
            FeedError,
        )
        if not isinstance(data, dict) or not isinstance(data.get("items", []), list):
            raise FeedError("Unexpected search response shape")

        names: List[str] = []
        try:
            for item in data.get("items", []):
                pushed_at = item.get("pushed_at") or ""
                if pushed_at > last:
                    last = pushed_at
                names.append(str(item["full_name"]))
        except (AttributeError, KeyError, TypeError) as e:
            raise FeedError(f"Invalid repository in search response: {e!r}") from e

        logger.debug(f"GitHub feed returned {len(names)} repositories, cursor {last}")
        return last, names

    async def get_repo(self, owner: str, repo: str, auth: Optional[GitHubAuth] = None) -> RepositoryInfo:
        """Fetch a repository.

        Raises:
            ScoringError: If the lookup fails
        """
        data = await self._get_json(f"/repos/{owner}/{repo}", None, auth, ScoringError)
        try:
            return RepositoryInfo.from_api(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ScoringError(f"Invalid repository data for {owner}/{repo}: {e}") from e
