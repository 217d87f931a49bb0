"""Suppression scoring for cataloged packages.

A package is worth hiding when nobody imports it and its GitHub repository
shows it is throwaway: archived, abandoned, or a fork that was never worked
on after it was created. Packages are scored concurrently by a bounded
worker pool and results are yielded as they complete.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Optional, Sequence, Tuple

from doccrawl.catalog import Catalog, PackageSummary
from doccrawl.config import GitHubAuth
from doccrawl.sources.github import GitHubClient
from doccrawl.timeutil import utcnow

logger = logging.getLogger(__name__)

GITHUB_HOST = "github.com"

# A fork pushed only within this window after its creation was never worked on
FAST_FORK_WINDOW = timedelta(days=7)

# No push for this long means the repository is abandoned
STALE_AFTER = timedelta(days=2 * 365)


@dataclass
class SuppressionResult:
    """Outcome of scoring one package.

    Attributes:
        package: The scored package
        suppress: Whether the package should be hidden
        error: Error raised while scoring, None on success
    """

    package: PackageSummary
    suppress: bool = False
    error: Optional[Exception] = None


def github_repo_of(import_path: str) -> Optional[Tuple[str, str]]:
    """Split a github.com import path into (owner, repository)."""
    parts = import_path.split("/")
    if len(parts) < 3 or parts[0] != GITHUB_HOST or not parts[1] or not parts[2]:
        return None
    return parts[1], parts[2]


class SuppressionScorer:
    """Decides which packages to suppress from GitHub repository signals."""

    def __init__(
        self,
        github: GitHubClient,
        max_concurrent: int = 8,
        clock: Callable[[], datetime] = utcnow,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._github = github
        self._max_concurrent = max_concurrent
        self._clock = clock

    async def should_suppress(
        self,
        package: PackageSummary,
        catalog: Catalog,
        auth: Optional[GitHubAuth] = None,
    ) -> bool:
        """Score a single package.

        Raises:
            CatalogError: If the importer count cannot be read
            ScoringError: If the repository lookup fails
        """
        if catalog.importer_count(package.import_path) > 0:
            return False

        repo = github_repo_of(package.import_path)
        if repo is None:
            return False

        info = await self._github.get_repo(repo[0], repo[1], auth)
        if info.archived:
            return True
        if info.fork and info.pushed_at - info.created_at < FAST_FORK_WINDOW:
            return True
        return self._clock() - info.pushed_at >= STALE_AFTER

    async def score_all(
        self,
        packages: Sequence[PackageSummary],
        catalog: Catalog,
        auth: Optional[GitHubAuth] = None,
    ) -> AsyncIterator[SuppressionResult]:
        """Score packages concurrently.

        Yields one result per package, in completion order. Scoring
        failures are reported in the result rather than raised.
        """
        semaphore = asyncio.Semaphore(self._max_concurrent)

        async def score_with_semaphore(package: PackageSummary) -> SuppressionResult:
            async with semaphore:
                try:
                    suppress = await self.should_suppress(package, catalog, auth)
                except Exception as e:
                    return SuppressionResult(package=package, error=e)
                return SuppressionResult(package=package, suppress=suppress)

        tasks = [asyncio.ensure_future(score_with_semaphore(p)) for p in packages]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            # Consumer stopped early
            for task in tasks:
                task.cancel()
