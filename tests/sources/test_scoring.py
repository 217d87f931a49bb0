"""Tests for suppression scoring."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from doccrawl.catalog import PackageDocument, PackageSummary
from doccrawl.exceptions import ScoringError
from doccrawl.sources.github import RepositoryInfo
from doccrawl.sources.scoring import SuppressionScorer, github_repo_of


def repo(clock, fork=False, archived=False, age=timedelta(days=1000), pushed_ago=timedelta(days=1)):
    now = clock()
    return RepositoryInfo(
        full_name="owner/repo",
        fork=fork,
        archived=archived,
        created_at=now - age,
        pushed_at=now - pushed_ago,
    )


@pytest.fixture
def github() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def scorer(github, clock) -> SuppressionScorer:
    return SuppressionScorer(github, clock=clock)


def test_github_repo_of():
    assert github_repo_of("github.com/owner/repo/sub") == ("owner", "repo")
    assert github_repo_of("github.com/owner") is None
    assert github_repo_of("example.com/owner/repo") is None


def test_invalid_concurrency(github):
    with pytest.raises(ValueError):
        SuppressionScorer(github, max_concurrent=0)


class TestShouldSuppress:
    """Tests for the suppression rules."""

    @pytest.mark.asyncio
    async def test_imported_package_kept(self, scorer, github, catalog, clock):
        catalog.put(PackageDocument("example.com/user", imports=["github.com/owner/repo"]))
        github.get_repo.return_value = repo(clock, archived=True)

        assert await scorer.should_suppress(PackageSummary("github.com/owner/repo"), catalog) is False
        github.get_repo.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_github_kept(self, scorer, github, catalog):
        assert await scorer.should_suppress(PackageSummary("example.com/a"), catalog) is False
        github.get_repo.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_archived(self, scorer, github, catalog, clock):
        github.get_repo.return_value = repo(clock, archived=True)
        assert await scorer.should_suppress(PackageSummary("github.com/owner/repo"), catalog) is True

    @pytest.mark.asyncio
    async def test_untouched_fork(self, scorer, github, catalog, clock):
        github.get_repo.return_value = repo(
            clock, fork=True, age=timedelta(days=30), pushed_ago=timedelta(days=28)
        )
        assert await scorer.should_suppress(PackageSummary("github.com/owner/repo"), catalog) is True

    @pytest.mark.asyncio
    async def test_active_fork_kept(self, scorer, github, catalog, clock):
        github.get_repo.return_value = repo(
            clock, fork=True, age=timedelta(days=30), pushed_ago=timedelta(days=1)
        )
        assert await scorer.should_suppress(PackageSummary("github.com/owner/repo"), catalog) is False

    @pytest.mark.asyncio
    async def test_stale_repository(self, scorer, github, catalog, clock):
        github.get_repo.return_value = repo(clock, pushed_ago=timedelta(days=730))
        assert await scorer.should_suppress(PackageSummary("github.com/owner/repo"), catalog) is True

    @pytest.mark.asyncio
    async def test_recent_repository_kept(self, scorer, github, catalog, clock):
        github.get_repo.return_value = repo(clock, pushed_ago=timedelta(days=729))
        assert await scorer.should_suppress(PackageSummary("github.com/owner/repo"), catalog) is False

    @pytest.mark.asyncio
    async def test_auth_forwarded(self, scorer, github, catalog, clock):
        github.get_repo.return_value = repo(clock)
        auth = object()

        await scorer.should_suppress(PackageSummary("github.com/owner/repo"), catalog, auth)

        github.get_repo.assert_awaited_once_with("owner", "repo", auth)


class TestScoreAll:
    """Tests for concurrent scoring."""

    @pytest.mark.asyncio
    async def test_one_result_per_package(self, scorer, github, catalog, clock):
        async def get_repo(owner, name, auth):
            if name == "broken":
                raise ScoringError("HTTP 502")
            return repo(clock, archived=name == "old")

        github.get_repo.side_effect = get_repo
        packages = [
            PackageSummary("github.com/owner/old"),
            PackageSummary("github.com/owner/live"),
            PackageSummary("github.com/owner/broken"),
        ]

        results = {r.package.import_path: r async for r in scorer.score_all(packages, catalog)}

        assert results["github.com/owner/old"].suppress is True
        assert results["github.com/owner/live"].suppress is False
        assert isinstance(results["github.com/owner/broken"].error, ScoringError)

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self, github, catalog, clock):
        active = 0
        peak = 0

        async def get_repo(owner, name, auth):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return repo(clock)

        github.get_repo.side_effect = get_repo
        scorer = SuppressionScorer(github, max_concurrent=2, clock=clock)
        packages = [PackageSummary(f"github.com/owner/r{i}") for i in range(6)]

        results = [r async for r in scorer.score_all(packages, catalog)]

        assert len(results) == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_empty(self, scorer, catalog):
        assert [r async for r in scorer.score_all([], catalog)] == []
