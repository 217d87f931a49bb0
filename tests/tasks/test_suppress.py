"""Tests for the suppression task."""

import logging
from datetime import timedelta
from typing import Any, List
from unittest.mock import MagicMock, patch

import pytest

from doccrawl.catalog import PackageDocument
from doccrawl.config import GitHubAuth
from doccrawl.exceptions import CatalogError, ConfigurationError, ScoringError
from doccrawl.sources.scoring import SuppressionResult
from doccrawl.tasks.suppress import SuppressionEvaluator


class FakeScorer:
    """Flags a fixed set of import paths and fails on another."""

    def __init__(self, flagged=(), failing=()):
        self.flagged = set(flagged)
        self.failing = set(failing)
        self.auth_seen: List[Any] = []

    async def score_all(self, packages, catalog, auth):
        self.auth_seen.append(auth)
        for package in packages:
            if package.import_path in self.failing:
                yield SuppressionResult(package, error=ScoringError("HTTP 502"))
            else:
                yield SuppressionResult(package, suppress=package.import_path in self.flagged)


@pytest.mark.asyncio
async def test_hides_flagged_packages(catalog, clock) -> None:
    crawl_at = clock() + timedelta(hours=3)
    catalog.put(PackageDocument("github.com/a/old"), next_crawl=crawl_at)
    catalog.put(PackageDocument("github.com/a/live"), next_crawl=crawl_at)

    evaluator = SuppressionEvaluator(catalog, FakeScorer(flagged=["github.com/a/old"]))
    assert await evaluator.run_once() == 1

    old = catalog.get("github.com/a/old")
    assert old.package.suppressed is True
    assert old.next_crawl == crawl_at
    assert catalog.get("github.com/a/live").package.suppressed is False


@pytest.mark.asyncio
async def test_scoring_error_logged_and_skipped(catalog, caplog: Any) -> None:
    catalog.put(PackageDocument("github.com/a/broken"))
    catalog.put(PackageDocument("github.com/a/old"))
    scorer = FakeScorer(flagged=["github.com/a/old"], failing=["github.com/a/broken"])

    with caplog.at_level(logging.ERROR):
        hidden = await SuppressionEvaluator(catalog, scorer).run_once()

    assert hidden == 1
    assert 'Error while checking package "github.com/a/broken": HTTP 502' in caplog.text
    assert catalog.get("github.com/a/broken").package.suppressed is False


@pytest.mark.asyncio
async def test_credentials_parsed_each_run(catalog) -> None:
    scorer = FakeScorer()
    evaluator = SuppressionEvaluator(catalog, scorer, credentials="client_id=a&client_secret=b")

    await evaluator.run_once()

    assert scorer.auth_seen == [GitHubAuth(client_id="a", client_secret="b")]


@pytest.mark.asyncio
async def test_malformed_credentials_fail_run(catalog, caplog: Any) -> None:
    evaluator = SuppressionEvaluator(catalog, FakeScorer(), credentials="client_id=a")

    with caplog.at_level(logging.ERROR):
        with pytest.raises(ConfigurationError):
            await evaluator.run_once()

    assert "Error parsing GitHub auth" in caplog.text


@pytest.mark.asyncio
async def test_package_list_failure_fails_run(caplog: Any) -> None:
    catalog = MagicMock()
    catalog.all_packages.side_effect = CatalogError("locked")

    with caplog.at_level(logging.ERROR):
        with pytest.raises(CatalogError):
            await SuppressionEvaluator(catalog, FakeScorer()).run_once()

    assert "Error retrieving all packages" in caplog.text


@pytest.mark.asyncio
async def test_vanished_package_skipped(catalog, caplog: Any) -> None:
    catalog.put(PackageDocument("github.com/a/old"))
    scorer = FakeScorer(flagged=["github.com/a/old"])

    original = scorer.score_all

    async def delete_then_score(packages, cat, auth):
        cat.delete("github.com/a/old")
        async for result in original(packages, cat, auth):
            yield result

    scorer.score_all = delete_then_score

    with caplog.at_level(logging.WARNING):
        assert await SuppressionEvaluator(catalog, scorer).run_once() == 0

    assert "disappeared" in caplog.text
    assert catalog.get("github.com/a/old").package is None


@pytest.mark.asyncio
async def test_update_failure_does_not_stop_other_packages(catalog, caplog: Any) -> None:
    catalog.put(PackageDocument("github.com/a/locked"))
    catalog.put(PackageDocument("github.com/a/old"))
    scorer = FakeScorer(flagged=["github.com/a/locked", "github.com/a/old"])
    put = catalog.put

    def failing_put(package, *args, **kwargs):
        if package.import_path == "github.com/a/locked":
            raise CatalogError("database is locked")
        return put(package, *args, **kwargs)

    with patch.object(catalog, "put", side_effect=failing_put):
        with caplog.at_level(logging.ERROR):
            hidden = await SuppressionEvaluator(catalog, scorer).run_once()

    assert hidden == 1
    assert 'Error updating package "github.com/a/locked": database is locked' in caplog.text
    assert catalog.get("github.com/a/old").package.suppressed is True
    assert catalog.get("github.com/a/locked").package.suppressed is False


@pytest.mark.asyncio
async def test_read_failure_does_not_stop_other_packages(catalog, caplog: Any) -> None:
    catalog.put(PackageDocument("github.com/a/locked"))
    catalog.put(PackageDocument("github.com/a/old"))
    scorer = FakeScorer(flagged=["github.com/a/locked", "github.com/a/old"])
    get = catalog.get

    def failing_get(import_path):
        if import_path == "github.com/a/locked":
            raise CatalogError("database is locked")
        return get(import_path)

    with patch.object(catalog, "get", side_effect=failing_get):
        with caplog.at_level(logging.ERROR):
            hidden = await SuppressionEvaluator(catalog, scorer).run_once()

    assert hidden == 1
    assert 'Error retrieving package "github.com/a/locked"' in caplog.text
    assert catalog.get("github.com/a/old").package.suppressed is True
