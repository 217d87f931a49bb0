"""Suppression task: hide packages the scorer flags.

Every cataloged package is scored on each run. Flagged packages are read
back and rewritten as hidden with their crawl schedule untouched.
"""

import logging
from typing import AsyncIterator, Optional, Protocol, Sequence

from doccrawl.catalog import Catalog, PackageSummary
from doccrawl.config import GitHubAuth, parse_github_auth
from doccrawl.exceptions import CatalogError, ConfigurationError
from doccrawl.sources.scoring import SuppressionResult

logger = logging.getLogger(__name__)


class Scorer(Protocol):
    def score_all(
        self,
        packages: Sequence[PackageSummary],
        catalog: Catalog,
        auth: Optional[GitHubAuth],
    ) -> AsyncIterator[SuppressionResult]:
        ...


class SuppressionEvaluator:
    """Re-evaluates and applies package suppression."""

    def __init__(self, catalog: Catalog, scorer: Scorer, credentials: Optional[str] = None):
        """Initialize the evaluator.

        Args:
            catalog: Package catalog
            scorer: Suppression scorer
            credentials: GitHub credentials in query-string form; parsed on
                         every run so a malformed value fails the run
        """
        self._catalog = catalog
        self._scorer = scorer
        self._credentials = credentials

    async def run_once(self) -> int:
        """Score every package and hide the flagged ones.

        Returns:
            Number of packages hidden in this run

        Raises:
            CatalogError: If the package list cannot be read
            ConfigurationError: If the GitHub credentials are malformed
        """
        try:
            packages = self._catalog.all_packages()
        except CatalogError as e:
            logger.error(f"Error retrieving all packages: {e}")
            raise

        try:
            auth = parse_github_auth(self._credentials)
        except ConfigurationError as e:
            logger.error(f"Error parsing GitHub auth: {e}")
            raise

        suppressed = 0
        async for result in self._scorer.score_all(packages, self._catalog, auth):
            import_path = result.package.import_path
            if result.error is not None:
                logger.error(f'Error while checking package "{import_path}": {result.error}')
                continue

            if not result.suppress:
                continue

            try:
                package = self._catalog.get(import_path).package
            except CatalogError as e:
                logger.error(f'Error retrieving package "{import_path}": {e}')
                continue
            if package is None:
                logger.warning(f'Package "{import_path}" disappeared before suppression')
                continue

            try:
                self._catalog.put(package, next_crawl=None, hide=True)
            except CatalogError as e:
                logger.error(f'Error updating package "{import_path}": {e}')
                continue

            suppressed += 1
            logger.info(f"Suppressed {import_path}")

        logger.info(f"Suppression check done: {suppressed} of {len(packages)} packages hidden")
        return suppressed
