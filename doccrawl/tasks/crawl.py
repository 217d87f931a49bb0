"""Crawl task: one package per run.

New crawl targets always win over refreshing known packages. When the
queue is empty, the most overdue package is refreshed if it is due. A
failed refresh pushes the package's whole project out by a fraction of
the maximum document age so the next run moves on to another package.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from doccrawl.catalog import Catalog, CrawlTarget, PackageDocument
from doccrawl.exceptions import CatalogError
from doccrawl.timeutil import utcnow

logger = logging.getLogger(__name__)


class DocumentCrawler(Protocol):
    async def crawl_doc(
        self,
        reason: str,
        import_path: str,
        prior: Optional[PackageDocument],
        has_subdirs: bool,
        next_crawl: Optional[datetime],
    ) -> Optional[PackageDocument]:
        ...


class CrawlOrchestrator:
    """Chooses and runs the next crawl.

    Attributes:
        failure_backoff: How far a failed refresh pushes the next crawl
    """

    def __init__(
        self,
        catalog: Catalog,
        crawler: DocumentCrawler,
        max_age: timedelta,
        backoff_divisor: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        if backoff_divisor < 1:
            raise ValueError("backoff_divisor must be at least 1")
        self._catalog = catalog
        self._crawler = crawler
        self._clock = clock
        self.failure_backoff = max_age / backoff_divisor

    async def run_once(self) -> None:
        """Crawl one new target, or refresh one due package.

        Catalog and crawl failures are logged here; the run itself never
        fails.
        """
        try:
            target = self._catalog.pop_new_crawl()
        except CatalogError as e:
            logger.error(f"pop_new_crawl failed: {e}")
            return

        if target is not None:
            await self._crawl_new(target)
            return

        try:
            package, subdirs, next_crawl = self._catalog.get_most_overdue()
        except CatalogError as e:
            logger.error(f"get_most_overdue failed: {e}")
            return

        if package is None:
            return
        if next_crawl is not None and next_crawl > self._clock():
            return

        await self._refresh(package, bool(subdirs), next_crawl)

    async def _crawl_new(self, target: CrawlTarget) -> None:
        try:
            document = await self._crawler.crawl_doc(
                "new", target.import_path, None, target.has_subdirs, None
            )
        except Exception as e:
            logger.warning(f"Crawl of new target {target.import_path} failed: {e}")
            return

        if document is None:
            try:
                self._catalog.add_bad_crawl(target.import_path)
            except CatalogError as e:
                logger.error(f"add_bad_crawl({target.import_path!r}) failed: {e}")

    async def _refresh(
        self,
        package: PackageDocument,
        has_subdirs: bool,
        next_crawl: Optional[datetime],
    ) -> None:
        try:
            await self._crawler.crawl_doc(
                "crawl", package.import_path, package, has_subdirs, next_crawl
            )
        except Exception as e:
            logger.warning(f"Crawl of {package.import_path} failed: {e}")
            retry_at = self._clock() + self.failure_backoff
            try:
                self._catalog.set_next_crawl_etag(package.project_root, package.etag, retry_at)
            except CatalogError as e:
                logger.error(f"set_next_crawl_etag({package.import_path!r}) failed: {e}")
