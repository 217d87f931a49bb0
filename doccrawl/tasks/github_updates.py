"""GitHub updates task: bump recently pushed repositories.

The feed cursor lives in the catalog. It is only advanced after every
repository in the batch has been bumped, so a crash mid-batch replays the
batch on the next run; bumping is idempotent.
"""

import logging
from typing import List, Protocol, Tuple

from doccrawl.catalog import Catalog
from doccrawl.exceptions import CatalogError

logger = logging.getLogger(__name__)

CURSOR_KEY = "gitHubUpdates"


class UpdateFeed(Protocol):
    async def poll_updates(self, cursor: str) -> Tuple[str, List[str]]:
        ...


class UpdatePoller:
    """Polls an update feed and schedules re-crawls for what changed."""

    def __init__(
        self,
        catalog: Catalog,
        feed: UpdateFeed,
        path_prefix: str = "github.com/",
        cursor_key: str = CURSOR_KEY,
    ):
        self._catalog = catalog
        self._feed = feed
        self._path_prefix = path_prefix
        self._cursor_key = cursor_key

    async def run_once(self) -> None:
        """Poll the feed once.

        Raises:
            CatalogError: If the cursor cannot be read or written
            FeedError: If the feed cannot be polled
        """
        cursor = self._catalog.get_blob(self._cursor_key, default="")
        if not isinstance(cursor, str):
            raise CatalogError(
                f"Corrupt update cursor {self._cursor_key!r}",
                details={"type": type(cursor).__name__},
            )

        new_cursor, names = await self._feed.poll_updates(cursor)

        for name in names:
            import_path = self._path_prefix + name
            logger.info(f"Bump crawl {import_path}")
            try:
                self._catalog.bump_crawl(import_path)
            except Exception as e:
                logger.error(f"Force crawl of {import_path} failed: {e}")

        self._catalog.put_blob(self._cursor_key, new_cursor)
