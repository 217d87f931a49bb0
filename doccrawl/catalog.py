"""Package catalog.

The Catalog is the single entry point the background tasks use to read and
mutate persisted state. Each operation runs in its own short session, so
no session or lock outlives a single call. Storage errors are re-raised as
CatalogError.

Example:
    engine = create_db_engine("sqlite:///doccrawl.db")
    create_tables(engine)
    catalog = Catalog(create_session_factory(engine))

    catalog.add_new_crawl("example.com/foo")
    target = catalog.pop_new_crawl()
"""

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generator, List, NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from doccrawl.database.connection import session_scope
from doccrawl.database.models import Package
from doccrawl.database.repositories import RepositoryFactory
from doccrawl.exceptions import CatalogError
from doccrawl.timeutil import EPOCH

logger = logging.getLogger(__name__)


@dataclass
class PackageDocument:
    """A parsed package document as seen by the crawl tasks.

    Attributes:
        import_path: Canonical import path
        project_root: Root import path of the repository holding the package
        etag: Version marker of the repository at crawl time
        name: Package name (empty for directories without a package)
        synopsis: One-line package summary
        imports: Import paths the package imports
        next_crawl: When the package is next due for a refresh
        suppressed: Whether the package is hidden from listings
        updated_at: When the stored record last changed
    """

    import_path: str
    project_root: str = ""
    etag: str = ""
    name: str = ""
    synopsis: str = ""
    imports: List[str] = field(default_factory=list)
    next_crawl: Optional[datetime] = None
    suppressed: bool = False
    updated_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.project_root:
            self.project_root = self.import_path


@dataclass(frozen=True)
class CrawlTarget:
    """A new import path to crawl."""
    import_path: str
    has_subdirs: bool = False


@dataclass(frozen=True)
class PackageSummary:
    """Listing entry returned by all_packages()."""
    import_path: str
    synopsis: str = ""
    suppressed: bool = False


class PackageLookup(NamedTuple):
    """Result of a package lookup: the package, its subdirectories and next crawl time."""
    package: Optional[PackageDocument]
    subdirs: List[PackageDocument]
    next_crawl: Optional[datetime]


def _to_document(row: Package) -> PackageDocument:
    return PackageDocument(
        import_path=row.import_path,
        project_root=row.project_root,
        etag=row.etag,
        name=row.name,
        synopsis=row.synopsis,
        imports=list(row.imports or []),
        next_crawl=row.next_crawl,
        suppressed=row.suppressed,
        updated_at=row.updated_at,
        extra=dict(row.document or {}),
    )


class Catalog:
    """Persistent package catalog backed by SQLAlchemy.

    Attributes:
        _session_factory: Factory for per-operation sessions
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _repos(self, operation: str) -> Generator[RepositoryFactory, None, None]:
        try:
            with session_scope(self._session_factory) as session:
                yield RepositoryFactory(session)
        except SQLAlchemyError as e:
            raise CatalogError(f"Catalog {operation} failed: {e}") from e

    # Crawl queue

    def pop_new_crawl(self) -> Optional[CrawlTarget]:
        """Remove and return one pending new crawl target.

        Returns:
            The target, or None when nothing is queued
        """
        with self._repos("pop_new_crawl") as repos:
            import_path = repos.queue.pop()
            if import_path is None:
                return None
            has_subdirs = bool(repos.packages.get_subdirs(import_path))
        return CrawlTarget(import_path=import_path, has_subdirs=has_subdirs)

    def add_new_crawl(self, import_path: str) -> bool:
        """Queue an import path that has never been crawled.

        Paths already in the catalog, already queued, or marked as bad
        crawls are ignored.

        Returns:
            True if the path was queued
        """
        with self._repos("add_new_crawl") as repos:
            if repos.bad_crawls.contains(import_path):
                return False
            if repos.packages.exists(import_path):
                return False
            return repos.queue.add(import_path)

    def add_bad_crawl(self, import_path: str) -> None:
        """Mark an import path as resolving to nothing.

        The path is also dropped from the queue so it is not retried.
        """
        with self._repos("add_bad_crawl") as repos:
            repos.bad_crawls.add(import_path)
            repos.queue.remove(import_path)
        logger.info(f"Marked bad crawl {import_path}")

    def bump_crawl(self, import_path: str) -> None:
        """Request a priority re-crawl of an import path.

        A known package becomes due immediately; an unknown path is queued
        as a new crawl target. Repeating the call is harmless.
        """
        with self._repos("bump_crawl") as repos:
            if repos.packages.set_next_crawl(import_path, EPOCH):
                return
            if not repos.bad_crawls.contains(import_path):
                repos.queue.add(import_path)

    def pending_count(self) -> int:
        with self._repos("pending_count") as repos:
            return repos.queue.count()

    def pending(self, limit: int = 50) -> List[str]:
        with self._repos("pending") as repos:
            return repos.queue.pending(limit)

    # Packages

    def get(self, import_path: str) -> PackageLookup:
        """Look up a package by import path.

        Returns:
            PackageLookup; its package is None when the path is unknown
        """
        with self._repos("get") as repos:
            row = repos.packages.get(import_path)
            return self._lookup(repos, row)

    def get_most_overdue(self) -> PackageLookup:
        """Look up the package with the earliest next crawl time.

        Returns:
            PackageLookup; its package is None when the catalog is empty
        """
        with self._repos("get_most_overdue") as repos:
            row = repos.packages.get_most_overdue()
            return self._lookup(repos, row)

    @staticmethod
    def _lookup(repos: RepositoryFactory, row: Optional[Package]) -> PackageLookup:
        if row is None:
            return PackageLookup(None, [], None)
        subdirs = [_to_document(sub) for sub in repos.packages.get_subdirs(row.import_path)]
        return PackageLookup(_to_document(row), subdirs, row.next_crawl)

    def put(
        self,
        document: PackageDocument,
        next_crawl: Optional[datetime] = None,
        hide: bool = False,
    ) -> None:
        """Store a package document.

        New imports found in the document are queued as crawl targets.

        Args:
            document: Document to store
            next_crawl: Next crawl time; None keeps the stored value
                        (or makes a new package due now)
            hide: Store the package as suppressed
        """
        with self._repos("put") as repos:
            existing = repos.packages.get(document.import_path)
            if next_crawl is None:
                next_crawl = existing.next_crawl if existing is not None else EPOCH

            repos.packages.upsert(
                document.import_path,
                project_root=document.project_root,
                etag=document.etag,
                name=document.name,
                synopsis=document.synopsis,
                imports=list(document.imports),
                document=dict(document.extra) or None,
                next_crawl=next_crawl,
                suppressed=hide,
            )
            repos.imports.replace_imports(document.import_path, document.imports)

            for import_path in document.imports:
                if repos.bad_crawls.contains(import_path) or repos.packages.exists(import_path):
                    continue
                repos.queue.add(import_path)

    def delete(self, import_path: str) -> bool:
        """Remove a package and its outgoing import edges."""
        with self._repos("delete") as repos:
            repos.imports.remove_importer(import_path)
            return repos.packages.delete(import_path)

    def set_next_crawl_etag(self, project_root: str, etag: str, next_crawl: datetime) -> int:
        """Push the next crawl of every package in a project crawled at an etag.

        Returns:
            Number of packages updated
        """
        with self._repos("set_next_crawl_etag") as repos:
            return repos.packages.set_next_crawl_for_project(project_root, etag, next_crawl)

    def all_packages(self) -> List[PackageSummary]:
        """List every package in the catalog."""
        with self._repos("all_packages") as repos:
            return [
                PackageSummary(
                    import_path=row.import_path,
                    synopsis=row.synopsis,
                    suppressed=row.suppressed,
                )
                for row in repos.packages.get_all()
            ]

    def package_count(self) -> int:
        with self._repos("package_count") as repos:
            return repos.packages.count()

    def importer_count(self, import_path: str) -> int:
        """Number of cataloged packages importing an import path."""
        with self._repos("importer_count") as repos:
            return repos.imports.importer_count(import_path)

    # Blobs

    def get_blob(self, key: str, default: Any = None) -> Any:
        """Read a named blob.

        Returns:
            The decoded value, or ``default`` when the key was never written

        Raises:
            CatalogError: If the stored value cannot be decoded
        """
        with self._repos("get_blob") as repos:
            raw = repos.blobs.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise CatalogError(f"Corrupt blob {key!r}: {e}", details={"key": key}) from e

    def put_blob(self, key: str, value: Any) -> None:
        """Write a named blob. The value must be JSON serializable."""
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise CatalogError(f"Cannot encode blob {key!r}: {e}", details={"key": key}) from e
        with self._repos("put_blob") as repos:
            repos.blobs.put(key, raw)
