"""Database repositories for doccrawl.

Provides high-level data access patterns for the package catalog: package
documents, the new crawl queue, bad crawl marks, the import graph and
named blobs. Repositories flush but never commit; the caller's session
scope owns the transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from doccrawl.database.models import BadCrawl, Blob, CrawlTarget, Package, PackageImport


class PackageRepository:
    """
    Repository for package document operations.
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def get(self, import_path: str) -> Optional[Package]:
        """
        Get package by import path.

        Args:
            import_path: Import path of the package

        Returns:
            Package if found, None otherwise
        """
        return self.session.get(Package, import_path)

    def exists(self, import_path: str) -> bool:
        """Check whether a package is in the catalog."""
        return self.get(import_path) is not None

    def get_most_overdue(self) -> Optional[Package]:
        """
        Get the package with the earliest next crawl time.

        Returns:
            Package if the catalog is not empty, None otherwise
        """
        stmt = select(Package).order_by(Package.next_crawl.asc(), Package.import_path.asc()).limit(1)
        return self.session.scalars(stmt).first()

    def get_subdirs(self, import_path: str) -> List[Package]:
        """
        Get packages nested below an import path.

        Args:
            import_path: Parent import path

        Returns:
            Packages whose import path starts with ``import_path + "/"``
        """
        prefix = import_path.rstrip("/") + "/"
        stmt = (
            select(Package)
            .where(Package.import_path.startswith(prefix, autoescape=True))
            .order_by(Package.import_path)
        )
        return list(self.session.scalars(stmt))

    def get_all(self) -> List[Package]:
        """
        Get all packages.

        Returns:
            All packages ordered by import path
        """
        return list(self.session.scalars(select(Package).order_by(Package.import_path)))

    def count(self) -> int:
        """Number of packages in the catalog."""
        return self.session.scalar(select(func.count()).select_from(Package)) or 0

    def upsert(self, import_path: str, **kwargs) -> Package:
        """
        Create or update a package.

        Args:
            import_path: Import path of the package
            **kwargs: Package attributes to set

        Returns:
            The stored package
        """
        package = self.get(import_path)
        if package is None:
            package = Package(import_path=import_path, **kwargs)
            self.session.add(package)
        else:
            for key, value in kwargs.items():
                if hasattr(package, key):
                    setattr(package, key, value)
        self.session.flush()
        return package

    def set_next_crawl(self, import_path: str, next_crawl: datetime) -> bool:
        """
        Set the next crawl time of a single package.

        Returns:
            True if the package exists
        """
        result = self.session.execute(
            update(Package)
            .where(Package.import_path == import_path)
            .values(next_crawl=next_crawl)
        )
        return result.rowcount > 0

    def set_next_crawl_for_project(self, project_root: str, etag: str, next_crawl: datetime) -> int:
        """
        Set the next crawl time of every package in a project with a given etag.

        Args:
            project_root: Repository root shared by the packages
            etag: Only packages crawled at this etag are touched
            next_crawl: New next crawl time

        Returns:
            Number of packages updated
        """
        result = self.session.execute(
            update(Package)
            .where(Package.project_root == project_root, Package.etag == etag)
            .values(next_crawl=next_crawl)
        )
        return result.rowcount

    def delete(self, import_path: str) -> bool:
        """
        Delete a package.

        Returns:
            True if the package existed
        """
        package = self.get(import_path)
        if package is None:
            return False
        self.session.delete(package)
        self.session.flush()
        return True


class CrawlQueueRepository:
    """
    Repository for the new crawl target queue.
    """

    def __init__(self, session: Session):
        self.session = session

    def contains(self, import_path: str) -> bool:
        stmt = select(CrawlTarget.id).where(CrawlTarget.import_path == import_path)
        return self.session.scalar(stmt) is not None

    def add(self, import_path: str) -> bool:
        """
        Queue an import path.

        Returns:
            True if the path was added, False if already queued
        """
        if self.contains(import_path):
            return False
        self.session.add(CrawlTarget(import_path=import_path))
        self.session.flush()
        return True

    def pop(self) -> Optional[str]:
        """
        Remove and return the oldest queued import path.

        Returns:
            Import path, or None when the queue is empty
        """
        stmt = select(CrawlTarget).order_by(CrawlTarget.created_at, CrawlTarget.id).limit(1)
        target = self.session.scalars(stmt).first()
        if target is None:
            return None
        import_path = target.import_path
        self.session.delete(target)
        self.session.flush()
        return import_path

    def remove(self, import_path: str) -> None:
        self.session.execute(
            delete(CrawlTarget).where(CrawlTarget.import_path == import_path)
        )

    def pending(self, limit: int = 50) -> List[str]:
        stmt = select(CrawlTarget.import_path).order_by(CrawlTarget.created_at, CrawlTarget.id).limit(limit)
        return list(self.session.scalars(stmt))

    def count(self) -> int:
        return self.session.scalar(select(func.count()).select_from(CrawlTarget)) or 0


class BadCrawlRepository:
    """
    Repository for import paths that resolved to nothing.
    """

    def __init__(self, session: Session):
        self.session = session

    def add(self, import_path: str) -> None:
        if self.session.get(BadCrawl, import_path) is None:
            self.session.add(BadCrawl(import_path=import_path))
            self.session.flush()

    def contains(self, import_path: str) -> bool:
        return self.session.get(BadCrawl, import_path) is not None


class ImportRepository:
    """
    Repository for the package import graph.
    """

    def __init__(self, session: Session):
        self.session = session

    def replace_imports(self, importer_path: str, imports: Iterable[str]) -> None:
        """
        Replace the outgoing import edges of a package.

        Args:
            importer_path: Package whose imports are being recorded
            imports: Import paths it imports
        """
        self.session.execute(
            delete(PackageImport).where(PackageImport.importer_path == importer_path)
        )
        for import_path in sorted(set(imports)):
            if import_path != importer_path:
                self.session.add(PackageImport(importer_path=importer_path, import_path=import_path))
        self.session.flush()

    def remove_importer(self, importer_path: str) -> None:
        self.session.execute(
            delete(PackageImport).where(PackageImport.importer_path == importer_path)
        )

    def importer_count(self, import_path: str) -> int:
        """
        Count packages importing an import path.

        Args:
            import_path: Imported package

        Returns:
            Number of distinct importers
        """
        stmt = select(func.count()).select_from(PackageImport).where(
            PackageImport.import_path == import_path
        )
        return self.session.scalar(stmt) or 0


class BlobRepository:
    """
    Repository for small named values.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, key: str) -> Optional[str]:
        """
        Get the raw stored text for a key.

        Returns:
            Stored text, or None when the key was never written
        """
        blob = self.session.get(Blob, key)
        return blob.value if blob is not None else None

    def put(self, key: str, value: str) -> None:
        blob = self.session.get(Blob, key)
        if blob is None:
            self.session.add(Blob(key=key, value=value))
        else:
            blob.value = value
        self.session.flush()


class RepositoryFactory:
    """
    Factory for creating repository instances.

    Usage:
        with session_scope(factory) as session:
            repos = RepositoryFactory(session)
            package = repos.packages.get("example.com/foo")
    """

    def __init__(self, session: Session):
        """
        Initialize factory with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session
        self._packages: Optional[PackageRepository] = None
        self._queue: Optional[CrawlQueueRepository] = None
        self._bad_crawls: Optional[BadCrawlRepository] = None
        self._imports: Optional[ImportRepository] = None
        self._blobs: Optional[BlobRepository] = None

    @property
    def packages(self) -> PackageRepository:
        if self._packages is None:
            self._packages = PackageRepository(self.session)
        return self._packages

    @property
    def queue(self) -> CrawlQueueRepository:
        if self._queue is None:
            self._queue = CrawlQueueRepository(self.session)
        return self._queue

    @property
    def bad_crawls(self) -> BadCrawlRepository:
        if self._bad_crawls is None:
            self._bad_crawls = BadCrawlRepository(self.session)
        return self._bad_crawls

    @property
    def imports(self) -> ImportRepository:
        if self._imports is None:
            self._imports = ImportRepository(self.session)
        return self._imports

    @property
    def blobs(self) -> BlobRepository:
        if self._blobs is None:
            self._blobs = BlobRepository(self.session)
        return self._blobs
