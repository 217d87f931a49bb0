"""
SQLAlchemy models for the doccrawl package catalog.

The catalog stores crawled package documents, the queue of new crawl
targets, import paths that resolved to nothing, the import graph used
for importer counts, and small named blobs such as the update feed cursor.
"""

from datetime import datetime, timezone
from typing import Optional, List, Any, Dict

from sqlalchemy import (
    Integer,
    String,
    Boolean,
    DateTime,
    Text,
    JSON,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, declarative_base

# Create base class for all models
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Package(Base):
    """
    Crawled package document.

    One row per import path. Packages that share a repository share a
    project_root and, after a crawl, an etag.
    """

    __tablename__ = "packages"

    import_path: Mapped[str] = mapped_column(String, primary_key=True)
    project_root: Mapped[str] = mapped_column(String, nullable=False, index=True)
    etag: Mapped[str] = mapped_column(String, nullable=False, default="")

    # Document content
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    synopsis: Mapped[str] = mapped_column(Text, nullable=False, default="")
    imports: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    document: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    # Scheduling and visibility
    next_crawl: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    suppressed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )


class CrawlTarget(Base):
    """
    Pending new crawl target.

    Rows are deleted when popped, so a target is handed out once.
    """

    __tablename__ = "crawl_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    import_path: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        nullable=False,
    )


class BadCrawl(Base):
    """Import path that resolved to nothing and must not be queued again."""

    __tablename__ = "bad_crawls"

    import_path: Mapped[str] = mapped_column(String, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        nullable=False,
    )


class PackageImport(Base):
    """Edge of the import graph: importer_path imports import_path."""

    __tablename__ = "package_imports"

    importer_path: Mapped[str] = mapped_column(String, primary_key=True)
    import_path: Mapped[str] = mapped_column(String, primary_key=True, index=True)


class Blob(Base):
    """Small named value stored as JSON text."""

    __tablename__ = "blobs"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )


# Additional indexes for common queries
Index("ix_crawl_queue_created_at", CrawlTarget.created_at)
