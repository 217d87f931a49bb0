"""Package document fetching.

HttpDocumentSource asks a document service to fetch and parse the source of
an import path. The Crawler is the crawl tasks' entry point: it fetches a
document, decides what the result means for the catalog, and writes it.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Protocol

import httpx

from doccrawl.catalog import Catalog, PackageDocument
from doccrawl.exceptions import DocumentNotFound, FetchError, NotModified
from doccrawl.timeutil import utcnow

logger = logging.getLogger(__name__)

# Fields of the service response that map onto PackageDocument attributes
_DOCUMENT_FIELDS = ("import_path", "project_root", "etag", "name", "synopsis", "imports")


class DocumentSource(Protocol):
    """Fetches the parsed document of an import path."""

    async def fetch(self, import_path: str, etag: str = "") -> PackageDocument:
        """Fetch a document.

        Raises:
            NotModified: If the source is unchanged since ``etag``
            DocumentNotFound: If the import path resolves to nothing
            FetchError: On any other failure
        """
        ...


def document_from_json(import_path: str, data: Dict[str, Any], etag: Optional[str] = None) -> PackageDocument:
    """Build a PackageDocument from a document service response body.

    Unknown fields are kept in ``extra``.

    Raises:
        FetchError: If the body is not a JSON object or has bad field types
    """
    if not isinstance(data, dict):
        raise FetchError("Document response is not an object", import_path)

    imports = data.get("imports") or []
    if not isinstance(imports, list) or not all(isinstance(i, str) for i in imports):
        raise FetchError("Document imports must be a list of strings", import_path)

    return PackageDocument(
        import_path=str(data.get("import_path") or import_path),
        project_root=str(data.get("project_root") or ""),
        etag=str(data.get("etag") or etag or ""),
        name=str(data.get("name") or ""),
        synopsis=str(data.get("synopsis") or ""),
        imports=list(imports),
        extra={k: v for k, v in data.items() if k not in _DOCUMENT_FIELDS},
    )


class HttpDocumentSource:
    """Document source backed by an HTTP document service.

    The service answers ``GET /packages?path=<import path>`` with a JSON
    document. The etag we hold is sent as If-None-Match; the service
    answers 304 when the repository has not changed and 404 or 410 when
    the import path is gone.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        user_agent: str = "doccrawl",
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the source.

        Args:
            base_url: Base URL of the document service
            timeout: Request timeout in seconds
            user_agent: User-Agent header sent with every request
            client: Pre-built client; one is created on first use otherwise
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent
        self._client = client
        self._owns_client = client is None

    async def initialize(self) -> None:
        """Create the HTTP client."""
        if self._client is not None:
            return

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            timeout=self.timeout,
        )

    async def close(self) -> None:
        """Close the HTTP client if we created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, import_path: str, etag: str = "") -> PackageDocument:
        await self.initialize()
        assert self._client is not None

        headers = {"If-None-Match": etag} if etag else {}
        try:
            response = await self._client.get(
                "/packages",
                params={"path": import_path},
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise FetchError(f"Document service request failed: {e}", import_path) from e

        if response.status_code == 304:
            raise NotModified("Document not modified", import_path, 304)
        if response.status_code in (404, 410):
            raise DocumentNotFound("Import path not found", import_path, response.status_code)
        if response.status_code >= 400:
            raise FetchError(
                f"Document service error: {response.status_code}",
                import_path,
                response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise FetchError(f"Invalid document response: {e}", import_path) from e

        return document_from_json(import_path, data, response.headers.get("ETag"))


class Crawler:
    """Crawls one import path and records the result in the catalog.

    Outcomes of crawl_doc:

    - fetched document with a package, or with packages below it: stored
      with the next crawl ``max_age`` from now; imports are queued
    - not modified: the whole project is pushed out by ``max_age``
    - not found, or an empty directory: any stored package is deleted and
      None is returned
    - any other failure propagates
    """

    def __init__(
        self,
        catalog: Catalog,
        source: DocumentSource,
        max_age: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._catalog = catalog
        self._source = source
        self._max_age = max_age
        self._clock = clock

    async def crawl_doc(
        self,
        reason: str,
        import_path: str,
        prior: Optional[PackageDocument],
        has_subdirs: bool,
        next_crawl: Optional[datetime],
    ) -> Optional[PackageDocument]:
        """Crawl an import path.

        Args:
            reason: Why the crawl happens ("new" or "crawl"), for logging
            import_path: Import path to crawl
            prior: Stored document, None for new targets
            has_subdirs: Whether cataloged packages exist below the path
            next_crawl: Scheduled crawl time of the stored document

        Returns:
            The stored document, or None when the path resolved to nothing

        Raises:
            FetchError: If the document could not be fetched
            CatalogError: If the result could not be stored
        """
        started_at = self._clock()
        etag = prior.etag if prior is not None else ""

        if next_crawl is not None and prior is not None:
            logger.info(f"Crawling {import_path} ({reason}, due {next_crawl.isoformat()})")
        else:
            logger.info(f"Crawling {import_path} ({reason})")

        try:
            document = await self._source.fetch(import_path, etag)
        except NotModified:
            if prior is None:
                raise
            self._catalog.set_next_crawl_etag(
                prior.project_root, prior.etag, started_at + self._max_age
            )
            logger.debug(f"{import_path} not modified")
            return prior
        except DocumentNotFound:
            if prior is not None:
                self._catalog.delete(import_path)
                logger.info(f"Deleted {import_path}: not found")
            return None

        if not document.name and not has_subdirs:
            if prior is not None:
                self._catalog.delete(import_path)
                logger.info(f"Deleted {import_path}: no package")
            return None

        hide = prior.suppressed if prior is not None else False
        self._catalog.put(document, next_crawl=started_at + self._max_age, hide=hide)
        document.next_crawl = started_at + self._max_age
        document.suppressed = hide
        return document
