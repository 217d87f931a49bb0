"""Tests for document fetching and the crawler."""

from datetime import timedelta
from typing import List

import httpx
import pytest

from doccrawl.catalog import PackageDocument
from doccrawl.exceptions import DocumentNotFound, FetchError, NotModified
from doccrawl.sources.documents import Crawler, HttpDocumentSource, document_from_json
from doccrawl.timeutil import EPOCH


MAX_AGE = timedelta(hours=24)


def make_source(handler) -> HttpDocumentSource:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="http://docs.test",
    )
    return HttpDocumentSource("http://docs.test", client=client)


class TestDocumentFromJson:
    """Tests for document_from_json."""

    def test_fields_and_extra(self):
        document = document_from_json(
            "example.com/a",
            {
                "name": "a",
                "synopsis": "Package a.",
                "imports": ["example.com/lib"],
                "project_root": "example.com",
                "doc": "<p>",
            },
            etag="v2",
        )

        assert document.import_path == "example.com/a"
        assert document.project_root == "example.com"
        assert document.etag == "v2"
        assert document.imports == ["example.com/lib"]
        assert document.extra == {"doc": "<p>"}

    def test_project_root_defaults_to_import_path(self):
        assert document_from_json("example.com/a", {}).project_root == "example.com/a"

    def test_not_an_object(self):
        with pytest.raises(FetchError):
            document_from_json("example.com/a", ["a"])

    def test_bad_imports(self):
        with pytest.raises(FetchError):
            document_from_json("example.com/a", {"imports": [1, 2]})


class TestHttpDocumentSource:
    """Tests for HttpDocumentSource."""

    @pytest.mark.asyncio
    async def test_fetch(self):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"name": "a"}, headers={"ETag": "v3"})

        document = await make_source(handler).fetch("example.com/a", etag="v2")

        assert document.name == "a"
        assert document.etag == "v3"
        assert seen[0].url.path == "/packages"
        assert seen[0].url.params["path"] == "example.com/a"
        assert seen[0].headers["If-None-Match"] == "v2"

    @pytest.mark.asyncio
    async def test_no_etag_header_without_etag(self):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"name": "a"})

        await make_source(handler).fetch("example.com/a")
        assert "If-None-Match" not in seen[0].headers

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error",
        [(304, NotModified), (404, DocumentNotFound), (410, DocumentNotFound), (500, FetchError)],
    )
    async def test_status_mapping(self, status, error):
        source = make_source(lambda request: httpx.Response(status))

        with pytest.raises(error) as exc_info:
            await source.fetch("example.com/a", etag="v1")

        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(FetchError):
            await make_source(handler).fetch("example.com/a")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        source = make_source(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(FetchError):
            await source.fetch("example.com/a")

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        source = make_source(lambda request: httpx.Response(200, json={}))
        client = source._client

        await source.close()
        assert client.is_closed is False
        await client.aclose()


class FakeSource:
    """Returns a canned document or raises a canned error."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def fetch(self, import_path, etag=""):
        self.calls.append((import_path, etag))
        if self.error is not None:
            raise self.error
        return self.result


class TestCrawler:
    """Tests for Crawler.crawl_doc."""

    @pytest.mark.asyncio
    async def test_new_document_stored(self, catalog, clock):
        source = FakeSource(PackageDocument("example.com/a", name="a", imports=["example.com/lib"]))
        crawler = Crawler(catalog, source, MAX_AGE, clock=clock)

        document = await crawler.crawl_doc("new", "example.com/a", None, False, None)

        assert document.next_crawl == clock() + MAX_AGE
        assert catalog.get("example.com/a").next_crawl == clock() + MAX_AGE
        assert catalog.pending() == ["example.com/lib"]
        assert source.calls == [("example.com/a", "")]

    @pytest.mark.asyncio
    async def test_refresh_sends_etag_and_keeps_suppression(self, catalog, clock):
        catalog.put(PackageDocument("example.com/a", name="a", etag="v1"), next_crawl=EPOCH, hide=True)
        prior = catalog.get("example.com/a").package
        source = FakeSource(PackageDocument("example.com/a", name="a", etag="v2"))
        crawler = Crawler(catalog, source, MAX_AGE, clock=clock)

        document = await crawler.crawl_doc("crawl", "example.com/a", prior, False, EPOCH)

        assert source.calls == [("example.com/a", "v1")]
        assert document.suppressed is True
        stored = catalog.get("example.com/a").package
        assert stored.etag == "v2"
        assert stored.suppressed is True

    @pytest.mark.asyncio
    async def test_not_modified_pushes_project(self, catalog, clock):
        catalog.put(PackageDocument("example.com/repo", name="repo", etag="v1"), next_crawl=EPOCH)
        catalog.put(
            PackageDocument("example.com/repo/sub", project_root="example.com/repo", name="sub", etag="v1"),
            next_crawl=EPOCH,
        )
        prior = catalog.get("example.com/repo").package
        crawler = Crawler(catalog, FakeSource(error=NotModified("unchanged")), MAX_AGE, clock=clock)

        result = await crawler.crawl_doc("crawl", "example.com/repo", prior, True, EPOCH)

        assert result is prior
        assert catalog.get("example.com/repo/sub").next_crawl == clock() + MAX_AGE

    @pytest.mark.asyncio
    async def test_not_modified_without_prior_raises(self, catalog, clock):
        crawler = Crawler(catalog, FakeSource(error=NotModified("unchanged")), MAX_AGE, clock=clock)

        with pytest.raises(NotModified):
            await crawler.crawl_doc("new", "example.com/a", None, False, None)

    @pytest.mark.asyncio
    async def test_not_found_deletes(self, catalog, clock):
        catalog.put(PackageDocument("example.com/a", name="a"), next_crawl=EPOCH)
        prior = catalog.get("example.com/a").package
        crawler = Crawler(catalog, FakeSource(error=DocumentNotFound("gone")), MAX_AGE, clock=clock)

        assert await crawler.crawl_doc("crawl", "example.com/a", prior, False, EPOCH) is None
        assert catalog.get("example.com/a").package is None

    @pytest.mark.asyncio
    async def test_empty_directory_without_subdirs(self, catalog, clock):
        crawler = Crawler(catalog, FakeSource(PackageDocument("example.com/dir")), MAX_AGE, clock=clock)

        assert await crawler.crawl_doc("new", "example.com/dir", None, False, None) is None
        assert catalog.get("example.com/dir").package is None

    @pytest.mark.asyncio
    async def test_empty_directory_with_subdirs_stored(self, catalog, clock):
        crawler = Crawler(catalog, FakeSource(PackageDocument("example.com/dir")), MAX_AGE, clock=clock)

        assert await crawler.crawl_doc("new", "example.com/dir", None, True, None) is not None
        assert catalog.get("example.com/dir").package is not None

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, catalog, clock):
        crawler = Crawler(catalog, FakeSource(error=FetchError("HTTP 500")), MAX_AGE, clock=clock)

        with pytest.raises(FetchError):
            await crawler.crawl_doc("new", "example.com/a", None, False, None)
