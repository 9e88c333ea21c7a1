import threading

import httpx
import pytest

from searchengine.common.config import SiteConfig
from searchengine.common.models import PageRecord, SiteRecord, SiteStatus
from searchengine.crawler.cancellation import IndexingToken, VisitedPaths
from searchengine.crawler.indexer import PageIndexer
from searchengine.crawler.orchestrator import (
    STOPPED_BY_USER,
    CrawlOrchestrator,
    SiteBusyError,
    UnknownSiteError,
)

from conftest import MemoryStore, html_page, site_transport

SITES = [
    SiteConfig(url="https://cats.test", name="Cats"),
    SiteConfig(url="https://dogs.test/", name="Dogs"),
]

PAGES = {
    "cats.test/": (200, html_page("Cats", "<a href='/about'>about</a> кошка")),
    "cats.test/about": (200, html_page("About", "кошка и дом")),
    "dogs.test/": (200, html_page("Dogs", "дом")),
}


def _orchestrator(store, indexer, calls=None) -> CrawlOrchestrator:
    transport = site_transport(PAGES, calls)
    return CrawlOrchestrator(
        store,
        indexer,
        sites=SITES,
        client_factory=lambda: httpx.AsyncClient(transport=transport),
    )


def test_full_crawl_indexes_every_site(store, indexer) -> None:
    token = IndexingToken(active=True)

    _orchestrator(store, indexer).start_crawl(token)

    assert not token.is_active
    sites = {site.url: site for site in store.find_all_sites()}
    assert sites["https://cats.test"].status == SiteStatus.INDEXED
    assert sites["https://dogs.test/"].status == SiteStatus.INDEXED
    assert sites["https://cats.test"].last_error is None
    assert store.count_pages(sites["https://cats.test"].id) == 2
    assert store.count_pages(sites["https://dogs.test/"].id) == 1
    assert store.lemma_frequencies(sites["https://cats.test"].id) == {"кошка": 2, "дом": 1}


def test_crawl_replaces_stale_records_and_keeps_unconfigured(store, indexer) -> None:
    stale = store.save_site(SiteRecord(url="https://cats.test", name="Old cats", status=SiteStatus.FAILED))
    store.save_page(PageRecord(site_id=stale.id, path="/old", code=200, content="<p>тест</p>"))
    other = store.save_site(SiteRecord(url="https://birds.test", name="Birds", status=SiteStatus.INDEXED))

    _orchestrator(store, indexer).start_crawl(IndexingToken(active=True))

    cats = store.find_site_by_url("https://cats.test")
    assert cats.id != stale.id
    assert cats.name == "Cats"
    assert store.find_page_by_path(cats.id, "/old") is None
    assert store.find_site(other.id).status == SiteStatus.INDEXED


def test_stopped_crawl_marks_sites_failed(store, indexer) -> None:
    calls: list[str] = []

    _orchestrator(store, indexer, calls).start_crawl(IndexingToken(active=False))

    assert calls == []
    for site in store.find_all_sites():
        assert site.status == SiteStatus.FAILED
        assert site.last_error == STOPPED_BY_USER


def test_resolve_splits_site_and_path(store, indexer) -> None:
    orchestrator = _orchestrator(store, indexer)

    assert orchestrator.resolve("https://cats.test/about") == (SITES[0], "/about")
    assert orchestrator.resolve("https://cats.test") == (SITES[0], "")
    assert orchestrator.resolve("https://dogs.test/news#top") == (SITES[1], "/news")
    with pytest.raises(UnknownSiteError):
        orchestrator.resolve("https://cats.test.evil/about")
    with pytest.raises(UnknownSiteError):
        orchestrator.resolve("https://birds.test/")


def test_refresh_is_refused_while_site_is_crawled(store, indexer) -> None:
    orchestrator = _orchestrator(store, indexer)
    orchestrator._active[SITES[0].url] = VisitedPaths()

    with pytest.raises(SiteBusyError):
        orchestrator.refresh_single_page(SITES[0], "/about")


def test_refresh_single_page_creates_site_and_marks_indexed(store, indexer) -> None:
    calls: list[str] = []

    page = _orchestrator(store, indexer, calls).refresh_single_page(SITES[0], "/about")

    assert calls == ["cats.test/about"]
    site = store.find_site_by_url("https://cats.test")
    assert site.status == SiteStatus.INDEXED
    assert page.site_id == site.id
    assert store.page_ranks(page.id) == {"кошка": 1, "дом": 1}


class _PausedStore(MemoryStore):
    """Holds the first site listing until released."""

    def __init__(self) -> None:
        super().__init__()
        self.listing = threading.Event()
        self.release = threading.Event()

    def find_all_sites(self):
        if not self.listing.is_set():
            self.listing.set()
            self.release.wait(timeout=5)
        return super().find_all_sites()


def test_refresh_is_refused_while_crawl_resets_sites(extractor) -> None:
    store = _PausedStore()
    indexer = PageIndexer(store, extractor, workers=2)
    orchestrator = _orchestrator(store, indexer)
    token = IndexingToken(active=True)
    crawl = threading.Thread(target=orchestrator.start_crawl, args=(token,))
    crawl.start()

    try:
        assert store.listing.wait(timeout=5)
        with pytest.raises(SiteBusyError):
            orchestrator.refresh_single_page(SITES[0], "/about")
    finally:
        store.release.set()
        crawl.join(timeout=10)

    assert store.find_site_by_url("https://cats.test").status == SiteStatus.INDEXED
    assert not orchestrator.is_crawling("https://cats.test")


def test_refresh_after_crawl_is_allowed(store, indexer) -> None:
    orchestrator = _orchestrator(store, indexer)
    orchestrator.start_crawl(IndexingToken(active=True))

    page = orchestrator.refresh_single_page(SITES[0], "/about")

    assert page.code == 200
