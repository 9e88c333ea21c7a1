from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable

import httpx

from searchengine.common.config import SiteConfig, settings
from searchengine.common.models import PageRecord, SiteRecord, SiteStatus, utcnow
from searchengine.crawler.cancellation import IndexingToken, VisitedPaths
from searchengine.crawler.fetcher import build_client
from searchengine.crawler.indexer import PageIndexer
from searchengine.crawler.page_task import CrawlContext, PageCrawlTask

logger = logging.getLogger(__name__)

STOPPED_BY_USER = "Indexing stopped by user"


class UnknownSiteError(LookupError):
    pass


class SiteBusyError(RuntimeError):
    pass


class CrawlOrchestrator:
    def __init__(
        self,
        store,
        indexer: PageIndexer,
        sites: Iterable[SiteConfig] | None = None,
        client_factory: Callable[[], httpx.AsyncClient] = build_client,
    ) -> None:
        self.store = store
        self.indexer = indexer
        self.sites = tuple(settings.sites if sites is None else sites)
        self.client_factory = client_factory
        self._active: dict[str, VisitedPaths] = {}
        self._active_lock = threading.Lock()
        self._refresh_lock = threading.Lock()

    def is_crawling(self, url: str) -> bool:
        with self._active_lock:
            return url in self._active

    def start_crawl(self, token: IndexingToken) -> None:
        """Run one full crawl of every configured site and block until it ends."""
        # Waits for a running page refresh; later refreshes of these sites are refused.
        with self._refresh_lock:
            self._register(self.sites)
        try:
            self._reset_sites()
            records = self._working_set()
            logger.info("indexing started sites=%s", len(records))
            with ThreadPoolExecutor(max_workers=max(1, len(records)), thread_name_prefix="site-crawler") as executor:
                futures = [executor.submit(self._index_site, record, token) for record in records]
                for future in futures:
                    future.result()
        except Exception:
            logger.exception("indexing run failed")
        finally:
            self._release(site.url for site in self.sites)
            token.stop()
            logger.info("indexing run finished")

    def refresh_single_page(self, site: SiteConfig, path: str) -> PageRecord:
        with self._refresh_lock:
            if self.is_crawling(site.url):
                raise SiteBusyError(f"site {site.url} is being indexed")

            record = self.store.find_site_by_url(site.url)
            if record is None:
                record = self.store.save_site(SiteRecord(url=site.url, name=site.name))
            logger.info("page refresh started url=%s%s", site.base_url, path)
            try:
                page = asyncio.run(self._refresh(record, path))
            except Exception as exc:
                logger.exception("page refresh failed url=%s%s", site.base_url, path)
                self._mark(record, SiteStatus.FAILED, str(exc))
                raise
            self._mark(record, SiteStatus.INDEXED, None)
            return page

    def resolve(self, url: str) -> tuple[SiteConfig, str]:
        """Split an absolute URL into its configured site and site-relative path."""
        target = url.strip().split("#", 1)[0]
        for site in self.sites:
            base = site.base_url
            if target == base or target.startswith(base + "/"):
                return site, target[len(base):]
        raise UnknownSiteError(f"{url} is outside the configured sites")

    def _reset_sites(self) -> None:
        configured = {site.url for site in self.sites}
        for record in self.store.find_all_sites():
            if record.url in configured:
                self.store.delete_site(record.id)
        for site in self.sites:
            self.store.save_site(SiteRecord(url=site.url, name=site.name, status=SiteStatus.INDEXING))

    def _working_set(self) -> list[SiteRecord]:
        configured = {site.url for site in self.sites}
        return [record for record in self.store.find_all_sites() if record.url in configured]

    def _register(self, sites: Iterable[SiteConfig]) -> None:
        with self._active_lock:
            for site in sites:
                self._active.setdefault(site.url, VisitedPaths())

    def _release(self, urls: Iterable[str]) -> None:
        with self._active_lock:
            for url in urls:
                self._active.pop(url, None)

    def _index_site(self, record: SiteRecord, token: IndexingToken) -> None:
        with self._active_lock:
            visited = self._active.setdefault(record.url, VisitedPaths())
        try:
            logger.info("site indexing started url=%s", record.url)
            asyncio.run(self._crawl_site(record, token, visited))
        except Exception as exc:
            logger.exception("site indexing failed url=%s", record.url)
            self._mark(record, SiteStatus.FAILED, str(exc))
            return

        if token.is_active:
            logger.info("site indexed url=%s pages=%s", record.url, len(visited))
            self._mark(record, SiteStatus.INDEXED, None)
        else:
            logger.warning("%s, site=%s", STOPPED_BY_USER, record.url)
            self._mark(record, SiteStatus.FAILED, STOPPED_BY_USER)

    async def _crawl_site(self, record: SiteRecord, token: IndexingToken, visited: VisitedPaths) -> None:
        async with self.client_factory() as client:
            context = CrawlContext(
                site=record,
                store=self.store,
                indexer=self.indexer,
                client=client,
                token=token,
                visited=visited,
            )
            await PageCrawlTask(context, "").run()

    async def _refresh(self, record: SiteRecord, path: str) -> PageRecord:
        async with self.client_factory() as client:
            context = CrawlContext(
                site=record,
                store=self.store,
                indexer=self.indexer,
                client=client,
                token=IndexingToken(active=True),
                visited=VisitedPaths(),
            )
            return await PageCrawlTask(context, path).refresh()

    def _mark(self, record: SiteRecord, status: SiteStatus, error: str | None) -> None:
        site = self.store.find_site(record.id) or record
        site.status = status
        site.last_error = error
        site.status_time = utcnow()
        self.store.save_site(site)
