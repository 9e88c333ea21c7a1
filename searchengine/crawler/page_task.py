from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field

import httpx

from searchengine.common.config import settings
from searchengine.common.models import PageRecord, SiteRecord
from searchengine.crawler.cancellation import IndexingToken, VisitedPaths
from searchengine.crawler.fetcher import FetchedPage, fetch_page, status_code_for
from searchengine.crawler.indexer import PageIndexer

logger = logging.getLogger(__name__)


class TaskState(str, enum.Enum):
    START = "start"
    FETCHED = "fetched"
    LINKS_EXTRACTED = "links_extracted"
    PERSISTED = "persisted"
    DONE = "done"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass
class CrawlContext:
    """Everything the tasks of one site share."""

    site: SiteRecord
    store: object
    indexer: PageIndexer
    client: httpx.AsyncClient
    token: IndexingToken
    visited: VisitedPaths
    # In-flight requests of the site; waiting tasks queue here, not in the client pool.
    fetch_slots: asyncio.Semaphore = field(
        default_factory=lambda: asyncio.Semaphore(max(1, settings.max_connections))
    )


class PageCrawlTask:
    def __init__(self, context: CrawlContext, path: str) -> None:
        self.context = context
        self.path = path
        self.state = TaskState.START
        self.page: PageRecord | None = None
        self.children: list[PageCrawlTask] = []

    @property
    def url(self) -> str:
        return self.context.site.url.rstrip("/") + self.path

    async def run(self) -> TaskState:
        ctx = self.context
        if not ctx.token.is_active or not ctx.visited.claim(self.path):
            self.state = TaskState.ABORTED
            return self.state

        try:
            fetched = await self._fetch()
        except Exception as exc:
            await self._record_failure(exc)
            return self.state
        self.state = TaskState.FETCHED

        links = [link for link in fetched.links if link not in ctx.visited]
        self.state = TaskState.LINKS_EXTRACTED

        if not ctx.token.is_active:
            self.state = TaskState.ABORTED
            return self.state

        await self._persist(fetched)
        self.state = TaskState.PERSISTED

        await self._crawl_children(links)
        self.state = TaskState.DONE
        return self.state

    async def refresh(self) -> PageRecord:
        """Re-fetch a single path and re-index it, without following links."""
        ctx = self.context
        existing = await asyncio.to_thread(ctx.store.find_page_by_path, ctx.site.id, self.path)

        try:
            fetched = await self._fetch()
        except Exception as exc:
            page = existing or PageRecord(site_id=ctx.site.id, path=self.path)
            await self._save_failure(page, exc)
            if existing is not None:
                await asyncio.to_thread(ctx.indexer.refresh_index, "", page)
            return page
        self.state = TaskState.FETCHED

        await asyncio.to_thread(ctx.store.touch_site, ctx.site.id)
        if existing is not None:
            existing.code = fetched.code
            existing.content = fetched.content
            page = await asyncio.to_thread(ctx.store.save_page, existing)
            await asyncio.to_thread(ctx.indexer.refresh_index, page.content, page)
        else:
            page = await asyncio.to_thread(
                ctx.store.save_page,
                PageRecord(site_id=ctx.site.id, path=self.path, code=fetched.code, content=fetched.content),
            )
            await asyncio.to_thread(ctx.indexer.index_page, page.content, page)

        ctx.visited.record(self.path, page)
        self.page = page
        self.state = TaskState.DONE
        return page

    async def _fetch(self) -> FetchedPage:
        async with self.context.fetch_slots:
            return await fetch_page(self.context.client, self.url)

    async def _record_failure(self, exc: Exception) -> None:
        await self._save_failure(PageRecord(site_id=self.context.site.id, path=self.path), exc)

    async def _save_failure(self, page: PageRecord, exc: Exception) -> None:
        ctx = self.context
        page.code = status_code_for(exc)
        page.content = ""
        logger.warning("crawl failed url=%s code=%s error=%r", self.url, page.code, exc)
        page = await asyncio.to_thread(ctx.store.save_page, page)
        ctx.visited.record(self.path, page)
        await asyncio.to_thread(ctx.store.touch_site, ctx.site.id)
        self.page = page
        self.state = TaskState.FAILED

    async def _persist(self, fetched: FetchedPage) -> None:
        ctx = self.context
        page = PageRecord(site_id=ctx.site.id, path=self.path, code=fetched.code, content=fetched.content)
        page = await asyncio.to_thread(ctx.store.save_page, page)
        ctx.visited.record(self.path, page)
        await asyncio.to_thread(ctx.store.touch_site, ctx.site.id)
        self.page = page
        try:
            await asyncio.to_thread(ctx.indexer.index_page, page.content, page)
        except Exception:
            logger.exception("indexing failed url=%s page_id=%s", self.url, page.id)

    async def _crawl_children(self, links: list[str]) -> None:
        ctx = self.context
        for link in links:
            if not ctx.token.is_active:
                break
            if link not in ctx.visited:
                self.children.append(PageCrawlTask(ctx, link))
        if not self.children:
            return

        results = await asyncio.gather(*(child.run() for child in self.children), return_exceptions=True)
        for child, result in zip(self.children, results):
            if isinstance(result, BaseException):
                logger.error("crawl task failed url=%s", child.url, exc_info=result)
