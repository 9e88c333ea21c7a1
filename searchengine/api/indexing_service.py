from __future__ import annotations

import logging
import threading

from searchengine.api.responses import ErrorResponse, OkResponse
from searchengine.crawler.cancellation import IndexingToken
from searchengine.crawler.orchestrator import CrawlOrchestrator, SiteBusyError, UnknownSiteError

logger = logging.getLogger(__name__)

ALREADY_STARTED = "Indexing is already running"
NOT_STARTED = "Indexing is not running"
OUTSIDE_SITES = "This page is outside the sites listed in the configuration"
SITE_BUSY = "The site of this page is being indexed right now"


class IndexingService:
    """Operator controls: start and stop a full run, refresh one page."""

    def __init__(self, orchestrator: CrawlOrchestrator, token: IndexingToken) -> None:
        self.orchestrator = orchestrator
        self.token = token
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def start_indexing(self) -> OkResponse | ErrorResponse:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return ErrorResponse(error=ALREADY_STARTED)
            if not self.token.try_start():
                return ErrorResponse(error=ALREADY_STARTED)
            self._thread = threading.Thread(
                target=self.orchestrator.start_crawl,
                args=(self.token,),
                name="indexing-run",
                daemon=True,
            )
            self._thread.start()
        logger.info("indexing run requested")
        return OkResponse()

    def stop_indexing(self) -> OkResponse | ErrorResponse:
        if not self.token.stop():
            return ErrorResponse(error=NOT_STARTED)
        logger.info("indexing stop requested")
        return OkResponse()

    def index_page(self, url: str) -> OkResponse | ErrorResponse:
        try:
            site, path = self.orchestrator.resolve(url)
        except UnknownSiteError:
            return ErrorResponse(error=OUTSIDE_SITES)

        try:
            self.orchestrator.refresh_single_page(site, path)
        except SiteBusyError:
            return ErrorResponse(error=SITE_BUSY)
        except Exception as exc:
            logger.exception("page refresh failed url=%s", url)
            return ErrorResponse(error=f"Page refresh failed: {exc}")
        return OkResponse()

    def run_once(self) -> bool:
        """Run a full crawl in the calling thread; False if one is already running."""
        if not self.token.try_start():
            return False
        self.orchestrator.start_crawl(self.token)
        return True
