from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Mapping

from searchengine.common.config import settings
from searchengine.common.models import PageRecord
from searchengine.common.store import DuplicateLemmaError
from searchengine.morphology import LemmaExtractor

logger = logging.getLogger(__name__)


class PageIndexer:
    """Keeps the lemma and index tables in step with stored page content."""

    def __init__(self, store, extractor: LemmaExtractor, workers: int | None = None) -> None:
        self.store = store
        self.extractor = extractor
        self.workers = max(1, workers or settings.index_workers)

    def index_page(self, content: str, page: PageRecord) -> int:
        started = time.monotonic()
        lemmas = self.extractor.extract_lemmas(content)
        self._save_lemmas(lemmas, page)
        logger.info(
            "indexed page_id=%s path=%s lemmas=%s elapsed=%.3fs",
            page.id, page.path, len(lemmas), time.monotonic() - started,
        )
        return len(lemmas)

    def refresh_index(self, content: str, page: PageRecord) -> int:
        started = time.monotonic()
        # Retract before re-adding so each page counts once per lemma.
        retracted = self.store.retract_page(page.id)
        lemmas = self.extractor.extract_lemmas(content)
        self._save_lemmas(lemmas, page)
        logger.info(
            "refreshed page_id=%s path=%s retracted=%s lemmas=%s elapsed=%.3fs",
            page.id, page.path, retracted, len(lemmas), time.monotonic() - started,
        )
        return len(lemmas)

    def _save_lemmas(self, lemmas: Mapping[str, int], page: PageRecord) -> None:
        if not lemmas:
            return
        with ThreadPoolExecutor(max_workers=min(self.workers, len(lemmas))) as executor:
            futures = [executor.submit(self._save_lemma, text, count, page) for text, count in lemmas.items()]
            for future in futures:
                future.result()

    def _save_lemma(self, text: str, count: int, page: PageRecord) -> None:
        while True:
            lemma = self.store.find_lemma(page.site_id, text)
            if lemma is None:
                try:
                    lemma = self.store.insert_lemma(page.site_id, text)
                except DuplicateLemmaError:
                    # Lost the insert race; the next lookup finds the winner's row.
                    logger.debug("lemma insert conflict site_id=%s lemma=%s, retrying", page.site_id, text)
                    continue
            self.store.add_occurrences(page.id, lemma.id, count)
            return
