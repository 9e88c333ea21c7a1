from __future__ import annotations

import threading

from searchengine.common.models import PageRecord


class IndexingToken:
    """Process-wide "indexing is running" flag.

    Crawl tasks keep working only while the token is active. Clearing it is
    the only way to stop a run, and the orchestrator clears it when a run
    ends on its own.
    """

    def __init__(self, active: bool = False) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        if active:
            self._event.set()

    @property
    def is_active(self) -> bool:
        return self._event.is_set()

    def try_start(self) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            return True

    def stop(self) -> bool:
        with self._lock:
            was_active = self._event.is_set()
            self._event.clear()
            return was_active


class VisitedPaths:
    """Per-site map of claimed paths to the page stored for them."""

    def __init__(self) -> None:
        self._pages: dict[str, PageRecord | None] = {}
        self._lock = threading.Lock()

    def claim(self, path: str) -> bool:
        with self._lock:
            if path in self._pages:
                return False
            self._pages[path] = None
            return True

    def record(self, path: str, page: PageRecord) -> None:
        with self._lock:
            self._pages[path] = page

    def get(self, path: str) -> PageRecord | None:
        with self._lock:
            return self._pages.get(path)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._pages

    def __len__(self) -> int:
        with self._lock:
            return len(self._pages)
