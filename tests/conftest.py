from __future__ import annotations

import threading
from dataclasses import replace

import httpx
import pytest

from searchengine.common.models import IndexEntry, Lemma, PageRecord, SiteRecord, SiteStatus, utcnow
from searchengine.common.store import DuplicateLemmaError
from searchengine.crawler.indexer import PageIndexer
from searchengine.morphology import LemmaExtractor, UnsupportedWordError
from searchengine.morphology.engine import CYRILLIC_WORD_RE


class FakeMorphology:
    VOCABULARY = {
        "кошка": ("кошка", "NOUN"),
        "кошки": ("кошка", "NOUN"),
        "кошку": ("кошка", "NOUN"),
        "кошкой": ("кошка", "NOUN"),
        "дом": ("дом", "NOUN"),
        "дома": ("дом", "NOUN"),
        "доме": ("дом", "NOUN"),
        "тест": ("тест", "NOUN"),
        "тесты": ("тест", "NOUN"),
        "и": ("и", "CONJ"),
        "но": ("но", "CONJ"),
        "в": ("в", "PREP"),
        "на": ("на", "PREP"),
        "ой": ("ой", "INTJ"),
    }

    def _lookup(self, word: str) -> tuple[str, str]:
        if not CYRILLIC_WORD_RE.match(word):
            raise UnsupportedWordError(word)
        return self.VOCABULARY.get(word, (word, "NOUN"))

    def normalize(self, word: str) -> list[str]:
        return [self._lookup(word)[0]]

    def classify(self, word: str) -> list[str]:
        return [self._lookup(word)[1]]


class MemoryStore:
    """In-memory store with the same contract as PostgresStore."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._ids = 0
        self.sites: dict[int, SiteRecord] = {}
        self.pages: dict[int, PageRecord] = {}
        self.lemmas: dict[int, Lemma] = {}
        self.entries: dict[tuple[int, int], IndexEntry] = {}
        self.entry_lookups: list[int] = []

    def _next_id(self) -> int:
        self._ids += 1
        return self._ids

    # sites

    def find_all_sites(self) -> list[SiteRecord]:
        with self._lock:
            return [replace(s) for s in sorted(self.sites.values(), key=lambda s: s.id)]

    def find_site_by_url(self, url: str) -> SiteRecord | None:
        with self._lock:
            for site in self.sites.values():
                if site.url == url:
                    return replace(site)
            return None

    def find_site(self, site_id: int) -> SiteRecord | None:
        with self._lock:
            site = self.sites.get(site_id)
            return replace(site) if site else None

    def save_site(self, site: SiteRecord) -> SiteRecord:
        with self._lock:
            existing = next((s for s in self.sites.values() if s.url == site.url), None)
            site.id = existing.id if existing else self._next_id()
            self.sites[site.id] = replace(site)
            return site

    def touch_site(self, site_id: int) -> None:
        with self._lock:
            if site_id in self.sites:
                self.sites[site_id].status_time = utcnow()

    def delete_site(self, site_id: int) -> None:
        with self._lock:
            self.sites.pop(site_id, None)
            page_ids = {p.id for p in self.pages.values() if p.site_id == site_id}
            lemma_ids = {l.id for l in self.lemmas.values() if l.site_id == site_id}
            self.pages = {k: v for k, v in self.pages.items() if k not in page_ids}
            self.lemmas = {k: v for k, v in self.lemmas.items() if k not in lemma_ids}
            self.entries = {
                k: v for k, v in self.entries.items() if k[0] not in page_ids and k[1] not in lemma_ids
            }

    # pages

    def find_page_by_path(self, site_id: int, path: str) -> PageRecord | None:
        with self._lock:
            for page in self.pages.values():
                if page.site_id == site_id and page.path == path:
                    return replace(page)
            return None

    def find_page(self, page_id: int) -> PageRecord | None:
        with self._lock:
            page = self.pages.get(page_id)
            return replace(page) if page else None

    def save_page(self, page: PageRecord) -> PageRecord:
        with self._lock:
            existing = self.find_page_by_path(page.site_id, page.path)
            page.id = existing.id if existing else self._next_id()
            self.pages[page.id] = replace(page)
            return page

    def count_pages(self, site_id: int | None = None) -> int:
        with self._lock:
            return sum(1 for p in self.pages.values() if site_id is None or p.site_id == site_id)

    # lemmas

    def find_lemma(self, site_id: int, text: str) -> Lemma | None:
        with self._lock:
            for lemma in self.lemmas.values():
                if lemma.site_id == site_id and lemma.text == text:
                    return replace(lemma)
            return None

    def find_lemmas_by_text(self, text: str) -> list[Lemma]:
        with self._lock:
            return [replace(l) for l in sorted(self.lemmas.values(), key=lambda l: l.site_id) if l.text == text]

    def find_lemma_by_id(self, lemma_id: int) -> Lemma | None:
        with self._lock:
            lemma = self.lemmas.get(lemma_id)
            return replace(lemma) if lemma else None

    def insert_lemma(self, site_id: int, text: str) -> Lemma:
        with self._lock:
            if self.find_lemma(site_id, text) is not None:
                raise DuplicateLemmaError(text)
            lemma = Lemma(id=self._next_id(), site_id=site_id, text=text, frequency=0)
            self.lemmas[lemma.id] = lemma
            return replace(lemma)

    def change_lemma_frequency(self, lemma_id: int, delta: int) -> None:
        with self._lock:
            self.lemmas[lemma_id].frequency += delta

    def count_lemmas(self, site_id: int | None = None) -> int:
        with self._lock:
            return sum(1 for l in self.lemmas.values() if site_id is None or l.site_id == site_id)

    # index entries

    def find_entries_by_page(self, page_id: int) -> list[IndexEntry]:
        with self._lock:
            return [replace(e) for (p, _), e in self.entries.items() if p == page_id]

    def find_entries_by_lemma(self, lemma_id: int) -> list[IndexEntry]:
        with self._lock:
            self.entry_lookups.append(lemma_id)
            return [replace(e) for (_, l), e in self.entries.items() if l == lemma_id]

    def find_entry(self, page_id: int, lemma_id: int) -> IndexEntry | None:
        with self._lock:
            entry = self.entries.get((page_id, lemma_id))
            return replace(entry) if entry else None

    def add_occurrences(self, page_id: int, lemma_id: int, count: int) -> None:
        with self._lock:
            entry = self.entries.get((page_id, lemma_id))
            if entry is not None:
                entry.rank += count
                return
            self.entries[(page_id, lemma_id)] = IndexEntry(page_id=page_id, lemma_id=lemma_id, rank=count)
            self.lemmas[lemma_id].frequency += 1

    def retract_page(self, page_id: int) -> int:
        with self._lock:
            keys = [key for key in self.entries if key[0] == page_id]
            for key in keys:
                self.lemmas[key[1]].frequency -= 1
                del self.entries[key]
            return len(keys)

    # helpers for assertions

    def lemma_frequencies(self, site_id: int) -> dict[str, int]:
        with self._lock:
            return {l.text: l.frequency for l in self.lemmas.values() if l.site_id == site_id}

    def page_ranks(self, page_id: int) -> dict[str, int]:
        with self._lock:
            return {self.lemmas[l].text: e.rank for (p, l), e in self.entries.items() if p == page_id}


def html_page(title: str, body: str) -> str:
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


def site_transport(pages: dict[str, tuple[int, str]], calls: list[str] | None = None) -> httpx.MockTransport:
    """Serve ``pages`` keyed by "host/path"; unknown keys answer 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        key = request.url.host + request.url.path
        if calls is not None:
            calls.append(key)
        status, body = pages.get(key, (404, ""))
        return httpx.Response(status, text=body, headers={"content-type": "text/html; charset=utf-8"})

    return httpx.MockTransport(handler)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def extractor() -> LemmaExtractor:
    return LemmaExtractor(FakeMorphology())


@pytest.fixture
def indexer(store: MemoryStore, extractor: LemmaExtractor) -> PageIndexer:
    return PageIndexer(store, extractor, workers=4)


@pytest.fixture
def site(store: MemoryStore) -> SiteRecord:
    return store.save_site(SiteRecord(url="https://cats.test", name="Cats", status=SiteStatus.INDEXED))
