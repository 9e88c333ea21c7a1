from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, Comment
from pydantic import BaseModel

from searchengine.api.responses import ErrorResponse
from searchengine.common.config import settings
from searchengine.common.models import Lemma, PageRecord, SiteRecord, SiteStatus
from searchengine.morphology import LemmaExtractor

logger = logging.getLogger(__name__)

INDEXING_NOT_FINISHED = "Indexing is not finished"
EMPTY_QUERY = "Empty search query"

CYRILLIC_RE = re.compile(r"[а-яё]", re.IGNORECASE)
WORD_SPLIT_RE = re.compile(r"\W+")
NON_TEXT_TAGS = {"script", "style", "noscript", "template"}


class SearchItem(BaseModel):
    site: str
    site_name: str
    uri: str
    title: str
    snippet: str
    relevance: float
    words_found: int


class SearchResponse(BaseModel):
    result: bool = True
    count: int
    data: list[SearchItem]


@dataclass
class LemmaGroup:
    """All stored rows for one query lemma (one per site when unfiltered)."""

    text: str
    lemmas: list[Lemma] = field(default_factory=list)

    @property
    def frequency(self) -> int:
        return sum(lemma.frequency for lemma in self.lemmas)


@dataclass
class PageRank:
    page_id: int
    absolute: float
    max_rank: float

    @property
    def relative(self) -> float:
        return self.absolute / self.max_rank if self.max_rank else 0.0


def rank_page(page_id: int, ranks: list[int]) -> PageRank:
    return PageRank(page_id=page_id, absolute=float(sum(ranks)), max_rank=float(max(ranks, default=0)))


def mark_word(text: str, word: str) -> str:
    """Wrap the first occurrence of ``word`` that is not already bold."""
    position = 0
    while True:
        start = text.find(word, position)
        if start == -1:
            return text
        if text[max(0, start - 3):start] == "<b>":
            position = start + len(word)
            continue
        end = start + len(word)
        return f"{text[:start]}<b>{word}</b>{text[end:]}"


def paginate(items: list[SearchItem], offset: int, limit: int) -> list[SearchItem]:
    ranked = sorted(items, key=lambda item: item.relevance, reverse=True)
    start = offset * limit
    page = ranked[start:start + limit]
    # Matched word count only reorders the returned page.
    page.sort(key=lambda item: item.words_found, reverse=True)
    return page


class SearchService:
    def __init__(self, store, extractor: LemmaExtractor, *, frequency_ceiling: float | None = None) -> None:
        self.store = store
        self.extractor = extractor
        self.frequency_ceiling = settings.frequency_ceiling if frequency_ceiling is None else frequency_ceiling

    def search(
        self,
        *,
        query: str,
        site: str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> SearchResponse | ErrorResponse:
        limit = limit or settings.default_limit
        if not (query or "").strip():
            return ErrorResponse(error=EMPTY_QUERY)

        target: SiteRecord | None = None
        if site:
            target = self.store.find_site_by_url(site)
            if target is None:
                return ErrorResponse(error=f"Site {site} is not indexed")
        if not self._index_ready(target):
            return ErrorResponse(error=INDEXING_NOT_FINISHED)

        query_lemmas = list(self.extractor.extract_lemmas(query))
        if not query_lemmas:
            return SearchResponse(count=0, data=[])

        groups = self._drop_common(self._lemma_groups(query_lemmas, target))
        matches = self._intersect(groups)
        if not matches:
            logger.info("search query=%r site=%s results=0", query, site)
            return SearchResponse(count=0, data=[])

        ranks = [rank_page(page_id, counts) for page_id, counts in matches.items()]
        items = self._build_items(ranks, set(query_lemmas))
        logger.info("search query=%r site=%s pages=%s results=%s", query, site, len(ranks), len(items))
        return SearchResponse(count=len(items), data=paginate(items, max(0, offset), limit))

    def _index_ready(self, target: SiteRecord | None) -> bool:
        sites = [target] if target is not None else self.store.find_all_sites()
        return all(site.status == SiteStatus.INDEXED for site in sites)

    def _lemma_groups(self, texts: list[str], target: SiteRecord | None) -> list[LemmaGroup]:
        groups: list[LemmaGroup] = []
        for text in texts:
            if target is not None:
                lemma = self.store.find_lemma(target.id, text)
                rows = [lemma] if lemma is not None else []
            else:
                rows = self.store.find_lemmas_by_text(text)
            groups.append(LemmaGroup(text=text, lemmas=rows))
        return groups

    def _drop_common(self, groups: list[LemmaGroup]) -> list[LemmaGroup]:
        page_counts: dict[int, int] = {}

        def too_common(group: LemmaGroup) -> bool:
            if not group.lemmas:
                return False
            total_pages = 0
            for lemma in group.lemmas:
                if lemma.site_id not in page_counts:
                    page_counts[lemma.site_id] = self.store.count_pages(lemma.site_id)
                total_pages += page_counts[lemma.site_id]
            return total_pages > 0 and group.frequency / total_pages > self.frequency_ceiling

        kept = [group for group in groups if not too_common(group)]
        if not kept:
            return groups
        if len(kept) < len(groups):
            logger.info("dropped common lemmas=%s", [g.text for g in groups if g not in kept])
        return kept

    def _entries(self, group: LemmaGroup) -> dict[int, int]:
        ranks: dict[int, int] = {}
        for lemma in group.lemmas:
            for entry in self.store.find_entries_by_lemma(lemma.id):
                ranks[entry.page_id] = entry.rank
        return ranks

    def _intersect(self, groups: list[LemmaGroup]) -> dict[int, list[int]]:
        """Pages containing every group, with their ranks, rarest group first."""
        ordered = sorted(groups, key=lambda group: group.frequency)
        if not ordered:
            return {}

        matches = {page_id: [rank] for page_id, rank in self._entries(ordered[0]).items()}
        for group in ordered[1:]:
            if not matches:
                break
            ranks = self._entries(group)
            matches = {
                page_id: counts + [ranks[page_id]]
                for page_id, counts in matches.items()
                if page_id in ranks
            }
        return matches

    def _build_items(self, ranks: list[PageRank], query_lemmas: set[str]) -> list[SearchItem]:
        sites: dict[int, SiteRecord | None] = {}
        items: list[SearchItem] = []
        for rank in ranks:
            page = self.store.find_page(rank.page_id)
            if page is None:
                continue
            if page.site_id not in sites:
                sites[page.site_id] = self.store.find_site(page.site_id)
            site = sites[page.site_id]
            if site is None:
                continue
            items.extend(self._page_items(page, site, rank, query_lemmas))
        return items

    def _page_items(
        self,
        page: PageRecord,
        site: SiteRecord,
        rank: PageRank,
        query_lemmas: set[str],
    ) -> list[SearchItem]:
        soup = BeautifulSoup(page.content, "html.parser")
        title = soup.title.get_text(strip=True) if soup.title else ""
        root = soup.body or soup
        elements = ([root] if root.name == "body" else []) + root.find_all(True)

        items: list[SearchItem] = []
        for element in elements:
            if element.name in NON_TEXT_TAGS:
                continue
            own_text = "".join(
                text for text in element.find_all(string=True, recursive=False) if not isinstance(text, Comment)
            )
            if not CYRILLIC_RE.search(own_text):
                continue
            sentence = " ".join(element.get_text().split())
            snippet, found = self._highlight(sentence, query_lemmas)
            if found:
                items.append(
                    SearchItem(
                        site=site.url,
                        site_name=site.name,
                        uri=page.path,
                        title=title,
                        snippet=snippet,
                        relevance=rank.relative,
                        words_found=found,
                    )
                )
        return items

    def _highlight(self, sentence: str, query_lemmas: set[str]) -> tuple[str, int]:
        snippet = sentence
        found = 0
        for word in WORD_SPLIT_RE.split(sentence):
            lemma = self.extractor.lemma_of(word)
            if lemma and lemma in query_lemmas:
                found += 1
                snippet = mark_word(snippet, lemma)
        return snippet, found
