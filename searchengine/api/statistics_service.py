from __future__ import annotations

from pydantic import BaseModel

from searchengine.common.config import SiteConfig
from searchengine.common.models import SiteRecord, utcnow
from searchengine.crawler.cancellation import IndexingToken

WAITING_STATUS = "WAIT"


class TotalStatistics(BaseModel):
    sites: int
    pages: int
    lemmas: int
    indexing: bool


class DetailedStatisticsItem(BaseModel):
    url: str
    name: str
    status: str
    status_time: int
    error: str | None = None
    pages: int
    lemmas: int


class StatisticsData(BaseModel):
    total: TotalStatistics
    detailed: list[DetailedStatisticsItem]


class StatisticsResponse(BaseModel):
    result: bool = True
    statistics: StatisticsData


class StatisticsService:
    def __init__(self, store, sites: tuple[SiteConfig, ...], token: IndexingToken) -> None:
        self.store = store
        self.sites = sites
        self.token = token

    def _site_item(self, record: SiteRecord) -> DetailedStatisticsItem:
        return DetailedStatisticsItem(
            url=record.url,
            name=record.name,
            status=record.status.value,
            status_time=int(record.status_time.timestamp() * 1000),
            error=record.last_error,
            pages=self.store.count_pages(record.id),
            lemmas=self.store.count_lemmas(record.id),
        )

    def _waiting_item(self, site: SiteConfig) -> DetailedStatisticsItem:
        return DetailedStatisticsItem(
            url=site.url,
            name=site.name,
            status=WAITING_STATUS,
            status_time=int(utcnow().timestamp() * 1000),
            pages=0,
            lemmas=0,
        )

    def get_statistics(self) -> StatisticsResponse:
        records = self.store.find_all_sites()
        if records:
            detailed = [self._site_item(record) for record in records]
        else:
            detailed = [self._waiting_item(site) for site in self.sites]

        total = TotalStatistics(
            sites=len(self.sites),
            pages=sum(item.pages for item in detailed),
            lemmas=sum(item.lemmas for item in detailed),
            indexing=self.token.is_active,
        )
        return StatisticsResponse(statistics=StatisticsData(total=total, detailed=detailed))
