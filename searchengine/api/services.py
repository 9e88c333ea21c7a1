import logging

from searchengine.api.indexing_service import IndexingService
from searchengine.api.search_service import SearchService
from searchengine.api.statistics_service import StatisticsService
from searchengine.common.config import settings
from searchengine.common.store import PostgresStore
from searchengine.crawler.cancellation import IndexingToken
from searchengine.crawler.indexer import PageIndexer
from searchengine.crawler.orchestrator import CrawlOrchestrator
from searchengine.morphology import LemmaExtractor, MorphologyEngine

logger = logging.getLogger(__name__)

# Dictionaries load at import; a failure aborts startup.
morphology = MorphologyEngine()
extractor = LemmaExtractor(morphology)

store = PostgresStore()
indexing_token = IndexingToken()
indexer = PageIndexer(store, extractor)
orchestrator = CrawlOrchestrator(store, indexer)

indexing_service = IndexingService(orchestrator, indexing_token)
search_service = SearchService(store, extractor)
statistics_service = StatisticsService(store, settings.sites, indexing_token)

logger.info("services ready sites=%s", len(settings.sites))
