import logging

from fastapi import FastAPI, Query, Response

from searchengine.api.responses import ErrorResponse, OkResponse
from searchengine.api.search_service import SearchResponse
from searchengine.api.services import indexing_service, search_service, statistics_service
from searchengine.api.statistics_service import StatisticsResponse

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Site Search API")


def _respond(result, response: Response):
    if isinstance(result, ErrorResponse):
        response.status_code = 400
    return result


@app.get("/api/startIndexing", response_model=OkResponse | ErrorResponse)
def start_indexing(response: Response):
    return _respond(indexing_service.start_indexing(), response)


@app.get("/api/stopIndexing", response_model=OkResponse | ErrorResponse)
def stop_indexing(response: Response):
    return _respond(indexing_service.stop_indexing(), response)


@app.post("/api/indexPage", response_model=OkResponse | ErrorResponse)
def index_page(response: Response, url: str = Query(..., min_length=1)):
    return _respond(indexing_service.index_page(url), response)


@app.get("/api/search", response_model=SearchResponse | ErrorResponse)
def search(
    response: Response,
    query: str = Query(""),
    site: str | None = Query(None),
    offset: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=1, le=100),
):
    return _respond(search_service.search(query=query, site=site, offset=offset, limit=limit), response)


@app.get("/api/statistics", response_model=StatisticsResponse)
def statistics() -> StatisticsResponse:
    return statistics_service.get_statistics()
