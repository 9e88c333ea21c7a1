from __future__ import annotations

from searchengine.api.responses import ErrorResponse
from searchengine.api.services import search_service

try:
    from fastmcp import FastMCP
except ImportError as exc:  # pragma: no cover - runtime dependency guard
    raise RuntimeError(
        "FastMCP is required to run the MCP server. Install the project dependencies."
    ) from exc


SERVER_TITLE = "SiteSearch"
SERVER_INSTRUCTIONS = (
    "Use search_sites to find pages of the indexed sites. Queries are matched by "
    "Russian word lemmas. Pass site to restrict results to one site, and use "
    "limit and offset (a page number) for pagination."
)

mcp = FastMCP(
    name=SERVER_TITLE,
    instructions=SERVER_INSTRUCTIONS,
    version='1',
)


def _bounded(limit: int, offset: int) -> tuple[int, int]:
    return max(1, min(limit, 100)), max(0, offset)


def perform_search(*, query: str, site: str | None, limit: int, offset: int):
    return search_service.search(query=query, site=site, limit=limit, offset=offset)


def render_search(query: str, site: str | None = None, limit: int = 10, offset: int = 0) -> str:
    bounded_limit, bounded_offset = _bounded(limit, offset)
    response = perform_search(query=query, site=site, limit=bounded_limit, offset=bounded_offset)
    if isinstance(response, ErrorResponse):
        return f"Search failed: {response.error}"

    llm_results = ""
    for item in response.data:
        llm_results += f"[{item.site}{item.uri}]({item.title})"
        llm_results += '\n'
        llm_results += item.snippet
        llm_results += '\n'
        llm_results += '\n'

    return llm_results.strip()


@mcp.tool(name="search_sites", description="Search pages of the indexed sites.")
def search_sites(query: str, site: str | None = None, limit: int = 10, offset: int = 0) -> str:
    """Run a search query against the lemma index."""
    return render_search(query, site=site, limit=limit, offset=offset)


if __name__ == "__main__":
    mcp.run("http")
