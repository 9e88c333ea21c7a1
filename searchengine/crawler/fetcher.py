from __future__ import annotations

import asyncio
import logging
import socket
import ssl
from dataclasses import dataclass, field
from typing import Iterator

import httpx
from bs4 import BeautifulSoup

from searchengine.common.config import settings

logger = logging.getLogger(__name__)

# Response codes that are recorded as-is; any other HTTP error becomes -1.
RECORDED_HTTP_CODES = {401, 403, 404, 500, 503}
UNKNOWN_ERROR_CODE = -1


class UnsupportedMimeTypeError(Exception):
    pass


class EmptyContentError(Exception):
    pass


@dataclass
class FetchedPage:
    code: int
    content: str
    links: list[str] = field(default_factory=list)


@dataclass
class ParsedPage:
    content: str
    links: list[str]


def build_client() -> httpx.AsyncClient:
    timeout = httpx.Timeout(settings.request_timeout_s)
    limits = httpx.Limits(
        max_connections=max(1, settings.max_connections),
        max_keepalive_connections=max(1, settings.max_connections // 2),
        keepalive_expiry=30.0,
    )
    return httpx.AsyncClient(timeout=timeout, limits=limits)


def _site_relative_link(href: str) -> str | None:
    href = href.strip().split("#", 1)[0]
    if not href.startswith("/") or href.startswith("//"):
        return None
    return href


def parse_html(html: str) -> ParsedPage:
    soup = BeautifulSoup(html, "html.parser")
    if soup.head is None and soup.body is None:
        content = str(soup)
    else:
        content = str(soup.head or "") + str(soup.body or "")

    seen: set[str] = set()
    links: list[str] = []
    for a in soup.find_all("a", href=True):
        link = _site_relative_link(a["href"])
        if link and link not in seen:
            seen.add(link)
            links.append(link)
    return ParsedPage(content=content, links=links)


def _is_markup_content_type(content_type: str) -> bool:
    value = content_type.split(";", 1)[0].strip().lower()
    if not value:
        return True
    return value.startswith("text/") or value in ("application/xml", "application/xhtml+xml") or value.endswith("+xml")


def _causes(exc: BaseException) -> Iterator[BaseException]:
    stack = [exc]
    seen: set[int] = set()
    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        stack.extend(getattr(current, "exceptions", ()))
        for linked in (current.__cause__, current.__context__):
            if linked is not None:
                stack.append(linked)


def status_code_for(exc: BaseException) -> int:
    """Map a fetch failure onto the numeric code stored with the page."""
    if isinstance(exc, UnsupportedMimeTypeError):
        return 415
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code if code in RECORDED_HTTP_CODES else UNKNOWN_ERROR_CODE

    for cause in _causes(exc):
        if isinstance(cause, socket.gaierror):
            return 401
        if isinstance(cause, ssl.SSLError):
            return 525
        if isinstance(cause, ConnectionRefusedError):
            return 500

    message = str(exc)
    if "Name or service not known" in message or "nodename nor servname" in message or "getaddrinfo" in message:
        return 401
    if "CERTIFICATE_VERIFY_FAILED" in message:
        return 525
    if "Connection refused" in message:
        return 500
    return UNKNOWN_ERROR_CODE


async def fetch_page(client: httpx.AsyncClient, url: str) -> FetchedPage:
    res = await client.get(
        url,
        headers={
            "Accept": "text/html,application/xhtml+xml",
            "User-Agent": settings.user_agent,
            "Referer": settings.referrer,
        },
        follow_redirects=True,
    )
    logger.info("fetched url=%s status_code=%s", url, res.status_code)
    res.raise_for_status()

    content_type = res.headers.get("content-type", "")
    if not _is_markup_content_type(content_type):
        raise UnsupportedMimeTypeError(f"unsupported content type {content_type!r} for {url}")

    parsed = await asyncio.to_thread(parse_html, res.text)
    if not parsed.content.strip():
        raise EmptyContentError(f"content of {url} is empty")
    return FetchedPage(code=res.status_code, content=parsed.content, links=parsed.links)
