from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SiteStatus(str, enum.Enum):
    INDEXING = "INDEXING"
    INDEXED = "INDEXED"
    FAILED = "FAILED"


@dataclass
class SiteRecord:
    url: str
    name: str
    status: SiteStatus = SiteStatus.INDEXING
    last_error: str | None = None
    status_time: datetime = field(default_factory=utcnow)
    id: int | None = None


@dataclass
class PageRecord:
    site_id: int
    path: str
    code: int = 0
    content: str = ""
    id: int | None = None


@dataclass
class Lemma:
    site_id: int
    text: str
    # Number of pages of the site that have an IndexEntry for this lemma.
    frequency: int = 0
    id: int | None = None


@dataclass
class IndexEntry:
    page_id: int
    lemma_id: int
    rank: int
