import json
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class SiteConfig:
    url: str
    name: str

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")


def parse_sites(raw: str) -> tuple[SiteConfig, ...]:
    if not raw.strip():
        return ()
    return tuple(
        SiteConfig(url=item["url"], name=item.get("name") or item["url"])
        for item in json.loads(raw)
    )


@dataclass(frozen=True)
class Settings:
    user_agent: str = os.getenv("CRAWLER_USER_AGENT", "LemmaSearchBot/1.0")
    referrer: str = os.getenv("CRAWLER_REFERRER", "https://www.google.com")
    request_timeout_s: int = int(os.getenv("REQUEST_TIMEOUT_S", "60"))
    max_connections: int = int(os.getenv("CRAWLER_MAX_CONNECTIONS", "16"))
    index_workers: int = int(os.getenv("INDEX_WORKERS", "4"))
    frequency_ceiling: float = float(os.getenv("SEARCH_FREQUENCY_CEILING", "0.8"))
    default_limit: int = int(os.getenv("SEARCH_DEFAULT_LIMIT", "20"))
    sites: tuple[SiteConfig, ...] = field(
        default_factory=lambda: parse_sites(os.getenv("INDEXING_SITES", ""))
    )


settings = Settings()
