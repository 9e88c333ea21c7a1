from __future__ import annotations

import logging
from typing import Any

from psycopg.errors import UniqueViolation
from psycopg.rows import dict_row

from searchengine.common.db import get_conn
from searchengine.common.models import IndexEntry, Lemma, PageRecord, SiteRecord, SiteStatus

logger = logging.getLogger(__name__)


class DuplicateLemmaError(Exception):
    """Another writer inserted the same (site, lemma) row first."""


def _site(row: dict[str, Any]) -> SiteRecord:
    return SiteRecord(
        id=row["id"],
        url=row["url"],
        name=row["name"],
        status=SiteStatus(row["status"]),
        last_error=row["last_error"],
        status_time=row["status_time"],
    )


def _page(row: dict[str, Any]) -> PageRecord:
    return PageRecord(
        id=row["id"],
        site_id=row["site_id"],
        path=row["path"],
        code=row["code"],
        content=row["content"] or "",
    )


def _lemma(row: dict[str, Any]) -> Lemma:
    return Lemma(id=row["id"], site_id=row["site_id"], text=row["lemma"], frequency=row["frequency"])


def _entry(row: dict[str, Any]) -> IndexEntry:
    return IndexEntry(page_id=row["page_id"], lemma_id=row["lemma_id"], rank=row["rank"])


class PostgresStore:
    """Persistence for sites, pages, lemmas and the page/lemma index.

    Every method runs in its own connection and transaction. Methods that
    touch both ``lemma`` and ``search_index`` do so in one transaction so the
    frequency of a lemma always equals the number of pages indexed for it.
    """

    # sites

    def find_all_sites(self) -> list[SiteRecord]:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM site ORDER BY id")
                return [_site(r) for r in cur.fetchall()]

    def find_site_by_url(self, url: str) -> SiteRecord | None:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM site WHERE url = %s", (url,))
                row = cur.fetchone()
                return _site(row) if row else None

    def find_site(self, site_id: int) -> SiteRecord | None:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM site WHERE id = %s", (site_id,))
                row = cur.fetchone()
                return _site(row) if row else None

    def save_site(self, site: SiteRecord) -> SiteRecord:
        with get_conn() as conn:
            cur = conn.execute(
                """
                INSERT INTO site(url, name, status, last_error, status_time)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (url) DO UPDATE SET
                  name = EXCLUDED.name,
                  status = EXCLUDED.status,
                  last_error = EXCLUDED.last_error,
                  status_time = EXCLUDED.status_time
                RETURNING id
                """,
                (site.url, site.name, site.status.value, site.last_error, site.status_time),
            )
            site.id = cur.fetchone()[0]
            logger.info("save_site url=%s status=%s id=%s", site.url, site.status.value, site.id)
            return site

    def touch_site(self, site_id: int) -> None:
        with get_conn() as conn:
            conn.execute("UPDATE site SET status_time = now() WHERE id = %s", (site_id,))

    def delete_site(self, site_id: int) -> None:
        with get_conn() as conn:
            cur = conn.execute("DELETE FROM site WHERE id = %s", (site_id,))
            logger.info("delete_site id=%s deleted=%s", site_id, cur.rowcount)

    # pages

    def find_page_by_path(self, site_id: int, path: str) -> PageRecord | None:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM page WHERE site_id = %s AND path = %s", (site_id, path))
                row = cur.fetchone()
                return _page(row) if row else None

    def find_page(self, page_id: int) -> PageRecord | None:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM page WHERE id = %s", (page_id,))
                row = cur.fetchone()
                return _page(row) if row else None

    def save_page(self, page: PageRecord) -> PageRecord:
        with get_conn() as conn:
            cur = conn.execute(
                """
                INSERT INTO page(site_id, path, code, content)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (site_id, path) DO UPDATE SET
                  code = EXCLUDED.code,
                  content = EXCLUDED.content
                RETURNING id
                """,
                (page.site_id, page.path, page.code, page.content),
            )
            page.id = cur.fetchone()[0]
            return page

    def count_pages(self, site_id: int | None = None) -> int:
        with get_conn() as conn:
            if site_id is None:
                cur = conn.execute("SELECT COUNT(*) FROM page")
            else:
                cur = conn.execute("SELECT COUNT(*) FROM page WHERE site_id = %s", (site_id,))
            return cur.fetchone()[0]

    # lemmas

    def find_lemma(self, site_id: int, text: str) -> Lemma | None:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM lemma WHERE site_id = %s AND lemma = %s", (site_id, text))
                row = cur.fetchone()
                return _lemma(row) if row else None

    def find_lemmas_by_text(self, text: str) -> list[Lemma]:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM lemma WHERE lemma = %s ORDER BY site_id", (text,))
                return [_lemma(r) for r in cur.fetchall()]

    def find_lemma_by_id(self, lemma_id: int) -> Lemma | None:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM lemma WHERE id = %s", (lemma_id,))
                row = cur.fetchone()
                return _lemma(row) if row else None

    def insert_lemma(self, site_id: int, text: str) -> Lemma:
        try:
            with get_conn() as conn:
                cur = conn.execute(
                    "INSERT INTO lemma(site_id, lemma, frequency) VALUES (%s, %s, 0) RETURNING id",
                    (site_id, text),
                )
                return Lemma(id=cur.fetchone()[0], site_id=site_id, text=text, frequency=0)
        except UniqueViolation as exc:
            raise DuplicateLemmaError(f"lemma {text!r} already exists for site {site_id}") from exc

    def change_lemma_frequency(self, lemma_id: int, delta: int) -> None:
        with get_conn() as conn:
            conn.execute("UPDATE lemma SET frequency = frequency + %s WHERE id = %s", (delta, lemma_id))

    def count_lemmas(self, site_id: int | None = None) -> int:
        with get_conn() as conn:
            if site_id is None:
                cur = conn.execute("SELECT COUNT(*) FROM lemma")
            else:
                cur = conn.execute("SELECT COUNT(*) FROM lemma WHERE site_id = %s", (site_id,))
            return cur.fetchone()[0]

    # index entries

    def find_entries_by_page(self, page_id: int) -> list[IndexEntry]:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM search_index WHERE page_id = %s", (page_id,))
                return [_entry(r) for r in cur.fetchall()]

    def find_entries_by_lemma(self, lemma_id: int) -> list[IndexEntry]:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM search_index WHERE lemma_id = %s", (lemma_id,))
                return [_entry(r) for r in cur.fetchall()]

    def find_entry(self, page_id: int, lemma_id: int) -> IndexEntry | None:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT * FROM search_index WHERE page_id = %s AND lemma_id = %s",
                    (page_id, lemma_id),
                )
                row = cur.fetchone()
                return _entry(row) if row else None

    def add_occurrences(self, page_id: int, lemma_id: int, count: int) -> None:
        with get_conn() as conn:
            cur = conn.execute(
                """
                INSERT INTO search_index(page_id, lemma_id, rank)
                VALUES (%s, %s, %s)
                ON CONFLICT (page_id, lemma_id) DO UPDATE SET
                  rank = search_index.rank + EXCLUDED.rank
                RETURNING (xmax = 0) AS inserted
                """,
                (page_id, lemma_id, count),
            )
            if cur.fetchone()[0]:
                conn.execute("UPDATE lemma SET frequency = frequency + 1 WHERE id = %s", (lemma_id,))

    def retract_page(self, page_id: int) -> int:
        with get_conn() as conn:
            conn.execute(
                """
                UPDATE lemma l
                SET frequency = l.frequency - 1
                FROM search_index i
                WHERE i.lemma_id = l.id AND i.page_id = %s
                """,
                (page_id,),
            )
            cur = conn.execute("DELETE FROM search_index WHERE page_id = %s", (page_id,))
            logger.info("retract_page page_id=%s entries=%s", page_id, cur.rowcount)
            return cur.rowcount
