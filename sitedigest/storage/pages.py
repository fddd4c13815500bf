"""SQLite page store — one connection, one lock."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator

from sitedigest.storage.models import Page, from_timestamp, to_timestamp

logger = logging.getLogger(__name__)

# Rows per INSERT when loading the visited set into the temp table
VISITED_CHUNK_SIZE = 100

_SCHEMA = """
CREATE TABLE IF NOT EXISTS pages (
    url TEXT PRIMARY KEY,
    added_at INTEGER NOT NULL,
    lastmod INTEGER NOT NULL,
    html TEXT NOT NULL,
    title TEXT NULL,
    text TEXT NULL,
    summary TEXT NULL
)
"""

_PAGE_COLUMNS = "url, added_at, lastmod, html, title, text, summary"


class StorageError(RuntimeError):
    """Raised when the underlying database fails."""


class PageStore:
    """Keyed storage for :class:`Page` rows.

    Every operation holds a single lock around the shared connection, so the
    store can be called from several tasks or worker threads while the
    database only ever sees one operation at a time.
    """

    def __init__(self, database_path: str | Path) -> None:
        self._path = str(database_path)
        self.is_new = self._path == ":memory:" or not Path(self._path).exists()
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self._path, check_same_thread=False)
            with self._conn:
                self._conn.execute(_SCHEMA)
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to open page store {self._path}: {exc}") from exc
        logger.debug("page store opened", extra={"path": self._path, "new": self.is_new})

    @property
    def existed(self) -> bool:
        """``True`` when the database file was there before this store opened it."""
        return not self.is_new

    @property
    def path(self) -> str:
        return self._path

    @contextmanager
    def _locked(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> PageStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def list_urls(self) -> list[str]:
        with self._locked() as conn:
            return [row[0] for row in conn.execute("SELECT url FROM pages")]

    def get_page(self, url: str) -> Page | None:
        """Return the full row for *url*, or ``None`` when it is not stored."""
        with self._locked() as conn:
            row = conn.execute(
                f"SELECT {_PAGE_COLUMNS} FROM pages WHERE url = ?", (url,)
            ).fetchone()
        if row is None:
            return None
        return _row_to_page(row)

    def upsert_page(self, page: Page) -> None:
        """Insert *page* or replace the whole existing row for its URL."""
        with self._locked() as conn, conn:
            conn.execute(
                f"INSERT OR REPLACE INTO pages ({_PAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    page.url,
                    to_timestamp(page.added_at),
                    to_timestamp(page.lastmod),
                    page.html,
                    page.title,
                    page.text,
                    page.summary,
                ),
            )

    def update_text(self, url: str, text: str) -> None:
        with self._locked() as conn, conn:
            conn.execute("UPDATE pages SET text = ? WHERE url = ?", (text, url))

    def update_summary(self, url: str, summary: str) -> None:
        with self._locked() as conn, conn:
            conn.execute("UPDATE pages SET summary = ? WHERE url = ?", (summary, url))

    def remove_page(self, url: str) -> None:
        with self._locked() as conn, conn:
            conn.execute("DELETE FROM pages WHERE url = ?", (url,))

    def get_lastmod(self, url: str) -> datetime | None:
        with self._locked() as conn:
            row = conn.execute("SELECT lastmod FROM pages WHERE url = ?", (url,)).fetchone()
        if row is None:
            return None
        return _timestamp(row[0], "lastmod")

    def fetch_page_text(self, url: str) -> str | None:
        """Text of one page: ``""`` when not extracted yet, ``None`` when missing."""
        with self._locked() as conn:
            row = conn.execute("SELECT text FROM pages WHERE url = ?", (url,)).fetchone()
        if row is None:
            return None
        return row[0] or ""

    def fetch_unsummarized(self, limit: int, offset: int = 0) -> list[tuple[str, str]]:
        """Return up to *limit* ``(url, text)`` pairs still lacking a summary, oldest first."""
        with self._locked() as conn:
            rows = conn.execute(
                "SELECT url, text FROM pages WHERE summary IS NULL OR summary = '' "
                "ORDER BY added_at ASC, url ASC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [(url, text or "") for url, text in rows]

    def fetch_pages(self, limit: int, offset: int) -> list[tuple[str, str]]:
        """Return one page of ``(url, text)`` pairs over the whole table, oldest first."""
        with self._locked() as conn:
            rows = conn.execute(
                "SELECT url, text FROM pages ORDER BY added_at ASC, url ASC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [(url, text or "") for url, text in rows]

    def remove_unvisited(self, visited_urls: Iterable[str]) -> int:
        """Delete every row whose URL is not in *visited_urls*; return the count.

        The visited set goes into a temporary table so the removal is a single
        ``DELETE ... NOT IN`` instead of one statement per row.
        """
        urls = list(dict.fromkeys(visited_urls))
        with self._locked() as conn, conn:
            conn.execute("DROP TABLE IF EXISTS temp_visited_urls")
            conn.execute("CREATE TEMPORARY TABLE temp_visited_urls (url TEXT PRIMARY KEY)")
            for start in range(0, len(urls), VISITED_CHUNK_SIZE):
                chunk = urls[start : start + VISITED_CHUNK_SIZE]
                conn.executemany(
                    "INSERT INTO temp_visited_urls (url) VALUES (?)",
                    [(url,) for url in chunk],
                )
            cursor = conn.execute(
                "DELETE FROM pages WHERE url NOT IN (SELECT url FROM temp_visited_urls)"
            )
            deleted = cursor.rowcount
            conn.execute("DROP TABLE temp_visited_urls")
        logger.debug("unvisited pages removed", extra={"visited": len(urls), "removed": deleted})
        return deleted


def _timestamp(value: int, column: str) -> datetime:
    try:
        return from_timestamp(value)
    except (OverflowError, OSError, ValueError, TypeError) as exc:
        raise StorageError(f"Unable to read {column} from database: {value!r}") from exc


def _row_to_page(row: tuple) -> Page:
    url, added_at, lastmod, html, title, text, summary = row
    return Page(
        url=url,
        added_at=_timestamp(added_at, "added_at"),
        lastmod=_timestamp(lastmod, "lastmod"),
        html=html,
        title=title,
        text=text,
        summary=summary,
    )
