"""Page store unit tests."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from sitedigest.extract import PageArticle
from sitedigest.storage.models import Page, to_timestamp, utc_now
from sitedigest.storage.pages import PageStore, StorageError

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


# --- lifecycle ---


def test_new_store_is_new(db_path):
    with PageStore(db_path) as store:
        assert store.is_new
        assert not store.existed


def test_reopened_store_existed(db_path):
    PageStore(db_path).close()
    with PageStore(db_path) as store:
        assert store.existed


def test_memory_store_is_new():
    with PageStore(":memory:") as store:
        assert store.is_new


def test_unopenable_path_raises(tmp_path):
    with pytest.raises(StorageError):
        PageStore(tmp_path / "missing" / "dir" / "pages.db")


# --- upsert / get ---


def test_upsert_then_get_round_trips_every_field(page_store, make_page):
    page = make_page(title="Title", text="Body", summary="Short")
    page_store.upsert_page(page)
    assert page_store.get_page(page.url) == page


def test_round_trip_with_sub_second_timestamps(page_store, make_page):
    page = make_page(added_at=BASE_TIME.replace(microsecond=123456), lastmod=BASE_TIME.replace(microsecond=999999))
    page_store.upsert_page(page)

    assert page.added_at == BASE_TIME
    assert page_store.get_page(page.url) == page


def test_round_trip_with_naive_timestamps(page_store, make_page):
    naive = datetime(2024, 5, 1, 12, 0, 0, 500000)
    page = make_page(added_at=naive, lastmod=naive)
    page_store.upsert_page(page)

    stored = page_store.get_page(page.url)
    assert stored == page
    assert stored.added_at == BASE_TIME
    assert stored.lastmod.tzinfo is not None


def test_round_trip_keeps_absent_fields_absent(page_store, make_page):
    page = make_page()
    page_store.upsert_page(page)
    stored = page_store.get_page(page.url)
    assert stored.title is None
    assert stored.text is None
    assert stored.summary is None


def test_upsert_replaces_whole_row(page_store, make_page):
    page_store.upsert_page(make_page(title="Old", summary="old summary"))
    page_store.upsert_page(make_page(title="New"))
    stored = page_store.get_page("https://example.com/a")
    assert stored.title == "New"
    assert stored.summary is None


def test_get_missing_page_returns_none(page_store):
    assert page_store.get_page("https://example.com/nope") is None


def test_list_urls(page_store, make_page):
    page_store.upsert_page(make_page("https://example.com/a"))
    page_store.upsert_page(make_page("https://example.com/b"))
    assert sorted(page_store.list_urls()) == ["https://example.com/a", "https://example.com/b"]


# --- field updates ---


def test_update_text_and_summary(page_store, make_page):
    page_store.upsert_page(make_page())
    page_store.update_text("https://example.com/a", "extracted")
    page_store.update_summary("https://example.com/a", "summarized")
    stored = page_store.get_page("https://example.com/a")
    assert stored.text == "extracted"
    assert stored.summary == "summarized"


def test_update_missing_page_is_noop(page_store):
    page_store.update_summary("https://example.com/nope", "x")
    assert page_store.list_urls() == []


def test_remove_page(page_store, make_page):
    page_store.upsert_page(make_page())
    page_store.remove_page("https://example.com/a")
    assert page_store.get_page("https://example.com/a") is None


def test_get_lastmod(page_store, make_page):
    page_store.upsert_page(make_page(lastmod=BASE_TIME))
    assert page_store.get_lastmod("https://example.com/a") == BASE_TIME
    assert page_store.get_lastmod("https://example.com/nope") is None


def test_fetch_page_text(page_store, make_page):
    page_store.upsert_page(make_page("https://example.com/a", text="body"))
    page_store.upsert_page(make_page("https://example.com/b"))
    assert page_store.fetch_page_text("https://example.com/a") == "body"
    assert page_store.fetch_page_text("https://example.com/b") == ""
    assert page_store.fetch_page_text("https://example.com/c") is None


# --- batch reads ---


def test_fetch_unsummarized_oldest_first(page_store, make_page):
    page_store.upsert_page(make_page("https://example.com/new", added_at=BASE_TIME + timedelta(hours=1), text="n"))
    page_store.upsert_page(make_page("https://example.com/old", added_at=BASE_TIME, text="o"))
    page_store.upsert_page(make_page("https://example.com/done", added_at=BASE_TIME, summary="ok"))
    page_store.upsert_page(make_page("https://example.com/empty", added_at=BASE_TIME, summary=""))

    rows = page_store.fetch_unsummarized(10)

    assert rows == [
        ("https://example.com/empty", ""),
        ("https://example.com/old", "o"),
        ("https://example.com/new", "n"),
    ]


def test_fetch_unsummarized_respects_limit_and_offset(page_store, make_page):
    for i in range(5):
        page_store.upsert_page(make_page(f"https://example.com/{i}", added_at=BASE_TIME + timedelta(seconds=i)))
    assert [url for url, _ in page_store.fetch_unsummarized(2)] == ["https://example.com/0", "https://example.com/1"]
    assert [url for url, _ in page_store.fetch_unsummarized(2, 3)] == ["https://example.com/3", "https://example.com/4"]


def test_fetch_pages_paginates_whole_table(page_store, make_page):
    for i in range(3):
        page_store.upsert_page(
            make_page(f"https://example.com/{i}", added_at=BASE_TIME + timedelta(seconds=i), summary="s")
        )
    assert [url for url, _ in page_store.fetch_pages(2, 0)] == ["https://example.com/0", "https://example.com/1"]
    assert [url for url, _ in page_store.fetch_pages(2, 2)] == ["https://example.com/2"]
    assert page_store.fetch_pages(2, 4) == []


# --- reconciliation support ---


def test_remove_unvisited_deletes_only_unvisited(page_store, make_page):
    for name in ("A", "B", "C"):
        page_store.upsert_page(make_page(f"https://example.com/{name}"))

    removed = page_store.remove_unvisited({"https://example.com/A", "https://example.com/B"})

    assert removed == 1
    assert sorted(page_store.list_urls()) == ["https://example.com/A", "https://example.com/B"]


def test_remove_unvisited_with_empty_set_clears_store(page_store, make_page):
    page_store.upsert_page(make_page("https://example.com/A"))
    assert page_store.remove_unvisited(set()) == 1
    assert page_store.list_urls() == []


def test_remove_unvisited_handles_many_urls(page_store, make_page):
    visited = {f"https://example.com/{i}" for i in range(250)}
    for url in list(visited)[:10]:
        page_store.upsert_page(make_page(url))
    page_store.upsert_page(make_page("https://example.com/gone"))

    assert page_store.remove_unvisited(visited) == 1
    assert len(page_store.list_urls()) == 10


def test_remove_unvisited_can_run_twice(page_store, make_page):
    page_store.upsert_page(make_page("https://example.com/A"))
    page_store.remove_unvisited({"https://example.com/A"})
    assert page_store.remove_unvisited({"https://example.com/A"}) == 0


# --- errors ---


def test_corrupt_timestamp_raises_storage_error(page_store, db_path):
    conn = sqlite3.connect(db_path)
    with conn:
        conn.execute(
            "INSERT INTO pages (url, added_at, lastmod, html) VALUES (?, ?, ?, ?)",
            ("https://example.com/bad", "not-a-number", 0, "<html></html>"),
        )
    conn.close()
    with pytest.raises(StorageError):
        page_store.get_page("https://example.com/bad")


def test_closed_store_raises_storage_error(db_path):
    store = PageStore(db_path)
    store.close()
    with pytest.raises(StorageError):
        store.list_urls()


# --- Page model ---


def test_apply_article_with_title_overwrites(make_page):
    page = make_page(title="Old")
    page.apply_article(PageArticle(title="New", text="body"))
    assert page.title == "New"
    assert page.text == "body"


def test_apply_article_without_title_keeps_existing(make_page):
    page = make_page(title="Old")
    page.apply_article(PageArticle(title=None, text="body"))
    assert page.title == "Old"
    assert page.text == "body"


def test_utc_now_has_second_resolution():
    now = utc_now()
    assert now.microsecond == 0
    assert now.tzinfo is not None


def test_naive_datetime_treated_as_utc():
    assert to_timestamp(BASE_TIME.replace(tzinfo=None)) == to_timestamp(BASE_TIME)


def test_page_defaults():
    page = Page(url="u", added_at=BASE_TIME, lastmod=BASE_TIME, html="")
    assert (page.title, page.text, page.summary) == (None, None, None)
