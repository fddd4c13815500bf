"""Article extraction unit tests."""

import pytest

from sitedigest.extract import (
    InvalidSelectorError,
    TextBy,
    compile_selector,
    extract_article,
    parse_pages,
    parse_title,
)
from sitedigest.targets import ParseTarget

ARTICLE_HTML = """
<html>
  <head><title>Release notes</title></head>
  <body>
    <nav><a href="/">Home</a> <a href="/docs">Docs</a></nav>
    <article>
      <h1>Version 2.0</h1>
      <p>This release rewrites the storage layer so that large sites can be scraped
      incrementally without re-fetching every page on each run.</p>
      <p>It also adds a summarization pipeline that respects provider rate limits
      and keeps summaries already written when a later request fails.</p>
    </article>
    <footer>Copyright</footer>
  </body>
</html>
"""


# --- titles ---


def test_parse_title_prefers_title_tag():
    assert parse_title(ARTICLE_HTML) == "Release notes"


def test_parse_title_falls_back_to_headings():
    assert parse_title("<html><body><h1>Heading</h1></body></html>") == "Heading"
    assert parse_title("<html><body><h2>Sub</h2></body></html>") == "Sub"


def test_parse_title_none_when_missing():
    assert parse_title("<html><body><p>x</p></body></html>") is None


# --- selectors ---


def test_compile_selector_accepts_valid_query():
    assert compile_selector("article > p") == "article > p"


def test_compile_selector_rejects_invalid_query():
    with pytest.raises(InvalidSelectorError, match="Invalid CSS selector"):
        compile_selector("div[")


def test_invalid_selector_is_value_error():
    assert issubclass(InvalidSelectorError, ValueError)


# --- extraction ---


def test_markdown_extraction_converts_whole_document():
    article = extract_article(ARTICLE_HTML, TextBy.MARKDOWN)
    assert article.title == "Release notes"
    assert "# Version 2.0" in article.text
    assert "Copyright" in article.text


def test_markdown_extraction_with_selector():
    article = extract_article(ARTICLE_HTML, TextBy.MARKDOWN, selector="article")
    assert "# Version 2.0" in article.text
    assert "Copyright" not in article.text
    assert "Docs" not in article.text
    assert article.title == "Release notes"


def test_readability_extraction_keeps_article_body():
    article = extract_article(ARTICLE_HTML, TextBy.READABILITY)
    assert "storage layer" in article.text
    assert "<p>" not in article.text


def test_selector_matching_nothing_yields_empty_text():
    article = extract_article(ARTICLE_HTML, TextBy.READABILITY, selector="table.missing")
    assert article.text == ""
    assert article.title == "Release notes"


def test_text_by_accepts_plain_strings():
    assert extract_article("<p>Hi</p>", "markdown").text == "Hi"


# --- parse_pages ---


def test_parse_all_pages(page_store, make_page):
    page_store.upsert_page(make_page("https://example.com/a", html=ARTICLE_HTML, title="Old"))
    page_store.upsert_page(make_page("https://example.com/b", html="<p>No title here</p>", title="Kept"))

    parsed = parse_pages(page_store, ParseTarget(), TextBy.MARKDOWN)

    assert parsed == 2
    first = page_store.get_page("https://example.com/a")
    assert first.title == "Release notes"
    assert "Version 2.0" in first.text
    second = page_store.get_page("https://example.com/b")
    assert second.title == "Kept"
    assert second.text == "No title here"


def test_parse_keeps_summary(page_store, make_page):
    page_store.upsert_page(make_page("https://example.com/a", html=ARTICLE_HTML, summary="done"))

    parse_pages(page_store, ParseTarget(), TextBy.MARKDOWN)

    assert page_store.get_page("https://example.com/a").summary == "done"


def test_parse_single_page(page_store, make_page):
    page_store.upsert_page(make_page("https://example.com/a", html=ARTICLE_HTML))
    page_store.upsert_page(make_page("https://example.com/b", html=ARTICLE_HTML))

    parsed = parse_pages(page_store, ParseTarget.parse("https://example.com/b"), TextBy.MARKDOWN)

    assert parsed == 1
    assert page_store.get_page("https://example.com/a").text is None
    assert page_store.get_page("https://example.com/b").text


def test_parse_missing_single_page(page_store):
    assert parse_pages(page_store, ParseTarget.parse("https://example.com/none")) == 0


# --- targets ---


def test_parse_target_parsing():
    assert ParseTarget.parse("all") == ParseTarget("all")
    assert ParseTarget.parse("https://example.com/x") == ParseTarget("page", "https://example.com/x")
