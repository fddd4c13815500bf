"""Article extraction from stored HTML."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import soupsieve
from bs4 import BeautifulSoup
from markdownify import markdownify
from readability import Document
from readability.readability import Unparseable

from sitedigest.storage.pages import PageStore
from sitedigest.targets import ParseTarget

logger = logging.getLogger(__name__)


class TextBy(str, Enum):
    """Text extraction strategy."""

    READABILITY = "readability"
    MARKDOWN = "markdown"


class InvalidSelectorError(ValueError):
    """The CSS selector given to limit extraction does not parse."""


class ExtractionError(RuntimeError):
    """The HTML could not be turned into article text."""


@dataclass
class PageArticle:
    title: str | None
    text: str


def compile_selector(query: str) -> str:
    """Validate *query* as a CSS selector and return it unchanged."""
    try:
        soupsieve.compile(query)
    except soupsieve.SelectorSyntaxError as exc:
        raise InvalidSelectorError(f"Invalid CSS selector: {exc}") from exc
    return query


def parse_title(html: str) -> str | None:
    """Document title: ``<title>``, then the first ``<h1>``, then ``<h2>``."""
    soup = BeautifulSoup(html, "lxml")
    for tag in ("title", "h1", "h2"):
        element = soup.find(tag)
        if element is None:
            continue
        text = element.get_text(" ", strip=True)
        if text:
            return text
    return None


def _select_html(html: str, selector: str) -> str:
    soup = BeautifulSoup(html, "lxml")
    return "\n".join(str(element) for element in soup.select(selector))


def extract_article(html: str, text_by: TextBy = TextBy.READABILITY, selector: str | None = None) -> PageArticle:
    """Extract title and Markdown text from *html*.

    The title always comes from the full document; *selector*, when given,
    restricts the HTML the text is taken from.
    """
    title = parse_title(html)
    selected = _select_html(html, selector) if selector else html
    if not selected.strip():
        return PageArticle(title=title, text="")

    if TextBy(text_by) is TextBy.READABILITY:
        try:
            content = Document(selected).summary(html_partial=True)
        except Unparseable as exc:
            raise ExtractionError(f"Readability failed: {exc}") from exc
    else:
        content = selected

    text = markdownify(content, heading_style="ATX").strip()
    return PageArticle(title=title, text=text)


def parse_pages(
    store: PageStore,
    target: ParseTarget,
    text_by: TextBy = TextBy.READABILITY,
    selector: str | None = None,
) -> int:
    """Re-extract text (and title) for the targeted pages; return how many were updated."""
    if target.mode == "page":
        urls = [target.url]
    else:
        urls = store.list_urls()

    parsed = 0
    for url in urls:
        page = store.get_page(url)
        if page is None:
            if target.mode == "page":
                logger.error("page not found", extra={"url": url})
            continue

        logger.info("parsing", extra={"url": url})
        page.apply_article(extract_article(page.html, text_by, selector))
        store.upsert_page(page)
        parsed += 1

    logger.info("parse finished", extra={"parsed": parsed, "text_by": TextBy(text_by).value})
    return parsed
