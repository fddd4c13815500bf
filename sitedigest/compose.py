"""Digest composition — writes stored summaries to a Markdown file."""

from __future__ import annotations

import logging
from pathlib import Path

from sitedigest.storage.models import Page
from sitedigest.storage.pages import PageStore

logger = logging.getLogger(__name__)


def format_entry(page: Page) -> str:
    heading = f"[{page.title}]({page.url})" if page.title else page.url
    return f"## {heading}\n{page.summary}\n\n"


def compose(store: PageStore, output_path: str | Path) -> int:
    """Write every summarized page to *output_path*, replacing its contents.

    Returns the number of pages written.
    """
    output_path = Path(output_path)
    logger.info("composing digest", extra={"db": store.path, "output": str(output_path)})

    written = 0
    with output_path.open("w", encoding="utf-8") as fh:
        for url in store.list_urls():
            page = store.get_page(url)
            if page is None or not page.summary:
                continue
            fh.write(format_entry(page))
            written += 1

    logger.info("digest composed", extra={"pages": written, "output": str(output_path)})
    return written
