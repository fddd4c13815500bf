"""Post-crawl cleanup of pages that are no longer on the site."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from sitedigest.storage.pages import PageStore

logger = logging.getLogger(__name__)


def drain_failed_urls(failed_urls: asyncio.Queue[str]) -> set[str]:
    """Take everything currently queued without waiting."""
    drained: set[str] = set()
    while True:
        try:
            drained.add(failed_urls.get_nowait())
        except asyncio.QueueEmpty:
            return drained


async def cleanup_unvisited_pages(
    visited_urls: Iterable[str],
    store: PageStore,
    failed_urls: asyncio.Queue[str],
) -> int:
    """Delete stored pages the crawl did not successfully confirm.

    A URL that was attempted but failed is not counted as visited, so one
    transient error cannot vouch for it. Returns the number of rows removed.
    """
    failed = drain_failed_urls(failed_urls)
    confirmed = set(visited_urls) - failed
    removed = await asyncio.to_thread(store.remove_unvisited, confirmed)
    logger.info(
        "removed unvisited pages",
        extra={"removed": removed, "confirmed": len(confirmed), "failed": len(failed)},
    )
    return removed
