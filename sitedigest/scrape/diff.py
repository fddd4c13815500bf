"""Sitemap diff — which sitemap URLs need a fetch."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from sitedigest.storage.pages import PageStore

from .models import LastMod, SitemapEntry

logger = logging.getLogger(__name__)


@dataclass
class DiffResult:
    urls: list[str] = field(default_factory=list)
    total: int = 0

    @property
    def selected(self) -> int:
        return len(self.urls)


def should_scrape(store: PageStore, url: str, lastmod: LastMod) -> bool:
    """Decide whether *url* must be fetched again.

    New URLs, missing or unparsable lastmods are always fetched; otherwise
    only a lastmod different from the stored one triggers a fetch.
    """
    stored = store.get_lastmod(url)
    if stored is None:
        return True
    if not lastmod.is_concrete:
        return True
    return lastmod.value.replace(microsecond=0) != stored


def resolve_modified(entries: Mapping[str, SitemapEntry], store: PageStore) -> DiffResult:
    """Return the subset of *entries* that has to be crawled."""
    result = DiffResult(total=len(entries))
    for url, entry in entries.items():
        if should_scrape(store, url, entry.lastmod):
            result.urls.append(url)
    logger.debug("sitemap diff resolved", extra={"selected": result.selected, "total": result.total})
    return result


def select_targets(entries: Mapping[str, SitemapEntry], store: PageStore) -> DiffResult:
    """Full sitemap on a fresh store, the modified subset otherwise."""
    if store.is_new:
        return DiffResult(urls=list(entries), total=len(entries))
    return resolve_modified(entries, store)
