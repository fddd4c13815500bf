"""Sitemap-driven scraping: diff, crawl, intake and reconciliation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urljoin

import httpx

from sitedigest.storage.pages import PageStore

from .crawler import DEFAULT_CHANNEL_CAPACITY, Subscription, Website
from .diff import DiffResult, resolve_modified, select_targets, should_scrape
from .intake import CrawlIntake, IntakeOutcome, IntakeReport, StoreErrorPolicy, is_valid_page_url
from .models import CrawlConfig, CrawlEvent, LastMod, SitemapEntry
from .reconcile import cleanup_unvisited_pages, drain_failed_urls
from .sitemap import SitemapError, extract_sitemap_entries

if TYPE_CHECKING:
    from sitedigest.config import Settings

__all__ = [
    "CrawlConfig",
    "CrawlEvent",
    "CrawlIntake",
    "DiffResult",
    "IntakeOutcome",
    "IntakeReport",
    "LastMod",
    "ScrapeReport",
    "SitemapEntry",
    "SitemapError",
    "StoreErrorPolicy",
    "Subscription",
    "Website",
    "build_crawl_config",
    "cleanup_unvisited_pages",
    "drain_failed_urls",
    "extract_sitemap_entries",
    "process_sitemap",
    "resolve_modified",
    "select_targets",
    "should_scrape",
]

logger = logging.getLogger(__name__)


@dataclass
class ScrapeReport:
    selected: int = 0
    total: int = 0
    stored: int = 0
    failed: int = 0
    store_errors: int = 0
    removed: int | None = None
    aborted: bool = False


def build_crawl_config(
    settings: Settings,
    delay: int | None = None,
    concurrency: int | None = None,
) -> CrawlConfig:
    """Crawler configuration from settings, with CLI overrides."""
    return CrawlConfig(
        user_agent=settings.user_agent,
        subdomains=settings.crawl_subdomains,
        redirect_limit=settings.crawl_redirect_limit,
        retry=settings.crawl_retries,
        depth=settings.crawl_depth,
        respect_robots_txt=settings.respect_robots_txt,
        delay_ms=settings.crawl_delay_ms if delay is None else delay,
        concurrency=settings.crawl_concurrency if concurrency is None else concurrency,
        timeout=settings.request_timeout,
    )


async def process_sitemap(
    sitemap_url: str,
    db_path: str | Path,
    config: CrawlConfig | None = None,
    channel_capacity: int = DEFAULT_CHANNEL_CAPACITY,
    on_store_error: StoreErrorPolicy = StoreErrorPolicy.ABORT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ScrapeReport:
    """Scrape the site behind *sitemap_url* into the page store at *db_path*.

    On an existing store only new or modified sitemap URLs are targeted and
    pages the crawl did not confirm are removed afterwards. A store created
    by this run gets the whole sitemap and no cleanup.
    """
    if not is_valid_page_url(sitemap_url):
        raise ValueError(f"Invalid sitemap url: {sitemap_url!r}")

    config = config or CrawlConfig()
    base_url = urljoin(sitemap_url, "/")
    report = ScrapeReport()

    with PageStore(db_path) as store:
        async with httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": config.user_agent},
            timeout=config.timeout,
            transport=transport,
        ) as client:
            entries = await extract_sitemap_entries(sitemap_url, client=client)

        diff = await asyncio.to_thread(select_targets, entries, store)
        report.selected, report.total = diff.selected, diff.total
        logger.info(
            "sitemap entries selected",
            extra={"selected": diff.selected, "total": diff.total, "cold_start": store.is_new},
        )

        lastmods = {url: entry.lastmod.value for url, entry in entries.items() if entry.lastmod.is_concrete}
        failed_urls: asyncio.Queue[str] = asyncio.Queue()
        intake = CrawlIntake(store, failed_urls, lastmods=lastmods, on_store_error=on_store_error)

        website = Website(base_url, config, transport=transport)
        website.set_extra_links(diff.urls)
        subscription = website.subscribe(channel_capacity)
        intake_task = asyncio.create_task(intake.run(subscription))

        logger.info("starting crawl", extra={"sitemap": sitemap_url, "base_url": base_url})
        try:
            await website.crawl()
        finally:
            website.unsubscribe()
            intake_report = await intake_task

        report.stored = intake_report.stored
        report.failed = intake_report.failed
        report.store_errors = intake_report.store_errors
        report.aborted = intake_report.aborted

        if report.aborted:
            logger.warning("intake aborted, skipping cleanup of unvisited pages")
        elif store.existed:
            report.removed = await cleanup_unvisited_pages(
                website.get_all_links_visited(), store, failed_urls
            )

    return report
