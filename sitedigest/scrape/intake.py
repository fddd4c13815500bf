"""Crawl intake — drains crawler events into the page store."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Mapping
from urllib.parse import urlsplit

from sitedigest.storage.models import Page, utc_now
from sitedigest.storage.pages import PageStore, StorageError

from .crawler import Subscription
from .models import CrawlEvent

logger = logging.getLogger(__name__)


class IntakeOutcome(str, Enum):
    STORED = "stored"
    FAILED = "failed"
    STORE_ERROR = "store_error"


class StoreErrorPolicy(str, Enum):
    """What a failed page write means for the rest of the run."""

    ABORT = "abort"
    SKIP = "skip"


@dataclass
class IntakeReport:
    stored: int = 0
    failed: int = 0
    store_errors: int = 0
    aborted: bool = False


def is_valid_page_url(url: str) -> bool:
    """``True`` for absolute http(s) URLs with a host."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


class CrawlIntake:
    """Turns crawl events into stored pages or failed-URL records.

    Failed fetches never touch the store; their URLs go to *failed_urls* so
    reconciliation does not treat them as confirmed.
    """

    def __init__(
        self,
        store: PageStore,
        failed_urls: asyncio.Queue[str],
        lastmods: Mapping[str, datetime] | None = None,
        on_store_error: StoreErrorPolicy = StoreErrorPolicy.ABORT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._failed_urls = failed_urls
        self._lastmods = lastmods or {}
        self._on_store_error = StoreErrorPolicy(on_store_error)
        self._clock = clock

    async def handle(self, event: CrawlEvent) -> IntakeOutcome:
        """Process a single event and report what happened to it."""
        logger.info("scraped", extra={"url": event.url, "status": event.status_code})

        if not event.is_success:
            logger.warning("skipping failed fetch", extra={"url": event.url, "status": event.status_code})
            self._failed_urls.put_nowait(event.url)
            return IntakeOutcome.FAILED

        if not is_valid_page_url(event.url):
            logger.error("unparsable page url", extra={"url": event.url})
            self._failed_urls.put_nowait(event.url)
            return IntakeOutcome.FAILED

        try:
            page = await asyncio.to_thread(self._build_page, event)
            await asyncio.to_thread(self._store.upsert_page, page)
        except StorageError:
            logger.error("error storing page", extra={"url": event.url}, exc_info=True)
            return IntakeOutcome.STORE_ERROR

        logger.debug("page stored", extra={"url": event.url, "title": page.title})
        return IntakeOutcome.STORED

    def _build_page(self, event: CrawlEvent) -> Page:
        now = self._clock()
        existing = self._store.get_page(event.url)
        lastmod = self._lastmods.get(event.url)
        return Page(
            url=event.url,
            added_at=existing.added_at if existing is not None else now,
            lastmod=lastmod if lastmod is not None else now,
            html=event.html,
            title=event.title,
        )

    async def run(self, subscription: Subscription) -> IntakeReport:
        """Drain *subscription* until the crawler closes it."""
        report = IntakeReport()
        while (event := await subscription.recv()) is not None:
            outcome = await self.handle(event)
            if outcome is IntakeOutcome.STORED:
                report.stored += 1
            elif outcome is IntakeOutcome.FAILED:
                report.failed += 1
            else:
                report.store_errors += 1
                if self._on_store_error is StoreErrorPolicy.ABORT:
                    logger.error("stopping intake after store failure", extra={"url": event.url})
                    report.aborted = True
                    subscription.detach()
                    break

        logger.info(
            "intake finished",
            extra={
                "stored": report.stored,
                "failed": report.failed,
                "store_errors": report.store_errors,
                "aborted": report.aborted,
            },
        )
        return report
