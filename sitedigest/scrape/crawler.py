"""Site crawler — concurrent same-host crawl publishing one event per fetch."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Iterable
from urllib.parse import urljoin, urlsplit, urlunsplit
from urllib.robotparser import RobotFileParser

import httpx
from bs4 import BeautifulSoup

from .models import CrawlConfig, CrawlEvent

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_CAPACITY = 888

_HTML_TYPES = ("text/html", "application/xhtml+xml")
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def normalise_url(url: str) -> str:
    """Strip the fragment so ``/page#a`` and ``/page`` are the same page."""
    parts = urlsplit(url.strip())
    return urlunsplit(parts._replace(fragment=""))


class Subscription:
    """Bounded event channel between the crawler and one consumer."""

    def __init__(self, capacity: int = DEFAULT_CHANNEL_CAPACITY) -> None:
        self._queue: asyncio.Queue[CrawlEvent | None] = asyncio.Queue(maxsize=max(1, capacity))
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: CrawlEvent) -> bool:
        """Queue *event*, waiting for room. Returns ``False`` once closed."""
        if self._closed:
            return False
        await self._queue.put(event)
        return True

    def close(self) -> None:
        """End the stream; events already buffered are still delivered."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # recv() sees the flag once the buffer is drained
            pass

    def detach(self) -> None:
        """Close from the consumer side and drop whatever is buffered.

        Draining wakes any producer blocked on a full buffer.
        """
        self._closed = True
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break

    async def recv(self) -> CrawlEvent | None:
        """Next event, or ``None`` when the stream is closed and drained."""
        while True:
            if self._closed and self._queue.empty():
                return None
            event = await self._queue.get()
            if event is not None:
                return event

    async def __aiter__(self) -> AsyncIterator[CrawlEvent]:
        while (event := await self.recv()) is not None:
            yield event


class Website:
    """Crawls one site starting at its root plus an explicit list of extra links.

    Links found on fetched HTML pages are followed when they stay on the same
    host (or a subdomain, when enabled) and within the configured depth.
    Every URL attempted is recorded and available after the crawl through
    :meth:`get_all_links_visited`.
    """

    def __init__(
        self,
        base_url: str,
        config: CrawlConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = normalise_url(base_url)
        self._host = (urlsplit(self._base_url).hostname or "").lower()
        self._config = config or CrawlConfig()
        self._transport = transport
        self._extra_links: list[str] = []
        self._subscriptions: list[Subscription] = []
        self._visited: set[str] = set()
        self._robots: RobotFileParser | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_extra_links(self, urls: Iterable[str]) -> None:
        self._extra_links = list(dict.fromkeys(normalise_url(url) for url in urls))

    def subscribe(self, capacity: int = DEFAULT_CHANNEL_CAPACITY) -> Subscription:
        subscription = Subscription(capacity)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self) -> None:
        """Close every subscription; consumers finish once they drain."""
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()

    def get_all_links_visited(self) -> set[str]:
        return set(self._visited)

    def _make_client(self) -> httpx.AsyncClient:
        kwargs: dict = {
            "follow_redirects": True,
            "max_redirects": self._config.redirect_limit,
            "headers": {"User-Agent": self._config.user_agent},
            "timeout": self._config.timeout,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def crawl(self) -> None:
        """Run the crawl to completion."""
        self._visited.clear()
        queue: asyncio.Queue[tuple[str, int]] = asyncio.Queue()
        enqueued: set[str] = set()

        def enqueue(url: str, depth: int) -> None:
            if url in enqueued:
                return
            enqueued.add(url)
            queue.put_nowait((url, depth))

        async with self._make_client() as client:
            self._robots = await self._load_robots(client) if self._config.respect_robots_txt else None

            enqueue(self._base_url, 0)
            for link in self._extra_links:
                enqueue(link, 0)

            logger.info(
                "crawl started",
                extra={
                    "base_url": self._base_url,
                    "extra_links": len(self._extra_links),
                    "concurrency": self._config.concurrency,
                    "delay_ms": self._config.delay_ms,
                },
            )
            workers = [
                asyncio.create_task(self._worker(client, queue, enqueue))
                for _ in range(max(1, self._config.concurrency))
            ]
            try:
                await queue.join()
            finally:
                for worker in workers:
                    worker.cancel()
                await asyncio.gather(*workers, return_exceptions=True)

        logger.info("crawl finished", extra={"base_url": self._base_url, "visited": len(self._visited)})

    async def _worker(self, client: httpx.AsyncClient, queue: asyncio.Queue, enqueue) -> None:
        while True:
            url, depth = await queue.get()
            try:
                await self._visit(client, url, depth, enqueue)
            except Exception:
                logger.exception("crawl of %s failed unexpectedly", url)
                await self._publish(CrawlEvent(url=url, status_code=0))
            finally:
                queue.task_done()

    async def _visit(self, client: httpx.AsyncClient, url: str, depth: int, enqueue) -> None:
        if not self._allowed(url):
            logger.debug("blocked by robots.txt", extra={"url": url})
            return

        self._visited.add(url)
        if self._config.delay_ms > 0:
            await asyncio.sleep(self._config.delay_ms / 1000)

        event, links = await self._fetch(client, url)
        await self._publish(event)

        if not event.is_success:
            return
        if self._config.depth and depth >= self._config.depth:
            return
        for link in links:
            if self._in_scope(link):
                enqueue(link, depth + 1)

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> tuple[CrawlEvent, list[str]]:
        attempts = 1 + max(0, self._config.retry)
        resp: httpx.Response | None = None
        for attempt in range(attempts):
            if attempt:
                logger.debug("retrying fetch", extra={"url": url, "attempt": attempt + 1})
                if self._config.delay_ms > 0:
                    await asyncio.sleep(self._config.delay_ms / 1000)
            try:
                resp = await client.get(url)
            except httpx.TooManyRedirects:
                logger.warning("too many redirects for %s", url)
                return CrawlEvent(url=url, status_code=0), []
            except httpx.HTTPError as exc:
                logger.warning("fetch failed for %s: %s", url, exc)
                resp = None
                continue
            if resp.status_code not in _RETRYABLE_STATUS:
                break

        if resp is None:
            return CrawlEvent(url=url, status_code=0), []

        logger.debug("fetched", extra={"url": url, "status": resp.status_code})
        html = resp.text
        content_type = resp.headers.get("content-type", "").split(";")[0].strip().lower()
        if not resp.is_success or (content_type and content_type not in _HTML_TYPES):
            return CrawlEvent(url=url, status_code=resp.status_code, html=html), []

        soup = BeautifulSoup(html, "lxml")
        title = None
        if soup.title is not None:
            title = soup.title.get_text(strip=True) or None
        links = _extract_links(soup, str(resp.url))
        return CrawlEvent(url=url, status_code=resp.status_code, html=html, title=title), links

    async def _publish(self, event: CrawlEvent) -> None:
        for subscription in list(self._subscriptions):
            await subscription.send(event)

    async def _load_robots(self, client: httpx.AsyncClient) -> RobotFileParser | None:
        robots_url = urljoin(self._base_url, "/robots.txt")
        try:
            resp = await client.get(robots_url)
        except httpx.HTTPError:
            logger.debug("robots fetch failed", extra={"url": robots_url}, exc_info=True)
            return None
        if resp.status_code != 200 or not resp.text.strip():
            return None
        parser = RobotFileParser()
        parser.set_url(robots_url)
        parser.parse(resp.text.splitlines())
        return parser

    def _allowed(self, url: str) -> bool:
        if self._robots is None:
            return True
        return self._robots.can_fetch(self._config.user_agent, url)

    def _in_scope(self, url: str) -> bool:
        host = (urlsplit(url).hostname or "").lower()
        if host == self._host:
            return True
        return self._config.subdomains and host.endswith(f".{self._host}")


def _extract_links(soup: BeautifulSoup, page_url: str) -> list[str]:
    links: list[str] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href or href.startswith(("#", "javascript:", "mailto:", "tel:")):
            continue
        absolute = normalise_url(urljoin(page_url, href))
        if urlsplit(absolute).scheme not in ("http", "https"):
            continue
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links
