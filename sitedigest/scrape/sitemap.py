"""Sitemap feed reader — follows sitemap indexes recursively."""

from __future__ import annotations

import logging
from xml.etree import ElementTree

import httpx

from .models import LastMod, SitemapEntry

logger = logging.getLogger(__name__)

_SITEMAP_TIMEOUT = 30.0


class SitemapError(RuntimeError):
    """Raised when the top-level sitemap cannot be fetched."""


def _child_text(element: ElementTree.Element, name: str) -> str | None:
    child = element.find(f"{{*}}{name}")
    if child is None or child.text is None:
        return None
    return child.text.strip()


def parse_sitemap_document(xml_text: str | bytes) -> tuple[list[SitemapEntry], list[str]]:
    """Return ``(entries, nested_sitemaps)`` contained in one sitemap document."""
    try:
        root = ElementTree.fromstring(xml_text)
    except ElementTree.ParseError as exc:
        logger.warning("failed to parse sitemap XML", extra={"error": str(exc)})
        return [], []

    entries: list[SitemapEntry] = []
    nested: list[str] = []

    tag = root.tag.lower()
    if tag.endswith("sitemapindex"):
        for sitemap in root.findall("{*}sitemap"):
            loc = _child_text(sitemap, "loc")
            if loc:
                nested.append(loc)
    else:
        for url_el in root.findall("{*}url"):
            loc = _child_text(url_el, "loc")
            if not loc:
                continue
            entries.append(SitemapEntry(url=loc, lastmod=LastMod.parse(_child_text(url_el, "lastmod"))))

    return entries, nested


async def _fetch(client: httpx.AsyncClient, url: str) -> bytes:
    resp = await client.get(url)
    resp.raise_for_status()
    return resp.content


async def extract_sitemap_entries(
    sitemap_url: str,
    client: httpx.AsyncClient | None = None,
    user_agent: str = "SiteDigest Bot",
) -> dict[str, SitemapEntry]:
    """Fetch *sitemap_url* and every nested sitemap, return ``url -> entry``.

    A failure on the top-level sitemap raises :class:`SitemapError`; failures
    on nested sitemaps are logged and skipped.
    """
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": user_agent},
            timeout=_SITEMAP_TIMEOUT,
        )

    entries: dict[str, SitemapEntry] = {}
    pending: list[str] = [sitemap_url]
    seen: set[str] = set()

    try:
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)

            try:
                content = await _fetch(client, current)
            except httpx.HTTPError as exc:
                if current == sitemap_url:
                    raise SitemapError(f"Unable to fetch sitemap {sitemap_url}: {exc}") from exc
                logger.warning("nested sitemap fetch failed", extra={"url": current}, exc_info=True)
                continue

            found, nested = parse_sitemap_document(content)
            for entry in found:
                entries[entry.url] = entry
            pending.extend(nested)
            logger.debug(
                "sitemap processed",
                extra={"url": current, "entries": len(found), "nested": len(nested)},
            )
    finally:
        if owns_client:
            await client.aclose()

    logger.info("sitemap resolved", extra={"sitemap": sitemap_url, "entries": len(entries)})
    return entries
