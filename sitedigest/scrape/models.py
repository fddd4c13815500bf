"""Data models for the scrape submodule."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True)
class LastMod:
    """A sitemap ``<lastmod>`` value: concrete, absent or unparsable."""

    value: datetime | None = None
    raw: str | None = None

    @classmethod
    def parse(cls, raw: str | None) -> LastMod:
        """Parse a W3C datetime; a missing timezone is taken as UTC."""
        if raw is None or not raw.strip():
            return cls()
        text = raw.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            return cls(raw=raw)
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return cls(value=value.astimezone(timezone.utc), raw=raw)

    @property
    def is_concrete(self) -> bool:
        return self.value is not None

    @property
    def is_absent(self) -> bool:
        return self.value is None and self.raw is None

    @property
    def is_unparsable(self) -> bool:
        return self.value is None and self.raw is not None


@dataclass(frozen=True)
class SitemapEntry:
    """One ``<url>`` of a sitemap."""

    url: str
    lastmod: LastMod = LastMod()


@dataclass(frozen=True)
class CrawlEvent:
    """Result of one fetch attempt published by the crawler.

    ``status_code`` is 0 when no response was received at all.
    """

    url: str
    status_code: int
    html: str = ""
    title: str | None = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class CrawlConfig:
    """Crawler behaviour; ``depth`` 0 means no depth limit."""

    user_agent: str = "SiteDigest Bot"
    subdomains: bool = False
    redirect_limit: int = 3
    retry: int = 1
    depth: int = 0
    respect_robots_txt: bool = True
    delay_ms: int = 1000
    concurrency: int = 1
    timeout: float = 30.0
