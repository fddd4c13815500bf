"""Page record persisted by the page store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sitedigest.extract import PageArticle


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds (the store's resolution)."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def normalize_timestamp(value: datetime) -> datetime:
    """Naive values are taken as UTC; sub-second precision is dropped."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.replace(microsecond=0)


def to_timestamp(value: datetime) -> int:
    return int(normalize_timestamp(value).timestamp())


def from_timestamp(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


@dataclass
class Page:
    """Everything known about one URL."""

    url: str
    added_at: datetime
    lastmod: datetime
    html: str
    title: str | None = None
    text: str | None = None
    summary: str | None = None

    def __post_init__(self) -> None:
        self.added_at = normalize_timestamp(self.added_at)
        self.lastmod = normalize_timestamp(self.lastmod)

    def apply_article(self, article: PageArticle) -> None:
        """Take the article text, and its title only when it has one."""
        self.text = article.text
        if article.title is not None:
            self.title = article.title
