"""Command targets: which pages an operation applies to."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class SummarizeTarget:
    """``unsummarized`` (default), ``all``, or a single page URL."""

    mode: Literal["unsummarized", "all", "page"] = "unsummarized"
    url: str | None = None

    @classmethod
    def parse(cls, value: str) -> SummarizeTarget:
        if value == "unsummarized":
            return cls("unsummarized")
        if value == "all":
            return cls("all")
        return cls("page", value)


@dataclass(frozen=True)
class ParseTarget:
    """``all`` (default) or a single page URL."""

    mode: Literal["all", "page"] = "all"
    url: str | None = None

    @classmethod
    def parse(cls, value: str) -> ParseTarget:
        if value == "all":
            return cls("all")
        return cls("page", value)
