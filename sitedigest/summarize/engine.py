"""Summarization pipeline — batches pages from the store through the chat model."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sitedigest.storage.pages import PageStore
from sitedigest.summarize.llm import ChatModel, SummarizationError
from sitedigest.summarize.prompts import build_messages, clean_response
from sitedigest.summarize.ratelimit import TokenBucket
from sitedigest.targets import SummarizeTarget

logger = logging.getLogger(__name__)

FETCH_BATCH_SIZE = 100


@dataclass
class SummarizeContext:
    """Shared state for one summarization run."""

    model: ChatModel
    prompt_template: str | None = None
    rate_limiter: TokenBucket | None = None


@dataclass
class SummarizeReport:
    processed: int
    message: str


async def summarize_page(url: str, text: str, ctx: SummarizeContext) -> str:
    """Summarize one page and return the cleaned summary."""
    messages = build_messages(url, text, ctx.prompt_template)

    if ctx.rate_limiter is not None:
        await ctx.rate_limiter.acquire()

    try:
        response = await ctx.model.chat(messages)
    except Exception as exc:
        raise SummarizationError(f"LLM error: {exc}.") from exc

    return clean_response(response)


async def _summarize_and_store(url: str, text: str, ctx: SummarizeContext, store: PageStore) -> str:
    summary = await summarize_page(url, text, ctx)
    await asyncio.to_thread(store.update_summary, url, summary)
    logger.debug("summarized page", extra={"url": url, "summary_length": len(summary)})
    return summary


async def summarize_unsummarized_pages(ctx: SummarizeContext, store: PageStore, batch_size: int) -> int:
    """Summarize pages without a summary until none are left."""
    processed = 0
    # Pages whose summary came back empty stay unsummarized; skip past them
    skipped = 0
    while True:
        batch = await asyncio.to_thread(store.fetch_unsummarized, batch_size, skipped)
        if not batch:
            break
        for url, text in batch:
            summary = await _summarize_and_store(url, text, ctx, store)
            processed += 1
            if not summary:
                logger.warning("empty summary", extra={"url": url})
                skipped += 1
    return processed


async def summarize_all_pages(ctx: SummarizeContext, store: PageStore, batch_size: int) -> int:
    """Summarize every stored page, already summarized or not."""
    processed = 0
    offset = 0
    while True:
        batch = await asyncio.to_thread(store.fetch_pages, batch_size, offset)
        for url, text in batch:
            await _summarize_and_store(url, text, ctx, store)
            processed += 1
        if len(batch) < batch_size:
            break
        offset += batch_size
    return processed


async def summarize_single_page(ctx: SummarizeContext, store: PageStore, url: str) -> int:
    text = await asyncio.to_thread(store.fetch_page_text, url)
    if text is None:
        return 0
    await _summarize_and_store(url, text, ctx, store)
    return 1


def _nothing_to_do(target: SummarizeTarget) -> str:
    if target.mode == "unsummarized":
        return "No pages to summarize. All pages already have summaries."
    if target.mode == "all":
        return "No pages in the database."
    return f"Page {target.url} not found in the database."


async def summarize(
    store: PageStore,
    model: ChatModel,
    target: SummarizeTarget = SummarizeTarget(),
    prompt_template: str | None = None,
    rpm: int | None = None,
    batch_size: int = FETCH_BATCH_SIZE,
    rate_limiter: TokenBucket | None = None,
) -> SummarizeReport:
    """Summarize the targeted pages and store the summaries.

    A chat failure raises :class:`SummarizationError` and ends the run;
    summaries already written are kept, so running again picks up the rest.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    if rate_limiter is None and rpm:
        rate_limiter = TokenBucket.per_minute(rpm)
    ctx = SummarizeContext(model=model, prompt_template=prompt_template, rate_limiter=rate_limiter)

    logger.info("summarization started", extra={"target": target.mode, "url": target.url, "rpm": rpm})
    if target.mode == "unsummarized":
        processed = await summarize_unsummarized_pages(ctx, store, batch_size)
    elif target.mode == "all":
        processed = await summarize_all_pages(ctx, store, batch_size)
    else:
        processed = await summarize_single_page(ctx, store, target.url)

    message = f"Summarized {processed} pages" if processed else _nothing_to_do(target)
    logger.info(message, extra={"processed": processed})
    return SummarizeReport(processed=processed, message=message)
