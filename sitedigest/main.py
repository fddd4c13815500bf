"""Command-line entrypoint: scrape, parse, summarize and compose."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import asdict
from pathlib import Path

from pydantic import ValidationError
from pydantic_ai.exceptions import UserError

from sitedigest.compose import compose
from sitedigest.config import Settings, get_settings
from sitedigest.extract import ExtractionError, TextBy, compile_selector, parse_pages
from sitedigest.logging_config import setup_logging, verbosity_to_level
from sitedigest.scrape import SitemapError, StoreErrorPolicy, build_crawl_config, process_sitemap
from sitedigest.scrape.intake import is_valid_page_url
from sitedigest.storage.pages import PageStore, StorageError
from sitedigest.summarize.engine import summarize
from sitedigest.summarize.llm import SummarizationError, build_chat_model
from sitedigest.targets import ParseTarget, SummarizeTarget

logger = logging.getLogger(__name__)

RUNTIME_ERRORS = (StorageError, SitemapError, SummarizationError, ExtractionError, OSError)


class UsageError(Exception):
    """Bad command-line input, reported before any work starts."""


def _cmd_scrape(args: argparse.Namespace, settings: Settings) -> None:
    if not is_valid_page_url(args.url):
        raise UsageError(f"Invalid sitemap url: {args.url}")
    try:
        policy = StoreErrorPolicy(settings.store_error_policy)
    except ValueError as exc:
        raise UsageError(f"Invalid store error policy: {settings.store_error_policy}") from exc

    config = build_crawl_config(settings, delay=args.delay, concurrency=args.concurrency)
    report = asyncio.run(
        process_sitemap(
            args.url,
            args.db,
            config=config,
            channel_capacity=settings.event_channel_capacity,
            on_store_error=policy,
        )
    )
    logger.info("scrape finished", extra=asdict(report))
    if report.aborted:
        raise StorageError("Scrape aborted after a failed page write")


def _cmd_parse(args: argparse.Namespace, settings: Settings) -> None:
    selector = None
    if args.selector is not None:
        try:
            selector = compile_selector(args.selector)
        except ValueError as exc:
            raise UsageError(str(exc)) from exc

    with PageStore(args.db) as store:
        parse_pages(store, ParseTarget.parse(args.target), TextBy(args.text_by), selector)


def _cmd_summarize(args: argparse.Namespace, settings: Settings) -> None:
    try:
        model = build_chat_model(args.model, settings.model_api_key)
    except (ValueError, UserError) as exc:
        raise UsageError(f"Invalid model: {exc}") from exc

    prompt_template = None
    if args.prompt_file:
        prompt_template = Path(args.prompt_file).read_text(encoding="utf-8")

    with PageStore(args.db) as store:
        report = asyncio.run(
            summarize(
                store,
                model,
                target=SummarizeTarget.parse(args.target),
                prompt_template=prompt_template,
                rpm=args.rpm,
                batch_size=settings.summarize_batch_size,
            )
        )
    print(report.message)


def _cmd_compose(args: argparse.Namespace, settings: Settings) -> None:
    with PageStore(args.db) as store:
        written = compose(store, args.output_file)
    print(f"Composed {written} pages to {args.output_file}")


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitedigest",
        description="Build an LLM-written digest of a website from its sitemap.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=None,
        help="Output verbosity: error (0), warn (1), info (2, default), debug (3).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape_parser = subparsers.add_parser("scrape", help="Scrape a website via its sitemap into a database.")
    scrape_parser.add_argument("url", help="Sitemap URL.")
    scrape_parser.add_argument("db", help="Path to the page database.")
    scrape_parser.add_argument("-d", "--delay", type=int, default=None, help="Delay between requests in milliseconds.")
    scrape_parser.add_argument("-c", "--concurrency", type=_positive_int, default=None, help="Concurrent requests.")
    scrape_parser.set_defaults(func=_cmd_scrape)

    parse_parser = subparsers.add_parser("parse", help="Re-extract page text from stored HTML.")
    parse_parser.add_argument("db", help="Path to the page database.")
    parse_parser.add_argument("-t", "--target", default="all", help='"all" (default) or a page URL.')
    parse_parser.add_argument(
        "--text-by",
        choices=[item.value for item in TextBy],
        default=TextBy.READABILITY.value,
        help="Text extraction method.",
    )
    parse_parser.add_argument("-s", "--selector", default=None, help="CSS selector limiting the extracted HTML.")
    parse_parser.set_defaults(func=_cmd_parse)

    summarize_parser = subparsers.add_parser("summarize", help="Summarize stored pages with an LLM.")
    summarize_parser.add_argument("db", help="Path to the page database.")
    summarize_parser.add_argument("model", help="Model as provider:model, e.g. openai:gpt-4o-mini.")
    summarize_parser.add_argument("-p", "--prompt-file", default=None, help="File with a prompt template.")
    summarize_parser.add_argument(
        "-t",
        "--target",
        default="unsummarized",
        help='"unsummarized" (default), "all" or a page URL.',
    )
    summarize_parser.add_argument("-r", "--rpm", type=_positive_int, default=None, help="Requests per minute limit.")
    summarize_parser.set_defaults(func=_cmd_summarize)

    compose_parser = subparsers.add_parser("compose", help="Write stored summaries to a digest file.")
    compose_parser.add_argument("db", help="Path to the page database.")
    compose_parser.add_argument("output_file", help="Path of the digest file to write.")
    compose_parser.set_defaults(func=_cmd_compose)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = get_settings()
    except ValidationError as exc:
        parser.error(f"Invalid configuration: {exc}")

    if args.verbose is None:
        setup_logging(settings.log_level)
    else:
        setup_logging(verbosity_to_level(args.verbose))

    try:
        args.func(args, settings)
    except UsageError as exc:
        parser.error(str(exc))
    except RUNTIME_ERRORS as exc:
        logger.error("command failed", extra={"command": args.command, "error": str(exc)}, exc_info=True)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
