"""Collection sort job: order a collection's products by net items sold."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import pathlib
import sys
import traceback
from collections.abc import Awaitable, Callable
from typing import Sequence

import httpx

from collection_sort.config import Settings, console_log_level, load_settings
from collection_sort.errors import TERMINAL_ERRORS, ConfigurationError
from collection_sort.ingest import load_sales
from collection_sort.logic.moves import MoveOrchestrator, SortReport
from collection_sort.logic.ranking import rank_products
from collection_sort.remote.shopify import ShopifyCollectionClient
from collection_sort.utils.events import EventLog, open_event_log

EXIT_OK = 0
EXIT_HALTED = 1
EXIT_FAULT = 2


async def run_sort(
    settings: Settings,
    events: EventLog,
    *,
    session: httpx.AsyncClient | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> SortReport:
    log_unhandled_failures(events)
    events.info("Config Loaded", details=f"SHOP_URL: {settings.shop_domain}, Token: {settings.masked_token}")
    client = ShopifyCollectionClient(
        settings.endpoint,
        settings.access_token,
        events,
        session=session,
        timeout=settings.http_timeout_seconds,
        cooldown_seconds=settings.rate_limit_cooldown_seconds,
        sleep=sleep,
    )
    events.info("API Client Configured", details=settings.endpoint)
    try:
        loaded = await asyncio.get_running_loop().run_in_executor(
            None, load_sales, settings.input_path, settings.input_format, events
        )
        events.info("Prepare Product List Start")
        ranking = rank_products(loaded.products.values())
        orchestrator = MoveOrchestrator(
            client,
            events,
            delay_seconds=settings.move_delay_seconds,
            sleep=sleep,
        )
        return await orchestrator.run(settings.collection_handle, ranking)
    finally:
        await client.close()


def log_unhandled_failures(events: EventLog) -> None:
    """Route failures of unawaited tasks on the running loop into the event log."""

    def handler(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        if exc is not None:
            details = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        else:
            details = str(context.get("message", ""))
        events.error("Unhandled Rejection", details=details)

    asyncio.get_running_loop().set_exception_handler(handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="collection-sort",
        description="Reorder a Shopify collection so the best-selling products come first.",
    )
    parser.add_argument("--collection", help="Handle of the collection to sort")
    parser.add_argument("--input", help="Sales file (.jsonl or .csv)")
    parser.add_argument("--format", choices=["auto", "csv", "jsonl"], default=None, help="Input format (default: by extension)")
    parser.add_argument("--delay-ms", type=int, default=None, help="Pause after each move call in milliseconds")
    parser.add_argument("--log-dir", default=None, help="Directory for the run log file")
    parser.add_argument("--config", default=None, help="Optional YAML run file")
    return parser


def _console_level() -> int:
    level = logging.getLevelName(console_log_level())
    return level if isinstance(level, int) else logging.INFO


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings: Settings | None = None
    config_error: ConfigurationError | None = None
    try:
        settings = load_settings(
            collection=args.collection,
            input_path=args.input,
            input_format=args.format,
            delay_ms=args.delay_ms,
            log_dir=args.log_dir,
            run_file=args.config,
        )
    except ConfigurationError as exc:
        config_error = exc

    if settings is not None:
        log_dir = settings.log_dir
        target = settings.collection_handle
    else:
        log_dir = pathlib.Path(args.log_dir or os.environ.get("SORT_LOG_DIR") or ".")
        target = args.collection or ""

    with open_event_log(log_dir, console_level=_console_level()) as events:
        events.info("Script Start", details=f"Target Collection: {target}")
        try:
            if config_error is not None:
                events.error("Config Error", details=str(config_error))
                raise config_error
            asyncio.run(run_sort(settings, events))
        except TERMINAL_ERRORS as exc:
            events.error("Script Halted", details=f"{exc.__class__.__name__}: {exc}")
            return EXIT_HALTED
        except Exception:
            events.error("Fatal Script Error", details=traceback.format_exc())
            return EXIT_FAULT
        finally:
            events.info("Script End")
    return EXIT_OK


def cli() -> None:  # pragma: no cover - console script
    sys.exit(main())


if __name__ == "__main__":
    cli()
