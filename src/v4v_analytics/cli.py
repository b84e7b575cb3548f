"""Command-line entry point: ``v4v report | cache | status | dashboard``."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from datetime import datetime, time as dt_time, timezone
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from v4v_analytics import __version__
from v4v_analytics.aggregation import (
    SORT_MODES,
    aggregate_by_essay,
    aggregate_by_period,
    build_summary,
    compare_periods,
)
from v4v_analytics.cache import TitlesCache, TransactionCache
from v4v_analytics.config import V4VConfig, parse_duration
from v4v_analytics.data import select_payments
from v4v_analytics.exceptions import ConfigurationError, WalletError, WalletUnreachableError
from v4v_analytics.fetch import FetchSettings, TransactionFetcher
from v4v_analytics.formatters import (
    build_json_report,
    export_csv,
    format_csv,
    render_by_essay,
    render_comparison,
    render_summary,
    render_time_series,
)
from v4v_analytics.models import Transaction
from v4v_analytics.price import fetch_btc_price
from v4v_analytics.titles import TitleSource
from v4v_analytics.units import GRANULARITIES, MONTHLY, iso_date
from v4v_analytics.wallets import create_wallet

logger = logging.getLogger(__name__)

STATUS_TIMEOUT = 15.0


def _error(message: str, hint: str | None = None) -> int:
    print(f"Error: {message}", file=sys.stderr)
    if hint:
        print(hint, file=sys.stderr)
    return 1


def _parse_date(value: str, end_of_day: bool = False) -> datetime:
    day = datetime.strptime(value, "%Y-%m-%d").date()
    moment = dt_time(23, 59, 59) if end_of_day else dt_time.min
    return datetime.combine(day, moment, tzinfo=timezone.utc)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="v4v", description="Value-for-value Lightning payment analytics"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Verbose logging to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    report = sub.add_parser("report", help="Summarize V4V payments")
    report.add_argument("--format", choices=("text", "json", "csv"), default="text")
    report.add_argument("--usd", action="store_true", help="Include USD values")
    report.add_argument("--by-essay", action="store_true", help="Break down by essay")
    report.add_argument("--sort", choices=SORT_MODES, default="sats")
    report.add_argument("--top", type=int, help="Show only the top N essays")
    report.add_argument(
        "--time-series",
        nargs="?",
        const=MONTHLY,
        choices=GRANULARITIES,
        help="Trend by period (default: monthly)",
    )
    report.add_argument("--compare", action="store_true", help="Compare the last two periods")
    report.add_argument("--from", dest="from_date", metavar="YYYY-MM-DD")
    report.add_argument("--to", dest="to_date", metavar="YYYY-MM-DD")
    report.add_argument("--since", metavar="DURATION", help="e.g. 7d, 2w, 1m, 3mo, 1y")
    report.add_argument("--export", metavar="FILE", help="Also write payments to a CSV file")

    cache = sub.add_parser("cache", help="Show or clear the local caches")
    cache.add_argument("--clear", action="store_true", help="Delete cached data")

    sub.add_parser("status", help="Show configuration, cache and wallet connectivity")

    dashboard = sub.add_parser("dashboard", help="Start the web dashboard")
    dashboard.add_argument("--port", type=int, default=3000)
    dashboard.add_argument("--host", default="127.0.0.1")
    dashboard.add_argument("--mock", metavar="FILE", help="Serve this JSON instead of live data")
    dashboard.add_argument("--static", metavar="DIR", help="Front-end files to serve")
    return parser


async def _report(args: argparse.Namespace, config: V4VConfig) -> int:
    quiet = args.format in ("json", "csv")

    try:
        config.validate()
    except ConfigurationError as e:
        return _error(str(e), "Set it in your environment, .env file or ~/.v4v/config.json.")

    try:
        from_date = _parse_date(args.from_date) if args.from_date else None
        to_date = _parse_date(args.to_date, end_of_day=True) if args.to_date else None
    except ValueError as e:
        return _error(f"Invalid date: {e}")

    # --since wins over --from
    if args.since:
        from_date = parse_duration(args.since)
        if from_date is None:
            return _error(f"Invalid duration: {args.since}", "Use formats like: 7d, 2w, 1m, 3mo, 1y")

    btc_price = None
    if args.usd:
        btc_price = await fetch_btc_price()
        if btc_price is None and not quiet:
            print("Warning: Could not fetch BTC price", file=sys.stderr)

    try:
        wallet = create_wallet(config)
    except ValueError as e:
        return _error(f"Invalid NWC_CONNECTION_STRING: {e}")

    if not quiet:
        print("Fetching transactions...", end="", file=sys.stderr, flush=True)

    fetcher_warnings: list[str] = []
    transactions: list[Transaction] = []
    try:
        async with wallet:
            fetcher = TransactionFetcher(
                wallet, TransactionCache(config.cache_path), FetchSettings.from_config(config)
            )
            async for progress in fetcher.iter_fetch():
                if progress.done:
                    transactions = progress.transactions
                    fetcher_warnings = progress.warnings
                elif not quiet:
                    print(
                        f"\rFetching transactions... ({progress.new_count} new)",
                        end="",
                        file=sys.stderr,
                        flush=True,
                    )
    except (WalletUnreachableError, WalletError, OSError, ImportError) as e:
        if not quiet:
            print(file=sys.stderr)
        return _error(str(e), "Is your wallet service running?")

    if not quiet:
        print("\r" + " " * 50 + "\r", end="", file=sys.stderr, flush=True)
        for warning in fetcher_warnings:
            print(f"Warning: {warning}", file=sys.stderr)

    payments = select_payments(transactions, config.site_url, from_date, to_date)

    if args.format == "json":
        report = build_json_report(
            payments,
            config.site_url,
            btc_price,
            by_essay=args.by_essay,
            sort_by=args.sort,
            top=args.top,
            time_series=args.time_series,
            compare=args.compare,
            from_date=from_date,
            to_date=to_date,
        )
        print(json.dumps(report, indent=2))
    elif args.format == "csv":
        print(format_csv(payments, config.site_url), end="")
    else:
        await _print_text_report(args, config, payments, btc_price, from_date, to_date)

    if args.export:
        count = export_csv(payments, config.site_url, args.export)
        if not quiet:
            print(f"\nExported {count} payments to {args.export}")
    return 0


async def _print_text_report(
    args: argparse.Namespace,
    config: V4VConfig,
    payments: list[Transaction],
    btc_price: float | None,
    from_date: datetime | None,
    to_date: datetime | None,
) -> None:
    print(render_summary(build_summary(payments, config.site_url, btc_price), from_date, to_date))

    if args.by_essay:
        titles = await TitleSource(
            config.feed_url, TitlesCache(config.titles_cache_path, config.titles_cache_ttl)
        ).fetch_titles()
        by_essay = aggregate_by_essay(payments, config.site_url, args.sort)
        print(render_by_essay(by_essay, args.sort, args.top, btc_price, titles))

    granularity = args.time_series or MONTHLY
    if args.time_series:
        print(render_time_series(aggregate_by_period(payments, granularity), granularity, btc_price))
    if args.compare:
        comparison = compare_periods(aggregate_by_period(payments, granularity))
        print(render_comparison(comparison, btc_price))


def _cache(args: argparse.Namespace, config: V4VConfig) -> int:
    transactions = TransactionCache(config.cache_path)
    titles = TitlesCache(config.titles_cache_path, config.titles_cache_ttl)

    if args.clear:
        print("Transaction cache cleared." if transactions.clear() else "No transaction cache to clear.")
        if titles.clear():
            print("Titles cache cleared.")
        return 0

    stats = transactions.stats()
    if stats is None:
        print("No transaction cache found.")
    else:
        print("\nV4V Cache Statistics")
        print("====================")
        print(f"File: {stats.path}")
        print(f"Size: {stats.size_kb} KB")
        print(f"Last updated: {stats.updated or 'unknown'}")
        print(f"Total transactions: {stats.count}")
        if stats.oldest and stats.newest:
            print(f"Date range: {iso_date(stats.oldest)} to {iso_date(stats.newest)}")

    info = titles.info()
    if info is not None:
        print(f"\nTitles cache: {info.count} titles")
        print(f"Fetched: {info.fetched}")
    return 0


async def _test_connection(config: V4VConfig) -> tuple[bool, str]:
    try:
        wallet = create_wallet(config, timeout=STATUS_TIMEOUT)
    except (ConfigurationError, ValueError) as e:
        return False, str(e)

    async with wallet:
        start = time.perf_counter()
        try:
            await wallet.list_transactions(type="incoming", limit=1)
        except (WalletError, OSError, ImportError) as e:
            logger.debug("NWC connection failed: %s", e)
            return False, str(e)
        latency_ms = round((time.perf_counter() - start) * 1000)
    logger.debug("NWC connection successful (%dms)", latency_ms)
    return True, f"Connected ({latency_ms}ms)"


async def _status(args: argparse.Namespace, config: V4VConfig) -> int:
    def mark(ok: bool) -> str:
        return "ok" if ok else "--"

    print("\nV4V Analytics Status\n")
    print("Configuration")
    print("-" * 40)
    env_found = Path(".env").exists()
    print(f"  .env file:        [{mark(env_found)}] {'Found' if env_found else 'Not found'}")
    has_nwc = bool(config.nwc_connection_string)
    print(f"  NWC connection:   [{mark(has_nwc)}] {'Configured' if has_nwc else 'Missing'}")
    print(f"  Site URL:         [{mark(bool(config.site_url))}] {config.site_url or 'Missing'}")
    if config.rss_url:
        print(f"  RSS URL:          {config.rss_url}")

    print("\nCache")
    print("-" * 40)
    stats = TransactionCache(config.cache_path).stats()
    if stats is None:
        print("  Transactions:     No cache")
    else:
        print(f"  Transactions:     {stats.count} cached")
        print(f"  Cache size:       {stats.size_kb} KB")
        print(f"  Last updated:     {stats.updated or 'Unknown'}")
        if stats.oldest and stats.newest:
            print(f"  Date range:       {iso_date(stats.oldest)} to {iso_date(stats.newest)}")
    info = TitlesCache(config.titles_cache_path, config.titles_cache_ttl).info()
    if info is not None:
        print(f"  Essay titles:     {info.count} cached")

    print("\nConnection Test")
    print("-" * 40)
    if not has_nwc:
        print("  NWC:              [--] Not configured\n")
        return 0

    ok, detail = await _test_connection(config)
    print(f"  NWC:              [{mark(ok)}] {detail}")
    if not ok and "timeout" in detail:
        print("\n  Troubleshooting:")
        print("    - Is your wallet service running?")
        print("    - Check your internet connection")
    print()
    return 0


def _dashboard(args: argparse.Namespace, config: V4VConfig) -> int:
    import uvicorn

    from v4v_analytics.dashboard import create_app

    if not args.mock:
        try:
            config.validate()
        except ConfigurationError as e:
            return _error(str(e))

    app = create_app(config, mock_path=args.mock, static_dir=args.static)
    print(f"V4V Dashboard running at http://{args.host}:{args.port}")
    print("Press Ctrl+C to stop")
    uvicorn.run(app, host=args.host, port=args.port, log_level="warning")
    return 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    args = _build_parser().parse_args(argv)

    debug = args.debug or os.environ.get("DEBUG", "").lower() in ("1", "true")
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    config = V4VConfig.from_env()

    if args.command == "report":
        return asyncio.run(_report(args, config))
    if args.command == "cache":
        return _cache(args, config)
    if args.command == "status":
        return asyncio.run(_status(args, config))
    return _dashboard(args, config)


if __name__ == "__main__":
    sys.exit(main())
