"""Fetch, filter and summarize V4V payments in one call."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from v4v_analytics.aggregation import Summary, build_summary
from v4v_analytics.attribution import filter_by_date_range, filter_v4v_payments
from v4v_analytics.cache import TransactionCache
from v4v_analytics.config import V4VConfig
from v4v_analytics.fetch import FetchSettings, TransactionFetcher
from v4v_analytics.models import Transaction
from v4v_analytics.price import fetch_btc_price
from v4v_analytics.wallets import WalletBase, create_wallet

logger = logging.getLogger(__name__)

PriceFetcher = Callable[[], Awaitable[float | None]]


@dataclass
class V4VData:
    transactions: list[Transaction]
    summary: Summary
    btc_price: float | None = None
    warnings: list[str] = field(default_factory=list)


def select_payments(
    transactions: Iterable[Transaction],
    site_url: str | None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> list[Transaction]:
    """V4V payments for the site, optionally limited to a date range."""
    payments = filter_v4v_payments(transactions, site_url)
    if from_date is not None or to_date is not None:
        payments = filter_by_date_range(payments, from_date, to_date)
    return payments


async def fetch_v4v_data(
    config: V4VConfig,
    *,
    wallet: WalletBase | None = None,
    usd: bool = False,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    price_fetcher: PriceFetcher = fetch_btc_price,
) -> V4VData:
    """Sync the cache from the wallet and summarize the site's payments.

    The wallet (built from config when not given) is closed before returning,
    whether or not the fetch succeeds.

    Raises:
        ConfigurationError: If no wallet is given and none is configured.
        WalletUnreachableError: If the wallet never answers and nothing is cached.
    """
    wallet = wallet or create_wallet(config)
    async with wallet:
        btc_price = await price_fetcher() if usd else None
        fetcher = TransactionFetcher(
            wallet, TransactionCache(config.cache_path), FetchSettings.from_config(config)
        )
        warnings: list[str] = []
        transactions: list[Transaction] = []
        async for progress in fetcher.iter_fetch():
            if progress.done:
                transactions = progress.transactions
                warnings = progress.warnings

    payments = select_payments(transactions, config.site_url, from_date, to_date)
    logger.debug("%d of %d transactions are V4V payments", len(payments), len(transactions))
    return V4VData(
        transactions=payments,
        summary=build_summary(payments, config.site_url, btc_price),
        btc_price=btc_price,
        warnings=warnings,
    )
