"""v4v-analytics: value-for-value Lightning payment analytics.

Pulls incoming payments from a Nostr Wallet Connect wallet, keeps a local
snapshot so later runs only fetch what is new, attributes each payment to the
essay named in its memo and reports totals, per-essay and per-period rollups.

Usage:
    import asyncio
    from v4v_analytics import V4VConfig, fetch_v4v_data

    config = V4VConfig.from_env()
    config.validate()
    data = asyncio.run(fetch_v4v_data(config, usd=True))
    print(data.summary.total_sats)
"""

from v4v_analytics.aggregation import (
    EssayBucket,
    PeriodBucket,
    PeriodComparison,
    Summary,
    aggregate_by_essay,
    aggregate_by_period,
    build_summary,
    compare_periods,
)
from v4v_analytics.attribution import (
    GENERAL_SLUG,
    filter_by_date_range,
    filter_v4v_payments,
    parse_essay_slug,
)
from v4v_analytics.cache import TitlesCache, TransactionCache
from v4v_analytics.config import V4VConfig, parse_duration
from v4v_analytics.data import V4VData, fetch_v4v_data
from v4v_analytics.exceptions import (
    ConfigurationError,
    V4VError,
    WalletError,
    WalletTimeoutError,
    WalletUnreachableError,
)
from v4v_analytics.fetch import FetchProgress, FetchSettings, TransactionFetcher
from v4v_analytics.models import Transaction
from v4v_analytics.wallets import NwcWallet, WalletBase, create_wallet

__version__ = "0.1.0"

__all__ = [
    # Data
    "Transaction",
    "V4VData",
    "fetch_v4v_data",
    # Config
    "V4VConfig",
    "parse_duration",
    # Fetch
    "TransactionFetcher",
    "FetchSettings",
    "FetchProgress",
    # Cache
    "TransactionCache",
    "TitlesCache",
    # Wallets
    "WalletBase",
    "NwcWallet",
    "create_wallet",
    # Attribution
    "GENERAL_SLUG",
    "parse_essay_slug",
    "filter_v4v_payments",
    "filter_by_date_range",
    # Aggregation
    "Summary",
    "EssayBucket",
    "PeriodBucket",
    "PeriodComparison",
    "build_summary",
    "aggregate_by_essay",
    "aggregate_by_period",
    "compare_periods",
    # Exceptions
    "V4VError",
    "ConfigurationError",
    "WalletError",
    "WalletTimeoutError",
    "WalletUnreachableError",
]
