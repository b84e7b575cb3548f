"""Summaries and rollups over V4V payments.

Every function here is pure: it takes an already filtered transaction list,
recomputes from scratch and accepts an empty list.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass
from decimal import Decimal
from operator import attrgetter
from typing import Any

from v4v_analytics.attribution import GENERAL_SLUG, parse_essay_slug
from v4v_analytics.models import Transaction
from v4v_analytics.units import MONTHLY, period_key, round_half_up, sats_to_usd

_SORT_KEYS = {
    "sats": attrgetter("sats"),
    "count": attrgetter("count"),
    "recent": attrgetter("last_payment"),
}
SORT_MODES = tuple(_SORT_KEYS)


@dataclass(frozen=True)
class SplitTotals:
    sats: int
    payments: int
    usd: float | None = None


@dataclass(frozen=True)
class Summary:
    """Totals for a set of payments, with optional USD values."""

    total_sats: int
    total_payments: int
    avg_sats: int
    essays: SplitTotals
    general: SplitTotals
    total_usd: float | None = None
    avg_usd: float | None = None
    btc_price: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class EssayBucket:
    """Payments attributed to one slug (or the general bucket)."""

    slug: str
    sats: int = 0
    count: int = 0
    last_payment: int = 0


@dataclass
class PeriodBucket:
    """Payments within one day / week / month."""

    period: str
    sats: int = 0
    count: int = 0


@dataclass(frozen=True)
class PeriodComparison:
    """Most recent period against the one before it.

    ``insufficient_data`` is True when fewer than two periods exist; the
    deltas are then all None.
    """

    current: PeriodBucket | None = None
    previous: PeriodBucket | None = None

    @property
    def insufficient_data(self) -> bool:
        return self.current is None or self.previous is None

    @property
    def sats_delta(self) -> int | None:
        if self.insufficient_data:
            return None
        return self.current.sats - self.previous.sats

    @property
    def count_delta(self) -> int | None:
        if self.insufficient_data:
            return None
        return self.current.count - self.previous.count

    @property
    def sats_percent(self) -> float | None:
        return _percent_change(self.sats_delta, self.previous.sats if self.previous else 0)

    @property
    def count_percent(self) -> float | None:
        return _percent_change(self.count_delta, self.previous.count if self.previous else 0)


def _percent_change(delta: int | None, previous: int) -> float | None:
    if delta is None or previous == 0:
        return None
    return delta / previous * 100


def build_summary(
    transactions: Sequence[Transaction],
    site_url: str | None,
    btc_price: float | None = None,
) -> Summary:
    """Totals, average and essay/general split.

    Args:
        transactions: V4V payments (already filtered).
        site_url: Site identifier used to attribute slugs.
        btc_price: BTC/USD price; USD fields are None without it.
    """
    total_sats = sum(tx.sats for tx in transactions)
    count = len(transactions)
    avg_sats = round_half_up(Decimal(total_sats) / count) if count else 0

    essay_sats = essay_count = 0
    for tx in transactions:
        if parse_essay_slug(tx.description, site_url):
            essay_sats += tx.sats
            essay_count += 1
    general_sats = total_sats - essay_sats

    return Summary(
        total_sats=total_sats,
        total_payments=count,
        avg_sats=avg_sats,
        essays=SplitTotals(essay_sats, essay_count, sats_to_usd(essay_sats, btc_price)),
        general=SplitTotals(
            general_sats, count - essay_count, sats_to_usd(general_sats, btc_price)
        ),
        total_usd=sats_to_usd(total_sats, btc_price),
        avg_usd=sats_to_usd(avg_sats, btc_price),
        btc_price=btc_price,
    )


def aggregate_by_essay(
    transactions: Iterable[Transaction],
    site_url: str | None,
    sort_by: str = "sats",
) -> dict[str, EssayBucket]:
    """Group payments by slug, general payments under GENERAL_SLUG.

    Args:
        sort_by: "sats", "count" or "recent" (descending); anything else
            sorts by sats. Ties keep first-seen order.
    """
    buckets: dict[str, EssayBucket] = {}
    for tx in transactions:
        slug = parse_essay_slug(tx.description, site_url) or GENERAL_SLUG
        bucket = buckets.get(slug)
        if bucket is None:
            bucket = buckets[slug] = EssayBucket(slug)
        bucket.sats += tx.sats
        bucket.count += 1
        if tx.timestamp and tx.timestamp > bucket.last_payment:
            bucket.last_payment = tx.timestamp

    key = _SORT_KEYS.get(sort_by, _SORT_KEYS["sats"])
    ordered = sorted(buckets.values(), key=key, reverse=True)
    return {b.slug: b for b in ordered}


def aggregate_by_period(
    transactions: Iterable[Transaction], granularity: str = MONTHLY
) -> dict[str, PeriodBucket]:
    """Group payments into daily, weekly (Monday start) or monthly buckets.

    Payments without a timestamp are skipped. Newest period first.
    """
    buckets: dict[str, PeriodBucket] = {}
    for tx in transactions:
        if not tx.timestamp:
            continue
        key = period_key(tx.timestamp, granularity)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = PeriodBucket(key)
        bucket.sats += tx.sats
        bucket.count += 1

    return {key: buckets[key] for key in sorted(buckets, reverse=True)}


def compare_periods(by_period: Mapping[str, PeriodBucket]) -> PeriodComparison:
    """Compare the two most recent buckets of an aggregate_by_period() result."""
    periods = list(by_period.values())
    if len(periods) < 2:
        return PeriodComparison(current=periods[0] if periods else None)
    return PeriodComparison(current=periods[0], previous=periods[1])


def simplify_transaction(tx: Transaction, site_url: str | None) -> dict[str, Any]:
    """Compact transaction view for the dashboard."""
    return {
        "amount": tx.sats,
        "timestamp": tx.timestamp,
        "description": tx.description,
        "essay": parse_essay_slug(tx.description, site_url) or GENERAL_SLUG,
    }
