"""Unit conversion and period helpers.

Wallet amounts arrive in millisatoshis; reports work in whole satoshis.
1 BTC = 100,000,000 sats = 100,000,000,000 msats.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

MILLISATS_PER_SAT = 1_000
SATS_PER_BTC = 100_000_000

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
GRANULARITIES = (DAILY, WEEKLY, MONTHLY)


def msats_to_sats(msats: int) -> int:
    """Whole satoshis in a millisatoshi amount (floored)."""
    return int(msats) // MILLISATS_PER_SAT


def sats_to_usd(sats: int, btc_price: float | None) -> float | None:
    """Convert sats to USD at the given BTC price, or None without a price."""
    if not btc_price:
        return None
    return sats * btc_price / SATS_PER_BTC


def round_half_up(value: float | Decimal) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_usd(usd: float | None) -> str:
    if usd is None:
        return ""
    if usd < 0.01:
        return " (~$0.01)"
    return f" (~${usd:.2f})"


def format_number(num: float) -> str:
    return f"{num:,}"


def to_datetime(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def iso_date(timestamp: int) -> str:
    return to_datetime(timestamp).date().isoformat()


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def period_key(timestamp: int, granularity: str = MONTHLY) -> str:
    """Bucket key for a Unix timestamp (UTC).

    daily   -> "2024-01-15"
    weekly  -> date of that week's Monday, "2024-01-15"
    monthly -> "2024-01" (also used for unknown granularities)

    All keys are zero-padded, so lexicographic order is chronological.
    """
    day = to_datetime(timestamp).date()
    if granularity == DAILY:
        return day.isoformat()
    if granularity == WEEKLY:
        return week_start(day).isoformat()
    return f"{day.year:04d}-{day.month:02d}"
