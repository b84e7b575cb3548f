"""Plain-text report sections for the terminal."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

from v4v_analytics.aggregation import EssayBucket, PeriodBucket, PeriodComparison, Summary
from v4v_analytics.attribution import display_name
from v4v_analytics.units import format_number, format_usd, sats_to_usd

_SORT_LABELS = {"sats": "by sats", "count": "by count", "recent": "by recent"}


def _date_label(value: datetime | None, default: str) -> str:
    return value.date().isoformat() if value else default


def _signed_percent(delta: int, percent: float | None) -> str:
    sign = "+" if delta >= 0 else ""
    return f"{sign}{percent:.1f}%" if percent is not None else f"{sign}N/A%"


def render_summary(
    summary: Summary,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> str:
    lines = ["", "V4V Payment Report", "=================="]
    if from_date or to_date:
        lines.append(
            f"Period: {_date_label(from_date, 'beginning')} to {_date_label(to_date, 'now')}"
        )
    else:
        lines.append("Period: All time")

    lines.append(
        f"Total received: {format_number(summary.total_sats)} sats"
        f"{format_usd(summary.total_usd)} ({format_number(summary.total_payments)} payments)"
    )
    lines.append(
        f"  Essays:  {format_number(summary.essays.sats):>10} sats"
        f"{format_usd(summary.essays.usd)} ({summary.essays.payments} payments)"
    )
    lines.append(
        f"  General: {format_number(summary.general.sats):>10} sats"
        f"{format_usd(summary.general.usd)} ({summary.general.payments} payments)"
    )
    lines.append(f"Average: {format_number(summary.avg_sats)} sats{format_usd(summary.avg_usd)}")
    if summary.btc_price:
        lines.append(f"BTC price: ${format_number(summary.btc_price)}")
    return "\n".join(lines)


def render_by_essay(
    by_essay: Mapping[str, EssayBucket],
    sort_by: str = "sats",
    top: int | None = None,
    btc_price: float | None = None,
    titles: Mapping[str, str] | None = None,
) -> str:
    buckets = list(by_essay.values())
    if top:
        buckets = buckets[:top]

    lines = ["", f"By Essay ({_SORT_LABELS.get(sort_by, 'by sats')}):"]
    for bucket in buckets:
        name = display_name(bucket.slug, titles)[:40]
        usd = format_usd(sats_to_usd(bucket.sats, btc_price))
        lines.append(
            f"  {name:<40} {format_number(bucket.sats):>10} sats{usd} ({bucket.count} payments)"
        )
    if top and len(by_essay) > top:
        lines.append(f"  ... and {len(by_essay) - top} more")
    return "\n".join(lines)


def render_time_series(
    by_period: Mapping[str, PeriodBucket],
    granularity: str,
    btc_price: float | None = None,
) -> str:
    lines = ["", f"{granularity.capitalize()} Trend:"]
    for key, bucket in by_period.items():
        usd = format_usd(sats_to_usd(bucket.sats, btc_price))
        lines.append(f"  {key}  {format_number(bucket.sats):>10} sats{usd} ({bucket.count} payments)")
    return "\n".join(lines)


def render_comparison(comparison: PeriodComparison, btc_price: float | None = None) -> str:
    if comparison.insufficient_data:
        return "\nComparison: Not enough data (need at least 2 periods)"

    current, previous = comparison.current, comparison.previous
    lines = [
        "",
        f"Comparison ({current.period} vs {previous.period}):",
        f"  Sats:     {format_number(current.sats):>10} vs {format_number(previous.sats):>10}"
        f"  ({_signed_percent(comparison.sats_delta, comparison.sats_percent)})",
        f"  Payments: {format_number(current.count):>10} vs {format_number(previous.count):>10}"
        f"  ({_signed_percent(comparison.count_delta, comparison.count_percent)})",
    ]
    if btc_price:
        current_usd = sats_to_usd(current.sats, btc_price)
        previous_usd = sats_to_usd(previous.sats, btc_price)
        lines.append(f"  USD:      ${current_usd:>9.2f} vs ${previous_usd:>9.2f}")
    return "\n".join(lines)
