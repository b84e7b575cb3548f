"""Machine-readable report."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from v4v_analytics.aggregation import (
    aggregate_by_essay,
    aggregate_by_period,
    build_summary,
    compare_periods,
)
from v4v_analytics.models import Transaction
from v4v_analytics.units import MONTHLY, sats_to_usd


def build_json_report(
    transactions: Sequence[Transaction],
    site_url: str | None,
    btc_price: float | None = None,
    *,
    by_essay: bool = False,
    sort_by: str = "sats",
    top: int | None = None,
    time_series: str | None = None,
    compare: bool = False,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> dict[str, Any]:
    """Build the JSON report dict.

    Args:
        transactions: V4V payments to report on.
        site_url: Site identifier for slug attribution.
        btc_price: Adds USD fields when set.
        by_essay: Include the per-slug breakdown.
        sort_by: Breakdown order ("sats", "count", "recent").
        top: Limit the breakdown to the first N slugs.
        time_series: Include a "daily" / "weekly" / "monthly" series.
        compare: Include current-vs-previous period (of ``time_series``,
            monthly by default) when at least two periods exist.
        from_date: Reported period start.
        to_date: Reported period end.
    """
    summary = build_summary(transactions, site_url, btc_price)
    report: dict[str, Any] = {
        "summary": {
            "total_sats": summary.total_sats,
            "total_payments": summary.total_payments,
            "average_sats": summary.avg_sats,
            "essays": {"sats": summary.essays.sats, "payments": summary.essays.payments},
            "general": {"sats": summary.general.sats, "payments": summary.general.payments},
            "period": {
                "from": from_date.date().isoformat() if from_date else None,
                "to": to_date.date().isoformat() if to_date else None,
            },
        }
    }

    if btc_price:
        report["summary"]["btc_price"] = btc_price
        report["summary"]["total_usd"] = summary.total_usd
        report["summary"]["essays"]["usd"] = summary.essays.usd
        report["summary"]["general"]["usd"] = summary.general.usd

    if by_essay:
        buckets = list(aggregate_by_essay(transactions, site_url, sort_by).values())
        if top:
            buckets = buckets[:top]
        report["by_essay"] = []
        for bucket in buckets:
            entry: dict[str, Any] = {
                "slug": bucket.slug,
                "sats": bucket.sats,
                "payments": bucket.count,
            }
            if btc_price:
                entry["usd"] = sats_to_usd(bucket.sats, btc_price)
            report["by_essay"].append(entry)

    granularity = time_series or MONTHLY
    by_period = aggregate_by_period(transactions, granularity) if time_series or compare else {}

    if time_series:
        data = []
        for key, bucket in by_period.items():
            point: dict[str, Any] = {"date": key, "sats": bucket.sats, "payments": bucket.count}
            if btc_price:
                point["usd"] = sats_to_usd(bucket.sats, btc_price)
            data.append(point)
        report["time_series"] = {"period": granularity, "data": data}

    if compare:
        comparison = compare_periods(by_period)
        if not comparison.insufficient_data:
            report["comparison"] = {
                "current": {
                    "period": comparison.current.period,
                    "sats": comparison.current.sats,
                    "payments": comparison.current.count,
                },
                "previous": {
                    "period": comparison.previous.period,
                    "sats": comparison.previous.sats,
                    "payments": comparison.previous.count,
                },
                "delta": {
                    "sats": comparison.sats_delta,
                    "sats_percent": comparison.sats_percent,
                    "payments": comparison.count_delta,
                    "payments_percent": comparison.count_percent,
                },
            }

    return report
