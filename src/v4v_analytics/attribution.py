"""Attribute payment memos to content slugs.

The payment proxy writes the page identifier into the invoice description,
e.g. ``example.com/my-essay``. A memo that names only the site
(``example.com``) is a general (footer) payment.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from functools import lru_cache

from v4v_analytics.models import Transaction
from v4v_analytics.units import to_datetime

GENERAL_SLUG = "(footer/general)"


@lru_cache(maxsize=32)
def _slug_pattern(site_url: str) -> re.Pattern[str]:
    # Site URL matched literally, slug restricted to URL-safe lowercase
    return re.compile(re.escape(site_url) + r"/(?P<slug>[a-z0-9-]+)")


def parse_essay_slug(description: str | None, site_url: str | None) -> str | None:
    """Extract the content slug from a payment description.

    Args:
        description: Invoice memo, may be None.
        site_url: Site identifier such as "example.com".

    Returns:
        The first slug following ``site_url/``, or None for general payments,
        foreign memos and missing descriptions.
    """
    if not description or not site_url:
        return None
    match = _slug_pattern(site_url).search(description)
    return match.group("slug") if match else None


def filter_v4v_payments(
    transactions: Iterable[Transaction], site_url: str | None
) -> list[Transaction]:
    """Keep payments whose description mentions the site anywhere."""
    if not site_url:
        return []
    return [tx for tx in transactions if tx.description and site_url in tx.description]


def filter_by_date_range(
    transactions: Iterable[Transaction],
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> list[Transaction]:
    """Keep transactions whose effective time lies within [from_date, to_date].

    Both bounds are optional; naive datetimes are taken as UTC. Transactions
    without any timestamp are dropped.
    """
    if from_date is not None and from_date.tzinfo is None:
        from_date = from_date.replace(tzinfo=timezone.utc)
    if to_date is not None and to_date.tzinfo is None:
        to_date = to_date.replace(tzinfo=timezone.utc)

    result = []
    for tx in transactions:
        if not tx.timestamp:
            continue
        when = to_datetime(tx.timestamp)
        if from_date is not None and when < from_date:
            continue
        if to_date is not None and when > to_date:
            continue
        result.append(tx)
    return result


def display_name(slug: str, titles: Mapping[str, str] | None = None) -> str:
    """Human title for a slug, falling back to the slug itself."""
    if slug == GENERAL_SLUG or not titles:
        return slug
    return titles.get(f"essays/{slug}") or titles.get(slug) or slug
