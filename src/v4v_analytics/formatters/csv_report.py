"""CSV export of individual payments."""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from pathlib import Path

from v4v_analytics.attribution import parse_essay_slug
from v4v_analytics.models import Transaction
from v4v_analytics.units import to_datetime

CSV_HEADERS = ("date", "amount_sats", "essay_slug", "description")


def format_csv(transactions: Iterable[Transaction], site_url: str | None) -> str:
    """One row per payment: ISO timestamp, sats, slug (blank for general), memo."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for tx in transactions:
        writer.writerow(
            (
                to_datetime(tx.timestamp).isoformat() if tx.timestamp else "",
                tx.sats,
                parse_essay_slug(tx.description, site_url) or "",
                tx.description or "",
            )
        )
    return buffer.getvalue()


def export_csv(
    transactions: list[Transaction], site_url: str | None, path: str | Path
) -> int:
    """Write the CSV to ``path``. Returns the number of rows written."""
    Path(path).write_text(format_csv(transactions, site_url), encoding="utf-8")
    return len(transactions)
