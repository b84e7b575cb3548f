"""Snapshot caches for wallet transactions and RSS titles.

Both caches are best-effort: every I/O or parse failure is logged and
degrades to "no cache". The system stays correct (only slower) without them.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from v4v_analytics.models import Transaction

logger = logging.getLogger(__name__)

DEFAULT_TITLES_TTL = 24 * 60 * 60.0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    """Replace ``path`` with ``payload`` via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


@dataclass(frozen=True)
class CacheStats:
    """Summary of the transaction snapshot on disk."""

    path: Path
    size_bytes: int
    updated: str | None
    count: int
    oldest: int | None
    newest: int | None

    @property
    def size_kb(self) -> str:
        return f"{self.size_bytes / 1024:.1f}"


@dataclass(frozen=True)
class TitlesCacheInfo:
    count: int
    fetched: str | None


class TransactionCache:
    """Flat JSON snapshot of every known transaction.

    Layout: ``{"updated": "<ISO-8601>", "transactions": [...]}``. The file is
    rewritten in full on every save; it is never appended to. No locking:
    only one fetch may use a given path at a time.
    """

    def __init__(self, path: str | Path, log: logging.Logger | None = None):
        self.path = Path(path)
        self._log = log or logger

    def _read(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("snapshot is not a JSON object")
        return data

    def load(self) -> list[Transaction]:
        """Cached transactions, or [] when the snapshot is absent or unusable."""
        try:
            data = self._read()
        except (json.JSONDecodeError, OSError, UnicodeDecodeError, ValueError) as e:
            self._log.warning("Failed to load transaction cache %s: %s", self.path, e)
            return []
        if data is None:
            return []

        raw = data.get("transactions") or []
        if not isinstance(raw, list):
            self._log.warning("Transaction cache %s has no transaction list", self.path)
            return []

        transactions = []
        for entry in raw:
            try:
                transactions.append(Transaction.from_dict(entry))
            except ValueError as e:
                self._log.warning("Skipping cached transaction: %s", e)
        self._log.debug("Loaded %d cached transactions", len(transactions))
        return transactions

    def save(self, transactions: list[Transaction]) -> None:
        """Overwrite the snapshot. Failures are logged, never raised."""
        payload = {
            "updated": _now_iso(),
            "transactions": [tx.to_dict() for tx in transactions],
        }
        try:
            _write_json_atomic(self.path, payload)
        except (OSError, TypeError, ValueError) as e:
            self._log.warning("Failed to save transaction cache %s: %s", self.path, e)
            return
        self._log.debug("Saved %d transactions to %s", len(transactions), self.path)

    def clear(self) -> bool:
        """Delete the snapshot. Returns True if a file was removed."""
        try:
            if self.path.exists():
                self.path.unlink()
                self._log.debug("Cleared transaction cache")
                return True
        except OSError as e:
            self._log.warning("Failed to clear transaction cache %s: %s", self.path, e)
        return False

    def stats(self) -> CacheStats | None:
        try:
            data = self._read()
            if data is None:
                return None
            size = self.path.stat().st_size
        except (json.JSONDecodeError, OSError, UnicodeDecodeError, ValueError) as e:
            self._log.warning("Failed to read transaction cache stats %s: %s", self.path, e)
            return None

        raw = data.get("transactions") or []
        if not isinstance(raw, list):
            self._log.warning("Transaction cache %s has no transaction list", self.path)
            return None
        timestamps = [
            ts
            for ts in (
                (entry.get("settled_at") or entry.get("created_at"))
                for entry in raw
                if isinstance(entry, dict)
            )
            if isinstance(ts, int) and not isinstance(ts, bool) and ts
        ]
        return CacheStats(
            path=self.path,
            size_bytes=size,
            updated=data.get("updated"),
            count=len(raw),
            oldest=min(timestamps) if timestamps else None,
            newest=max(timestamps) if timestamps else None,
        )


class TitlesCache:
    """Slug -> title map fetched from the site's RSS feed, with a TTL.

    Layout: ``{"fetched": "<ISO-8601>", "titles": {slug: title}}``.
    """

    def __init__(
        self,
        path: str | Path,
        ttl: float = DEFAULT_TITLES_TTL,
        log: logging.Logger | None = None,
    ):
        self.path = Path(path)
        self.ttl = ttl
        self._log = log or logger

    def _read(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("titles cache is not a JSON object")
        return data

    def is_stale(self, fetched: object) -> bool:
        """True when `fetched` is missing, unparseable, or older than the TTL."""
        if not fetched or not isinstance(fetched, str):
            return True
        try:
            age = datetime.now(timezone.utc) - _parse_iso(fetched)
        except ValueError:
            return True
        return age.total_seconds() >= self.ttl

    def load(self, allow_stale: bool = False) -> dict[str, str] | None:
        """Cached titles, or None when missing, unreadable, or expired.

        Args:
            allow_stale: Return expired titles too (fallback after a failed refresh).
        """
        try:
            data = self._read()
            if data is None:
                return None
            titles = data.get("titles") or {}
            if not isinstance(titles, dict):
                raise ValueError("titles is not a mapping")
            if not allow_stale and self.is_stale(data.get("fetched")):
                return None
        except (json.JSONDecodeError, OSError, UnicodeDecodeError, ValueError) as e:
            self._log.warning("Failed to load titles cache %s: %s", self.path, e)
            return None

        self._log.debug("Using cached titles (%d)", len(titles))
        return {str(k): str(v) for k, v in titles.items()}

    def save(self, titles: dict[str, str]) -> None:
        try:
            _write_json_atomic(self.path, {"fetched": _now_iso(), "titles": titles})
        except (OSError, TypeError, ValueError) as e:
            self._log.warning("Failed to save titles cache %s: %s", self.path, e)
            return
        self._log.debug("Saved %d titles to cache", len(titles))

    def clear(self) -> bool:
        try:
            if self.path.exists():
                self.path.unlink()
                self._log.debug("Cleared titles cache")
                return True
        except OSError as e:
            self._log.warning("Failed to clear titles cache %s: %s", self.path, e)
        return False

    def info(self) -> TitlesCacheInfo | None:
        try:
            data = self._read()
        except (json.JSONDecodeError, OSError, UnicodeDecodeError, ValueError) as e:
            self._log.warning("Failed to read titles cache %s: %s", self.path, e)
            return None
        if data is None:
            return None
        titles = data.get("titles")
        fetched = data.get("fetched")
        return TitlesCacheInfo(
            count=len(titles) if isinstance(titles, dict) else 0,
            fetched=fetched if isinstance(fetched, str) else None,
        )
