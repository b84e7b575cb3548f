"""Incremental transaction sync from the wallet into the local snapshot.

The wallet has no "fetch since" primitive, so the fetcher pages backward from
the newest payment until it sees something already cached, then merges the
new records ahead of the cache, dedupes by payment_hash and rewrites the
snapshot.

Progress is a stream rather than a callback:

    async with create_wallet(config) as wallet:
        fetcher = TransactionFetcher(wallet, TransactionCache(config.cache_path))
        async for progress in fetcher.iter_fetch():
            if progress.done:
                transactions = progress.transactions
            else:
                print(f"{progress.new_count} new")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from v4v_analytics.cache import TransactionCache
from v4v_analytics.exceptions import WalletError, WalletUnreachableError
from v4v_analytics.models import Transaction
from v4v_analytics.wallets import WalletBase

if TYPE_CHECKING:
    from v4v_analytics.config import V4VConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchSettings:
    """Paging and retry knobs for TransactionFetcher.

    Args:
        batch_size: Transactions requested per page.
        batch_delay: Seconds to wait between pages.
        max_batches: Hard cap on pages per fetch.
        max_retries: Attempts per page on transient errors.
        retry_base_delay: Backoff unit; attempt n waits n * this many seconds.
    """

    batch_size: int = 10
    batch_delay: float = 0.3
    max_batches: int = 20
    max_retries: int = 2
    retry_base_delay: float = 2.0

    @classmethod
    def from_config(cls, config: V4VConfig) -> FetchSettings:
        return cls(
            batch_size=config.batch_size,
            batch_delay=config.batch_delay,
            max_batches=config.max_batches,
            max_retries=config.max_retries,
        )


@dataclass(frozen=True)
class FetchProgress:
    """One event from TransactionFetcher.iter_fetch().

    Intermediate events carry the running count of new transactions; the
    final event (``done=True``) carries the merged list and any warnings.
    """

    new_count: int
    batches: int
    done: bool = False
    transactions: list[Transaction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _effective_time(tx: Transaction) -> int:
    return tx.timestamp or 0


def _is_transient(error: Exception) -> bool:
    return isinstance(error, WalletError) and error.is_transient


def merge_transactions(*sources: Iterable[Transaction]) -> list[Transaction]:
    """Concatenate sources, keep the first copy of each payment_hash, newest first."""
    seen: set[str] = set()
    merged: list[Transaction] = []
    for source in sources:
        for tx in source:
            if tx.payment_hash not in seen:
                seen.add(tx.payment_hash)
                merged.append(tx)
    # sorted() is stable, so equal timestamps keep merge order
    return sorted(merged, key=_effective_time, reverse=True)


class TransactionFetcher:
    """Cache-aware incoming-transaction fetch.

    The fetcher borrows the wallet; the caller owns it and must close it,
    typically with ``async with wallet:``.
    """

    def __init__(
        self,
        wallet: WalletBase,
        cache: TransactionCache,
        settings: FetchSettings | None = None,
        *,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        log: logging.Logger | None = None,
    ):
        self._wallet = wallet
        self._cache = cache
        self._settings = settings or FetchSettings()
        self._sleep = sleep
        self._log = log or logger

    async def fetch(self) -> list[Transaction]:
        """Run the whole sync and return the merged, newest-first list."""
        async for progress in self.iter_fetch():
            if progress.done:
                return progress.transactions
        return []

    def _log_retry(self, retry_state: RetryCallState) -> None:
        self._log.debug(
            "Transient wallet error (%s); retry %d in %.1fs",
            retry_state.outcome.exception(),
            retry_state.attempt_number,
            retry_state.next_action.sleep,
        )

    async def _fetch_page(
        self, offset: int, have_data: bool, warnings: list[str]
    ) -> tuple[list[Transaction], int] | None:
        """One page with retry, as (transactions, raw record count).

        Returns None to stop paging after retries ran out with data in hand.
        """
        settings = self._settings
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, settings.max_retries)),
            wait=wait_incrementing(
                start=settings.retry_base_delay, increment=settings.retry_base_delay
            ),
            retry=retry_if_exception(_is_transient),
            sleep=self._sleep,
            before_sleep=self._log_retry,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._wallet.list_transactions(
                        type="incoming", limit=settings.batch_size, offset=offset
                    )
        except RetryError as e:
            attempts = e.last_attempt.attempt_number
            cause = e.last_attempt.exception()
            if not have_data:
                raise WalletUnreachableError(attempts, cause) from cause
            message = f"Wallet timeout after {attempts} attempts; using data already available"
            self._log.warning("%s (%s)", message, cause)
            warnings.append(message)
            return None

        raw = (response or {}).get("transactions") or []
        page = []
        for entry in raw:
            try:
                page.append(Transaction.from_dict(entry))
            except ValueError as e:
                self._log.warning("Skipping malformed wallet transaction: %s", e)
        return page, len(raw)

    async def iter_fetch(self) -> AsyncIterator[FetchProgress]:
        settings = self._settings
        cached = self._cache.load()
        latest_cached = max((_effective_time(tx) for tx in cached), default=0)
        self._log.debug(
            "Fetching transactions newer than %d (%d cached)", latest_cached, len(cached)
        )

        new_transactions: list[Transaction] = []
        warnings: list[str] = []
        offset = 0
        batches = 0

        while batches < settings.max_batches:
            result = await self._fetch_page(
                offset, bool(new_transactions or cached), warnings
            )
            if result is None or result[1] == 0:
                break
            page, received = result
            batches += 1

            for tx in page:
                if _effective_time(tx) > latest_cached:
                    new_transactions.append(tx)

            yield FetchProgress(new_count=len(new_transactions), batches=batches)

            timestamps = [tx.timestamp for tx in page if tx.timestamp]
            if timestamps and min(timestamps) <= latest_cached:
                self._log.debug("Reached cached data at offset %d", offset)
                break
            if received < settings.batch_size:
                break

            offset += settings.batch_size
            if batches < settings.max_batches:
                await self._sleep(settings.batch_delay)

        merged = merge_transactions(new_transactions, cached)
        self._cache.save(merged)
        self._log.debug(
            "Fetched %d new transactions, %d total", len(new_transactions), len(merged)
        )

        yield FetchProgress(
            new_count=len(new_transactions),
            batches=batches,
            done=True,
            transactions=merged,
            warnings=warnings,
        )
