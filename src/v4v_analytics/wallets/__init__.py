"""Wallet adapters for reading Lightning payment history.

Each adapter implements WalletBase: an async list_transactions() call plus
close(). Adapters are async context managers so the connection is released
on every exit path:

    async with create_wallet(config) as wallet:
        page = await wallet.list_transactions(limit=10, offset=0)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from v4v_analytics.exceptions import ConfigurationError

if TYPE_CHECKING:
    from v4v_analytics.config import V4VConfig


class WalletBase(ABC):
    """Abstract base for Lightning wallet adapters."""

    @abstractmethod
    async def list_transactions(
        self, type: str = "incoming", limit: int = 10, offset: int = 0
    ) -> dict[str, Any]:
        """List wallet transactions, newest first.

        Args:
            type: "incoming" or "outgoing".
            limit: Page size.
            offset: Number of newer transactions to skip.

        Returns:
            ``{"transactions": [...]}`` with NIP-47 shaped records
            (payment_hash, amount in msats, description, settled_at, created_at).

        Raises:
            WalletTimeoutError: The wallet did not answer in time.
            WalletError: The wallet returned an error.
        """

    async def close(self) -> None:
        """Release the wallet connection. Safe to call more than once."""

    async def __aenter__(self) -> WalletBase:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def create_wallet(config: V4VConfig, timeout: float | None = None) -> WalletBase:
    """Build the configured wallet adapter.

    Raises:
        ConfigurationError: If no NWC connection string is configured.
    """
    if not config.nwc_connection_string:
        raise ConfigurationError(
            "NWC_CONNECTION_STRING not found. Set it in your environment or .env file.",
            setting="NWC_CONNECTION_STRING",
        )

    from v4v_analytics.wallets.nwc import NwcWallet

    return NwcWallet(
        connection_string=config.nwc_connection_string,
        timeout=timeout if timeout is not None else config.nwc_timeout,
    )


from v4v_analytics.wallets.nwc import NwcWallet as NwcWallet

__all__ = [
    "WalletBase",
    "NwcWallet",
    "create_wallet",
]
