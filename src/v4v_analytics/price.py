"""BTC/USD spot price from CoinGecko."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

COINGECKO_URL = "https://api.coingecko.com/api/v3/simple/price"


async def fetch_btc_price(timeout: float = 10.0, **httpx_kwargs: Any) -> float | None:
    """Current BTC price in USD, or None on any network or parse failure.

    Args:
        timeout: Request timeout in seconds.
        **httpx_kwargs: Additional kwargs passed to httpx.AsyncClient.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, **httpx_kwargs) as client:
            response = await client.get(
                COINGECKO_URL, params={"ids": "bitcoin", "vs_currencies": "usd"}
            )
            response.raise_for_status()
            price = response.json()["bitcoin"]["usd"]
    except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
        logger.warning("Could not fetch BTC price: %s", e)
        return None

    if not isinstance(price, (int, float)) or price <= 0:
        logger.warning("Ignoring unexpected BTC price %r", price)
        return None
    return float(price)
